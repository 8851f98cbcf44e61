from datetime import date

import pytest

from lgupay.db.models import PayrollItem
from lgupay.payroll.periods import (
    PayrollPeriodError, PayrollPeriodManager, PayrollPeriodStatus, period_name, validate_period_data,
)

def _data(**kw):
    data = {"year": 2024, "month": 11, "period_number": 1,
            "start_date": "2024-11-01", "end_date": "2024-11-15", "pay_date": "2024-11-20"}
    data.update(kw)
    return data

def test_period_name():
    assert period_name({"year": 2024, "month": 10, "period_number": 1}) == "October 2024 - 1st Half"
    assert period_name({"year": 2024, "month": 13, "period_number": 2}) == "Unknown 2024 - 2nd Half"

def test_period_name_from_model(period):
    assert period_name(period) == "October 2024 - 1st Half"

def test_validate_period_data_errors():
    v = validate_period_data({"year": 2019, "month": 0, "period_number": 3,
                              "start_date": "2024-10-15", "end_date": "2024-10-01"})
    assert not v["is_valid"]
    assert "Valid year (2020-2050) is required" in v["errors"]
    assert "Valid month (1-12) is required" in v["errors"]
    assert "Period number must be 1 or 2" in v["errors"]
    assert "End date must be after start date" in v["errors"]

def test_validate_period_data_duplicate():
    existing = [{"id": 1, "year": 2024, "month": 11, "period_number": 1}]
    assert not validate_period_data(_data(), existing)["is_valid"]
    # editing the same period is not a duplicate
    assert validate_period_data(_data(id=1), existing)["is_valid"]

def test_create_period_counts_weekdays(db_session):
    r = PayrollPeriodManager(db_session).create_period(_data(start_date="2024-10-01", end_date="2024-10-15", month=10))
    assert r["success"]
    assert r["data"]["working_days"] == 11
    assert r["data"]["status"] == "Draft"

def test_create_period_rejects_duplicate(db_session, period):
    r = PayrollPeriodManager(db_session).create_period(_data(month=10))
    assert not r["success"]
    assert r["error"] == "Validation failed"

def test_forward_transitions(db_session, period):
    m = PayrollPeriodManager(db_session)
    assert m.can_edit(period)
    m.transition(period, "Processing")
    m.finalize(period, user_id="treasurer")
    assert period.status == "Finalized"
    assert period.finalized_by == "treasurer"
    assert period.finalized_at.tzinfo is None
    assert not m.can_edit(period)
    m.mark_paid(period)
    assert period.status == PayrollPeriodStatus.PAID.value

def test_backward_and_skipping_transitions_rejected(db_session, period):
    m = PayrollPeriodManager(db_session)
    with pytest.raises(PayrollPeriodError):
        m.finalize(period)
    with pytest.raises(PayrollPeriodError):
        m.transition(period, "Reopened")
    m.transition(period, PayrollPeriodStatus.PROCESSING)
    with pytest.raises(PayrollPeriodError):
        m.transition(period, PayrollPeriodStatus.DRAFT)

def test_cannot_finalize_with_draft_items(db_session, period, employees):
    db_session.add(PayrollItem(payroll_period_id=period.id, employee_id=employees[0].id, status="draft"))
    db_session.commit()
    m = PayrollPeriodManager(db_session)
    m.transition(period, "Processing")
    assert not m.can_finalize(period)
    with pytest.raises(PayrollPeriodError):
        m.finalize(period)

def test_mark_paid_updates_items(db_session, period, employees):
    db_session.add(PayrollItem(payroll_period_id=period.id, employee_id=employees[0].id, status="calculated"))
    db_session.commit()
    m = PayrollPeriodManager(db_session)
    m.transition(period, "Processing")
    m.finalize(period)
    m.mark_paid(period)
    item = period.items[0]
    assert item.status == "paid"
    assert item.paid_at is not None

def test_get_missing_period(db_session):
    with pytest.raises(PayrollPeriodError):
        PayrollPeriodManager(db_session).get(999)

def test_start_date_type(period):
    assert period.start_date == date(2024, 10, 1)
