from datetime import date

import pandas as pd
from sqlalchemy import select

from lgupay.db.models import DTRImportBatch, DTRRecord, PayrollItem
from lgupay.payroll.bulk_processor import PayrollBulkProcessor
from lgupay.payroll.periods import PayrollPeriodManager

def _dtr(db_session, period, days):
    """``days`` maps an Employee to its DTR working days."""
    batch = DTRImportBatch(payroll_period_id=period.id, status="Completed")
    db_session.add(batch)
    db_session.flush()
    for emp, working_days in days.items():
        db_session.add(DTRRecord(payroll_period_id=period.id, employee_id=emp.id, employee_number=emp.employee_number,
                                 start_date=date(2024, 10, 1), end_date=date(2024, 10, 15),
                                 working_days=working_days, import_batch_id=batch.id))
    db_session.commit()

def _full_dtr(db_session, period, employees):
    _dtr(db_session, period, {employees[0]: 22, employees[1]: 22})

def _items(db_session, period):
    return {i.employee.employee_number: i for i in db_session.execute(
        select(PayrollItem).where(PayrollItem.payroll_period_id == period.id)).scalars()}

def test_process_period_active_employees_only(db_session, period, employees):
    _dtr(db_session, period, {employees[0]: 22, employees[1]: 22, employees[2]: 5})
    r = PayrollBulkProcessor(db_session).process_period(period.id)
    assert r["success"]
    assert [x["employee_number"] for x in r["results"]] == ["EMP-001", "EMP-002"]
    assert r["summary"]["processed"] == 2
    assert r["summary"]["failed"] == 0
    assert period.status == "Processing"

    items = _items(db_session, period)
    assert set(items) == {"EMP-001", "EMP-002"}
    juan = items["EMP-001"]
    assert juan.net_pay == 28412.5
    assert juan.status == "calculated"
    assert juan.breakdown["summary"]["gross_pay"] == 33250

def test_no_dtr_data_refuses(db_session, period, employees):
    r = PayrollBulkProcessor(db_session).process_period(period.id)
    assert not r["success"]
    assert r["code"] == "NO_DTR_DATA"
    assert period.status == "Draft"
    assert _items(db_session, period) == {}

def test_employees_without_dtr_are_skipped(db_session, period, employees):
    _dtr(db_session, period, {employees[0]: 11})
    processor = PayrollBulkProcessor(db_session)

    missing = processor.get_employees_without_dtr(period.id)["data"]
    assert missing["count"] == 1
    assert missing["employees"][0]["employee_number"] == "EMP-002"

    r = processor.process_period(period.id)
    assert r["summary"]["without_dtr"] == 1
    assert r["summary"]["dtr_source"] == {"total_records": 1, "total_working_days": 11}
    assert set(_items(db_session, period)) == {"EMP-001"}

def test_dtr_days_used_as_attendance(db_session, period, employees):
    _dtr(db_session, period, {employees[0]: 11, employees[1]: 22})
    PayrollBulkProcessor(db_session).process_period(period.id)
    juan = _items(db_session, period)["EMP-001"]
    assert juan.days_present == 11
    assert juan.basic_pay == 15000

def test_overrides_take_precedence(db_session, period, employees):
    _full_dtr(db_session, period, employees)
    overrides = {employees[0].id: {"days_present": 20, "loan_deductions": [{"amount": 1000}]}}
    r = PayrollBulkProcessor(db_session).process_period(period.id, employee_ids=[employees[0].id], overrides=overrides)
    assert len(r["results"]) == 1
    juan = _items(db_session, period)["EMP-001"]
    assert juan.days_present == 20
    assert any(d["code"] == "LOAN" for d in juan.breakdown["deductions"]["items"])

def test_reprocess_updates_existing_items(db_session, period, employees):
    _full_dtr(db_session, period, employees)
    processor = PayrollBulkProcessor(db_session)
    processor.process_period(period.id)
    processor.process_period(period.id, overrides={employees[0].id: {"days_present": 11}})
    items = _items(db_session, period)
    assert len(items) == 2
    assert items["EMP-001"].basic_pay == 15000

def test_failed_recalculation_resets_stored_item(db_session, period, employees):
    _full_dtr(db_session, period, employees)
    processor = PayrollBulkProcessor(db_session)
    processor.process_period(period.id)

    r = processor.process_period(period.id, overrides={employees[0].id: {"loan_deductions": [{"amount": 50000}]}})
    assert r["summary"]["failed"] == 1
    juan = _items(db_session, period)["EMP-001"]
    assert juan.status == "draft"
    assert juan.calculated_at is None
    assert not PayrollPeriodManager(db_session).can_finalize(period)

def test_finalized_period_is_locked(db_session, period, employees):
    period.status = "Finalized"
    db_session.commit()
    r = PayrollBulkProcessor(db_session).process_period(period.id)
    assert not r["success"]
    assert "Finalized" in r["error"]

def test_missing_period(db_session):
    assert PayrollBulkProcessor(db_session).process_period(42)["error"] == "Payroll period not found"

def test_payroll_summary(db_session, period, employees):
    _full_dtr(db_session, period, employees)
    processor = PayrollBulkProcessor(db_session)
    r = processor.process_period(period.id)
    summary = processor.get_payroll_summary(period.id)["data"]
    assert summary["period"] == "October 2024 - 1st Half"
    assert summary["total_employees"] == 2
    assert summary["totals"]["net"] == r["summary"]["totals"]["net"]
    assert summary["status"] == "Processing"

def test_export_payroll(db_session, period, employees, tmp_path):
    processor = PayrollBulkProcessor(db_session)
    out = tmp_path / "payroll.xlsx"
    assert not processor.export_payroll(period.id, str(out))

    _full_dtr(db_session, period, employees)
    processor.process_period(period.id)
    assert processor.export_payroll(period.id, str(out))
    df = pd.read_excel(out)
    assert list(df["Employee Number"]) == ["EMP-001", "EMP-002"]
    assert df.loc[0, "Employee Name"] == "Juan Dela Cruz"
