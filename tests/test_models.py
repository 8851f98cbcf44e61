from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from lgupay.db.models import DTRImportBatch, DTRRecord, Employee, PayrollItem, PayrollPeriod

def test_employee_names_and_dict(db_session):
    emp = Employee(employee_number="EMP-010", first_name="Ana", middle_name="Reyes", last_name="Cruz",
                   plantilla_position="Engineer II")
    db_session.add(emp)
    db_session.commit()
    assert emp.full_name() == "Ana Reyes Cruz"
    d = emp.to_dict()
    assert d["position"] == "Engineer II"
    assert d["employment_status"] == "Active"

def test_period_unique_key(db_session, period):
    db_session.add(PayrollPeriod(year=2024, month=10, period_number=1,
                                 start_date=date(2024, 10, 1), end_date=date(2024, 10, 15)))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()

def test_period_to_dict(period):
    d = period.to_dict()
    assert d["start_date"] == "2024-10-01"
    assert d["status"] == "Draft"

def test_payroll_item_breakdown_json(db_session, period, employees):
    item = PayrollItem(payroll_period_id=period.id, employee_id=employees[0].id,
                       breakdown={"summary": {"net_pay": 100.0}})
    db_session.add(item)
    db_session.commit()
    db_session.expire_all()
    assert db_session.get(PayrollItem, item.id).breakdown["summary"]["net_pay"] == 100.0
    assert period.items[0].employee.employee_number == "EMP-001"

def test_batch_records_relationship(db_session, period, employees):
    batch = DTRImportBatch(payroll_period_id=period.id, file_name="dtr.xlsx")
    db_session.add(batch)
    db_session.flush()
    db_session.add(DTRRecord(payroll_period_id=period.id, employee_id=employees[1].id, employee_number="EMP-002",
                             start_date=date(2024, 10, 1), end_date=date(2024, 10, 15),
                             working_days=10, import_batch_id=batch.id))
    db_session.commit()
    assert batch.records[0].status == "Active"
    assert batch.to_dict()["status"] == "Processing"
