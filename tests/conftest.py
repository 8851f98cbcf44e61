from datetime import date

import pytest

from lgupay.core.audit import AuditLogger
from lgupay.db.session import make_session_factory
from lgupay.db.models import Employee, PayrollPeriod

@pytest.fixture
def db_session(tmp_path):
    Session = make_session_factory(f"sqlite:///{tmp_path}/test.db")
    session = Session()
    yield session
    session.close()

@pytest.fixture
def audit(tmp_path):
    return AuditLogger("dtr", data_dir=tmp_path / "data")

@pytest.fixture
def period(db_session):
    p = PayrollPeriod(year=2024, month=10, period_number=1,
                      start_date=date(2024, 10, 1), end_date=date(2024, 10, 15),
                      pay_date=date(2024, 10, 20), working_days=22, status="Draft")
    db_session.add(p)
    db_session.commit()
    return p

@pytest.fixture
def employees(db_session):
    rows = [
        Employee(employee_number="EMP-001", first_name="Juan", last_name="Dela Cruz",
                 plantilla_position="Administrative Officer", department="HRMO",
                 current_monthly_salary=30000, current_daily_rate=1363.64),
        Employee(employee_number="EMP-002", first_name="Maria", last_name="Santos",
                 plantilla_position="Nurse II", department="Rural Health Unit",
                 current_monthly_salary=44000, current_daily_rate=2000),
        Employee(employee_number="EMP-003", first_name="Pedro", last_name="Reyes",
                 plantilla_position="Clerk", department="MSWD",
                 employment_status="Resigned", current_monthly_salary=18000),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows
