from lgupay.payroll.engine import PayrollCalculationEngine
from lgupay.tax.withholding import default_tax_table

EMPLOYEE = {
    "id": 1,
    "employee_number": "EMP-001",
    "first_name": "Juan",
    "last_name": "Dela Cruz",
    "position": "Administrative Officer",
    "department": "HRMO",
    "current_monthly_salary": 30000,
}
PERIOD = {"id": 7, "year": 2024, "month": 10, "period_number": 1, "working_days": 22, "pay_date": "2024-10-20"}

def _codes(items):
    return {i["code"]: i["amount"] for i in items}

def test_full_attendance_payroll():
    r = PayrollCalculationEngine().calculate_employee_payroll(EMPLOYEE, PERIOD, tax_table=default_tax_table())
    assert r["success"]
    d = r["data"]
    assert d["daily_rate"] == 1363.64
    assert d["basic_pay"] == 30000
    assert _codes(d["allowances"]) == {"PERA": 2000, "SUBSISTENCE": 1100, "LAUNDRY": 150}
    assert d["gross_pay"] == 33250
    deductions = _codes(d["deductions"])
    assert deductions["GSIS"] == 2700
    assert deductions["PAGIBIG"] == 200
    assert deductions["PHILHEALTH"] == 600
    assert "EC" not in deductions
    assert d["taxable_income"] == 29750
    assert deductions["WTAX"] == 1337.5
    assert d["total_deductions"] == 4837.5
    assert d["net_pay"] == 28412.5

def test_working_days_default_to_22():
    period = dict(PERIOD, working_days=None)
    r = PayrollCalculationEngine().calculate_employee_payroll(EMPLOYEE, period)
    assert r["data"]["working_days"] == 22
    assert r["data"]["days_present"] == 22

def test_partial_attendance_and_lwop():
    r = PayrollCalculationEngine().calculate_employee_payroll(
        EMPLOYEE, PERIOD, overrides={"days_present": 11, "days_lwop": 2}
    )
    d = r["data"]
    assert d["basic_pay"] == round(15000 - 2 * 1363.64, 2)
    assert d["lwop_deduction"] == 2727.28
    assert _codes(d["allowances"])["PERA"] == 1000
    assert d["overrides_applied"]

def test_hazard_pay_and_rata_are_taxable():
    nurse = dict(EMPLOYEE, department="Rural Health Unit", current_daily_rate=2000,
                 current_monthly_salary=44000, monthly_rata=5000)
    r = PayrollCalculationEngine().calculate_employee_payroll(nurse, PERIOD)
    items = {i["code"]: i for i in r["data"]["allowances"]}
    assert items["HAZARD"]["amount"] == 11000
    assert items["HAZARD"]["is_taxable"]
    assert items["RATA"]["amount"] == 5000
    assert not items["SUBSISTENCE"]["is_taxable"]

def test_sb_member_rata_from_sessions():
    councilor = dict(EMPLOYEE, position="SB Member", monthly_rata=8000)
    r = PayrollCalculationEngine().calculate_employee_payroll(
        councilor, PERIOD, overrides={"sessions_attended": 2, "total_sessions": 4}
    )
    assert _codes(r["data"]["allowances"])["RATA"] == 4000

def test_custom_allowances_and_loans():
    overrides = {
        "custom_allowances": [{"code": "CLOTHING", "name": "Clothing", "amount": 500, "is_taxable": False}],
        "loan_deductions": [{"code": "GSIS-LOAN", "name": "GSIS Salary Loan", "amount": 1000}],
    }
    r = PayrollCalculationEngine().calculate_employee_payroll(EMPLOYEE, PERIOD, overrides=overrides)
    d = r["data"]
    assert _codes(d["allowances"])["CLOTHING"] == 500
    assert _codes(d["deductions"])["GSIS-LOAN"] == 1000
    assert d["gross_pay"] == 33750

def test_negative_net_is_clamped():
    overrides = {"loan_deductions": [{"amount": 50000}]}
    r = PayrollCalculationEngine().calculate_employee_payroll(EMPLOYEE, PERIOD, overrides=overrides)
    assert not r["success"]
    assert r["data"]["net_pay"] == 0
    assert "Net pay is negative - deductions exceed gross pay" in r["errors"]
    assert "Total deductions exceed gross pay" in r["warnings"]

def test_invalid_inputs_return_errors():
    r = PayrollCalculationEngine().calculate_employee_payroll(dict(EMPLOYEE, current_monthly_salary=0), {"id": None})
    assert not r["success"]
    assert "Employee has no valid monthly salary" in r["errors"]
    assert "Invalid payroll period" in r["errors"]

def test_input_warnings():
    r = PayrollCalculationEngine().calculate_employee_payroll(
        EMPLOYEE, PERIOD, overrides={"days_present": 25}
    )
    assert r["success"]
    assert "Days present exceeds working days" in r["warnings"]

def test_invalid_working_days():
    r = PayrollCalculationEngine().calculate_employee_payroll(EMPLOYEE, PERIOD, working_days=40)
    assert not r["success"]
    assert "Invalid working days (must be 1-31)" in r["errors"]

def test_calculation_breakdown():
    engine = PayrollCalculationEngine()
    r = engine.calculate_employee_payroll(EMPLOYEE, PERIOD)
    b = engine.generate_calculation_breakdown(r["data"])
    assert b["employee"]["number"] == "EMP-001"
    assert b["summary"]["net_pay"] == r["data"]["net_pay"]
    assert b["attendance"]["days_lwop"] == 0
    assert engine.generate_calculation_breakdown({})["error"] == "Failed to generate breakdown"
