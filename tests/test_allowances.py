from lgupay.payroll.allowances import AllowanceCalculator

def test_pera_full_and_prorated():
    a = AllowanceCalculator()
    assert a.calculate_pera(22, 22)["amount"] == 2000
    r = a.calculate_pera(11, 22)
    assert r["amount"] == 1000
    assert r["basis"].startswith("Prorated PERA")

def test_pera_defaults_to_22_days():
    assert AllowanceCalculator().calculate_pera(11)["amount"] == 1000

def test_pera_invalid_days():
    r = AllowanceCalculator().calculate_pera(-1, 22)
    assert r["amount"] == 0
    assert "error" in r

def test_rata_executive_days_based():
    emp = {"position": "Municipal Treasurer", "department": "Treasury", "monthly_rata": 11000}
    r = AllowanceCalculator().calculate_rata(emp, {}, {"days_present": 11, "working_days": 22})
    assert r["amount"] == 5500
    assert r["rata_type"] == "Executive"
    assert r["calculation_method"] == "Days-based"

def test_rata_sb_member_session_based():
    emp = {"position": "SB Member", "department": "Sangguniang Bayan", "rata_amount": 8000}
    r = AllowanceCalculator().calculate_rata(emp, {}, {"sessions_attended": 3, "total_sessions": 4})
    assert r["amount"] == 6000
    assert r["rata_type"] == "SB Member"

def test_rata_sb_member_no_sessions():
    emp = {"position": "Councilor", "monthly_rata": 8000}
    r = AllowanceCalculator().calculate_rata(emp, {}, {"sessions_attended": 0, "total_sessions": 0})
    assert r["amount"] == 0
    assert r["basis"] == "No sessions scheduled for this period"

def test_rata_not_assigned():
    r = AllowanceCalculator().calculate_rata({"position": "Clerk"}, {}, {"days_present": 22})
    assert r["amount"] == 0
    assert r["rata_type"] == "None"

def test_hazard_pay_health_worker():
    emp = {"department": "Rural Health Unit", "current_daily_rate": 1000}
    r = AllowanceCalculator().calculate_hazard_pay(emp, 10)
    assert r["is_eligible"]
    assert r["rate"] == 0.25
    assert r["amount"] == 2500

def test_hazard_pay_social_worker_from_monthly():
    emp = {"department": "mswd", "current_monthly_salary": 22000}
    r = AllowanceCalculator().calculate_hazard_pay(emp, 22)
    assert r["rate"] == 0.20
    assert r["amount"] == 4400

def test_hazard_pay_not_eligible():
    r = AllowanceCalculator().calculate_hazard_pay({"department": "Treasury", "current_daily_rate": 1000}, 10)
    assert not r["is_eligible"]
    assert r["amount"] == 0

def test_hazard_pay_missing_salary_still_eligible():
    r = AllowanceCalculator().calculate_hazard_pay({"department": "HEALTH"}, 10)
    assert r["is_eligible"]
    assert r["amount"] == 0
    assert r["error"] == "Missing salary data"

def test_subsistence_and_laundry():
    a = AllowanceCalculator()
    assert a.calculate_subsistence(22)["amount"] == 1100
    assert a.calculate_laundry(22)["amount"] == 150
    assert a.calculate_laundry(0)["amount"] == 0

def test_is_sangguniang_bayan_member():
    a = AllowanceCalculator()
    assert a.is_sangguniang_bayan_member({"position": "Vice Mayor"})
    assert a.is_sangguniang_bayan_member({"position": "Secretary", "department": "Sangguniang Bayan"})
    assert not a.is_sangguniang_bayan_member({"position": "Engineer"})
    assert not a.is_sangguniang_bayan_member(None)

def test_validate_allowance_inputs():
    a = AllowanceCalculator()
    assert not a.validate_allowance_inputs(None)["is_valid"]
    v = a.validate_allowance_inputs(25, 22)
    assert v["is_valid"]
    assert v["warnings"]
