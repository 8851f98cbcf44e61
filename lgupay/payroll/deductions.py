"""
Mandatory government contributions: GSIS, Pag-IBIG, PhilHealth and the EC fund.
All premiums are computed on the basic salary; ``amount`` is always the
employee share.
"""
from typing import Dict, Any, Optional

from ..core.config import settings
from ..core.utils import get_logger, peso, is_number

logger = get_logger("payroll", "deductions")

def _zero(basis: str, error: Optional[str] = None, **extra) -> Dict[str, Any]:
    result = {"amount": 0, "basis": basis, "employee_share": 0, "employer_share": 0}
    result.update(extra)
    if error:
        result["error"] = error
    return result

def _check_salary(basic_salary) -> Optional[Dict[str, Any]]:
    if basic_salary is None or not is_number(basic_salary) or basic_salary < 0:
        return _zero("Invalid basic salary", "Invalid basic salary value")
    if basic_salary == 0:
        return _zero("Zero basic salary")
    return None

class DeductionCalculator:
    def calculate_gsis_premium(self, basic_salary: float) -> Dict[str, Any]:
        """9% employee share of the salary capped at 100,000; 12% employer share for reference."""
        rejected = _check_salary(basic_salary)
        if rejected:
            return rejected

        try:
            capped_salary = min(basic_salary, settings.GSIS_MAX_SALARY)
            employee_share = capped_salary * settings.GSIS_EMPLOYEE_RATE
            employer_share = capped_salary * settings.GSIS_EMPLOYER_RATE

            basis = f"{settings.GSIS_EMPLOYEE_RATE * 100:g}% of {peso(capped_salary)}"
            if basic_salary > settings.GSIS_MAX_SALARY:
                basis += f" (salary capped at {peso(settings.GSIS_MAX_SALARY)})"

            return {
                "amount": round(employee_share, 2),
                "basis": basis,
                "employee_share": round(employee_share, 2),
                "employer_share": round(employer_share, 2),
                "capped_salary": round(capped_salary, 2),
            }
        except Exception as e:
            logger.exception("GSIS calculation error")
            return _zero(f"Error: {e}", str(e))

    def calculate_pagibig_premium(self, basic_salary: float) -> Dict[str, Any]:
        """
        Pag-IBIG (HDMF) contribution.

        Salaries up to 5,000 pay the flat 100; above that the employee pays 2%
        capped at 200. The employer matches the employee share.
        """
        rejected = _check_salary(basic_salary)
        if rejected:
            return rejected

        try:
            if basic_salary <= settings.PAGIBIG_HIGH_EARNER_THRESHOLD:
                employee_share = settings.PAGIBIG_STANDARD_CONTRIBUTION
                basis = (f"Standard contribution: {peso(employee_share)} "
                         f"(salary ≤ {peso(settings.PAGIBIG_HIGH_EARNER_THRESHOLD)})")
            else:
                computed = basic_salary * settings.PAGIBIG_HIGH_EARNER_RATE
                employee_share = min(computed, settings.PAGIBIG_MAX_CONTRIBUTION)
                basis = f"{settings.PAGIBIG_HIGH_EARNER_RATE * 100:g}% of {peso(basic_salary)}"
                if computed > settings.PAGIBIG_MAX_CONTRIBUTION:
                    basis += f" (capped at {peso(settings.PAGIBIG_MAX_CONTRIBUTION)})"

            return {
                "amount": round(employee_share, 2),
                "basis": basis,
                "employee_share": round(employee_share, 2),
                "employer_share": round(employee_share, 2),
            }
        except Exception as e:
            logger.exception("Pag-IBIG calculation error")
            return _zero(f"Error: {e}", str(e))

    def calculate_philhealth_premium(self, basic_salary: float) -> Dict[str, Any]:
        """4% total premium on the salary clamped to [10,000, 100,000]; employee pays half."""
        rejected = _check_salary(basic_salary)
        if rejected:
            rejected["total_premium"] = 0
            return rejected

        try:
            applicable_salary = basic_salary
            adjustment = ""
            if basic_salary < settings.PHILHEALTH_MIN_SALARY:
                applicable_salary = settings.PHILHEALTH_MIN_SALARY
                adjustment = f" (minimum salary: {peso(settings.PHILHEALTH_MIN_SALARY)})"
            elif basic_salary > settings.PHILHEALTH_MAX_SALARY:
                applicable_salary = settings.PHILHEALTH_MAX_SALARY
                adjustment = f" (maximum salary: {peso(settings.PHILHEALTH_MAX_SALARY)})"

            total_premium = applicable_salary * settings.PHILHEALTH_RATE
            total_premium = min(max(total_premium, settings.PHILHEALTH_MIN_PREMIUM), settings.PHILHEALTH_MAX_PREMIUM)

            employee_share = total_premium * settings.PHILHEALTH_EMPLOYEE_SHARE
            employer_share = total_premium - employee_share

            return {
                "amount": round(employee_share, 2),
                "basis": (f"{settings.PHILHEALTH_RATE * 100:g}% of {peso(applicable_salary)}{adjustment} "
                          f"= {peso(total_premium)} total (employee share: "
                          f"{settings.PHILHEALTH_EMPLOYEE_SHARE * 100:g}%)"),
                "employee_share": round(employee_share, 2),
                "employer_share": round(employer_share, 2),
                "total_premium": round(total_premium, 2),
                "applicable_salary": round(applicable_salary, 2),
            }
        except Exception as e:
            logger.exception("PhilHealth calculation error")
            return _zero(f"Error: {e}", str(e), total_premium=0)

    def calculate_ec_fund(self) -> Dict[str, Any]:
        """Employees' Compensation fund; employer only, never deducted from pay."""
        amount = settings.EC_FUND_AMOUNT
        return {
            "amount": amount,
            "basis": f"Fixed EC Fund contribution: {peso(amount)} (employer share only)",
            "employee_share": 0,
            "employer_share": amount,
        }

    def get_total_mandatory_deductions(self, basic_salary: float, gross_pay: Optional[float] = None) -> Dict[str, Any]:
        try:
            parts = [
                ("GSIS Premium", "GSIS", self.calculate_gsis_premium(basic_salary)),
                ("Pag-IBIG Premium", "PAGIBIG", self.calculate_pagibig_premium(basic_salary)),
                ("PhilHealth Premium", "PHILHEALTH", self.calculate_philhealth_premium(basic_salary)),
                ("EC Fund", "EC", self.calculate_ec_fund()),
            ]

            employee_total = sum(r["employee_share"] for _, _, r in parts)
            employer_total = sum(r["employer_share"] for _, _, r in parts)

            breakdown = [
                {
                    "name": name,
                    "code": code,
                    "employee_share": r["employee_share"],
                    "employer_share": r["employer_share"],
                    "basis": r["basis"],
                    "error": r.get("error"),
                }
                for name, code, r in parts
            ]

            return {
                "total": round(employee_total, 2),
                "employee_total": round(employee_total, 2),
                "employer_total": round(employer_total, 2),
                "breakdown": breakdown,
                "summary": {
                    "basic_salary": round(basic_salary, 2),
                    "gross_pay": round(gross_pay, 2) if gross_pay else None,
                    "total_employee_deductions": round(employee_total, 2),
                    "total_employer_contributions": round(employer_total, 2),
                },
            }
        except Exception as e:
            logger.exception("Error calculating total mandatory deductions")
            return {"total": 0, "employee_total": 0, "employer_total": 0, "breakdown": [], "error": str(e)}

    def validate_deduction_inputs(self, basic_salary: Optional[float]) -> Dict[str, Any]:
        errors = []
        warnings = []

        if basic_salary is None:
            errors.append("Basic salary is required")
        elif not is_number(basic_salary):
            errors.append("Basic salary must be a number")
        else:
            if basic_salary < 0:
                errors.append("Basic salary cannot be negative")
            if basic_salary == 0:
                warnings.append("Basic salary is zero - all deductions will be zero")
            if basic_salary > settings.GSIS_MAX_SALARY:
                warnings.append(f"Basic salary exceeds GSIS maximum ({peso(settings.GSIS_MAX_SALARY)}) - GSIS will be capped")
            if basic_salary > settings.PHILHEALTH_MAX_SALARY:
                warnings.append(f"Basic salary exceeds PhilHealth maximum ({peso(settings.PHILHEALTH_MAX_SALARY)}) "
                                "- PhilHealth will be capped")

        return {"is_valid": len(errors) == 0, "errors": errors, "warnings": warnings}
