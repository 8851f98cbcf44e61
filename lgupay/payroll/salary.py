"""
Basic salary, daily rate and LWOP calculations.
Implements the 22-day rule used for government employees.
"""
from datetime import date, datetime
from typing import Dict, Any, Optional, Union

import numpy as np

from ..core.config import settings
from ..core.utils import get_logger, peso, is_number

logger = get_logger("payroll", "salary")

DateLike = Union[str, date, datetime]

def _to_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])

def count_weekdays(start: DateLike, end: DateLike) -> int:
    """Mon-Fri days between ``start`` and ``end``, both inclusive."""
    start_d, end_d = _to_date(start), _to_date(end)
    if end_d < start_d:
        return 0
    return int(np.busday_count(np.datetime64(start_d, "D"), np.datetime64(end_d, "D") + np.timedelta64(1, "D")))

class SalaryCalculator:
    def __init__(self):
        self.standard_working_days = settings.STANDARD_WORKING_DAYS

    def calculate_basic_salary(self, monthly_salary: float, working_days: float, days_present: float) -> Dict[str, Any]:
        """(monthly salary / working days) x days present."""
        try:
            validation = self.validate_salary_inputs(monthly_salary, working_days, days_present)
            if not validation["is_valid"]:
                return {
                    "amount": 0,
                    "basis": f"Validation errors: {', '.join(validation['errors'])}",
                    "daily_rate": 0,
                    "proration_factor": 0,
                    "errors": validation["errors"],
                }

            if working_days == 0:
                return {
                    "amount": 0,
                    "basis": "No working days in period",
                    "daily_rate": 0,
                    "proration_factor": 0,
                    "monthly_salary": monthly_salary,
                }

            daily_rate = monthly_salary / working_days
            amount = daily_rate * days_present
            proration_factor = days_present / working_days

            if days_present == working_days:
                basis = f"Full salary: {peso(monthly_salary)} ({days_present:g}/{working_days:g} days)"
            else:
                basis = (f"Prorated salary: {peso(monthly_salary)} / {working_days:g} days "
                         f"× {days_present:g} days = {peso(amount)}")

            return {
                "amount": round(amount, 2),
                "basis": basis,
                "daily_rate": round(daily_rate, 2),
                "proration_factor": round(proration_factor, 4),
                "monthly_salary": round(monthly_salary, 2),
                "working_days": working_days,
                "days_present": days_present,
                "warnings": validation["warnings"],
            }
        except Exception as e:
            logger.exception("Basic salary calculation error")
            return {"amount": 0, "basis": f"Error: {e}", "daily_rate": 0, "proration_factor": 0, "error": str(e)}

    def calculate_daily_rate(self, monthly_salary: Optional[float]) -> Dict[str, Any]:
        """Monthly salary / 22."""
        if monthly_salary is None:
            return {
                "daily_rate": 0,
                "basis": "Monthly salary is required",
                "monthly_salary": 0,
                "error": "Invalid monthly salary",
            }
        if not is_number(monthly_salary) or monthly_salary < 0:
            return {
                "daily_rate": 0,
                "basis": "Invalid monthly salary value",
                "monthly_salary": 0,
                "error": "Monthly salary must be a non-negative number",
            }
        if monthly_salary == 0:
            return {"daily_rate": 0, "basis": "Monthly salary is zero", "monthly_salary": 0}

        daily_rate = monthly_salary / self.standard_working_days
        return {
            "daily_rate": round(daily_rate, 2),
            "basis": f"{peso(monthly_salary)} / {self.standard_working_days} days = {peso(daily_rate)}",
            "monthly_salary": round(monthly_salary, 2),
            "standard_working_days": self.standard_working_days,
        }

    def apply_lwop(self, basic_salary: float, lwop_days: float, daily_rate: float) -> Dict[str, Any]:
        """
        Deduct leave-without-pay days from an already computed basic salary.

        The adjusted salary never goes below zero; when the deduction is larger
        than the salary the result is capped and a warning is attached.
        """
        if basic_salary is None or not is_number(basic_salary) or basic_salary < 0:
            return {
                "amount": 0,
                "basis": "Invalid basic salary",
                "lwop_deduction": 0,
                "adjusted_salary": 0,
                "error": "Invalid basic salary value",
            }
        if lwop_days is None or not is_number(lwop_days) or lwop_days < 0:
            return {
                "amount": basic_salary,
                "basis": "Invalid LWOP days - no deduction applied",
                "lwop_deduction": 0,
                "adjusted_salary": basic_salary,
                "error": "Invalid LWOP days value",
            }
        if daily_rate is None or not is_number(daily_rate) or daily_rate < 0:
            return {
                "amount": basic_salary,
                "basis": "Invalid daily rate - no deduction applied",
                "lwop_deduction": 0,
                "adjusted_salary": basic_salary,
                "error": "Invalid daily rate value",
            }

        if lwop_days == 0:
            return {
                "amount": round(basic_salary, 2),
                "basis": "No LWOP days",
                "lwop_deduction": 0,
                "adjusted_salary": round(basic_salary, 2),
                "basic_salary": round(basic_salary, 2),
                "lwop_days": 0,
                "daily_rate": round(daily_rate, 2),
                "warnings": [],
            }

        lwop_deduction = lwop_days * daily_rate
        adjusted_salary = max(0.0, basic_salary - lwop_deduction)

        warnings = []
        if adjusted_salary == 0 and basic_salary > 0:
            warnings.append("LWOP deduction resulted in zero salary")
        if lwop_deduction > basic_salary:
            warnings.append("LWOP deduction exceeds basic salary - salary capped at zero")

        return {
            "amount": round(adjusted_salary, 2),
            "basis": (f"Basic salary: {peso(basic_salary)} - LWOP deduction: "
                      f"({lwop_days:g} days × {peso(daily_rate)}) = {peso(adjusted_salary)}"),
            "lwop_deduction": round(lwop_deduction, 2),
            "adjusted_salary": round(adjusted_salary, 2),
            "basic_salary": round(basic_salary, 2),
            "lwop_days": lwop_days,
            "daily_rate": round(daily_rate, 2),
            "warnings": warnings,
        }

    def handle_partial_month(
        self,
        monthly_salary: float,
        start_date: Optional[DateLike],
        end_date: Optional[DateLike],
        total_working_days: Optional[float] = None
    ) -> Dict[str, Any]:
        """Prorate for newly hired or separated employees by weekdays actually covered."""
        if not start_date or not end_date:
            return {
                "amount": 0,
                "basis": "Invalid date range",
                "actual_working_days": 0,
                "proration_factor": 0,
                "error": "Start date and end date are required",
            }
        if monthly_salary is None or not is_number(monthly_salary) or monthly_salary < 0:
            return {
                "amount": 0,
                "basis": "Invalid monthly salary",
                "actual_working_days": 0,
                "proration_factor": 0,
                "error": "Invalid monthly salary value",
            }

        try:
            start, end = _to_date(start_date), _to_date(end_date)
        except ValueError as e:
            return {
                "amount": 0,
                "basis": "Invalid date range",
                "actual_working_days": 0,
                "proration_factor": 0,
                "error": str(e),
            }

        actual_working_days = count_weekdays(start, end)
        working_days_in_month = total_working_days or self.standard_working_days
        proration_factor = actual_working_days / working_days_in_month
        amount = monthly_salary * proration_factor

        return {
            "amount": round(amount, 2),
            "basis": (f"Partial month: {peso(monthly_salary)} × {actual_working_days}/{working_days_in_month:g} days "
                      f"({start.isoformat()} to {end.isoformat()}) = {peso(amount)}"),
            "actual_working_days": actual_working_days,
            "proration_factor": round(proration_factor, 4),
            "monthly_salary": round(monthly_salary, 2),
            "start_date": start,
            "end_date": end,
            "total_working_days": working_days_in_month,
        }

    def validate_salary_inputs(self, monthly_salary, working_days, days_present) -> Dict[str, Any]:
        errors = []
        warnings = []

        if monthly_salary is None:
            errors.append("Monthly salary is required")
        elif not is_number(monthly_salary):
            errors.append("Monthly salary must be a number")
        elif monthly_salary < 0:
            errors.append("Monthly salary cannot be negative")
        elif monthly_salary == 0:
            warnings.append("Monthly salary is zero")

        if working_days is None:
            errors.append("Working days is required")
        elif not is_number(working_days):
            errors.append("Working days must be a number")
        elif working_days < 0:
            errors.append("Working days cannot be negative")
        elif working_days == 0:
            warnings.append("Working days is zero")
        elif working_days > settings.MAX_DAYS_IN_MONTH:
            warnings.append("Working days exceeds maximum days in a month")

        if days_present is None:
            errors.append("Days present is required")
        elif not is_number(days_present):
            errors.append("Days present must be a number")
        elif days_present < 0:
            errors.append("Days present cannot be negative")
        elif days_present == 0:
            warnings.append("Days present is zero - salary will be zero")

        if not errors and working_days > 0 and days_present > working_days:
            warnings.append("Days present exceeds working days")

        return {"is_valid": len(errors) == 0, "errors": errors, "warnings": warnings}
