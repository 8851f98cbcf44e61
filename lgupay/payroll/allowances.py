"""
Government allowances: PERA, RATA, hazard pay, subsistence and laundry.
"""
from typing import Dict, Any, Mapping, Optional

from ..core.config import settings
from ..core.utils import get_logger, peso, is_number

logger = get_logger("payroll", "allowances")

class AllowanceCalculator:
    def __init__(self):
        self.pera_monthly = settings.PERA_MONTHLY_AMOUNT
        self.standard_working_days = settings.STANDARD_WORKING_DAYS
        # checked in order; health workers take precedence
        self.hazard_groups = [
            ("Health Worker", settings.HAZARD_HEALTH_RATE, settings.HAZARD_HEALTH_DEPARTMENTS),
            ("Social Worker", settings.HAZARD_SOCIAL_RATE, settings.HAZARD_SOCIAL_DEPARTMENTS),
        ]
        self.subsistence_rate = settings.SUBSISTENCE_DAILY_RATE
        self.laundry_rate = settings.LAUNDRY_DAILY_RATE

    def calculate_pera(self, days_present: float, working_days: Optional[float] = None) -> Dict[str, Any]:
        """PERA of 2,000/month prorated by attendance."""
        if days_present is None or not is_number(days_present) or days_present < 0:
            return {
                "amount": 0,
                "basis": "Invalid days present",
                "monthly_amount": self.pera_monthly,
                "proration_factor": 0,
                "error": "Invalid days present value",
            }

        total_working_days = working_days or self.standard_working_days
        if total_working_days <= 0:
            return {
                "amount": 0,
                "basis": "Invalid working days",
                "monthly_amount": self.pera_monthly,
                "proration_factor": 0,
                "error": "Working days must be greater than zero",
            }

        proration_factor = days_present / total_working_days
        amount = self.pera_monthly * proration_factor

        if days_present >= total_working_days:
            basis = f"Full PERA: {peso(self.pera_monthly)} ({days_present:g}/{total_working_days:g} days)"
        else:
            basis = (f"Prorated PERA: {peso(self.pera_monthly)} × {days_present:g}/{total_working_days:g} days "
                     f"= {peso(amount)}")

        return {
            "amount": round(amount, 2),
            "basis": basis,
            "monthly_amount": self.pera_monthly,
            "proration_factor": round(proration_factor, 4),
            "days_present": days_present,
            "working_days": total_working_days,
        }

    def calculate_rata(self, employee: Mapping[str, Any], period: Mapping[str, Any], attendance: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Representation and Transportation Allowance.

        Sangguniang Bayan members are paid per session attended; every other
        position with RATA is prorated by days present.
        """
        if not employee or attendance is None:
            return {
                "amount": 0,
                "basis": "Missing employee or attendance data",
                "rata_type": "None",
                "calculation_method": "N/A",
                "error": "Invalid input parameters",
            }

        try:
            monthly_rata = employee.get("monthly_rata") or employee.get("rata_amount") or 0
            if monthly_rata == 0:
                return {
                    "amount": 0,
                    "basis": "No RATA assigned to this position",
                    "rata_type": "None",
                    "calculation_method": "N/A",
                    "monthly_rata": 0,
                }

            is_sb_member = self.is_sangguniang_bayan_member(employee)

            if is_sb_member:
                sessions_attended = attendance.get("sessions_attended") or 0
                total_sessions = attendance.get("total_sessions")
                if total_sessions is None:
                    total_sessions = 1
                if total_sessions == 0:
                    return {
                        "amount": 0,
                        "basis": "No sessions scheduled for this period",
                        "rata_type": "SB Member",
                        "calculation_method": "Session-based",
                        "monthly_rata": monthly_rata,
                    }
                amount = (monthly_rata / total_sessions) * sessions_attended
                basis = (f"SB RATA: {peso(monthly_rata)} / {total_sessions:g} sessions × "
                         f"{sessions_attended:g} attended = {peso(amount)}")
                calculation_method = "Session-based"
            else:
                days_present = attendance.get("days_present") or 0
                working_days = attendance.get("working_days")
                if working_days is None:
                    working_days = self.standard_working_days
                if working_days == 0:
                    return {
                        "amount": 0,
                        "basis": "No working days in period",
                        "rata_type": "Executive",
                        "calculation_method": "Days-based",
                        "monthly_rata": monthly_rata,
                    }
                amount = (monthly_rata / working_days) * days_present
                basis = (f"Executive RATA: {peso(monthly_rata)} / {working_days:g} days × "
                         f"{days_present:g} days present = {peso(amount)}")
                calculation_method = "Days-based"

            return {
                "amount": round(amount, 2),
                "basis": basis,
                "rata_type": "SB Member" if is_sb_member else "Executive",
                "calculation_method": calculation_method,
                "monthly_rata": monthly_rata,
                "attendance": dict(attendance),
            }
        except Exception as e:
            logger.exception("RATA calculation error")
            return {"amount": 0, "basis": f"Error: {e}", "rata_type": "Unknown", "calculation_method": "Error", "error": str(e)}

    def calculate_hazard_pay(self, employee: Mapping[str, Any], days_worked: float) -> Dict[str, Any]:
        """(daily rate x days worked) x department rate; 25% health, 20% social welfare."""
        if not employee:
            return {"amount": 0, "basis": "Missing employee data", "rate": 0, "is_eligible": False,
                    "error": "Invalid employee parameter"}
        if days_worked is None or not is_number(days_worked) or days_worked < 0:
            return {"amount": 0, "basis": "Invalid days worked", "rate": 0, "is_eligible": False,
                    "error": "Invalid days worked value"}

        department = (employee.get("department") or "").upper()
        rate = 0
        worker_type = ""
        for label, group_rate, departments in self.hazard_groups:
            if any(dept in department for dept in departments):
                rate, worker_type = group_rate, label
                break

        if not worker_type:
            return {
                "amount": 0,
                "basis": f"Not eligible for hazard pay (Department: {employee.get('department') or 'Unknown'})",
                "rate": 0,
                "is_eligible": False,
                "department": employee.get("department"),
            }

        monthly_salary = employee.get("current_monthly_salary") or 0
        daily_rate = employee.get("current_daily_rate") or (monthly_salary / self.standard_working_days)
        if daily_rate == 0:
            return {
                "amount": 0,
                "basis": "Cannot calculate hazard pay - no salary information",
                "rate": rate,
                "is_eligible": True,
                "error": "Missing salary data",
            }

        amount = daily_rate * days_worked * rate
        return {
            "amount": round(amount, 2),
            "basis": (f"{worker_type} Hazard Pay: ({peso(daily_rate)} × {days_worked:g} days) × "
                      f"{rate * 100:g}% = {peso(amount)}"),
            "rate": rate,
            "is_eligible": True,
            "worker_type": worker_type,
            "department": employee.get("department"),
            "daily_rate": round(daily_rate, 2),
            "days_worked": days_worked,
        }

    def _per_day(self, label: str, daily_rate: float, days_worked: float) -> Dict[str, Any]:
        if days_worked is None or not is_number(days_worked) or days_worked < 0:
            return {"amount": 0, "basis": "Invalid days worked", "daily_rate": daily_rate,
                    "error": "Invalid days worked value"}
        if days_worked == 0:
            return {"amount": 0, "basis": "No days worked", "daily_rate": daily_rate, "days_worked": 0}
        amount = daily_rate * days_worked
        return {
            "amount": round(amount, 2),
            "basis": f"{label}: ₱{daily_rate:g} × {days_worked:g} days = {peso(amount)}",
            "daily_rate": daily_rate,
            "days_worked": days_worked,
        }

    def calculate_subsistence(self, days_worked: float) -> Dict[str, Any]:
        return self._per_day("Subsistence", self.subsistence_rate, days_worked)

    def calculate_laundry(self, days_worked: float) -> Dict[str, Any]:
        return self._per_day("Laundry", self.laundry_rate, days_worked)

    def is_sangguniang_bayan_member(self, employee: Optional[Mapping[str, Any]]) -> bool:
        if not employee:
            return False
        position = (employee.get("position") or employee.get("plantilla_position") or "").upper()
        department = (employee.get("department") or "").upper()
        return any(k in position or k in department for k in settings.SB_KEYWORDS)

    def validate_allowance_inputs(self, days, working_days=None) -> Dict[str, Any]:
        errors = []
        warnings = []

        if days is None:
            errors.append("Days value is required")
        elif not is_number(days):
            errors.append("Days must be a number")
        else:
            if days < 0:
                errors.append("Days cannot be negative")
            if days == 0:
                warnings.append("Days is zero - allowance will be zero")
            if days > settings.MAX_DAYS_IN_MONTH:
                warnings.append(f"Days exceeds maximum days in a month ({settings.MAX_DAYS_IN_MONTH})")

        if working_days is not None:
            if working_days <= 0:
                errors.append("Working days must be greater than zero")
            elif is_number(days) and days > working_days:
                warnings.append("Days present exceeds working days - may result in over 100% allowance")

        return {"is_valid": len(errors) == 0, "errors": errors, "warnings": warnings}
