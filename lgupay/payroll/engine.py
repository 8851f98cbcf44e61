"""
Payroll calculation engine.

Runs the per-employee pipeline: daily rate, basic pay, LWOP, allowances,
gross, mandatory deductions, taxable income, withholding tax, loans and net
pay. Every step is logged at DEBUG under ``LGUPayroll.payroll.engine``.
"""
from datetime import datetime
from typing import Dict, Any, List, Mapping, Optional

from ..core.config import settings
from ..core.utils import get_logger, round2
from .salary import SalaryCalculator
from .allowances import AllowanceCalculator
from .deductions import DeductionCalculator
from ..tax.withholding import TaxCalculator

logger = get_logger("payroll", "engine")

class PayrollCalculationEngine:
    def __init__(self, session=None):
        self.salary_calculator = SalaryCalculator()
        self.allowance_calculator = AllowanceCalculator()
        self.deduction_calculator = DeductionCalculator()
        self.tax_calculator = TaxCalculator(session)
        self.standard_working_days = settings.STANDARD_WORKING_DAYS

    def calculate_employee_payroll(
        self,
        employee: Mapping[str, Any],
        period: Mapping[str, Any],
        working_days: Optional[float] = None,
        overrides: Optional[Mapping[str, Any]] = None,
        tax_table: Optional[List[Dict[str, float]]] = None
    ) -> Dict[str, Any]:
        overrides = overrides or {}
        employee = employee or {}
        period = period or {}
        try:
            calculation = self._new_calculation(employee, period, working_days, overrides)
            logger.debug("Payroll calculation started for %s (period %s)",
                         calculation["employee_name"], calculation["period_id"])

            validation = self.validate_calculation_inputs(employee, period, calculation)
            if not validation["is_valid"]:
                logger.warning("Input validation failed for employee %s: %s",
                               calculation["employee_id"], "; ".join(validation["errors"]))
                return {"success": False, "errors": validation["errors"], "data": calculation}
            calculation["warnings"].extend(validation["warnings"])

            daily_rate = self.salary_calculator.calculate_daily_rate(calculation["monthly_salary"])
            calculation["daily_rate"] = daily_rate["daily_rate"]
            logger.debug("Daily rate: %s", calculation["daily_rate"])

            basic = self.salary_calculator.calculate_basic_salary(
                calculation["monthly_salary"], calculation["working_days"], calculation["days_present"]
            )
            calculation["basic_pay"] = basic["amount"]
            logger.debug("Basic pay: %s (%s)", calculation["basic_pay"], basic["basis"])

            if calculation["days_lwop"] > 0:
                lwop = self.salary_calculator.apply_lwop(
                    calculation["basic_pay"], calculation["days_lwop"], calculation["daily_rate"]
                )
                calculation["basic_pay"] = lwop["amount"]
                calculation["lwop_deduction"] = lwop["lwop_deduction"]
                calculation["warnings"].extend(lwop.get("warnings", []))
                logger.debug("LWOP applied: -%s, adjusted basic pay %s", lwop["lwop_deduction"], calculation["basic_pay"])

            allowances = self.calculate_allowances(employee, period, calculation, overrides)
            calculation["allowances"] = allowances["items"]
            calculation["total_allowances"] = allowances["total"]

            calculation["gross_pay"] = calculation["basic_pay"] + calculation["total_allowances"]
            logger.debug("Gross pay: %s", calculation["gross_pay"])

            mandatory = self.deduction_calculator.get_total_mandatory_deductions(
                calculation["basic_pay"], calculation["gross_pay"]
            )
            for d in mandatory["breakdown"]:
                # EC is employer share only
                if d["code"] == "EC":
                    continue
                calculation["deductions"].append({
                    "type": "Mandatory",
                    "code": d["code"],
                    "name": d["name"],
                    "amount": d["employee_share"],
                    "basis": d["basis"],
                    "is_taxable": False,
                })

            non_taxable = [d for d in calculation["deductions"] if not d["is_taxable"]]
            taxable = self.tax_calculator.calculate_taxable_income(calculation["gross_pay"], non_taxable)
            calculation["taxable_income"] = taxable["taxable_income"]
            logger.debug("Taxable income: %s (%s)", calculation["taxable_income"], taxable["basis"])

            if not tax_table:
                tax_table = self.tax_calculator.get_tax_table(period.get("pay_date") or datetime.now())
            tax = self.tax_calculator.calculate_withholding_tax(calculation["taxable_income"], tax_table)
            calculation["deductions"].append({
                "type": "Tax",
                "code": "WTAX",
                "name": "Withholding Tax",
                "amount": tax["amount"],
                "basis": tax["basis"],
                "is_taxable": False,
            })
            logger.debug("Withholding tax: %s", tax["amount"])

            for loan in overrides.get("loan_deductions") or []:
                calculation["deductions"].append({
                    "type": "Loan",
                    "code": loan.get("code") or "LOAN",
                    "name": loan.get("name") or "Loan Deduction",
                    "amount": loan.get("amount") or 0,
                    "basis": loan.get("basis") or "From billing",
                    "is_taxable": False,
                })

            calculation["total_deductions"] = sum(d["amount"] for d in calculation["deductions"])
            calculation["net_pay"] = calculation["gross_pay"] - calculation["total_deductions"]

            result = self.validate_calculation(calculation)
            calculation["errors"].extend(result["errors"])
            calculation["warnings"].extend(result["warnings"])

            self.round_calculation_values(calculation)

            logger.info("Payroll calculated for %s: gross=%.2f deductions=%.2f net=%.2f (%d warnings)",
                        calculation["employee_number"], calculation["gross_pay"],
                        calculation["total_deductions"], calculation["net_pay"], len(calculation["warnings"]))

            return {
                "success": len(calculation["errors"]) == 0,
                "data": calculation,
                "errors": calculation["errors"],
                "warnings": calculation["warnings"],
            }
        except Exception as e:
            logger.exception("Payroll calculation error")
            return {"success": False, "error": "Calculation failed", "message": str(e)}

    def _new_calculation(self, employee, period, working_days, overrides) -> Dict[str, Any]:
        working_days = working_days or period.get("working_days") or self.standard_working_days
        days_present = overrides.get("days_present")
        days_lwop = overrides.get("days_lwop")
        first = employee.get("first_name") or ""
        last = employee.get("last_name") or ""
        return {
            "employee_id": employee.get("id"),
            "employee_name": f"{first} {last}".strip(),
            "employee_number": employee.get("employee_number"),
            "period_id": period.get("id"),
            "period_info": {
                "year": period.get("year"),
                "month": period.get("month"),
                "period_number": period.get("period_number"),
                "start_date": period.get("start_date"),
                "end_date": period.get("end_date"),
                "pay_date": period.get("pay_date"),
            },
            "working_days": working_days,
            "days_present": working_days if days_present is None else days_present,
            "days_lwop": 0 if days_lwop is None else days_lwop,
            "monthly_salary": employee.get("current_monthly_salary") or 0,
            "daily_rate": 0,
            "basic_pay": 0,
            "allowances": [],
            "total_allowances": 0,
            "deductions": [],
            "total_deductions": 0,
            "gross_pay": 0,
            "taxable_income": 0,
            "net_pay": 0,
            "calculation_timestamp": datetime.now().isoformat(),
            "calculation_method": type(self).__name__,
            "overrides_applied": len(overrides) > 0,
            "errors": [],
            "warnings": [],
        }

    def calculate_allowances(self, employee, period, calculation, overrides) -> Dict[str, Any]:
        items = []
        days_present = calculation["days_present"]

        def add(code, name, result, is_taxable):
            items.append({
                "code": code,
                "name": name,
                "amount": result["amount"],
                "basis": result["basis"],
                "is_taxable": is_taxable,
            })
            logger.debug("%s: %s", code, result["amount"])

        try:
            pera = self.allowance_calculator.calculate_pera(days_present, calculation["working_days"])
            if pera["amount"] > 0 or "error" not in pera:
                add("PERA", "Personnel Economic Relief Allowance", pera, True)

            if employee.get("monthly_rata") or employee.get("rata_amount"):
                attendance = {
                    "days_present": days_present,
                    "working_days": calculation["working_days"],
                    "sessions_attended": overrides.get("sessions_attended"),
                    "total_sessions": overrides.get("total_sessions"),
                }
                rata = self.allowance_calculator.calculate_rata(employee, period, attendance)
                if rata["amount"] > 0 or "error" not in rata:
                    add("RATA", "Representation and Transportation Allowance", rata, True)

            hazard = self.allowance_calculator.calculate_hazard_pay(employee, days_present)
            if hazard["is_eligible"]:
                add("HAZARD", "Hazard Pay", hazard, True)

            subsistence = self.allowance_calculator.calculate_subsistence(days_present)
            if subsistence["amount"] > 0 or "error" not in subsistence:
                add("SUBSISTENCE", "Subsistence Allowance", subsistence, False)

            laundry = self.allowance_calculator.calculate_laundry(days_present)
            if laundry["amount"] > 0 or "error" not in laundry:
                add("LAUNDRY", "Laundry Allowance", laundry, False)

            for custom in overrides.get("custom_allowances") or []:
                items.append({
                    "code": custom.get("code") or "CUSTOM",
                    "name": custom.get("name") or "Custom Allowance",
                    "amount": custom.get("amount") or 0,
                    "basis": custom.get("basis") or "Custom override",
                    "is_taxable": custom.get("is_taxable", True) is not False,
                })
        except Exception as e:
            logger.exception("Allowance calculation error")
            calculation["errors"].append(f"Allowance calculation error: {e}")

        return {"items": items, "total": round2(sum(i["amount"] for i in items))}

    def validate_calculation_inputs(self, employee, period, calculation) -> Dict[str, Any]:
        errors = []
        warnings = []

        if not employee or not employee.get("id"):
            errors.append("Invalid employee data")
        salary = (employee or {}).get("current_monthly_salary")
        if not salary or salary <= 0:
            errors.append("Employee has no valid monthly salary")
        if not period or not period.get("id"):
            errors.append("Invalid payroll period")

        working_days = calculation["working_days"]
        days_present = calculation["days_present"]
        days_lwop = calculation["days_lwop"]

        if working_days <= 0 or working_days > settings.MAX_DAYS_IN_MONTH:
            errors.append(f"Invalid working days (must be 1-{settings.MAX_DAYS_IN_MONTH})")
        if days_present < 0 or days_present > settings.MAX_DAYS_IN_MONTH:
            errors.append(f"Invalid days present (must be 0-{settings.MAX_DAYS_IN_MONTH})")
        if days_present > working_days:
            warnings.append("Days present exceeds working days")
        if days_lwop < 0:
            errors.append("LWOP days cannot be negative")
        if days_lwop > days_present:
            warnings.append("LWOP days exceeds days present")

        return {"is_valid": len(errors) == 0, "errors": errors, "warnings": warnings}

    def validate_calculation(self, calculation: Dict[str, Any]) -> Dict[str, Any]:
        """Sanity checks on a finished calculation; a negative net pay is clamped to zero."""
        errors = []
        warnings = []
        gross = calculation["gross_pay"]
        total_deductions = calculation["total_deductions"]

        if calculation["net_pay"] < 0:
            errors.append("Net pay is negative - deductions exceed gross pay")
            calculation["net_pay"] = 0

        if total_deductions > gross and gross > 0:
            warnings.append("Total deductions exceed gross pay")

        if gross == 0 and calculation["days_present"] > 0:
            warnings.append("Zero gross pay despite having days present")

        if gross > 0:
            pct = total_deductions / gross * 100
            if pct > settings.DEDUCTION_WARNING_PERCENT:
                warnings.append(f"Deductions are {pct:.1f}% of gross pay (exceeds {settings.DEDUCTION_WARNING_PERCENT:g}%)")

        if calculation["net_pay"] == 0 and gross > 0:
            warnings.append("Net pay is zero after deductions")

        return {"is_valid": len(errors) == 0, "errors": errors, "warnings": warnings}

    def round_calculation_values(self, calculation: Dict[str, Any]):
        for key in ("daily_rate", "basic_pay", "total_allowances", "total_deductions",
                    "gross_pay", "taxable_income", "net_pay"):
            calculation[key] = round2(calculation[key])
        if calculation.get("lwop_deduction"):
            calculation["lwop_deduction"] = round2(calculation["lwop_deduction"])
        for item in calculation["allowances"] + calculation["deductions"]:
            item["amount"] = round2(item["amount"])

    def generate_calculation_breakdown(self, item: Mapping[str, Any]) -> Dict[str, Any]:
        """Audit view of a finished calculation, grouped by section."""
        try:
            return {
                "employee": {
                    "id": item["employee_id"],
                    "name": item["employee_name"],
                    "number": item["employee_number"],
                },
                "period": item["period_info"],
                "attendance": {
                    "working_days": item["working_days"],
                    "days_present": item["days_present"],
                    "days_lwop": item.get("days_lwop") or 0,
                },
                "salary": {
                    "monthly_salary": item["monthly_salary"],
                    "daily_rate": item["daily_rate"],
                    "basic_pay": item["basic_pay"],
                    "lwop_deduction": item.get("lwop_deduction") or 0,
                },
                "allowances": {"items": item["allowances"], "total": item["total_allowances"]},
                "deductions": {"items": item["deductions"], "total": item["total_deductions"]},
                "summary": {
                    "gross_pay": item["gross_pay"],
                    "taxable_income": item["taxable_income"],
                    "total_deductions": item["total_deductions"],
                    "net_pay": item["net_pay"],
                },
                "metadata": {
                    "calculation_timestamp": item.get("calculation_timestamp"),
                    "calculation_method": item.get("calculation_method"),
                    "overrides_applied": item.get("overrides_applied", False),
                    "errors": item.get("errors") or [],
                    "warnings": item.get("warnings") or [],
                },
            }
        except (KeyError, TypeError) as e:
            logger.error("Error generating calculation breakdown: %s", e)
            return {"error": "Failed to generate breakdown", "message": str(e)}
