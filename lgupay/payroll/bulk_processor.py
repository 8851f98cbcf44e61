"""
Bulk payroll processing for a whole period, with DTR attendance, per-employee
overrides, item persistence and Excel export.
"""
import pandas as pd
from typing import Dict, List, Any, Optional
from datetime import datetime

from sqlalchemy import select

from ..core.utils import get_logger
from ..db.models import Employee, PayrollItem, PayrollPeriod, DTRRecord
from .engine import PayrollCalculationEngine
from .periods import PayrollPeriodManager, PayrollPeriodStatus, period_name

logger = get_logger("payroll", "bulk")

class PayrollBulkProcessor:
    """Runs the calculation engine over every active employee of a period and stores the items."""

    def __init__(self, session):
        self.session = session
        self.engine = PayrollCalculationEngine(session)
        self.periods = PayrollPeriodManager(session)

    def _active_employees(self, employee_ids: Optional[List[int]] = None) -> List[Employee]:
        query = select(Employee).where(Employee.employment_status == "Active", Employee.deleted_at.is_(None))
        if employee_ids:
            query = query.where(Employee.id.in_(employee_ids))
        return list(self.session.execute(query.order_by(Employee.last_name, Employee.first_name)).scalars())

    def _dtr_days(self, period_id: int) -> Dict[int, float]:
        rows = self.session.execute(
            select(DTRRecord.employee_id, DTRRecord.working_days)
            .where(DTRRecord.payroll_period_id == period_id, DTRRecord.status == "Active")
        ).all()
        return {employee_id: working_days for employee_id, working_days in rows}

    def get_employees_without_dtr(self, period_id: int) -> Dict[str, Any]:
        """Active employees with no Active DTR record for the period."""
        has_dtr = (
            select(DTRRecord.id)
            .where(DTRRecord.employee_id == Employee.id, DTRRecord.payroll_period_id == period_id,
                   DTRRecord.status == "Active")
            .exists()
        )
        rows = self.session.execute(
            select(Employee)
            .where(Employee.employment_status == "Active", Employee.deleted_at.is_(None), ~has_dtr)
            .order_by(Employee.last_name, Employee.first_name)
        ).scalars()
        employees = [
            {
                "id": e.id,
                "employee_number": e.employee_number,
                "first_name": e.first_name,
                "last_name": e.last_name,
                "plantilla_position": e.plantilla_position,
                "employment_status": e.employment_status,
            }
            for e in rows
        ]
        return {"success": True, "data": {"employees": employees, "count": len(employees)}}

    def process_period(
        self,
        period_id: int,
        employee_ids: Optional[List[int]] = None,
        overrides: Optional[Dict[int, Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """
        Calculate payroll for a period from its imported DTR.

        Only employees with an Active DTR record are processed; their DTR
        working days become days present unless an override sets them. A
        failed recalculation puts an already stored item back to ``draft``.

        Args:
            period_id: Payroll period to process
            employee_ids: Restrict processing to these employees
            overrides: Per-employee engine overrides keyed by employee id
        """
        period = self.session.get(PayrollPeriod, period_id)
        if period is None:
            return {"success": False, "error": "Payroll period not found"}
        if not self.periods.can_edit(period):
            return {"success": False, "error": f"Payroll period is {period.status} and cannot be recalculated"}

        dtr_days = self._dtr_days(period_id)
        if not dtr_days:
            return {
                "success": False,
                "error": "No DTR data found for this period. Please import DTR before processing payroll.",
                "code": "NO_DTR_DATA",
            }

        overrides = overrides or {}
        period_data = period.to_dict()
        tax_table = self.engine.tax_calculator.get_tax_table(period.pay_date or datetime.now())
        existing = {
            item.employee_id: item
            for item in self.session.execute(
                select(PayrollItem).where(PayrollItem.payroll_period_id == period_id)
            ).scalars()
        }

        results = []
        calculated = []
        skipped = 0
        for emp in self._active_employees(employee_ids):
            if emp.id not in dtr_days:
                skipped += 1
                continue
            emp_overrides = dict(overrides.get(emp.id) or {})
            emp_overrides.setdefault("days_present", dtr_days[emp.id])

            result = self.engine.calculate_employee_payroll(
                emp.to_dict(), period_data, overrides=emp_overrides, tax_table=tax_table
            )
            if not result.get("success"):
                stale = existing.get(emp.id)
                if stale is not None:
                    stale.status = "draft"
                    stale.calculated_at = None

            if not result.get("success") and "data" not in result:
                results.append({"employee_id": emp.id, "employee_number": emp.employee_number,
                                "success": False, "errors": [result.get("message") or result.get("error")]})
                continue

            data = result["data"]
            if result["success"]:
                item = existing.get(emp.id) or PayrollItem(payroll_period_id=period_id, employee_id=emp.id)
                item.working_days = data["working_days"]
                item.days_present = data["days_present"]
                item.days_lwop = data["days_lwop"]
                item.daily_rate = data["daily_rate"]
                item.basic_pay = data["basic_pay"]
                item.total_allowances = data["total_allowances"]
                item.total_deductions = data["total_deductions"]
                item.gross_pay = data["gross_pay"]
                item.taxable_income = data["taxable_income"]
                item.net_pay = data["net_pay"]
                item.breakdown = self.engine.generate_calculation_breakdown(data)
                item.status = "calculated"
                item.calculated_at = datetime.now()
                self.session.add(item)
                calculated.append(data)

            results.append({
                "employee_id": emp.id,
                "employee_number": emp.employee_number,
                "success": result["success"],
                "net_pay": data["net_pay"],
                "errors": result.get("errors", []),
                "warnings": result.get("warnings", []),
            })

        if period.status == PayrollPeriodStatus.DRAFT.value:
            self.periods.transition(period, PayrollPeriodStatus.PROCESSING)
        self.session.commit()

        summary = self._generate_payroll_summary(calculated, period_name(period))
        summary["processed"] = len(calculated)
        summary["failed"] = len(results) - len(calculated)
        summary["without_dtr"] = skipped
        summary["dtr_source"] = {
            "total_records": len(dtr_days),
            "total_working_days": round(sum(float(d or 0) for d in dtr_days.values()), 2),
        }
        logger.info("Processed payroll for %s: %d calculated, %d failed, %d without DTR",
                    period_name(period), summary["processed"], summary["failed"], skipped)

        return {"success": True, "period_id": period_id, "results": results, "summary": summary}

    def _generate_payroll_summary(self, payroll_data: List[Dict[str, Any]], period: str) -> Dict[str, Any]:
        if not payroll_data:
            return {"period": period, "total_employees": 0}

        total_employees = len(payroll_data)
        total_basic = sum(float(line.get("basic_pay", 0)) for line in payroll_data)
        total_allowances = sum(float(line.get("total_allowances", 0)) for line in payroll_data)
        total_gross = sum(float(line.get("gross_pay", 0)) for line in payroll_data)
        total_deductions = sum(float(line.get("total_deductions", 0)) for line in payroll_data)
        total_net = sum(float(line.get("net_pay", 0)) for line in payroll_data)

        return {
            "period": period,
            "total_employees": total_employees,
            "totals": {
                "basic_pay": round(total_basic, 2),
                "allowances": round(total_allowances, 2),
                "gross": round(total_gross, 2),
                "deductions": round(total_deductions, 2),
                "net": round(total_net, 2),
            },
            "averages": {
                "gross": round(total_gross / total_employees, 2),
                "deductions": round(total_deductions / total_employees, 2),
                "net": round(total_net / total_employees, 2),
            },
        }

    def _period_items(self, period_id: int) -> List[PayrollItem]:
        return list(self.session.execute(
            select(PayrollItem).where(PayrollItem.payroll_period_id == period_id).order_by(PayrollItem.id)
        ).scalars())

    def get_payroll_summary(self, period_id: int) -> Dict[str, Any]:
        """Totals over the stored items of a period."""
        period = self.session.get(PayrollPeriod, period_id)
        if period is None:
            return {"success": False, "error": "Payroll period not found"}
        items = [
            {
                "basic_pay": i.basic_pay,
                "total_allowances": i.total_allowances,
                "gross_pay": i.gross_pay,
                "total_deductions": i.total_deductions,
                "net_pay": i.net_pay,
            }
            for i in self._period_items(period_id)
        ]
        summary = self._generate_payroll_summary(items, period_name(period))
        summary["status"] = period.status
        return {"success": True, "data": summary}

    def export_payroll(self, period_id: int, file_path: str) -> bool:
        """Export the period's payroll items to an Excel file."""
        items = self._period_items(period_id)
        if not items:
            return False

        rows = []
        for i in items:
            rows.append({
                "Employee Number": i.employee.employee_number,
                "Employee Name": i.employee.full_name(),
                "Working Days": i.working_days,
                "Days Present": i.days_present,
                "Daily Rate": i.daily_rate,
                "Basic Pay": i.basic_pay,
                "Allowances": i.total_allowances,
                "Gross Pay": i.gross_pay,
                "Taxable Income": i.taxable_income,
                "Deductions": i.total_deductions,
                "Net Pay": i.net_pay,
                "Status": i.status,
            })
        pd.DataFrame(rows).to_excel(file_path, index=False)
        return True
