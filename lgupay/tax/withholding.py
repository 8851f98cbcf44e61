"""
BIR withholding tax on compensation (TRAIN law graduated table).

Brackets are annual; monthly taxable income is annualised, taxed and divided
back by 12.
"""
from datetime import date, datetime
from typing import Dict, Any, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ..core.config import settings
from ..core.utils import get_logger, peso, is_number
from ..db.models import TaxBracket

logger = get_logger("payroll", "withholding")

TaxTable = List[Dict[str, float]]

def default_tax_table() -> TaxTable:
    return [
        {"min": lo, "max": hi, "rate": rate, "fixed_amount": fixed, "excess_over": excess}
        for lo, hi, rate, fixed, excess in settings.BIR_TAX_BRACKETS
    ]

class TaxCalculator:
    def __init__(self, session=None):
        self.session = session
        self.default_tax_table = default_tax_table()

    def calculate_withholding_tax(self, taxable_income: Optional[float], tax_table: Optional[TaxTable] = None) -> Dict[str, Any]:
        if taxable_income is None:
            return {
                "amount": 0,
                "basis": "No taxable income provided",
                "annual_tax": 0,
                "monthly_tax": 0,
                "error": "Invalid input: taxable income is missing",
            }
        if not is_number(taxable_income):
            return {
                "amount": 0,
                "basis": "Invalid taxable income",
                "annual_tax": 0,
                "monthly_tax": 0,
                "error": "Invalid input: taxable income must be a number",
            }
        if taxable_income <= 0:
            return {"amount": 0, "basis": "Taxable income is zero or negative", "annual_tax": 0, "monthly_tax": 0}

        try:
            table = tax_table if tax_table else self.default_tax_table
            annual_income = taxable_income * 12

            bracket = next(
                (b for b in table if annual_income >= b["min"] and annual_income < b["max"]),
                table[-1],
            )

            excess = annual_income - bracket["excess_over"]
            annual_tax = bracket["fixed_amount"] + excess * bracket["rate"]
            monthly_tax = annual_tax / 12

            if bracket["max"] == float("inf"):
                bracket_desc = f"{peso(bracket['min'])} and above"
            else:
                bracket_desc = f"{peso(bracket['min'])} - {peso(bracket['max'])}"

            basis = (f"Annual taxable income: {peso(annual_income)} "
                     f"(Bracket: {bracket_desc}, Rate: {bracket['rate'] * 100:g}%, "
                     f"Fixed: {peso(bracket['fixed_amount'])}, Excess: {peso(excess)})")

            return {
                "amount": round(monthly_tax, 2),
                "basis": basis,
                "annual_tax": round(annual_tax, 2),
                "monthly_tax": round(monthly_tax, 2),
                "annual_taxable_income": round(annual_income, 2),
                "bracket": dict(bracket),
            }
        except (KeyError, TypeError, IndexError) as e:
            logger.exception("Tax calculation error")
            return {"amount": 0, "basis": f"Error calculating tax: {e}", "annual_tax": 0, "monthly_tax": 0, "error": str(e)}

    def get_tax_table(self, effective_date: Optional[Union[date, datetime, str]] = None) -> TaxTable:
        """
        Brackets of the newest active table in effect on ``effective_date``.

        Falls back to the built-in TRAIN table when there is no session, no
        matching rows, or the lookup fails.
        """
        if self.session is None:
            logger.warning("No database session, using default tax table")
            return self.default_tax_table

        if effective_date is None:
            effective_date = date.today()
        elif isinstance(effective_date, datetime):
            effective_date = effective_date.date()
        elif isinstance(effective_date, str):
            effective_date = date.fromisoformat(effective_date[:10])

        try:
            latest = self.session.execute(
                select(TaxBracket.effective_date)
                .where(TaxBracket.effective_date <= effective_date, TaxBracket.is_active == True)  # noqa: E712
                .order_by(TaxBracket.effective_date.desc())
                .limit(1)
            ).scalar_one_or_none()

            if latest is None:
                logger.warning("No tax table found in database for %s, using default tax table", effective_date)
                return self.default_tax_table

            rows = self.session.execute(
                select(TaxBracket)
                .where(TaxBracket.effective_date == latest, TaxBracket.is_active == True)  # noqa: E712
                .order_by(TaxBracket.bracket_min.asc())
            ).scalars().all()
        except SQLAlchemyError:
            logger.warning("Error retrieving tax table from database, using default tax table", exc_info=True)
            return self.default_tax_table

        return [
            {
                "min": float(r.bracket_min),
                "max": float("inf") if r.bracket_max is None else float(r.bracket_max),
                "rate": float(r.tax_rate),
                "fixed_amount": float(r.base_tax or 0),
                "excess_over": float(r.excess_over or 0),
            }
            for r in rows
        ]

    def calculate_taxable_income(self, gross_pay: Optional[float], non_taxable_deductions=None) -> Dict[str, Any]:
        """Gross pay less non-taxable deductions (a list of ``{name|code, amount}`` dicts or numbers, or one number)."""
        if gross_pay is None or not is_number(gross_pay) or gross_pay < 0:
            return {
                "taxable_income": 0,
                "basis": "Invalid gross pay",
                "breakdown": {"gross_pay": 0, "total_non_taxable_deductions": 0, "taxable_income": 0},
                "error": "Invalid gross pay value",
            }

        total = 0.0
        details = []
        if isinstance(non_taxable_deductions, (list, tuple)):
            for d in non_taxable_deductions:
                if isinstance(d, dict):
                    try:
                        amount = float(d.get("amount") or 0)
                    except (TypeError, ValueError):
                        amount = 0.0
                    if amount > 0:
                        total += amount
                        details.append({"name": d.get("name") or d.get("code") or "Unknown", "amount": amount})
                elif is_number(d):
                    total += d
        elif is_number(non_taxable_deductions):
            total = float(non_taxable_deductions)

        taxable_income = max(0.0, gross_pay - total)

        basis = f"Gross Pay: {peso(gross_pay)}"
        if total > 0:
            basis += f" - Non-taxable deductions: {peso(total)}"
            if details:
                basis += " (" + ", ".join(f"{d['name']}: {peso(d['amount'])}" for d in details) + ")"
        basis += f" = {peso(taxable_income)}"

        return {
            "taxable_income": round(taxable_income, 2),
            "basis": basis,
            "breakdown": {
                "gross_pay": round(gross_pay, 2),
                "total_non_taxable_deductions": round(total, 2),
                "deduction_details": details,
                "taxable_income": round(taxable_income, 2),
            },
        }

    def validate_tax_inputs(self, taxable_income) -> Dict[str, Any]:
        errors = []
        if taxable_income is None:
            errors.append("Taxable income is required")
        elif not is_number(taxable_income):
            errors.append("Taxable income must be a number")
        elif taxable_income < 0:
            errors.append("Taxable income cannot be negative")
        return {"is_valid": len(errors) == 0, "errors": errors}
