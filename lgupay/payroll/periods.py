"""
Payroll period lifecycle: Draft -> Processing -> Finalized -> Paid.
"""
import calendar
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Iterable, Mapping, Optional

from sqlalchemy import select

from ..core.utils import get_logger
from ..db.models import PayrollPeriod, PayrollItem
from .salary import count_weekdays, _to_date

logger = get_logger("payroll", "periods")

class PayrollPeriodStatus(str, Enum):
    DRAFT = "Draft"
    PROCESSING = "Processing"
    FINALIZED = "Finalized"
    PAID = "Paid"

# only forward moves, one step at a time
ALLOWED_TRANSITIONS = {
    PayrollPeriodStatus.DRAFT: {PayrollPeriodStatus.PROCESSING},
    PayrollPeriodStatus.PROCESSING: {PayrollPeriodStatus.FINALIZED},
    PayrollPeriodStatus.FINALIZED: {PayrollPeriodStatus.PAID},
    PayrollPeriodStatus.PAID: set(),
}

class PayrollPeriodError(ValueError):
    pass

def period_name(period) -> str:
    """``"October 2024 - 1st Half"``."""
    get = period.get if isinstance(period, Mapping) else lambda k: getattr(period, k, None)
    month = get("month")
    month_name = calendar.month_name[month] if isinstance(month, int) and 1 <= month <= 12 else "Unknown"
    suffix = "1st Half" if get("period_number") == 1 else "2nd Half"
    return f"{month_name} {get('year')} - {suffix}"

def validate_period_data(data: Mapping[str, Any], existing: Optional[Iterable[Any]] = None) -> Dict[str, Any]:
    """
    Field checks for a new or edited period.

    ``existing`` is any iterable of periods (models or dicts) to check the
    (year, month, period number) key against; an entry with the same id as
    ``data`` is ignored.
    """
    errors = []

    year = data.get("year")
    if not isinstance(year, int) or not 2020 <= year <= 2050:
        errors.append("Valid year (2020-2050) is required")

    month = data.get("month")
    if not isinstance(month, int) or not 1 <= month <= 12:
        errors.append("Valid month (1-12) is required")

    if data.get("period_number") not in (1, 2):
        errors.append("Period number must be 1 or 2")

    start, end = data.get("start_date"), data.get("end_date")
    if not start:
        errors.append("Start date is required")
    if not end:
        errors.append("End date is required")
    if start and end:
        try:
            if _to_date(end) <= _to_date(start):
                errors.append("End date must be after start date")
        except ValueError:
            errors.append("Dates must be in YYYY-MM-DD format")

    for other in existing or []:
        get = other.get if isinstance(other, Mapping) else lambda k, o=other: getattr(o, k, None)
        if data.get("id") is not None and get("id") == data.get("id"):
            continue
        if (get("year"), get("month"), get("period_number")) == (year, month, data.get("period_number")):
            errors.append("A payroll period already exists for this year, month and period number")
            break

    return {"is_valid": len(errors) == 0, "errors": errors}

class PayrollPeriodManager:
    def __init__(self, session):
        self.session = session

    def create_period(self, data: Mapping[str, Any], user_id: Optional[str] = None) -> Dict[str, Any]:
        existing = self.session.execute(
            select(PayrollPeriod).where(PayrollPeriod.year == data.get("year"), PayrollPeriod.month == data.get("month"))
        ).scalars().all()
        validation = validate_period_data(data, existing)
        if not validation["is_valid"]:
            return {"success": False, "error": "Validation failed", "details": validation["errors"]}

        start, end = _to_date(data["start_date"]), _to_date(data["end_date"])
        period = PayrollPeriod(
            year=data["year"],
            month=data["month"],
            period_number=data["period_number"],
            start_date=start,
            end_date=end,
            pay_date=_to_date(data["pay_date"]) if data.get("pay_date") else None,
            working_days=data.get("working_days") or count_weekdays(start, end),
            status=PayrollPeriodStatus.DRAFT.value,
        )
        self.session.add(period)
        self.session.commit()
        logger.info("Payroll period created: %s (id=%s) by %s", period_name(period), period.id, user_id)
        return {"success": True, "data": period.to_dict(), "message": "Payroll period created successfully"}

    def get(self, period_id: int) -> PayrollPeriod:
        period = self.session.get(PayrollPeriod, period_id)
        if period is None:
            raise PayrollPeriodError(f"Payroll period {period_id} not found")
        return period

    def can_edit(self, period: PayrollPeriod) -> bool:
        return period.status in (PayrollPeriodStatus.DRAFT.value, PayrollPeriodStatus.PROCESSING.value)

    def can_finalize(self, period: PayrollPeriod) -> bool:
        if period.status != PayrollPeriodStatus.PROCESSING.value:
            return False
        drafts = self.session.execute(
            select(PayrollItem.id).where(PayrollItem.payroll_period_id == period.id, PayrollItem.status == "draft")
        ).first()
        return drafts is None

    def transition(self, period: PayrollPeriod, status, user_id: Optional[str] = None) -> PayrollPeriod:
        current = PayrollPeriodStatus(period.status)
        try:
            target = PayrollPeriodStatus(status)
        except ValueError:
            raise PayrollPeriodError(f"Unknown payroll period status: {status}")

        if target not in ALLOWED_TRANSITIONS[current]:
            raise PayrollPeriodError(f"Cannot move payroll period from {current.value} to {target.value}")
        if target is PayrollPeriodStatus.FINALIZED:
            if not self.can_finalize(period):
                raise PayrollPeriodError("Payroll period has uncalculated items and cannot be finalized")
            period.finalized_by = user_id
            period.finalized_at = datetime.now()

        period.status = target.value
        self.session.commit()
        logger.info("Payroll period %s moved %s -> %s by %s", period.id, current.value, target.value, user_id)
        return period

    def finalize(self, period: PayrollPeriod, user_id: Optional[str] = None) -> PayrollPeriod:
        return self.transition(period, PayrollPeriodStatus.FINALIZED, user_id)

    def mark_paid(self, period: PayrollPeriod, user_id: Optional[str] = None) -> PayrollPeriod:
        period = self.transition(period, PayrollPeriodStatus.PAID, user_id)
        now = datetime.now()
        for item in period.items:
            item.status = "paid"
            item.paid_at = now
        self.session.commit()
        return period
