"""
Business-rule validation for parsed DTR records against a payroll period and
the employee master list.
"""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, List, Any, Optional, Mapping

from ..core.config import settings
from ..core.utils import get_logger, is_number

logger = get_logger("dtr", "validator")

class DTRErrorType(str, Enum):
    EMPLOYEE_NOT_FOUND = "EMPLOYEE_NOT_FOUND"
    EMPLOYEE_INACTIVE = "EMPLOYEE_INACTIVE"
    INVALID_WORKING_DAYS = "INVALID_WORKING_DAYS"
    NEGATIVE_WORKING_DAYS = "NEGATIVE_WORKING_DAYS"
    WORKING_DAYS_EXCEEDS_PERIOD = "WORKING_DAYS_EXCEEDS_PERIOD"
    DATE_MISMATCH = "DATE_MISMATCH"
    INVALID_DATE_FORMAT = "INVALID_DATE_FORMAT"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    DUPLICATE_EMPLOYEE = "DUPLICATE_EMPLOYEE"
    DECIMAL_PRECISION_ERROR = "DECIMAL_PRECISION_ERROR"

FIELD_LABELS = {
    "employee_number": "Employee Number",
    "employee_name": "Employee Name",
    "start_date": "Start Date",
    "end_date": "End Date",
    "working_days": "Working Days",
    "position": "Position",
    "employment_status": "Employment Status",
}

def _issue(error_type: DTRErrorType, field: str, message: str) -> Dict[str, str]:
    return {"type": error_type.value, "field": field, "message": message}

def _parse_iso(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), "%Y-%m-%d").date()
    except (TypeError, ValueError):
        return None

class DTRValidator:
    ERROR_TYPES = DTRErrorType

    def validate_record(self, record: Dict[str, Any], period: Optional[Mapping[str, Any]],
                        employee_map: Mapping[str, Mapping[str, Any]]) -> Dict[str, Any]:
        """Validate one record; a found employee's id, name and position are written onto ``record``."""
        errors = []
        warnings = []

        if not record.get("employee_number"):
            errors.append(_issue(DTRErrorType.MISSING_REQUIRED_FIELD, "employee_number", "Employee number is required"))
        if record.get("start_date") is None:
            errors.append(_issue(DTRErrorType.MISSING_REQUIRED_FIELD, "start_date", "Start date is required"))
        if record.get("end_date") is None:
            errors.append(_issue(DTRErrorType.MISSING_REQUIRED_FIELD, "end_date", "End date is required"))
        if record.get("working_days") is None:
            errors.append(_issue(DTRErrorType.MISSING_REQUIRED_FIELD, "working_days", "Working days is required"))
        if errors:
            return {"is_valid": False, "errors": errors, "warnings": warnings, "record": record}

        emp_check = self.validate_employee_exists(record["employee_number"], employee_map)
        errors.extend(emp_check["errors"])
        warnings.extend(emp_check["warnings"])

        employee = emp_check["employee"]
        if employee:
            record["employee_id"] = employee.get("id")
            record["employee_name"] = f"{employee.get('first_name', '')} {employee.get('last_name', '')}".strip()
            record["position"] = employee.get("plantilla_position")

        if period:
            date_check = self.validate_date_match(
                record["start_date"], record["end_date"], period.get("start_date"), period.get("end_date")
            )
            errors.extend(date_check["errors"])

        precision = self.validate_decimal_precision(record["working_days"])
        errors.extend(precision["errors"])

        max_days = settings.MAX_DAYS_IN_MONTH
        if period:
            p_start, p_end = _parse_iso(period.get("start_date")), _parse_iso(period.get("end_date"))
            if p_start and p_end:
                max_days = (p_end - p_start).days + 1

        days_check = self.validate_working_days(record["working_days"], max_days)
        errors.extend(days_check["errors"])
        warnings.extend(days_check["warnings"])

        return {
            "is_valid": len(errors) == 0,
            "errors": errors,
            "warnings": warnings,
            "record": record,
            "employee": employee,
        }

    def validate_batch(self, records: List[Dict[str, Any]], period: Optional[Mapping[str, Any]],
                       employees: List[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Validate every record of an import.

        A repeated employee number keeps its first row; every later row for
        the same employee is invalid. Rows that only carry warnings count as
        valid.
        """
        employee_map = {str(e.get("employee_number")): e for e in employees}

        valid_records = []
        invalid_records = []
        warning_records = []
        seen = set()

        for index, record in enumerate(records):
            employee_number = record.get("employee_number")
            is_duplicate = bool(employee_number) and employee_number in seen
            if employee_number:
                seen.add(employee_number)

            validation = self.validate_record(record, period, employee_map)
            if is_duplicate:
                validation["errors"].append(_issue(
                    DTRErrorType.DUPLICATE_EMPLOYEE, "employee_number",
                    f"Employee number {employee_number} appears multiple times in the import file",
                ))
                validation["is_valid"] = False

            row_number = record.get("row_number") or index + 2
            if not validation["is_valid"]:
                invalid_records.append({
                    "row_number": row_number,
                    "employee_number": employee_number or "Unknown",
                    "employee_name": record.get("employee_name") or "Unknown",
                    "errors": validation["errors"],
                    "warnings": validation["warnings"],
                    "record": validation["record"],
                })
                continue

            if validation["warnings"]:
                warning_records.append({
                    "row_number": row_number,
                    "employee_number": employee_number,
                    "employee_name": validation["record"].get("employee_name"),
                    "warnings": validation["warnings"],
                    "record": validation["record"],
                })
            valid_records.append(validation["record"])

        logger.debug("Validated %d DTR records: %d valid, %d invalid, %d with warnings",
                     len(records), len(valid_records), len(invalid_records), len(warning_records))

        return {
            "is_valid": len(invalid_records) == 0,
            "total_records": len(records),
            "valid_records": valid_records,
            "invalid_records": invalid_records,
            "warning_records": warning_records,
            "summary": {
                "total": len(records),
                "valid": len(valid_records),
                "invalid": len(invalid_records),
                "warnings": len(warning_records),
            },
        }

    def validate_employee_exists(self, employee_number: Optional[str],
                                 employee_map: Mapping[str, Mapping[str, Any]]) -> Dict[str, Any]:
        if not employee_number:
            return {
                "is_valid": False,
                "errors": [_issue(DTRErrorType.MISSING_REQUIRED_FIELD, "employee_number", "Employee number is required")],
                "warnings": [],
                "employee": None,
            }

        employee = employee_map.get(employee_number)
        if not employee:
            return {
                "is_valid": False,
                "errors": [_issue(DTRErrorType.EMPLOYEE_NOT_FOUND, "employee_number",
                                  f"Employee number {employee_number} not found in system")],
                "warnings": [],
                "employee": None,
            }

        warnings = []
        status = employee.get("employment_status")
        if status != "Active":
            warnings.append(_issue(DTRErrorType.EMPLOYEE_INACTIVE, "employment_status",
                                   f"Employee {employee_number} is not active (status: {status})"))
        return {"is_valid": True, "errors": [], "warnings": warnings, "employee": employee}

    def validate_date_match(self, record_start, record_end, period_start, period_end) -> Dict[str, Any]:
        errors = []
        rec_start, rec_end = _parse_iso(record_start), _parse_iso(record_end)
        if rec_start is None:
            errors.append(_issue(DTRErrorType.INVALID_DATE_FORMAT, "start_date", f"Invalid start date format: {record_start}"))
        if rec_end is None:
            errors.append(_issue(DTRErrorType.INVALID_DATE_FORMAT, "end_date", f"Invalid end date format: {record_end}"))
        if errors:
            return {"is_valid": False, "errors": errors}

        per_start, per_end = _parse_iso(period_start), _parse_iso(period_end)
        if rec_start != per_start:
            errors.append(_issue(DTRErrorType.DATE_MISMATCH, "start_date",
                                 f"Start date mismatch: Expected {per_start}, Found {rec_start}"))
        if rec_end != per_end:
            errors.append(_issue(DTRErrorType.DATE_MISMATCH, "end_date",
                                 f"End date mismatch: Expected {per_end}, Found {rec_end}"))
        return {"is_valid": len(errors) == 0, "errors": errors}

    def validate_working_days(self, working_days, max_days: float = settings.MAX_DAYS_IN_MONTH) -> Dict[str, Any]:
        errors = []
        warnings = []

        if not is_number(working_days) or working_days != working_days:
            errors.append(_issue(DTRErrorType.INVALID_WORKING_DAYS, "working_days", "Working days must be a valid number"))
            return {"is_valid": False, "errors": errors, "warnings": warnings}

        if working_days < 0:
            errors.append(_issue(DTRErrorType.NEGATIVE_WORKING_DAYS, "working_days", "Working days cannot be negative"))
        if working_days == 0:
            warnings.append(_issue(DTRErrorType.INVALID_WORKING_DAYS, "working_days", "Working days is zero"))
        if working_days > max_days:
            warnings.append(_issue(DTRErrorType.WORKING_DAYS_EXCEEDS_PERIOD, "working_days",
                                   f"Working days ({working_days:g}) exceeds period duration ({max_days} days)"))

        return {"is_valid": len(errors) == 0, "errors": errors, "warnings": warnings}

    def validate_decimal_precision(self, value) -> Dict[str, Any]:
        max_places = settings.DTR_MAX_DECIMAL_PLACES
        if not is_number(value):
            return {"is_valid": False, "errors": [
                _issue(DTRErrorType.INVALID_WORKING_DAYS, "working_days", "Value must be a valid number")
            ]}
        try:
            exponent = Decimal(str(value)).as_tuple().exponent
        except InvalidOperation:
            exponent = 0
        if not isinstance(exponent, int):
            return {"is_valid": False, "errors": [
                _issue(DTRErrorType.INVALID_WORKING_DAYS, "working_days", "Value must be a valid number")
            ]}

        places = max(0, -exponent)
        if places > max_places:
            return {"is_valid": False, "errors": [
                _issue(DTRErrorType.DECIMAL_PRECISION_ERROR, "working_days",
                       f"Working days must have at most {max_places} decimal places (found {places})")
            ]}
        return {"is_valid": True, "errors": []}

    def format_validation_errors(self, errors: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        return self._format(errors, "error")

    def format_warnings(self, warnings: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        return self._format(warnings, "warning")

    @staticmethod
    def _format(issues, severity: str) -> List[Dict[str, Any]]:
        return [
            {
                "type": i.get("type"),
                "field": i.get("field"),
                "field_label": FIELD_LABELS.get(i.get("field"), i.get("field")),
                "message": i.get("message"),
                "severity": severity,
            }
            for i in issues or []
        ]
