"""
Excel parsing for DTR (Daily Time Record) imports.
Reads the first worksheet of an uploaded template and normalises dates and
decimal numbers.
"""
import pandas as pd
from pathlib import Path
from typing import List, Dict, Any, Optional, Union
from datetime import datetime, date

from ..core.config import settings
from ..core.utils import get_logger

logger = get_logger("dtr", "parser")

# Month-first before day-first: an ambiguous 03/04/2024 is March 4.
DATE_FORMATS = [
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%Y/%m/%d",
    "%b %d, %Y",
    "%d %b %Y",
    "%B %d, %Y",
    "%m/%d/%y",
    "%d/%m/%y",
]

EXCEL_EXTENSIONS = {".xlsx", ".xls"}

def _is_blank(val: Any) -> bool:
    if val is None:
        return True
    if isinstance(val, str):
        return val.strip() == ""
    try:
        return bool(pd.isna(val))
    except (TypeError, ValueError):
        return False

class DTRExcelParser:
    def __init__(self):
        self.required_columns = list(settings.DTR_REQUIRED_COLUMNS)

    def parse_file(self, file_path: Union[str, Path]) -> Dict[str, Any]:
        """Read the first sheet into a list of row dicts (blank cells become None)."""
        ext = Path(file_path).suffix.lower()
        if ext not in EXCEL_EXTENSIONS:
            raise ValueError(f"Failed to parse Excel file: unsupported file type {ext or '(none)'}")

        try:
            with pd.ExcelFile(file_path) as xls:
                if not xls.sheet_names:
                    raise ValueError("Excel file is empty or has no sheets")
                sheet_name = xls.sheet_names[0]
                df = xls.parse(sheet_name, dtype=object)
        except Exception as e:
            logger.error("Failed to parse %s: %s", file_path, e)
            raise ValueError(f"Failed to parse Excel file: {e}")

        df = df.dropna(how="all")
        df.columns = [str(c).strip() for c in df.columns]
        data = [
            {col: (None if _is_blank(val) else val) for col, val in row.items()}
            for row in df.to_dict(orient="records")
        ]
        logger.debug("Parsed %d rows from sheet %s of %s", len(data), sheet_name, file_path)
        return {"success": True, "data": data, "sheet_name": sheet_name, "row_count": len(data)}

    def validate_structure(self, data: List[Dict[str, Any]]) -> Dict[str, Any]:
        errors = []
        warnings = []

        if not data:
            errors.append("Excel file contains no data rows")
            return {"is_valid": False, "errors": errors, "warnings": warnings}

        actual_columns = list(data[0].keys())
        missing = [c for c in self.required_columns if c not in actual_columns]
        if missing:
            errors.append(f"Missing required columns: {', '.join(missing)}")

        extra = [c for c in actual_columns if c not in self.required_columns]
        if extra:
            warnings.append(f"Extra columns found (will be ignored): {', '.join(extra)}")

        return {
            "is_valid": len(errors) == 0,
            "errors": errors,
            "warnings": warnings,
            "column_count": len(actual_columns),
            "row_count": len(data),
        }

    def extract_dtr_records(self, data: List[Dict[str, Any]]) -> Dict[str, Any]:
        records = []
        errors = []

        for i, row in enumerate(data):
            # header is row 1 in the sheet
            row_number = i + 2
            if self._is_empty_row(row):
                continue

            try:
                record = {
                    "row_number": row_number,
                    "employee_number": self._text(row.get("Employee Number")),
                    "employee_name": self._text(row.get("Employee Name")),
                    "position": self._text(row.get("Position")),
                    "start_date": self.parse_date_field(row.get("Period Start Date"), row_number, "Period Start Date"),
                    "end_date": self.parse_date_field(row.get("Period End Date"), row_number, "Period End Date"),
                    "working_days": self.parse_decimal_field(row.get("Total Working Days"), row_number, "Total Working Days"),
                }
            except ValueError as e:
                errors.append({
                    "row_number": row_number,
                    "employee_number": self._text(row.get("Employee Number")) or "Unknown",
                    "errors": [str(e)],
                })
                continue

            field_errors = []
            if record["employee_number"] is None:
                field_errors.append("Employee Number is required")
            if record["start_date"] is None:
                field_errors.append("Period Start Date is required")
            if record["end_date"] is None:
                field_errors.append("Period End Date is required")
            if record["working_days"] is None:
                field_errors.append("Total Working Days is required")

            if field_errors:
                errors.append({
                    "row_number": row_number,
                    "employee_number": record["employee_number"] or "Unknown",
                    "errors": field_errors,
                })
                continue

            records.append(record)

        return {
            "records": records,
            "errors": errors,
            "total_rows": len(data),
            "valid_rows": len(records),
            "error_rows": len(errors),
        }

    def parse_date_field(self, value: Any, row_number: int, field_name: str) -> Optional[str]:
        """Normalise a date cell to ``YYYY-MM-DD``; blank cells give None."""
        if _is_blank(value):
            return None

        if isinstance(value, (datetime, date)):
            return value.strftime("%Y-%m-%d")

        # Excel serial day number
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            try:
                return pd.to_datetime(value, origin="1899-12-30", unit="D").strftime("%Y-%m-%d")
            except (ValueError, OverflowError) as e:
                raise ValueError(f"Row {row_number}: Invalid {field_name} - {e}")

        if isinstance(value, str):
            s = value.strip()
            for fmt in DATE_FORMATS:
                try:
                    return datetime.strptime(s, fmt).strftime("%Y-%m-%d")
                except ValueError:
                    continue

        raise ValueError(f"Row {row_number}: Invalid {field_name} - Invalid date format: {value}")

    def parse_decimal_field(self, value: Any, row_number: int, field_name: str) -> Optional[float]:
        """
        Parse a number cell. Strings may use either comma or period as the
        decimal separator; the later of the two is taken as the decimal point.
        Precision is left intact for the validator to check.
        """
        if _is_blank(value):
            return None

        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)

        if isinstance(value, str):
            cleaned = "".join(value.split())
            if "," in cleaned:
                comma = cleaned.rfind(",")
                period = cleaned.rfind(".")
                if period == -1 or comma > period:
                    cleaned = cleaned.replace(".", "").replace(",", ".")
                else:
                    cleaned = cleaned.replace(",", "")
            try:
                return float(cleaned)
            except ValueError:
                raise ValueError(f'Row {row_number}: Invalid {field_name} - Cannot convert "{value}" to a number')

        raise ValueError(f"Row {row_number}: Invalid {field_name} - Unsupported value type: {type(value).__name__}")

    @staticmethod
    def _text(value: Any) -> Optional[str]:
        if _is_blank(value):
            return None
        return str(value).strip()

    @staticmethod
    def _is_empty_row(row: Optional[Dict[str, Any]]) -> bool:
        if not row:
            return True
        return all(_is_blank(v) for v in row.values())
