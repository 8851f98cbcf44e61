from datetime import datetime

import pandas as pd
import pytest

from lgupay.dtr.parser import DTRExcelParser

COLUMNS = ["Employee Number", "Employee Name", "Position", "Period Start Date", "Period End Date", "Total Working Days"]

def _write(tmp_path, rows, columns=COLUMNS, name="dtr.xlsx"):
    path = tmp_path / name
    pd.DataFrame(rows, columns=columns).to_excel(path, index=False)
    return path

def test_parse_file_reads_first_sheet(tmp_path):
    path = _write(tmp_path, [
        ["EMP-001", "Juan Dela Cruz", "Administrative Officer", "2024-10-01", "2024-10-15", 11],
        [None, None, None, None, None, None],
        ["EMP-002", "Maria Santos", None, "2024-10-01", "2024-10-15", 10.5],
    ])
    r = DTRExcelParser().parse_file(path)
    assert r["success"]
    assert r["sheet_name"] == "Sheet1"
    # fully blank rows are dropped
    assert r["row_count"] == 2
    assert r["data"][1]["Position"] is None

def test_parse_file_rejects_other_types(tmp_path):
    path = tmp_path / "dtr.csv"
    path.write_text("a,b\n1,2\n")
    with pytest.raises(ValueError, match="Failed to parse Excel file"):
        DTRExcelParser().parse_file(path)

def test_parse_file_corrupt(tmp_path):
    path = tmp_path / "broken.xlsx"
    path.write_bytes(b"not a workbook")
    with pytest.raises(ValueError, match="Failed to parse Excel file"):
        DTRExcelParser().parse_file(path)

def test_validate_structure():
    p = DTRExcelParser()
    assert p.validate_structure([])["errors"] == ["Excel file contains no data rows"]

    row = dict.fromkeys(COLUMNS[:-1] + ["Remarks"])
    v = p.validate_structure([row])
    assert not v["is_valid"]
    assert v["errors"] == ["Missing required columns: Total Working Days"]
    assert v["warnings"] == ["Extra columns found (will be ignored): Remarks"]

def test_extract_records_from_file(tmp_path):
    path = _write(tmp_path, [
        ["EMP-001", "Juan Dela Cruz", "AO", datetime(2024, 10, 1), datetime(2024, 10, 15), 11],
        ["EMP-002", "Maria Santos", "Nurse", "10/01/2024", "10/15/2024", "10,5"],
        ["EMP-003", "Pedro Reyes", "Clerk", "2024-10-01", "2024-10-15", None],
        ["EMP-004", "Ana Cruz", "Clerk", "someday", "2024-10-15", 5],
    ])
    p = DTRExcelParser()
    r = p.extract_dtr_records(p.parse_file(path)["data"])

    assert r["valid_rows"] == 2
    first, second = r["records"]
    assert first["row_number"] == 2
    assert first["start_date"] == "2024-10-01"
    assert first["working_days"] == 11
    assert second["end_date"] == "2024-10-15"
    assert second["working_days"] == 10.5

    assert r["error_rows"] == 2
    missing, bad_date = r["errors"]
    assert missing["row_number"] == 4
    assert missing["errors"] == ["Total Working Days is required"]
    assert bad_date["employee_number"] == "EMP-004"
    assert "Invalid Period Start Date" in bad_date["errors"][0]

def test_parse_date_field_formats():
    p = DTRExcelParser()
    assert p.parse_date_field("2024-10-01", 2, "d") == "2024-10-01"
    assert p.parse_date_field("03/04/2024", 2, "d") == "2024-03-04"
    assert p.parse_date_field("25/12/2024", 2, "d") == "2024-12-25"
    assert p.parse_date_field("Oct 01, 2024", 2, "d") == "2024-10-01"
    assert p.parse_date_field(45566, 2, "d") == "2024-10-01"
    assert p.parse_date_field("  ", 2, "d") is None
    with pytest.raises(ValueError, match="Row 7: Invalid Start"):
        p.parse_date_field("2024-13-45", 7, "Start")

def test_parse_decimal_field():
    p = DTRExcelParser()
    assert p.parse_decimal_field("10,5", 2, "n") == 10.5
    assert p.parse_decimal_field("1.234,5", 2, "n") == 1234.5
    assert p.parse_decimal_field("1,234.5", 2, "n") == 1234.5
    assert p.parse_decimal_field(" 11 ", 2, "n") == 11
    # precision is not rounded away here
    assert p.parse_decimal_field(10.125, 2, "n") == 10.125
    assert p.parse_decimal_field(None, 2, "n") is None
    with pytest.raises(ValueError, match="Cannot convert"):
        p.parse_decimal_field("eleven", 2, "n")
