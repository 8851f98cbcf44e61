"""
DTR service: template generation, import pipeline, re-import rules and record
management for one payroll period.

Import pipeline: parse -> validate -> eligibility -> save, with every attempt
written to the ``dtr`` audit trail.
"""
import calendar
import io
import os
import uuid
import pandas as pd
from pathlib import Path
from dataclasses import dataclass, asdict, field
from datetime import datetime
from typing import Dict, List, Any, Optional, Union

from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import SQLAlchemyError

from ..core.audit import AuditLogger
from ..core.utils import get_logger
from ..db.models import Employee, PayrollPeriod, DTRImportBatch, DTRRecord
from ..payroll.periods import PayrollPeriodStatus, period_name
from .parser import DTRExcelParser
from .validator import DTRValidator

logger = get_logger("dtr", "service")

TEMPLATE_COLUMN_WIDTHS = {"A": 18, "B": 30, "C": 35, "D": 18, "E": 18, "F": 20}

SORT_COLUMNS = {
    "last_name": Employee.last_name,
    "first_name": Employee.first_name,
    "employee_number": DTRRecord.employee_number,
    "working_days": DTRRecord.working_days,
    "imported_at": DTRRecord.imported_at,
}

@dataclass
class DTRImportResult:
    """Outcome of one import attempt."""
    success: bool
    period_id: int
    batch_id: Optional[int] = None
    file_hash: Optional[str] = None
    total_rows: int = 0
    imported_rows: int = 0
    error_rows: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    parse_errors: List[Dict[str, Any]] = field(default_factory=list)
    invalid_records: List[Dict[str, Any]] = field(default_factory=list)
    warning_records: List[Dict[str, Any]] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self):
        return asdict(self)

class DTRService:
    def __init__(self, session, audit_logger: Optional[AuditLogger] = None):
        self.session = session
        self.parser = DTRExcelParser()
        self.validator = DTRValidator()
        self.audit_logger = audit_logger or AuditLogger("dtr")

    def _employees(self, active_only: bool = False) -> List[Employee]:
        query = select(Employee).where(Employee.deleted_at.is_(None))
        if active_only:
            query = query.where(Employee.employment_status == "Active")
        return list(self.session.execute(query.order_by(Employee.last_name, Employee.first_name)).scalars())

    def generate_template(self, period_id: int) -> Dict[str, Any]:
        """Excel workbook pre-filled with every active employee and the period dates."""
        period = self.session.get(PayrollPeriod, period_id)
        if period is None:
            return {"success": False, "error": "Payroll period not found"}

        employees = self._employees(active_only=True)
        if not employees:
            return {"success": False, "error": "No active employees found"}

        rows = [
            {
                "Employee Number": emp.employee_number,
                "Employee Name": emp.full_name(),
                "Position": emp.plantilla_position or "",
                "Period Start Date": period.start_date.isoformat(),
                "Period End Date": period.end_date.isoformat(),
                "Total Working Days": None,
            }
            for emp in employees
        ]

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            pd.DataFrame(rows).to_excel(writer, sheet_name="DTR Template", index=False)
            sheet = writer.sheets["DTR Template"]
            for col, width in TEMPLATE_COLUMN_WIDTHS.items():
                sheet.column_dimensions[col].width = width

        month_name = calendar.month_name[period.month]
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        filename = f"DTR_Template_{period.year}_{month_name}_Period{period.period_number}_{timestamp}.xlsx"
        logger.info("Generated DTR template %s for %d employees", filename, len(employees))

        return {
            "success": True,
            "data": {
                "content": buffer.getvalue(),
                "filename": filename,
                "employee_count": len(employees),
                "period": {
                    "id": period.id,
                    "name": period_name(period),
                    "start_date": period.start_date.isoformat(),
                    "end_date": period.end_date.isoformat(),
                },
            },
        }

    def parse_excel_file(self, file_path: Union[str, Path]) -> Dict[str, Any]:
        try:
            parsed = self.parser.parse_file(file_path)
        except ValueError as e:
            return {"success": False, "error": "Failed to parse Excel file", "details": str(e)}

        structure = self.parser.validate_structure(parsed["data"])
        if not structure["is_valid"]:
            return {"success": False, "error": "Invalid file structure", "details": structure["errors"]}

        extracted = self.parser.extract_dtr_records(parsed["data"])
        return {
            "success": True,
            "data": {
                "records": extracted["records"],
                "parse_errors": extracted["errors"],
                "structure_warnings": structure["warnings"],
                "total_rows": extracted["total_rows"],
                "valid_rows": extracted["valid_rows"],
                "error_rows": extracted["error_rows"],
            },
        }

    def validate_dtr_records(self, records: List[Dict[str, Any]], period_id: int) -> Dict[str, Any]:
        period = self.session.get(PayrollPeriod, period_id)
        if period is None:
            return {"success": False, "error": "Payroll period not found"}

        employees = [e.to_dict() for e in self._employees()]
        result = self.validator.validate_batch(records, period.to_dict(), employees)
        result["summary"].update(self._calculate_summary(result["valid_records"], employees))
        return {"success": True, "data": result}

    def _calculate_summary(self, valid_records: List[Dict[str, Any]], employees: List[Dict[str, Any]]) -> Dict[str, Any]:
        rates = {e["id"]: e.get("current_daily_rate") for e in employees}
        total_days = 0.0
        estimated_pay = 0.0
        for record in valid_records:
            days = record.get("working_days") or 0
            total_days += days
            rate = rates.get(record.get("employee_id"))
            if rate:
                estimated_pay += days * rate
        return {
            "total_employees": len(valid_records),
            "total_working_days": round(total_days, 2),
            "estimated_basic_pay": round(estimated_pay, 2),
        }

    def check_reimport_eligibility(self, period_id: int) -> Dict[str, Any]:
        period = self.session.get(PayrollPeriod, period_id)
        if period is None:
            return {"success": False, "error": "Payroll period not found"}

        active = self.session.execute(
            select(func.count(DTRRecord.id))
            .where(DTRRecord.payroll_period_id == period_id, DTRRecord.status == "Active")
        ).scalar_one()
        if not active:
            return {"success": True, "data": {"has_existing_records": False, "can_reimport": True, "requires_warning": False}}

        last_batch = self.session.execute(
            select(DTRImportBatch)
            .where(DTRImportBatch.payroll_period_id == period_id)
            .order_by(DTRImportBatch.imported_at.desc(), DTRImportBatch.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        last_import = None
        if last_batch is not None:
            last_import = {
                "id": last_batch.id,
                "file_name": last_batch.file_name,
                "imported_at": last_batch.imported_at,
                "valid_records": last_batch.valid_records,
                "imported_by": last_batch.imported_by,
            }

        status = period.status
        if status in (PayrollPeriodStatus.FINALIZED.value, PayrollPeriodStatus.PAID.value):
            return {"success": True, "data": {
                "has_existing_records": True,
                "can_reimport": False,
                "requires_warning": False,
                "prevention_reason": "payroll_finalized",
                "payroll_status": status,
                "last_import": last_import,
                "message": "Cannot re-import DTR. Payroll has been finalized for this period.",
            }}

        if status in (PayrollPeriodStatus.DRAFT.value, PayrollPeriodStatus.PROCESSING.value):
            return {"success": True, "data": {
                "has_existing_records": True,
                "can_reimport": True,
                "requires_warning": True,
                "payroll_status": status,
                "last_import": last_import,
                "warning_message": "DTR data already exists for this period. Re-importing will supersede existing records.",
                "additional_warning": ("Payroll items will need to be recalculated after re-import."
                                       if status == PayrollPeriodStatus.PROCESSING.value else None),
            }}

        return {"success": True, "data": {
            "has_existing_records": True,
            "can_reimport": False,
            "requires_warning": False,
            "prevention_reason": "unknown_status",
            "payroll_status": status,
            "last_import": last_import,
            "message": f"Cannot re-import DTR. Payroll status is '{status}'.",
        }}

    def save_dtr_records(self, records: List[Dict[str, Any]], period_id: int,
                         batch_info: Dict[str, Any], user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Store validated records as a new import batch.

        Runs in a single transaction: the batch is created, Active records of
        earlier batches for the period become Superseded, the new records are
        inserted and the batch is marked Completed.
        """
        try:
            batch = DTRImportBatch(
                payroll_period_id=period_id,
                file_name=batch_info.get("file_name"),
                file_path=batch_info.get("file_path"),
                file_size=batch_info.get("file_size") or 0,
                total_records=batch_info.get("total_records") or len(records),
                valid_records=batch_info.get("valid_records") or len(records),
                invalid_records=batch_info.get("invalid_records") or 0,
                warning_records=batch_info.get("warning_records") or 0,
                status="Processing",
                error_log=batch_info.get("error_log") or {},
                imported_by=user_id,
            )
            self.session.add(batch)
            self.session.flush()

            superseded = self._supersede(period_id, batch.id)

            for record in records:
                self.session.add(DTRRecord(
                    payroll_period_id=period_id,
                    employee_id=record["employee_id"],
                    employee_number=record["employee_number"],
                    start_date=datetime.strptime(record["start_date"], "%Y-%m-%d").date(),
                    end_date=datetime.strptime(record["end_date"], "%Y-%m-%d").date(),
                    working_days=record["working_days"],
                    import_batch_id=batch.id,
                    status="Active",
                    imported_by=user_id,
                ))

            batch.status = "Completed"
            batch.completed_at = datetime.now()
            self.session.commit()
        except (SQLAlchemyError, KeyError, ValueError) as e:
            self.session.rollback()
            logger.error("Error saving DTR records for period %s: %s", period_id, e)
            return {"success": False, "error": "Failed to save DTR records", "details": str(e)}

        logger.info("Saved %d DTR records for period %s in batch %s (%d superseded)",
                    len(records), period_id, batch.id, superseded)
        return {"success": True, "data": {
            "batch_id": batch.id,
            "inserted_count": len(records),
            "superseded_count": superseded,
            "period_id": period_id,
        }}

    def import_file(self, file_path: Union[str, Path], period_id: int, user_id: Optional[str] = None) -> DTRImportResult:
        """
        Full import of an uploaded DTR workbook.

        The import is all-or-nothing: any invalid row rejects the whole file
        so it can be corrected and uploaded again.
        """
        file_path = Path(file_path)
        result = DTRImportResult(success=False, period_id=period_id)
        try:
            file_hash = self.audit_logger.calculate_file_hash(file_path)
        except OSError as e:
            result.errors.append("Failed to read uploaded file")
            result.errors.append(str(e))
            return self._log_failure(result, file_path)
        result.file_hash = file_hash

        if self.audit_logger.is_duplicate_upload(file_hash):
            result.warnings.append("This file has already been imported before")

        parsed = self.parse_excel_file(file_path)
        if not parsed["success"]:
            details = parsed["details"]
            result.errors.append(parsed["error"])
            result.errors.extend(details if isinstance(details, list) else [details])
            return self._log_failure(result, file_path)

        data = parsed["data"]
        result.total_rows = data["total_rows"]
        result.parse_errors = data["parse_errors"]
        result.warnings.extend(data["structure_warnings"])

        validation = self.validate_dtr_records(data["records"], period_id)
        if not validation["success"]:
            result.errors.append(validation["error"])
            return self._log_failure(result, file_path)

        checked = validation["data"]
        result.invalid_records = checked["invalid_records"]
        result.warning_records = checked["warning_records"]
        result.summary = checked["summary"]
        result.error_rows = len(result.parse_errors) + len(result.invalid_records)

        if result.error_rows:
            result.errors.append(f"{result.error_rows} row(s) have errors; fix them and upload the file again")
            return self._log_failure(result, file_path)
        if not checked["valid_records"]:
            result.errors.append("No valid DTR records found in file")
            return self._log_failure(result, file_path)

        eligibility = self.check_reimport_eligibility(period_id)["data"]
        if not eligibility["can_reimport"]:
            result.errors.append(eligibility["message"])
            return self._log_failure(result, file_path)
        if eligibility["requires_warning"]:
            result.warnings.append(eligibility["warning_message"])
            if eligibility.get("additional_warning"):
                result.warnings.append(eligibility["additional_warning"])

        saved = self.save_dtr_records(
            checked["valid_records"],
            period_id,
            {
                "file_name": file_path.name,
                "file_path": str(file_path),
                "file_size": os.path.getsize(file_path),
                "total_records": checked["total_records"],
                "valid_records": len(checked["valid_records"]),
                "invalid_records": 0,
                "warning_records": len(checked["warning_records"]),
                "error_log": {"warnings": [w["warnings"] for w in checked["warning_records"]]},
            },
            user_id,
        )
        if not saved["success"]:
            result.errors.append(saved["details"])
            return self._log_failure(result, file_path)

        result.success = True
        result.batch_id = saved["data"]["batch_id"]
        result.imported_rows = saved["data"]["inserted_count"]
        self.audit_logger.log_upload(
            entity_type="dtr_records",
            batch_id=result.batch_id,
            file_hash=file_hash,
            total_rows=result.total_rows,
            processed_rows=result.imported_rows,
            error_rows=0,
            success=True,
            user_id=user_id,
            filename=file_path.name,
            period_id=period_id,
        )
        return result

    def _log_failure(self, result: DTRImportResult, file_path: Path) -> DTRImportResult:
        logger.warning("DTR import of %s for period %s rejected: %s",
                       file_path.name, result.period_id, "; ".join(result.errors))
        self.audit_logger.log_upload(
            entity_type="dtr_records",
            batch_id=str(uuid.uuid4()),
            file_hash=result.file_hash,
            total_rows=result.total_rows,
            processed_rows=0,
            error_rows=result.error_rows,
            success=False,
            filename=file_path.name,
            period_id=result.period_id,
            error_message="; ".join(result.errors),
        )
        return result

    def get_dtr_records(self, period_id: int, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        filters = filters or {}
        status = filters.get("status") or "Active"

        query = (
            select(DTRRecord, Employee, DTRImportBatch)
            .join(Employee, DTRRecord.employee_id == Employee.id)
            .join(DTRImportBatch, DTRRecord.import_batch_id == DTRImportBatch.id)
            .where(DTRRecord.payroll_period_id == period_id, DTRRecord.status == status, Employee.deleted_at.is_(None))
        )
        if filters.get("employee_number"):
            query = query.where(DTRRecord.employee_number.like(f"%{filters['employee_number']}%"))
        if filters.get("employee_name"):
            term = f"%{filters['employee_name']}%"
            query = query.where(or_(
                Employee.first_name.like(term),
                Employee.last_name.like(term),
                (Employee.first_name + " " + Employee.last_name).like(term),
            ))

        sort_col = SORT_COLUMNS.get(filters.get("sort_by") or "last_name", Employee.last_name)
        query = query.order_by(sort_col.desc() if filters.get("sort_order") == "desc" else sort_col.asc())

        limit = filters.get("limit")
        offset = int(filters.get("offset") or 0)
        if limit:
            query = query.limit(int(limit)).offset(offset)

        records = []
        for rec, emp, batch in self.session.execute(query).all():
            records.append({
                "id": rec.id,
                "payroll_period_id": rec.payroll_period_id,
                "employee_id": rec.employee_id,
                "employee_number": rec.employee_number,
                "employee_name": emp.full_name(),
                "position": emp.plantilla_position,
                "start_date": rec.start_date.isoformat(),
                "end_date": rec.end_date.isoformat(),
                "working_days": rec.working_days,
                "import_batch_id": rec.import_batch_id,
                "import_file_name": batch.file_name,
                "status": rec.status,
                "notes": rec.notes,
                "imported_by": rec.imported_by,
                "imported_at": rec.imported_at,
                "updated_by": rec.updated_by,
                "updated_at": rec.updated_at,
                "current_daily_rate": emp.current_daily_rate,
                "calculated_basic_pay": (round(rec.working_days * emp.current_daily_rate, 2)
                                         if emp.current_daily_rate else None),
            })

        total = self.session.execute(
            select(func.count(DTRRecord.id))
            .join(Employee, DTRRecord.employee_id == Employee.id)
            .where(DTRRecord.payroll_period_id == period_id, DTRRecord.status == "Active", Employee.deleted_at.is_(None))
        ).scalar_one()

        page_size = int(limit) if limit else 50
        return {"success": True, "data": {
            "records": records,
            "total_count": total,
            "page": offset // page_size + 1,
            "page_size": page_size,
        }}

    def _active_record(self, record_id: int) -> Optional[DTRRecord]:
        return self.session.execute(
            select(DTRRecord).where(DTRRecord.id == record_id, DTRRecord.status == "Active")
        ).scalar_one_or_none()

    def update_dtr_record(self, record_id: int, updates: Dict[str, Any], user_id: Optional[str] = None) -> Dict[str, Any]:
        if "working_days" in updates:
            days_check = self.validator.validate_working_days(updates["working_days"])
            if not days_check["is_valid"]:
                return {"success": False, "error": "Invalid working days", "details": days_check["errors"]}
            precision = self.validator.validate_decimal_precision(updates["working_days"])
            if not precision["is_valid"]:
                return {"success": False, "error": "Invalid decimal precision", "details": precision["errors"]}

        changes = {k: updates[k] for k in ("working_days", "notes") if k in updates}
        if not changes:
            return {"success": False, "error": "No fields to update"}

        record = self._active_record(record_id)
        if record is None:
            return {"success": False, "error": "DTR record not found or already deleted"}

        before = {k: getattr(record, k) for k in changes}
        for k, v in changes.items():
            setattr(record, k, v)
        record.updated_by = user_id
        record.updated_at = datetime.now()
        self.session.commit()

        self.audit_logger.log_data_change(
            entity_type="dtr_record",
            operation="update",
            entity_id=record_id,
            changes={k: {"old": before[k], "new": v} for k, v in changes.items()},
            user_id=user_id,
        )
        return {"success": True, "data": {
            "id": record.id,
            "employee_number": record.employee_number,
            "working_days": record.working_days,
            "notes": record.notes,
            "updated_by": record.updated_by,
            "updated_at": record.updated_at,
        }, "message": "DTR record updated successfully"}

    def delete_dtr_record(self, record_id: int, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Soft delete; the row stays with status Deleted."""
        record = self._active_record(record_id)
        if record is None:
            return {"success": False, "error": "DTR record not found or already deleted"}

        record.status = "Deleted"
        record.updated_by = user_id
        record.updated_at = datetime.now()
        self.session.commit()

        self.audit_logger.log_data_change(
            entity_type="dtr_record",
            operation="delete",
            entity_id=record_id,
            changes={"status": {"old": "Active", "new": "Deleted"}},
            user_id=user_id,
        )
        return {"success": True, "message": "DTR record deleted successfully"}

    def get_import_history(self, period_id: int) -> Dict[str, Any]:
        batches = self.session.execute(
            select(DTRImportBatch)
            .where(DTRImportBatch.payroll_period_id == period_id)
            .order_by(DTRImportBatch.imported_at.desc(), DTRImportBatch.id.desc())
        ).scalars()
        return {"success": True, "data": [b.to_dict() for b in batches]}

    def get_import_batch_details(self, batch_id: int) -> Dict[str, Any]:
        batch = self.session.get(DTRImportBatch, batch_id)
        if batch is None:
            return {"success": False, "error": "Import batch not found"}

        period = self.session.get(PayrollPeriod, batch.payroll_period_id)
        info = batch.to_dict()
        info.update({"year": period.year, "month": period.month, "period_number": period.period_number})

        rows = self.session.execute(
            select(DTRRecord, Employee)
            .join(Employee, DTRRecord.employee_id == Employee.id)
            .where(DTRRecord.import_batch_id == batch_id)
            .order_by(Employee.last_name, Employee.first_name)
        ).all()
        records = [
            {
                "id": rec.id,
                "employee_number": rec.employee_number,
                "employee_name": emp.full_name(),
                "position": emp.plantilla_position,
                "working_days": rec.working_days,
                "status": rec.status,
            }
            for rec, emp in rows
        ]
        return {"success": True, "data": {"batch": info, "records": records}}

    def _supersede(self, period_id: int, new_batch_id: int) -> int:
        result = self.session.execute(
            update(DTRRecord)
            .where(
                DTRRecord.payroll_period_id == period_id,
                DTRRecord.import_batch_id != new_batch_id,
                DTRRecord.status == "Active",
            )
            .values(status="Superseded")
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def supersede_previous_records(self, period_id: int, new_batch_id: int) -> Dict[str, Any]:
        try:
            count = self._supersede(period_id, new_batch_id)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Error superseding records for period %s: %s", period_id, e)
            return {"success": False, "error": "Failed to supersede previous records", "details": str(e)}
        return {"success": True, "data": {"superseded_count": count}}

    def get_dtr_stats(self, period_id: int) -> Dict[str, Any]:
        row = self.session.execute(
            select(
                func.count(func.distinct(DTRRecord.employee_id)),
                func.count(DTRRecord.id),
                func.sum(DTRRecord.working_days),
                func.sum(DTRRecord.working_days * Employee.current_daily_rate),
                func.max(DTRImportBatch.imported_at),
                func.max(DTRImportBatch.id),
            )
            .join(Employee, DTRRecord.employee_id == Employee.id)
            .join(DTRImportBatch, DTRRecord.import_batch_id == DTRImportBatch.id)
            .where(DTRRecord.payroll_period_id == period_id, DTRRecord.status == "Active", Employee.deleted_at.is_(None))
        ).one()
        employees, records, days, pay, last_date, last_batch_id = row

        last_imported_by = None
        if last_batch_id:
            last_imported_by = self.session.get(DTRImportBatch, last_batch_id).imported_by

        return {"success": True, "data": {
            "total_employees": employees or 0,
            "total_records": records or 0,
            "total_working_days": round(days or 0, 2),
            "total_estimated_pay": round(pay or 0, 2),
            "last_import_date": last_date,
            "last_imported_by": last_imported_by,
            "has_data": (records or 0) > 0,
        }}
