from sqlalchemy import (
    Column, String, Integer, Float, ForeignKey, Date, DateTime, Boolean, JSON, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime
from lgupay.db.session import Base

class Employee(Base):
    __tablename__ = "employees"
    id = Column(Integer, primary_key=True, autoincrement=True)
    employee_number = Column(String, nullable=False, unique=True, index=True)
    first_name = Column(String, nullable=False)
    middle_name = Column(String, nullable=True)
    last_name = Column(String, nullable=False)
    plantilla_position = Column(String, nullable=True)
    department = Column(String, nullable=True)
    employment_status = Column(String, default="Active")
    current_monthly_salary = Column(Float, default=0.0)
    current_daily_rate = Column(Float, nullable=True)
    monthly_rata = Column(Float, default=0.0)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.now)

    def full_name(self) -> str:
        middle = f"{self.middle_name} " if self.middle_name else ""
        return f"{self.first_name} {middle}{self.last_name}".strip()

    def to_dict(self):
        return {
            "id": self.id,
            "employee_number": self.employee_number,
            "first_name": self.first_name,
            "middle_name": self.middle_name,
            "last_name": self.last_name,
            "plantilla_position": self.plantilla_position,
            "position": self.plantilla_position,
            "department": self.department,
            "employment_status": self.employment_status,
            "current_monthly_salary": self.current_monthly_salary,
            "current_daily_rate": self.current_daily_rate,
            "monthly_rata": self.monthly_rata,
        }

class PayrollPeriod(Base):
    __tablename__ = "payroll_periods"
    __table_args__ = (UniqueConstraint("year", "month", "period_number"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    period_number = Column(Integer, nullable=False)  # 1st or 2nd half
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    pay_date = Column(Date, nullable=True)
    working_days = Column(Float, nullable=True)
    status = Column(String, default="Draft")
    finalized_by = Column(String, nullable=True)
    finalized_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.now)

    items = relationship("PayrollItem", back_populates="period")

    def to_dict(self):
        return {
            "id": self.id,
            "year": self.year,
            "month": self.month,
            "period_number": self.period_number,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "pay_date": self.pay_date.isoformat() if self.pay_date else None,
            "working_days": self.working_days,
            "status": self.status,
        }

class PayrollItem(Base):
    __tablename__ = "payroll_items"
    __table_args__ = (UniqueConstraint("payroll_period_id", "employee_id"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    payroll_period_id = Column(Integer, ForeignKey("payroll_periods.id"), nullable=False)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False)
    working_days = Column(Float, default=0.0)
    days_present = Column(Float, default=0.0)
    days_lwop = Column(Float, default=0.0)
    daily_rate = Column(Float, default=0.0)
    basic_pay = Column(Float, default=0.0)
    total_allowances = Column(Float, default=0.0)
    total_deductions = Column(Float, default=0.0)
    gross_pay = Column(Float, default=0.0)
    taxable_income = Column(Float, default=0.0)
    net_pay = Column(Float, default=0.0)
    breakdown = Column(JSON, default={})
    status = Column(String, default="draft")  # draft / calculated / paid
    calculated_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)

    period = relationship("PayrollPeriod", back_populates="items")
    employee = relationship("Employee")

class TaxBracket(Base):
    __tablename__ = "tax_brackets"
    id = Column(Integer, primary_key=True, autoincrement=True)
    effective_date = Column(Date, nullable=False, index=True)
    bracket_min = Column(Float, nullable=False)
    bracket_max = Column(Float, nullable=True)  # NULL = no upper bound
    tax_rate = Column(Float, nullable=False)
    base_tax = Column(Float, default=0.0)
    excess_over = Column(Float, default=0.0)
    is_active = Column(Boolean, default=True)

class DTRImportBatch(Base):
    __tablename__ = "dtr_import_batches"
    id = Column(Integer, primary_key=True, autoincrement=True)
    payroll_period_id = Column(Integer, ForeignKey("payroll_periods.id"), nullable=False)
    file_name = Column(String, nullable=True)
    file_path = Column(String, nullable=True)
    file_size = Column(Integer, default=0)
    total_records = Column(Integer, default=0)
    valid_records = Column(Integer, default=0)
    invalid_records = Column(Integer, default=0)
    warning_records = Column(Integer, default=0)
    status = Column(String, default="Processing")
    error_log = Column(JSON, default={})
    imported_by = Column(String, nullable=True)
    imported_at = Column(DateTime, default=datetime.now)
    completed_at = Column(DateTime, nullable=True)

    records = relationship("DTRRecord", back_populates="batch")

    def to_dict(self):
        return {
            "id": self.id,
            "payroll_period_id": self.payroll_period_id,
            "file_name": self.file_name,
            "file_path": self.file_path,
            "file_size": self.file_size,
            "total_records": self.total_records,
            "valid_records": self.valid_records,
            "invalid_records": self.invalid_records,
            "warning_records": self.warning_records,
            "status": self.status,
            "error_log": self.error_log,
            "imported_by": self.imported_by,
            "imported_at": self.imported_at,
            "completed_at": self.completed_at,
        }

class DTRRecord(Base):
    __tablename__ = "dtr_records"
    id = Column(Integer, primary_key=True, autoincrement=True)
    payroll_period_id = Column(Integer, ForeignKey("payroll_periods.id"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False)
    employee_number = Column(String, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    working_days = Column(Float, nullable=False)
    import_batch_id = Column(Integer, ForeignKey("dtr_import_batches.id"), nullable=False)
    status = Column(String, default="Active")  # Active / Superseded / Deleted
    notes = Column(Text, nullable=True)
    imported_by = Column(String, nullable=True)
    imported_at = Column(DateTime, default=datetime.now)
    updated_by = Column(String, nullable=True)
    updated_at = Column(DateTime, nullable=True)

    batch = relationship("DTRImportBatch", back_populates="records")
    employee = relationship("Employee")
