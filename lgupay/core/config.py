from pydantic import Field
from pydantic_settings import BaseSettings
from typing import List, Tuple

class Settings(BaseSettings):
    APP_NAME: str = Field("LGUPayroll", description="Prefix for logger names")
    LOG_LEVEL: str = Field("INFO", description="Root level for component loggers")
    AUDIT_LOG_PATH: str = Field("./data/logs", description="Directory for rotating log files")
    DATA_DIR: str = Field("./data", description="Working directory for audit trails and exports")
    DB_URL: str = Field("sqlite:///./data/lgupay.db", description="Database URL")

    # Government standard month
    STANDARD_WORKING_DAYS: int = 22
    MAX_DAYS_IN_MONTH: int = 31

    # Allowances
    PERA_MONTHLY_AMOUNT: float = 2000.0
    HAZARD_HEALTH_RATE: float = 0.25
    HAZARD_HEALTH_DEPARTMENTS: List[str] = ["RHU", "HEALTH", "RURAL HEALTH UNIT"]
    HAZARD_SOCIAL_RATE: float = 0.20
    HAZARD_SOCIAL_DEPARTMENTS: List[str] = ["MSWD", "SOCIAL WELFARE"]
    SUBSISTENCE_DAILY_RATE: float = 50.0
    LAUNDRY_DAILY_RATE: float = 6.818
    SB_KEYWORDS: List[str] = ["SANGGUNIANG BAYAN", "SB MEMBER", "COUNCILOR", "VICE MAYOR"]

    # GSIS
    GSIS_EMPLOYEE_RATE: float = 0.09
    GSIS_EMPLOYER_RATE: float = 0.12
    GSIS_MAX_SALARY: float = 100000.0

    # Pag-IBIG
    PAGIBIG_STANDARD_CONTRIBUTION: float = 100.0
    PAGIBIG_HIGH_EARNER_THRESHOLD: float = 5000.0
    PAGIBIG_HIGH_EARNER_RATE: float = 0.02
    PAGIBIG_MAX_CONTRIBUTION: float = 200.0

    # PhilHealth (2024)
    PHILHEALTH_RATE: float = 0.04
    PHILHEALTH_EMPLOYEE_SHARE: float = 0.5
    PHILHEALTH_MIN_SALARY: float = 10000.0
    PHILHEALTH_MAX_SALARY: float = 100000.0
    PHILHEALTH_MIN_PREMIUM: float = 400.0
    PHILHEALTH_MAX_PREMIUM: float = 4000.0

    EC_FUND_AMOUNT: float = 100.0

    # BIR annual withholding table (TRAIN law)
    # (min, max, rate, fixed amount, excess over)
    BIR_TAX_BRACKETS: List[Tuple[float, float, float, float, float]] = [
        (0, 250000, 0.0, 0, 0),
        (250000, 400000, 0.15, 0, 250000),
        (400000, 800000, 0.20, 22500, 400000),
        (800000, 2000000, 0.25, 102500, 800000),
        (2000000, 8000000, 0.30, 402500, 2000000),
        (8000000, float("inf"), 0.35, 2202500, 8000000),
    ]

    DEDUCTION_WARNING_PERCENT: float = 50.0

    # DTR import
    DTR_REQUIRED_COLUMNS: List[str] = [
        "Employee Number",
        "Employee Name",
        "Position",
        "Period Start Date",
        "Period End Date",
        "Total Working Days",
    ]
    DTR_MAX_DECIMAL_PLACES: int = 2

settings = Settings()
