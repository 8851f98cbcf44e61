import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
import json
from typing import Any

from lgupay.core.config import settings

def mkdir_safe(path: str):
    Path(path).mkdir(parents=True, exist_ok=True)

def atomic_write_json(path: str, obj: Any):
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, default=str)
    os.replace(str(tmp), str(p))

def setup_logging(component: str = "system", *, log_level: str = None):
    logger_name = f"{settings.APP_NAME}.{component}"
    logger = logging.getLogger(logger_name)
    if logger.handlers:
        return logger
    level = log_level or settings.LOG_LEVEL
    logger.setLevel(getattr(logging, level))
    audit_dir = settings.AUDIT_LOG_PATH
    mkdir_safe(audit_dir)
    logfile = Path(audit_dir) / f"{component}.log"
    handler = RotatingFileHandler(str(logfile), maxBytes=10_000_000, backupCount=5, encoding="utf-8")
    formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    if os.getenv("DEV", "").lower() in ("1","true","yes"):
        ch = logging.StreamHandler()
        ch.setFormatter(formatter)
        logger.addHandler(ch)
    logger.propagate = False
    return logger

def get_logger(component: str, name: str = None) -> logging.Logger:
    """Child logger of a component, e.g. ``LGUPayroll.payroll.salary``."""
    parent = setup_logging(component)
    return parent.getChild(name) if name else parent

def round2(value: float) -> float:
    return round(float(value), 2)

def peso(amount: float) -> str:
    return f"₱{amount:,.2f}"

def is_number(value: Any) -> bool:
    # bool is an int subclass but never a valid amount
    return isinstance(value, (int, float)) and not isinstance(value, bool)
