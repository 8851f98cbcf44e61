import json
import logging
from logging.handlers import RotatingFileHandler

from lgupay.core.utils import atomic_write_json, get_logger, is_number, peso, round2, setup_logging

def test_setup_logging_idempotent():
    component = "tmptest"
    logger1 = setup_logging(component)
    handlers_before = len(logger1.handlers)
    logger2 = setup_logging(component)
    assert handlers_before == len(logger2.handlers)
    assert any(isinstance(h, RotatingFileHandler) for h in logger2.handlers)
    assert logger2.name == "LGUPayroll.tmptest"

def test_get_logger_child():
    log = get_logger("payroll", "salary")
    assert log.name == "LGUPayroll.payroll.salary"
    assert isinstance(log, logging.Logger)

def test_atomic_write_json(tmp_path):
    path = tmp_path / "nested" / "out.json"
    atomic_write_json(str(path), {"a": 1})
    assert json.loads(path.read_text()) == {"a": 1}
    assert not path.with_suffix(".tmp").exists()

def test_money_helpers():
    assert peso(1234.5) == "₱1,234.50"
    assert round2(1363.636) == 1363.64
    assert is_number(2.5)
    assert not is_number(True)
    assert not is_number("5")
