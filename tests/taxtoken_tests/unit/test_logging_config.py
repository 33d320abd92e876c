import json
import logging

from taxtoken.core.logging_config import get_logger, setup_logging, short_address


def _close(logger):
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers = []


def test_file_handler_writes_json(tmp_path):
    log_file = tmp_path / "logs" / "engine.json"
    logger = setup_logging(
        name="taxtoken.test_json",
        log_file=str(log_file),
        level="DEBUG",
        environment="testnet",
        enable_console=False,
    )
    try:
        logger.info("Fees processed", extra={"event": "processing.completed", "amount_in": 100})
        for handler in logger.handlers:
            handler.flush()

        record = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
        assert record["message"] == "Fees processed"
        assert record["event"] == "processing.completed"
        assert record["amount_in"] == 100
        assert record["environment"] == "testnet"
        assert record["service"] == "taxtoken"
        assert record["source"]["function"] == "test_file_handler_writes_json"
    finally:
        _close(logger)


def test_quiet_logger_gets_null_handler():
    logger = setup_logging(name="taxtoken.test_quiet", enable_console=False, enable_file=False)
    try:
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.NullHandler)
    finally:
        _close(logger)


def test_get_logger_configures_once():
    first = get_logger("taxtoken.test_once")
    try:
        handlers = list(first.handlers)
        second = get_logger("taxtoken.test_once", level="DEBUG")
        assert second is first
        assert second.handlers == handlers
    finally:
        _close(first)


def test_short_address():
    assert short_address("0x" + "a" * 40) == "0xaaaaaaaa"
    assert short_address("") == ""
