"""
JSON logging for the fee engine and the operator CLI.

Every module logs through ``logging.getLogger(__name__)`` and attaches
structured fields with ``extra={"event": "<area>.<action>", ...}``. This
module only decides where those records go and how they are rendered.

    from taxtoken.core.logging_config import setup_logging

    setup_logging(name="taxtoken", log_file="logs/taxtoken.json", environment="testnet")
"""

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pythonjsonlogger import jsonlogger

DEFAULT_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Adds timestamp, level, network, service and call site to each record."""

    def __init__(
        self,
        fmt: str = DEFAULT_FORMAT,
        timestamp: bool = True,
        environment: Optional[str] = None,
        service_name: str = "taxtoken",
    ):
        super().__init__(fmt=fmt)
        self.timestamp = timestamp
        self.environment = environment or "testnet"
        self.service_name = service_name

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        if self.timestamp and not log_record.get("timestamp"):
            created = datetime.fromtimestamp(record.created, tz=timezone.utc)
            log_record["timestamp"] = created.isoformat()
        log_record["level"] = log_record.get("level") or record.levelname.lower()
        log_record["environment"] = self.environment
        log_record["service"] = self.service_name
        log_record["source"] = {
            "function": record.funcName,
            "module": record.module,
            "line": record.lineno,
        }


def _build_handlers(
    formatter: logging.Formatter,
    level: int,
    log_file: Optional[str],
    enable_console: bool,
    enable_file: bool,
    max_bytes: int,
    backup_count: int,
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if enable_console:
        # stdout belongs to --json-output
        handlers.append(logging.StreamHandler(sys.stderr))
    if enable_file and log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        )
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def setup_logging(
    name: str = "taxtoken",
    log_file: Optional[str] = None,
    level: str = "INFO",
    environment: str = "testnet",
    enable_console: bool = True,
    enable_file: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Route the ``name`` logger tree to JSON handlers.

    Replaces handlers from any earlier call. With neither console nor file
    output a ``NullHandler`` is installed, so records never reach Python's
    last-resort stderr handler.

    Args:
        name: Logger name, usually the package name
        log_file: Rotating JSON log file path
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        environment: Network name written on every record
        enable_console: Log to stderr
        enable_file: Log to ``log_file`` when one is given
        max_bytes: Rotation size
        backup_count: Rotated files kept

    Returns:
        The configured logger
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger(name)
    logger.setLevel(numeric_level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = CustomJsonFormatter(environment=environment, service_name=name.split(".")[0])
    file_error: Optional[OSError] = None
    try:
        handlers = _build_handlers(
            formatter, numeric_level, log_file, enable_console, enable_file, max_bytes, backup_count
        )
    except OSError as exc:
        file_error = exc
        handlers = _build_handlers(formatter, numeric_level, None, enable_console, False, max_bytes, backup_count)

    for handler in handlers or [logging.NullHandler()]:
        logger.addHandler(handler)
    if file_error is not None:
        logger.warning("Could not open log file %s: %s", log_file, file_error)
    return logger


def get_logger(name: str, log_file: Optional[str] = None, level: str = "INFO") -> logging.Logger:
    """Return ``name``'s logger, configuring it only on first request."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    return setup_logging(name=name, log_file=log_file, level=level)


def short_address(address: str) -> str:
    """Truncate an address for log fields."""
    return (address or "")[:10]
