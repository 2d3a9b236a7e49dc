"""
vestflow - Structured Logging Configuration

Components log through ``vestflow.<component>`` child loggers and tag each
record with an ``event`` extra (``schedule.released``, ``sale.purchased``,
``pool.withdrawn``, ``purchase.rejected``...). The formatter turns those
tags into one record shape, so a log pipeline can filter on ``event`` and
``component`` and read amounts and ids from ``context``:

    {"timestamp": "...", "level": "info", "name": "vestflow.claims",
     "message": "...", "event": "schedule.released", "component": "schedule",
     "context": {"schedule_id": "ab12", "amount": 2500},
     "environment": "testnet", "service": "vestflow",
     "location": {"module": "claim_processor", "function": "release", "line": 80}}

Rejections logged from ``get_error_context`` get their error type, message,
recoverable flag and details grouped under ``error``.

Usage:
    from vestflow.core.logging_config import setup_logging

    setup_logging(config.logging, environment=config.environment.value)
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from datetime import datetime, timezone
from typing import Dict, Any, TYPE_CHECKING
from pythonjsonlogger import jsonlogger

if TYPE_CHECKING:
    from vestflow.core.config_manager import LoggingConfig

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}

ERROR_FIELDS = ("error_type", "error_message", "recoverable", "details")

BACKUP_COUNT = 5


class VestingJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter for release, sale and pool events.

    Splits ``extra`` fields into the top-level ``event``/``component`` pair,
    an ``error`` block for rejection context and a ``context`` block for
    everything else (schedule ids, stage ids, amounts, accounts).
    """

    def __init__(self, environment: str = "production", service_name: str = "vestflow"):
        super().__init__(fmt="%(timestamp)s %(level)s %(name)s %(message)s")
        self.environment = environment
        self.service_name = service_name

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        extras = {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRIBUTES}
        for key in extras:
            log_record.pop(key, None)

        event = extras.pop("event", None)
        if event:
            log_record["event"] = event
            log_record["component"] = str(event).split(".", 1)[0]

        error = {key: extras.pop(key) for key in ERROR_FIELDS if key in extras}
        if error:
            log_record["error"] = error
        if extras:
            log_record["context"] = extras

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname.lower()
        log_record["environment"] = self.environment
        log_record["service"] = self.service_name
        log_record["location"] = {
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }


def setup_logging(
    config: "LoggingConfig",
    environment: str = "production",
    name: str = "vestflow",
) -> logging.Logger:
    """
    Configure the package logger from a LoggingConfig section.

    Child loggers (``vestflow.claims``, ``vestflow.sale``, ...) propagate to
    the returned logger. Console output goes to stderr so ``--json-output``
    on stdout stays parseable. Existing handlers are replaced, so calling
    this twice does not duplicate records.

    Args:
        config: Logging section (level, log_file, max_log_size, enable_console, enable_file)
        environment: Environment name stamped on every record
        name: Logger to configure

    Returns:
        Configured logger
    """
    level = getattr(logging, config.level.upper())
    logger = logging.getLogger(name)
    logger.setLevel(level)

    for handler in logger.handlers:
        handler.close()
    logger.handlers = []

    formatter = VestingJsonFormatter(environment=environment, service_name=name.split(".")[0])

    if config.enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if config.enable_file and config.log_file:
        try:
            log_path = Path(config.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                filename=str(log_path),
                maxBytes=config.max_log_size,
                backupCount=BACKUP_COUNT,
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning("Could not create file handler for %s: %s", config.log_file, e)

    return logger
