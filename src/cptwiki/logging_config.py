"""
Logging Setup (Structured JSON)

Every module logs through ``logging.getLogger(__name__)``; this module only
decides how records are rendered. Engine code passes context through
``extra=`` and the JSON formatter copies the known keys into the entry.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Optional

LOG_FORMATS = ("json", "text")

EXTRA_FIELDS = (
    "item_id",
    "revision_id",
    "class_name",
    "actor",
    "expected",
    "actual",
    "duration_ms",
)

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Add extra fields if present
        for name in EXTRA_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def configure_logging(level: str = "INFO", fmt: str = "json", logger_name: Optional[str] = None) -> logging.Logger:
    """
    Install a single stream handler on the root logger (or ``logger_name``).

    Raises:
        ValueError: On an unknown level or format
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")
    if fmt not in LOG_FORMATS:
        raise ValueError(f"Unknown log format: {fmt}")

    logger = logging.getLogger(logger_name)
    logger.setLevel(numeric)
    for handler in list(logger.handlers):
        if getattr(handler, "_cptwiki", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT))
    handler._cptwiki = True
    logger.addHandler(handler)
    return logger
