import json
import logging
import sys
from datetime import datetime, timezone

from config import settings


class StructuredFormatter(logging.Formatter):
    """JSON formatter, one object per line.

    Fields:
    - severity: Python level name
    - message: Human-readable message
    - timestamp: ISO 8601 with timezone
    - entity_id: Listing the log line belongs to (if available)
    - context: Additional structured data
    """

    SEVERITY_MAP = {
        "DEBUG": "DEBUG",
        "INFO": "INFO",
        "WARNING": "WARNING",
        "ERROR": "ERROR",
        "CRITICAL": "CRITICAL",
    }

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "severity": self.SEVERITY_MAP.get(record.levelname, "DEFAULT"),
            "message": record.getMessage(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "logger": record.name,
        }

        if hasattr(record, "entity_id"):
            log_entry["entity_id"] = record.entity_id

        if hasattr(record, "context"):
            log_entry["context"] = record.context

        if record.exc_info and record.exc_info[0]:
            log_entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging() -> logging.Logger:
    """Configure structured JSON logging.

    Call once from the host application at startup.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())

    root_logger = logging.getLogger("showroom")
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.log_level.upper()))

    # Suppress noisy library loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("google").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger under the 'showroom' namespace."""
    return logging.getLogger(f"showroom.{name}")
