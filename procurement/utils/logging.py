"""
JSON formatter for structured event logging.
"""
import json
import logging
from datetime import datetime, timezone


# Structured fields services and the dispatcher pass through ``extra``.
EXTRA_FIELDS = (
    "operation",
    "status",
    "previous_status",
    "user_id",
    "order_id",
    "inquiry_id",
    "event_id",
    "event_name",
    "listener",
    "priority",
    "is_async",
    "queue",
    "outbox_id",
    "retry_count",
    "error",
)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record):
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)
