"""Structured JSON logging utilities.

- JSON format for log aggregation
- Includes request_id, user_id and stripe_event_id from context variables
- Standard fields: timestamp, level, message, logger, module, func, line
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from research_api.context import request_id_var, stripe_event_id_var, user_id_var
from research_api.utils.sanitize import is_sensitive_key, sanitize_exc, sanitize_obj, sanitize_str

# Attributes every LogRecord carries; anything else on a record came from extra={...}
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """JSON log formatter with request context.

    Formats log records as JSON with standard fields:
    - timestamp: ISO 8601 UTC
    - level: log level (INFO, ERROR, etc.)
    - message: log message (sanitized)
    - logger / module / func / line
    - request_id, user_id, stripe_event_id: from context variables when set

    Any ``extra={...}`` fields are copied after sanitization; keys that name
    credentials or contact details are replaced by ``[REDACTED]``.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": sanitize_str(record.getMessage()),
            "logger": record.name,
            "module": record.module,
            "func": record.funcName,
            "line": record.lineno,
        }

        for field_name, var in (
            ("request_id", request_id_var),
            ("user_id", user_id_var),
            ("stripe_event_id", stripe_event_id_var),
        ):
            try:
                value = var.get()
            except LookupError:
                continue
            if value:
                log_data[field_name] = value

        if record.exc_info:
            log_data["exc_info"] = sanitize_exc(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            if is_sensitive_key(key):
                log_data[key] = "[REDACTED]"
            else:
                log_data[key] = sanitize_obj(value)

        return json.dumps(log_data, default=str)


def configure_json_logging(log_level: str = "INFO") -> None:
    """Configure root logger with JSON formatter.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)
