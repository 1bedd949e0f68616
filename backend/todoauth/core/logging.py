"""Todo Auth logging configuration.

Both output formats mask bearer credentials and JWT-shaped values before a
record is written, including inside formatted exceptions. Security events
pass their context with ``extra=`` (see ``CONTEXT_FIELDS``); the structured
format emits those as top-level JSON keys.
"""

import json
import logging
import re
import sys
from typing import Any, Literal

# Human-readable format for development
DEV_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

REDACTED = "[REDACTED]"

# header.payload.signature, each base64url; every JWT header starts with '{"'
JWT_PATTERN = re.compile(r"eyJ[A-Za-z0-9_-]*\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*")
BEARER_PATTERN = re.compile(r"\b(Bearer)\s+[A-Za-z0-9._~+/=-]+", re.IGNORECASE)

CONTEXT_FIELDS = (
    "event",
    "user",
    "user_id",
    "method",
    "path",
    "client_ip",
    "status",
    "duration_ms",
)


def redact(text: str) -> str:
    """Mask bearer credentials and anything that looks like a JWT."""
    text = BEARER_PATTERN.sub(lambda m: f"{m.group(1)} {REDACTED}", text)
    return JWT_PATTERN.sub(REDACTED, text)


def security_context(**fields: Any) -> dict[str, Any]:
    """Build an ``extra=`` mapping, dropping unset fields."""
    return {key: value for key, value in fields.items() if value is not None}


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter.

    Fields are serialized with json.dumps() so quotes, backslashes and
    newlines inside log messages cannot break the JSON line.
    """

    def __init__(self):
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is None:
                continue
            log_entry[field] = redact(value) if isinstance(value, str) else value
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = redact(self.formatException(record.exc_info))
        return json.dumps(log_entry, default=str)


class DevFormatter(logging.Formatter):
    """Readable single-line format with the same masking as JSONFormatter."""

    def __init__(self):
        super().__init__(fmt=DEV_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        return redact(super().format(record))


def setup_logging(
    level: str = "INFO",
    format_type: Literal["structured", "dev"] = "dev",
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Log format - 'structured' for JSON, 'dev' for readable
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if format_type == "structured" else DevFormatter())
    logging.basicConfig(level=getattr(logging, level.upper()), handlers=[handler], force=True)

    # Proxy traffic is already covered by the gateway request log
    for logger_name in ["uvicorn.access", "httpx", "httpcore"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.DEBUG if level.upper() == "DEBUG" else logging.WARNING
    )

    get_logger("logging").info(f"Logging configured: level={level}, format={format_type}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the todoauth prefix."""
    return logging.getLogger(f"todoauth.{name}")
