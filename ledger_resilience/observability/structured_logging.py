"""
Ledger Resilience - Structured Logging

JSON log formatting with trace id propagation through contextvars.
Every module logs through ``logging.getLogger(__name__)``; this module only
decides how records under the ``ledger_resilience`` logger are rendered.
"""

import contextvars
import json
import logging
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

ROOT_LOGGER = "ledger_resilience"

# Trace ID context variable, one per asyncio task
_trace_id_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar("trace_id", default=None)

_RESERVED_ATTRS = frozenset(
    {
        "args",
        "msg",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "name",
        "message",
    }
)


def get_trace_id() -> str | None:
    """Get current trace ID from context."""
    return _trace_id_ctx.get()


def set_trace_id(trace_id: str | None) -> None:
    """Set trace ID in context."""
    _trace_id_ctx.set(trace_id)


def generate_trace_id() -> str:
    """Generate a new trace ID and set it in context."""
    trace_id = str(uuid4())
    set_trace_id(trace_id)
    return trace_id


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        trace_id = _trace_id_ctx.get()
        if trace_id:
            log_data["trace_id"] = trace_id

        # Fields passed through extra={...}
        for key, value in record.__dict__.items():
            if key not in log_data and not key.startswith("_") and key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_logging(level: str = "INFO", log_format: str = "json") -> logging.Logger:
    """
    Install a single stream handler on the package logger.

    Args:
        level: Level name (e.g. "DEBUG")
        log_format: "json" for JSONFormatter, "text" for a plain format

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.handlers.clear()

    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    logger.addHandler(handler)
    logger.setLevel(level.upper())
    return logger


def setup_logging(config: Any) -> logging.Logger:
    """Configure logging from a loaded ResilienceConfig."""
    return configure_logging(level=str(config.logging.level), log_format=str(config.logging.format))
