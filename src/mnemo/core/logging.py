"""
Logging utilities for mnemo.

Provides structured logging with correlation fields for tracing an entry
through chunking, embedding jobs and retrieval queries.

Passphrases, key material and decrypted note text must never be passed to
these helpers.
"""

import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Optional


CORRELATION_FIELDS = ("job_id", "entry_id", "query_id", "attempt", "correlation_id")


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs JSON-structured log lines.

    Each log line includes:
    - Standard log fields (timestamp, level, message, logger)
    - Correlation fields if present (job_id, entry_id, query_id, attempt)
    """

    def __init__(self, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_entry = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_timestamp:
            log_entry["timestamp"] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat()

        for field in CORRELATION_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Formatter that outputs human-readable log lines with correlation context.

    Format: TIMESTAMP - LOGGER - LEVEL - MESSAGE [job_id=X entry_id=Y]
    """

    def __init__(self, include_timestamp: bool = True):
        if include_timestamp:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        else:
            fmt = "%(name)s - %(levelname)s - %(message)s"
        super().__init__(fmt)

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with correlation context."""
        base = super().format(record)

        context_parts = []
        for field in CORRELATION_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                context_parts.append(f"{field}={value}")

        if context_parts:
            return f"{base} [{' '.join(context_parts)}]"
        return base


def configure_logging(
    level: int = logging.INFO,
    structured: bool = False,
    include_timestamp: bool = True,
) -> None:
    """
    Configure the mnemo package logger.

    Only adds a handler if none exist, so repeated calls are harmless.

    Args:
        level: Logging level (default: INFO)
        structured: If True, output JSON lines; otherwise human-readable
        include_timestamp: Whether to include timestamps
    """
    pkg_logger = logging.getLogger("mnemo")
    pkg_logger.setLevel(level)

    if not pkg_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)

        if structured:
            formatter = StructuredFormatter(include_timestamp=include_timestamp)
        else:
            formatter = HumanReadableFormatter(include_timestamp=include_timestamp)

        handler.setFormatter(formatter)
        pkg_logger.addHandler(handler)


_current_context: ContextVar[Dict[str, Any]] = ContextVar("mnemo_log_context", default={})


class CorrelationContext:
    """
    Context manager for adding correlation fields to log records.

    Backed by a ContextVar so concurrent asyncio tasks keep separate contexts.

    Example:
        >>> with CorrelationContext(job_id="abc", entry_id="e-1"):
        ...     log_with_context(logger, logging.INFO, "Embedding entry")
    """

    def __init__(self, **fields: Any):
        self.context = {k: v for k, v in fields.items() if v is not None}
        self._token: Optional[Token] = None

    def __enter__(self) -> "CorrelationContext":
        merged = {**_current_context.get(), **self.context}
        self._token = _current_context.set(merged)
        return self

    def __exit__(self, *args) -> None:
        if self._token is not None:
            _current_context.reset(self._token)
            self._token = None

    @classmethod
    def get_current(cls) -> Dict[str, Any]:
        """Get the current correlation context."""
        return dict(_current_context.get())


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    **extra: Any,
) -> None:
    """
    Log a message with correlation context.

    Merges the current CorrelationContext with any extra fields provided.
    """
    context = CorrelationContext.get_current()
    context.update({k: v for k, v in extra.items() if v is not None})
    logger.log(level, message, extra=context)
