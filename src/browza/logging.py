"""
Structured logging for the broker.

This module provides:
- Structured JSON logging with consistent fields
- Admission and lifecycle log records with request correlation
- Timing helpers
- JSON and human-readable text formatters

Input rejections are routine traffic and are logged at INFO. Only store
failures and unexpected errors reach ERROR.
"""

from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from .errors import BrokerError


def _utc_now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


# =============================================================================
# Log Record Types
# =============================================================================


@dataclass
class LogContext:
    """Context information attached to log records."""

    request_id: str | None = None
    job_id: str | None = None
    host: str | None = None
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in asdict(self).items() if v is not None and k != "extra"}
        d.update(self.extra)
        return d

    def with_update(self, **kwargs) -> LogContext:
        """Create a new context with updated values."""
        return LogContext(
            request_id=kwargs.get("request_id", self.request_id),
            job_id=kwargs.get("job_id", self.job_id),
            host=kwargs.get("host", self.host),
            operation=kwargs.get("operation", self.operation),
            extra={**self.extra, **kwargs.get("extra", {})},
        )


@dataclass
class AdmissionLog:
    """Log record for one pass through the policy engine."""

    request_id: str
    outcome: str  # "admitted" or a rejection reason code
    host: str | None = None
    method: str | None = None

    timestamp: str = field(default_factory=_utc_now_iso)
    duration_ms: float | None = None

    @property
    def admitted(self) -> bool:
        return self.outcome == "admitted"

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class TransitionLog:
    """Log record for a job status change or metrics write."""

    job_id: str
    previous_status: str | None
    status: str
    metric_fields: list[str] = field(default_factory=list)

    timestamp: str = field(default_factory=_utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger:
    """
    Logger with structured JSON output and context tracking.

    Example:
        ```python
        logger = StructuredLogger("browza")

        with logger.request_context(operation="admit") as request_id:
            logger.log_admission(AdmissionLog(request_id=request_id, outcome="admitted"))
        ```
    """

    def __init__(
        self,
        name: str = "browza",
        level: str = "INFO",
        json_output: bool = True,
    ):
        self.name = name
        self.json_output = json_output

        self._logger = logging.getLogger(name)
        self._logger.setLevel(getattr(logging, level.upper()))
        # Per-task context so concurrent requests never share correlation ids
        self._context_var: ContextVar[LogContext] = ContextVar(f"{name}_log_context", default=LogContext())

        if not self._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(JSONFormatter() if json_output else TextFormatter())
            self._logger.addHandler(handler)

    @property
    def context(self) -> LogContext:
        return self._context_var.get()

    @property
    def stdlib(self) -> logging.Logger:
        return self._logger

    @contextmanager
    def request_context(self, request_id: str | None = None, **kwargs) -> Iterator[str]:
        """Context manager correlating every record emitted inside it."""
        request_id = request_id or self.context.request_id or generate_request_id()
        token = self._context_var.set(self.context.with_update(request_id=request_id, **kwargs))
        try:
            yield request_id
        finally:
            self._context_var.reset(token)

    def _log(
        self,
        level: int,
        message: str,
        event_type: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        record_data = {
            "message": message,
            **self.context.to_dict(),
        }
        if event_type:
            record_data["event_type"] = event_type
        if data:
            record_data.update(data)

        if self.json_output:
            self._logger.log(level, json.dumps(record_data, default=str))
        else:
            extras = " ".join(f"{k}={v}" for k, v in record_data.items() if k != "message")
            self._logger.log(level, f"{message} {extras}")

    def info(self, message: str, **kwargs) -> None:
        self._log(logging.INFO, message, data=kwargs)

    def log_admission(self, record: AdmissionLog) -> None:
        message = "Job admitted" if record.admitted else f"Job rejected: {record.outcome}"
        self._log(logging.INFO, message, event_type="admission", data=record.to_dict())

    def log_transition(self, record: TransitionLog) -> None:
        if record.previous_status == record.status:
            message = f"Job {record.job_id} metrics updated"
        else:
            message = f"Job {record.job_id} {record.previous_status or 'new'} -> {record.status}"
        self._log(logging.INFO, message, event_type="transition", data=record.to_dict())

    def log_error(self, error: Exception, message: str | None = None, **kwargs) -> None:
        """Log an error with context."""
        error_data = {
            "error_type": type(error).__name__,
            "error_message": str(error),
            **kwargs,
        }
        if isinstance(error, BrokerError):
            error_data["error_code"] = error.code.value
            error_data["retryable"] = error.retryable
            error_data["error_context"] = error.context.to_dict()

        self._log(logging.ERROR, message or f"Error: {error}", event_type="error", data=error_data)


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": _utc_now_iso(),
            "level": record.levelname,
            "logger": record.name,
        }
        try:
            message_data = json.loads(record.getMessage())
            if isinstance(message_data, dict):
                log_data.update(message_data)
            else:
                log_data["message"] = record.getMessage()
        except (json.JSONDecodeError, TypeError):
            log_data["message"] = record.getMessage()

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(tz=timezone.utc).strftime("%H:%M:%S.%f")[:-3]
        color = self.LEVEL_COLORS.get(record.levelname, "")
        reset = self.RESET if color else ""
        return f"{timestamp} {color}{record.levelname:8}{reset} {record.getMessage()}"


# =============================================================================
# Utilities
# =============================================================================


def generate_request_id() -> str:
    """Generate a unique request ID."""
    return f"req_{uuid.uuid4().hex[:12]}"


@dataclass
class Timer:
    """Simple timer for measuring durations."""

    start_time: float = field(default_factory=time.perf_counter)
    end_time: float | None = None

    def stop(self) -> float:
        """Stop the timer and return duration in milliseconds."""
        self.end_time = time.perf_counter()
        return self.elapsed_ms

    @property
    def elapsed_ms(self) -> float:
        end = self.end_time or time.perf_counter()
        return (end - self.start_time) * 1000


@contextmanager
def timed() -> Iterator[Timer]:
    """Context manager for timing operations."""
    timer = Timer()
    try:
        yield timer
    finally:
        timer.stop()


# =============================================================================
# Global Logger
# =============================================================================

_default_logger: StructuredLogger | None = None


def get_logger(name: str = "browza") -> StructuredLogger:
    """Get or create a structured logger."""
    global _default_logger
    if _default_logger is None or _default_logger.name != name:
        _default_logger = StructuredLogger(name)
    return _default_logger


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    name: str = "browza",
) -> StructuredLogger:
    """Configure the default logger, replacing any handler set up earlier."""
    global _default_logger
    stdlib = logging.getLogger(name)
    for handler in list(stdlib.handlers):
        stdlib.removeHandler(handler)
    _default_logger = StructuredLogger(name, level=level, json_output=json_output)
    return _default_logger


__all__ = [
    "LogContext",
    "AdmissionLog",
    "TransitionLog",
    "StructuredLogger",
    "JSONFormatter",
    "TextFormatter",
    "Timer",
    "timed",
    "generate_request_id",
    "get_logger",
    "configure_logging",
]
