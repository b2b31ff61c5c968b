"""
Error taxonomy for the broker core.

This module provides a small exception hierarchy with:
- Wire-level error codes for programmatic handling
- Retryable vs non-retryable classification
- An HTTP status hint used by the API adapter
- Structured context for debugging (never echoed to callers)

Admission rejections are not exceptions: the policy engine reports them
as typed results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Reason codes as they appear on the wire."""

    # Admission rejections (client input)
    URL_REQUIRED = "url_required"
    INVALID_URL = "invalid_url"
    DOMAIN_NOT_ALLOWED = "domain_not_allowed"
    PATH_BLOCKED = "path_blocked"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    HOST_REQUIRED = "host_required"
    INVALID_REQUEST = "invalid_request"

    # Job lifecycle
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    INVALID_METRICS = "invalid_metrics"

    # Infrastructure
    POLICY_UNAVAILABLE = "policy_unavailable"
    STORE_UNAVAILABLE = "store_unavailable"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    INTERNAL_ERROR = "internal_error"


@dataclass
class ErrorContext:
    """Structured context for error debugging."""

    operation: str | None = None
    job_id: str | None = None
    backend: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "job_id": self.job_id,
            "backend": self.backend,
            **self.extra,
        }


class BrokerError(Exception):
    """
    Base exception for all broker errors.

    Attributes:
        code: Wire error code
        message: Human-readable message (for logs, not for callers)
        retryable: Whether an upstream caller may retry
        http_status: Status the API adapter should answer with
        context: Structured debugging context
        cause: Original exception that caused this error
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    retryable: bool = False
    http_status: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        self.context = context or ErrorContext()
        self.cause = cause

    def __str__(self) -> str:
        parts = [f"[{self.code.value}] {self.message}"]
        if self.context.job_id:
            parts.append(f"(job_id={self.context.job_id})")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }

    def to_response(self) -> dict[str, Any]:
        """Body safe to return to a caller: the reason code only."""
        return {"error": self.code.value}


class StoreUnavailableError(BrokerError):
    """A backing store timed out, refused the connection, or is tripped open."""

    code = ErrorCode.STORE_UNAVAILABLE
    retryable = True
    http_status = 503

    def __init__(
        self,
        message: str = "Store unavailable",
        **kwargs,
    ):
        super().__init__(message, **kwargs)


class JobNotFoundError(BrokerError):
    """No job exists under the requested identifier."""

    code = ErrorCode.NOT_FOUND
    http_status = 404

    def __init__(self, job_id: str, **kwargs):
        context = kwargs.pop("context", None) or ErrorContext(job_id=job_id)
        super().__init__(f"Job {job_id} not found", context=context, **kwargs)
        self.job_id = job_id


class InvalidTransitionError(BrokerError):
    """Requested status change is not permitted from the current status."""

    code = ErrorCode.INVALID_TRANSITION
    http_status = 409

    def __init__(self, job_id: str, current: str, requested: str, **kwargs):
        super().__init__(
            f"Invalid transition: {current} -> {requested}",
            context=ErrorContext(job_id=job_id, extra={"current": current, "requested": requested}),
            **kwargs,
        )
        self.current = current
        self.requested = requested

    def to_response(self) -> dict[str, Any]:
        return {"error": self.code.value, "status": self.current}


class InvalidMetricsError(BrokerError):
    """Metric values are out of range or not writable in the job's state."""

    code = ErrorCode.INVALID_METRICS
    http_status = 400

    def __init__(self, message: str, *, fields: list[str] | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.fields = list(fields or [])

    def to_response(self) -> dict[str, Any]:
        return {"error": self.code.value, "fields": self.fields}


__all__ = [
    "ErrorCode",
    "ErrorContext",
    "BrokerError",
    "StoreUnavailableError",
    "JobNotFoundError",
    "InvalidTransitionError",
    "InvalidMetricsError",
]
