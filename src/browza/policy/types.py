"""
Policy types for job admission.

This module defines the data structures that flow through the policy
engine: the raw JobRequest, the NormalizedJob it produces on success, and
the AdmissionResult that carries either the job or a rejection reason.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RejectionReason(str, Enum):
    """Why a job request was not admitted."""
    URL_REQUIRED = "url_required"
    INVALID_URL = "invalid_url"
    DOMAIN_NOT_ALLOWED = "domain_not_allowed"
    PATH_BLOCKED = "path_blocked"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    # Not a verdict on the request: the allow-list could not be consulted.
    POLICY_UNAVAILABLE = "policy_unavailable"

    @property
    def is_client_error(self) -> bool:
        return self is not RejectionReason.POLICY_UNAVAILABLE

    @property
    def http_status(self) -> int:
        return 400 if self.is_client_error else 503


@dataclass(frozen=True)
class JobRequest:
    """Raw job submission, after the single parsing step.

    Every field the policy engine will ever look at is named here; nothing
    downstream re-reads the caller's original payload.
    """
    url: str | None = None
    method: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> JobRequest:
        """Build a JobRequest from an untyped JSON-like body.

        Unknown keys are dropped. Non-string scalars are stringified so the
        engine rejects them on content rather than crashing on type.
        """
        payload = payload or {}
        url = payload.get("url")
        method = payload.get("method")
        headers = payload.get("headers")
        return cls(
            url=None if url is None else str(url),
            method=None if method is None else str(method),
            headers=_coerce_headers(headers),
        )


def _coerce_headers(value: Any) -> dict[str, str]:
    if not isinstance(value, Mapping):
        return {}
    return {str(k): str(v) for k, v in value.items() if v is not None}


@dataclass(frozen=True)
class NormalizedJob:
    """A policy-compliant, canonical job descriptor.

    Only the PolicyEngine constructs these, and only after every check has
    passed.
    """
    url: str
    method: str
    headers: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "method": self.method,
            "headers": dict(self.headers),
        }


@dataclass(frozen=True)
class AdmissionResult:
    """Outcome of PolicyEngine.admit: exactly one of job / reason is set."""
    job: NormalizedJob | None = None
    reason: RejectionReason | None = None
    host: str | None = None  # Only echoed for domain_not_allowed

    @classmethod
    def accept(cls, job: NormalizedJob) -> AdmissionResult:
        return cls(job=job)

    @classmethod
    def reject(cls, reason: RejectionReason, host: str | None = None) -> AdmissionResult:
        return cls(reason=reason, host=host)

    @property
    def admitted(self) -> bool:
        return self.job is not None

    @property
    def outcome(self) -> str:
        return "admitted" if self.admitted else self.reason.value

    def to_response(self) -> dict[str, Any]:
        """Error body for a rejection. Hostnames are the only echoed detail."""
        if self.admitted:
            raise ValueError("admitted results have no error body")
        body: dict[str, Any] = {"error": self.reason.value}
        if self.reason is RejectionReason.DOMAIN_NOT_ALLOWED and self.host is not None:
            body["host"] = self.host
        return body


__all__ = [
    "RejectionReason",
    "JobRequest",
    "NormalizedJob",
    "AdmissionResult",
]
