"""
Job types for the broker.

This module defines the JobStatus enum, the JobMetrics bundle and the
JobRecord dataclass that form the core of the job lifecycle.
"""

from __future__ import annotations

import math
import time
import uuid
from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from typing import Any

from ..errors import InvalidMetricsError, InvalidTransitionError
from ..policy.types import NormalizedJob


class JobStatus(str, Enum):
    """Job lifecycle states.

    State transitions:
    - QUEUED -> RUNNING (an executor picked the job up)
    - RUNNING -> COMPLETED (fetch finished)
    - RUNNING -> FAILED (unrecoverable fetch error)
    """
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {JobStatus.COMPLETED, JobStatus.FAILED}


VALID_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.QUEUED: {JobStatus.RUNNING},
    JobStatus.RUNNING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


# Populated incrementally while the fetch runs.
DISPATCH_METRICS = ("http_code", "bytes_down", "latency_ms")
# Defined once the job completes.
SUMMARY_METRICS = ("success_pct", "p50", "p95", "gb_used")

WIRE_NAMES: dict[str, str] = {
    "http_code": "httpCode",
    "bytes_down": "bytesDown",
    "latency_ms": "latencyMs",
    "success_pct": "successPct",
    "p50": "p50",
    "p95": "p95",
    "gb_used": "gbUsed",
}
_FROM_WIRE = {wire: name for name, wire in WIRE_NAMES.items()}


@dataclass(frozen=True)
class JobMetrics:
    """Quality metrics for a job. None means "not reported yet", never zero."""
    http_code: int | None = None
    bytes_down: int | None = None
    latency_ms: float | None = None
    success_pct: float | None = None
    p50: float | None = None
    p95: float | None = None
    gb_used: float | None = None

    def defined_fields(self) -> list[str]:
        return [f.name for f in fields(self) if getattr(self, f.name) is not None]

    def merge(self, other: JobMetrics) -> JobMetrics:
        """Return a copy with every field ``other`` defines overriding ours."""
        updates = {name: getattr(other, name) for name in other.defined_fields()}
        return replace(self, **updates)

    def validate(self) -> None:
        """Raise InvalidMetricsError for out-of-range or non-finite values."""
        bad: list[str] = []
        for name in self.defined_fields():
            value = getattr(self, name)
            if not math.isfinite(value):
                bad.append(name)
            elif name == "http_code":
                if not 100 <= value <= 599:
                    bad.append(name)
            elif name == "success_pct":
                if not 0 <= value <= 100:
                    bad.append(name)
            elif value < 0:
                bad.append(name)
        if bad:
            raise InvalidMetricsError(
                "Metric values out of range",
                fields=[WIRE_NAMES[name] for name in bad],
            )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> JobMetrics:
        """Accept either snake_case or wire (camelCase) keys."""
        if not data:
            return cls()
        values: dict[str, Any] = {}
        for key, value in data.items():
            name = _FROM_WIRE.get(key, key)
            if name in WIRE_NAMES:
                values[name] = value
        return cls(**values)


@dataclass(frozen=True)
class JobUpdate:
    """A partial update: status transition and/or metrics and/or error."""
    status: JobStatus | None = None
    metrics: JobMetrics | None = None
    error: str | None = None


@dataclass
class JobRecord:
    """Persisted job. url/method/headers are fixed at creation."""
    # Identity
    job_id: str = field(default_factory=lambda: f"job_{uuid.uuid4().hex}")

    # Target (immutable after creation)
    url: str = ""
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)

    # Status
    status: JobStatus = JobStatus.QUEUED
    metrics: JobMetrics = field(default_factory=JobMetrics)
    error: str | None = None

    # Timestamps
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    started_at: float | None = None
    completed_at: float | None = None

    schema_version: int = 1

    @classmethod
    def from_normalized(cls, job: NormalizedJob) -> JobRecord:
        """New queued record for an admitted job. Status is never caller-chosen."""
        return cls(url=job.url, method=job.method, headers=dict(job.headers))

    def can_transition_to(self, new_status: JobStatus) -> bool:
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    def apply(self, update: JobUpdate) -> JobRecord:
        """Return a new record with ``update`` applied.

        Raises:
            InvalidTransitionError: If the job is terminal or the status change is not allowed
            InvalidMetricsError: If metrics are out of range or not writable in the target state
        """
        target = update.status or self.status
        if self.status.is_terminal or (target != self.status and not self.can_transition_to(target)):
            raise InvalidTransitionError(self.job_id, self.status.value, target.value)

        if update.metrics is not None:
            _check_metric_eligibility(update.metrics, target)

        now = time.time()
        changes: dict[str, Any] = {"updated_at": now}
        if target != self.status:
            changes["status"] = target
            if target == JobStatus.RUNNING and self.started_at is None:
                changes["started_at"] = now
            if target.is_terminal:
                changes["completed_at"] = now
        if update.metrics is not None:
            changes["metrics"] = self.metrics.merge(update.metrics)
        if target == JobStatus.FAILED:
            changes["error"] = update.error or self.error

        return replace(self, **changes)

    def status_view(self) -> dict[str, Any]:
        """Wire shape for GET /jobs/{id}. Unreported metrics stay None."""
        return {
            "jobId": self.job_id,
            "status": self.status.value,
            **{WIRE_NAMES[name]: getattr(self.metrics, name) for name in DISPATCH_METRICS},
        }

    def summary_view(self) -> dict[str, Any]:
        """Wire shape for GET /jobs/{id}/summary."""
        return {WIRE_NAMES[name]: getattr(self.metrics, name) for name in SUMMARY_METRICS}

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "job_id": self.job_id,
            "url": self.url,
            "method": self.method,
            "headers": dict(self.headers),
            "status": self.status.value,
            "metrics": self.metrics.to_dict(),
            "error": self.error,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "schema_version": self.schema_version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobRecord:
        """Deserialize from dictionary."""
        return cls(
            job_id=data["job_id"],
            url=data.get("url", ""),
            method=data.get("method", "GET"),
            headers=dict(data.get("headers") or {}),
            status=JobStatus(data.get("status", "queued")),
            metrics=JobMetrics.from_dict(data.get("metrics")),
            error=data.get("error"),
            created_at=data.get("created_at", time.time()),
            updated_at=data.get("updated_at", time.time()),
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
            schema_version=data.get("schema_version", 1),
        )


def _check_metric_eligibility(metrics: JobMetrics, target: JobStatus) -> None:
    metrics.validate()
    defined = set(metrics.defined_fields())
    dispatch = sorted(defined & set(DISPATCH_METRICS))
    summary = sorted(defined & set(SUMMARY_METRICS))
    if dispatch and target == JobStatus.QUEUED:
        raise InvalidMetricsError(
            f"Dispatch metrics cannot be written to a {target.value} job",
            fields=[WIRE_NAMES[name] for name in dispatch],
        )
    if summary and target != JobStatus.COMPLETED:
        raise InvalidMetricsError(
            f"Summary metrics cannot be written to a {target.value} job",
            fields=[WIRE_NAMES[name] for name in summary],
        )


__all__ = [
    "JobStatus",
    "VALID_TRANSITIONS",
    "DISPATCH_METRICS",
    "SUMMARY_METRICS",
    "WIRE_NAMES",
    "JobMetrics",
    "JobUpdate",
    "JobRecord",
]
