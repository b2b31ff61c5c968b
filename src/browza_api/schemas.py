"""Request and response bodies. Wire names are camelCase."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from browza.jobs import JobMetrics, JobRecord


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _scalar_to_str(value: Any) -> Any:
    # Scalars become strings; the policy engine judges their content.
    if isinstance(value, (int, float, bool)):
        return str(value)
    return value


class SubmitJobRequest(_WireModel):
    url: str | None = None
    method: str | None = None
    headers: dict[str, Any] | None = None

    @field_validator("url", "method", mode="before")
    @classmethod
    def stringify_values(cls, value: Any) -> Any:
        # Objects and arrays included: the policy engine judges the text.
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("headers", mode="before")
    @classmethod
    def ignore_non_mapping_headers(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    def to_payload(self) -> dict[str, Any]:
        return {"url": self.url, "method": self.method, "headers": self.headers}


class JobAccepted(_WireModel):
    job_id: str
    url: str
    method: str
    status: str


class JobStatusView(_WireModel):
    job_id: str
    status: str
    http_code: int | None = None
    bytes_down: int | None = None
    latency_ms: float | None = None


class JobSummaryView(_WireModel):
    success_pct: float | None = None
    p50: float | None = None
    p95: float | None = None
    gb_used: float | None = None


class JobView(_WireModel):
    job_id: str
    url: str
    method: str
    headers: dict[str, str] = Field(default_factory=dict)
    status: str
    http_code: int | None = None
    bytes_down: int | None = None
    latency_ms: float | None = None
    success_pct: float | None = None
    p50: float | None = None
    p95: float | None = None
    gb_used: float | None = None
    error: str | None = None
    created_at: float
    updated_at: float
    started_at: float | None = None
    completed_at: float | None = None

    @classmethod
    def from_record(cls, record: JobRecord) -> JobView:
        return cls(
            job_id=record.job_id,
            url=record.url,
            method=record.method,
            headers=dict(record.headers),
            status=record.status.value,
            **record.metrics.to_dict(),
            error=record.error,
            created_at=record.created_at,
            updated_at=record.updated_at,
            started_at=record.started_at,
            completed_at=record.completed_at,
        )


class JobList(_WireModel):
    jobs: list[JobView]


class MetricsReport(_WireModel):
    """Metrics an executor reports. Range checks happen in the job model."""
    http_code: int | None = None
    bytes_down: int | None = None
    latency_ms: float | None = None
    success_pct: float | None = None
    p50: float | None = None
    p95: float | None = None
    gb_used: float | None = None

    def to_metrics(self) -> JobMetrics | None:
        values = self.model_dump(
            include={"http_code", "bytes_down", "latency_ms", "success_pct", "p50", "p95", "gb_used"},
            exclude_none=True,
        )
        return JobMetrics(**values) if values else None


class FailureReport(MetricsReport):
    error: str | None = None


class AllowlistAddRequest(_WireModel):
    host: str | None = None

    @field_validator("host", mode="before")
    @classmethod
    def stringify_scalars(cls, value: Any) -> Any:
        return _scalar_to_str(value)


class AllowlistAdded(_WireModel):
    ok: bool = True
    added: str


class AllowlistHosts(_WireModel):
    hosts: list[str]


__all__ = [
    "SubmitJobRequest",
    "JobAccepted",
    "JobStatusView",
    "JobSummaryView",
    "JobView",
    "JobList",
    "MetricsReport",
    "FailureReport",
    "AllowlistAddRequest",
    "AllowlistAdded",
    "AllowlistHosts",
]
