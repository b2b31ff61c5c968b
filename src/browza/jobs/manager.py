"""
Job manager for lifecycle operations.

This module provides the JobManager that turns admitted jobs into
persisted records and drives them through queued -> running ->
completed | failed, logging every transition.
"""

from __future__ import annotations

from typing import Any

from ..errors import StoreUnavailableError
from ..logging import StructuredLogger, TransitionLog, get_logger
from ..policy.types import NormalizedJob
from ..resilience import StoreGuard
from .store import JobFilter, JobStore
from .types import JobMetrics, JobRecord, JobStatus, JobUpdate


class JobManager:
    """Manages job lifecycle operations.

    The JobManager is responsible for:
    - Creating queued jobs from NormalizedJob descriptors
    - Validated state transitions (delegated to JobRecord.apply)
    - Metric writes scoped to the state that allows them
    - Read views for status and summary queries

    All store calls go through a StoreGuard, so a stalled backend surfaces
    as StoreUnavailableError.
    """

    def __init__(
        self,
        store: JobStore,
        *,
        guard: StoreGuard | None = None,
        logger: StructuredLogger | None = None,
    ):
        self._store = store
        self._guard = guard or StoreGuard("job_store")
        self._logger = logger or get_logger()

    async def create(self, job: NormalizedJob) -> JobRecord:
        """Persist an admitted job in the queued state."""
        record = await self._call(self._store.create(job), "jobs.create")
        self._logger.log_transition(TransitionLog(
            job_id=record.job_id,
            previous_status=None,
            status=record.status.value,
        ))
        return record

    async def get(self, job_id: str) -> JobRecord:
        """Get a job by ID.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        return await self._call(self._store.get_by_id(job_id), "jobs.get")

    async def get_status(self, job_id: str) -> dict[str, Any]:
        return (await self.get(job_id)).status_view()

    async def get_summary(self, job_id: str) -> dict[str, Any]:
        return (await self.get(job_id)).summary_view()

    async def start(self, job_id: str, metrics: JobMetrics | None = None) -> JobRecord:
        """queued -> running, optionally with first dispatch metrics."""
        return await self.transition(job_id, JobStatus.RUNNING, metrics=metrics)

    async def record_metrics(self, job_id: str, metrics: JobMetrics) -> JobRecord:
        """Write dispatch metrics without changing status."""
        return await self._update(job_id, JobUpdate(metrics=metrics))

    async def complete(self, job_id: str, metrics: JobMetrics | None = None) -> JobRecord:
        """running -> completed, recording the summary metrics."""
        return await self.transition(job_id, JobStatus.COMPLETED, metrics=metrics)

    async def fail(
        self,
        job_id: str,
        error: str | None = None,
        metrics: JobMetrics | None = None,
    ) -> JobRecord:
        """running -> failed."""
        return await self.transition(job_id, JobStatus.FAILED, metrics=metrics, error=error)

    async def transition(
        self,
        job_id: str,
        new_status: JobStatus,
        *,
        metrics: JobMetrics | None = None,
        error: str | None = None,
    ) -> JobRecord:
        """Move a job to ``new_status``.

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidTransitionError: If the transition is not allowed
            InvalidMetricsError: If the metrics are rejected
        """
        return await self._update(job_id, JobUpdate(status=new_status, metrics=metrics, error=error))

    async def list(self, filter: JobFilter | None = None) -> list[JobRecord]:
        return await self._call(self._store.list(filter), "jobs.list")

    async def _update(self, job_id: str, update: JobUpdate) -> JobRecord:
        before = await self.get(job_id)
        record = await self._call(self._store.update(job_id, update), "jobs.update")
        self._logger.log_transition(TransitionLog(
            job_id=record.job_id,
            previous_status=before.status.value,
            status=record.status.value,
            metric_fields=update.metrics.defined_fields() if update.metrics else [],
        ))
        return record

    async def _call(self, awaitable, operation: str):
        try:
            return await self._guard.call(awaitable, operation=operation)
        except StoreUnavailableError as exc:
            self._logger.log_error(exc, "Job store unavailable", operation=operation)
            raise


__all__ = [
    "JobManager",
]
