"""
Job store implementations.

This module provides the JobStore interface and an in-memory
implementation. The PostgreSQL backend lives in ``browza.storage``.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..errors import JobNotFoundError
from ..policy.types import NormalizedJob
from .types import JobRecord, JobStatus, JobUpdate


@dataclass
class JobFilter:
    """Filter criteria for listing jobs."""
    status: JobStatus | set[JobStatus] | None = None
    limit: int = 100
    offset: int = 0

    def matches(self, job: JobRecord) -> bool:
        if self.status is None:
            return True
        if isinstance(self.status, set):
            return job.status in self.status
        return job.status == self.status


class JobStore(ABC):
    """Abstract interface for job persistence.

    Implementations must be safe for concurrent access: creation never
    reuses an identifier, and ``update`` is atomic per record without
    serializing unrelated jobs.
    """

    @abstractmethod
    async def create(self, job: NormalizedJob) -> JobRecord:
        """Persist a new queued job under a freshly allocated identifier."""
        ...

    @abstractmethod
    async def get(self, job_id: str) -> JobRecord | None:
        """Get a job by ID."""
        ...

    async def get_by_id(self, job_id: str) -> JobRecord:
        """Get a job by ID.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        job = await self.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    @abstractmethod
    async def update(self, job_id: str, update: JobUpdate) -> JobRecord:
        """Apply a partial update under a per-record lock.

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidTransitionError: If the status change is not allowed
            InvalidMetricsError: If the metrics are rejected
        """
        ...

    @abstractmethod
    async def list(self, filter: JobFilter | None = None) -> list[JobRecord]:
        """List jobs matching the filter, newest first."""
        ...

    @abstractmethod
    async def count(self, filter: JobFilter | None = None) -> int:
        """Count jobs matching the filter."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryJobStore(JobStore):
    """In-memory job store implementation.

    Suitable for testing and single-process deployments.
    Each record has its own asyncio.Lock; the index lock is held only for
    the dictionary insert, never across an update.
    """

    def __init__(self):
        self._jobs: dict[str, JobRecord] = {}
        self._row_locks: dict[str, asyncio.Lock] = {}
        self._index_lock = asyncio.Lock()

    async def create(self, job: NormalizedJob) -> JobRecord:
        async with self._index_lock:
            record = JobRecord.from_normalized(job)
            while record.job_id in self._jobs:
                record = JobRecord.from_normalized(job)
            self._jobs[record.job_id] = record
            self._row_locks[record.job_id] = asyncio.Lock()
            return record

    async def get(self, job_id: str) -> JobRecord | None:
        return self._jobs.get(job_id)

    async def update(self, job_id: str, update: JobUpdate) -> JobRecord:
        lock = self._row_locks.get(job_id)
        if lock is None:
            raise JobNotFoundError(job_id)
        async with lock:
            updated = self._jobs[job_id].apply(update)
            self._jobs[job_id] = updated
            return updated

    async def list(self, filter: JobFilter | None = None) -> list[JobRecord]:
        filter = filter or JobFilter()
        jobs = [j for j in self._jobs.values() if filter.matches(j)]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[filter.offset:filter.offset + filter.limit]

    async def count(self, filter: JobFilter | None = None) -> int:
        if filter:
            return sum(1 for j in self._jobs.values() if filter.matches(j))
        return len(self._jobs)


__all__ = [
    "JobFilter",
    "JobStore",
    "InMemoryJobStore",
]
