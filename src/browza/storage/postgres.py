"""
PostgreSQL storage adapters for the broker.

This module provides persistent storage implementations using PostgreSQL:
- PostgresAllowlistStore: Allow-listed hostnames
- PostgresJobStore: Job record persistence

Driver failures are re-raised as StoreUnavailableError; domain errors
(not-found, invalid transition, invalid metrics) pass through.
"""

from __future__ import annotations

import asyncio
import json
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

import asyncpg

from ..allowlist.store import AllowlistStore, normalize_host
from ..errors import ErrorContext, JobNotFoundError, StoreUnavailableError
from ..jobs.store import JobFilter, JobStore
from ..jobs.types import JobMetrics, JobRecord, JobStatus, JobUpdate
from ..policy.types import NormalizedJob


_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


async def get_pool(dsn: str, *, min_size: int = 1, max_size: int = 10) -> Any:
    """Create an asyncpg pool, mapping connection failures to StoreUnavailableError."""
    try:
        return await asyncpg.create_pool(dsn=dsn, min_size=min_size, max_size=max_size)
    except _DRIVER_ERRORS as exc:
        raise StoreUnavailableError(
            "Could not connect to PostgreSQL",
            context=ErrorContext(operation="postgres.connect", backend="postgres"),
            cause=exc,
        ) from exc


def _sanitize_table_name(name: str) -> str:
    """Ensure the table name is safe for SQL interpolation."""
    if not name:
        raise ValueError("table_name cannot be empty")
    if not re.fullmatch(r"[a-zA-Z0-9_]+", name):
        raise ValueError(f"Invalid table name: {name!r}")
    return name


def _to_timestamptz(value: Any) -> Any:
    """Convert epoch seconds floats into timezone-aware datetimes for TIMESTAMPTZ columns."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    return value


def _from_timestamptz(value: Any) -> Any:
    if value is not None and hasattr(value, "timestamp"):
        return value.timestamp()
    return value


def _load_json(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    return json.loads(value)


@asynccontextmanager
async def _driver_errors(operation: str, table: str) -> AsyncIterator[None]:
    try:
        yield
    except _DRIVER_ERRORS as exc:
        raise StoreUnavailableError(
            f"PostgreSQL {operation} failed",
            context=ErrorContext(operation=operation, backend="postgres", extra={"table": table}),
            cause=exc,
        ) from exc


class _PostgresTable:
    """Lazy DDL shared by the PostgreSQL stores. The pool belongs to the caller."""

    TABLE_NAME = ""

    def __init__(self, pool: Any, table_name: str | None = None):
        self._pool = pool
        self._table = _sanitize_table_name(table_name or self.TABLE_NAME)
        self._ensured = False
        self._lock = asyncio.Lock()

    def _ddl(self) -> str:
        raise NotImplementedError

    async def _ensure_table(self) -> None:
        async with self._lock:
            if self._ensured:
                return
            async with _driver_errors("ensure_table", self._table):
                async with self._pool.acquire() as conn:
                    for stmt in [s.strip() for s in self._ddl().split(";") if s.strip()]:
                        await conn.execute(stmt)
            self._ensured = True


# =============================================================================
# PostgresAllowlistStore
# =============================================================================


class PostgresAllowlistStore(_PostgresTable, AllowlistStore):
    """PostgreSQL implementation of AllowlistStore.

    Table schema:
    - host (TEXT PRIMARY KEY)
    - added_at (TIMESTAMPTZ)
    """

    TABLE_NAME = "browza_allowlist"

    def _ddl(self) -> str:
        return f'''
        CREATE TABLE IF NOT EXISTS "{self._table}" (
            host TEXT PRIMARY KEY,
            added_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        '''

    async def contains(self, host: str) -> bool:
        await self._ensure_table()
        q = f'SELECT 1 FROM "{self._table}" WHERE host = $1'
        async with _driver_errors("allowlist.contains", self._table):
            async with self._pool.acquire() as conn:
                return await conn.fetchval(q, normalize_host(host)) is not None

    async def add(self, host: str) -> str:
        normalized = normalize_host(host)
        if not normalized:
            raise ValueError("host is required")
        await self._ensure_table()
        q = f'INSERT INTO "{self._table}" (host) VALUES ($1) ON CONFLICT (host) DO NOTHING'
        async with _driver_errors("allowlist.add", self._table):
            async with self._pool.acquire() as conn:
                await conn.execute(q, normalized)
        return normalized

    async def list(self) -> list[str]:
        await self._ensure_table()
        q = f'SELECT host FROM "{self._table}" ORDER BY host'
        async with _driver_errors("allowlist.list", self._table):
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(q)
        return [row["host"] for row in rows]

    async def count(self) -> int:
        await self._ensure_table()
        async with _driver_errors("allowlist.count", self._table):
            async with self._pool.acquire() as conn:
                return await conn.fetchval(f'SELECT COUNT(*) FROM "{self._table}"')


# =============================================================================
# PostgresJobStore
# =============================================================================


class PostgresJobStore(_PostgresTable, JobStore):
    """PostgreSQL implementation of JobStore.

    Table schema:
    - job_id (TEXT PRIMARY KEY)
    - url, method (TEXT)
    - headers, metrics (JSONB)
    - status, error (TEXT)
    - created_at, updated_at, started_at, completed_at (TIMESTAMPTZ)

    Updates take a row lock (SELECT ... FOR UPDATE) inside a transaction,
    so concurrent writers to one job are serialized by the database.
    """

    TABLE_NAME = "browza_jobs"

    def _ddl(self) -> str:
        return f'''
        CREATE TABLE IF NOT EXISTS "{self._table}" (
            job_id TEXT PRIMARY KEY,
            url TEXT NOT NULL,
            method TEXT NOT NULL DEFAULT 'GET',
            headers JSONB DEFAULT '{{}}'::jsonb,
            status TEXT NOT NULL DEFAULT 'queued',
            metrics JSONB DEFAULT '{{}}'::jsonb,
            error TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            started_at TIMESTAMPTZ,
            completed_at TIMESTAMPTZ,
            schema_version INTEGER DEFAULT 1
        );
        CREATE INDEX IF NOT EXISTS "{self._table}_status_idx" ON "{self._table}" (status);
        CREATE INDEX IF NOT EXISTS "{self._table}_created_at_idx" ON "{self._table}" (created_at)
        '''

    def _job_to_row(self, job: JobRecord) -> dict[str, Any]:
        """Convert JobRecord to database row."""
        return {
            "job_id": job.job_id,
            "url": job.url,
            "method": job.method,
            "headers": json.dumps(job.headers),
            "status": job.status.value,
            "metrics": json.dumps(job.metrics.to_dict()),
            "error": job.error,
            "created_at": _to_timestamptz(job.created_at),
            "updated_at": _to_timestamptz(job.updated_at),
            "started_at": _to_timestamptz(job.started_at),
            "completed_at": _to_timestamptz(job.completed_at),
            "schema_version": job.schema_version,
        }

    def _row_to_job(self, row: Any) -> JobRecord:
        """Convert database row to JobRecord."""
        return JobRecord(
            job_id=row["job_id"],
            url=row["url"],
            method=row["method"],
            headers=_load_json(row["headers"]),
            status=JobStatus(row["status"]),
            metrics=JobMetrics.from_dict(_load_json(row["metrics"])),
            error=row["error"],
            created_at=_from_timestamptz(row["created_at"]),
            updated_at=_from_timestamptz(row["updated_at"]),
            started_at=_from_timestamptz(row["started_at"]),
            completed_at=_from_timestamptz(row["completed_at"]),
            schema_version=row["schema_version"] or 1,
        )

    async def create(self, job: NormalizedJob) -> JobRecord:
        await self._ensure_table()

        async with _driver_errors("jobs.create", self._table):
            async with self._pool.acquire() as conn:
                while True:
                    record = JobRecord.from_normalized(job)
                    row = self._job_to_row(record)
                    columns = list(row.keys())
                    placeholders = [f"${i+1}" for i in range(len(columns))]
                    q = f'''
                    INSERT INTO "{self._table}" ({", ".join(columns)})
                    VALUES ({", ".join(placeholders)})
                    ON CONFLICT (job_id) DO NOTHING
                    '''
                    result = await conn.execute(q, *row.values())
                    if result == "INSERT 0 1":
                        return record

    async def get(self, job_id: str) -> JobRecord | None:
        await self._ensure_table()

        q = f'SELECT * FROM "{self._table}" WHERE job_id = $1'

        async with _driver_errors("jobs.get", self._table):
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(q, job_id)
        if row is None:
            return None
        return self._row_to_job(row)

    async def update(self, job_id: str, update: JobUpdate) -> JobRecord:
        await self._ensure_table()

        select_q = f'SELECT * FROM "{self._table}" WHERE job_id = $1 FOR UPDATE'

        async with _driver_errors("jobs.update", self._table):
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(select_q, job_id)
                    if row is None:
                        raise JobNotFoundError(job_id)
                    updated = self._row_to_job(row).apply(update)

                    values = self._job_to_row(updated)
                    update_cols = [k for k in values.keys() if k != "job_id"]
                    set_clause = ", ".join([f"{col} = ${i+2}" for i, col in enumerate(update_cols)])
                    q = f'UPDATE "{self._table}" SET {set_clause} WHERE job_id = $1'
                    await conn.execute(q, job_id, *[values[col] for col in update_cols])
        return updated

    def _where(self, filter: JobFilter | None) -> tuple[str, list[Any]]:
        if filter is None or filter.status is None:
            return "", []
        if isinstance(filter.status, set):
            statuses = [s.value for s in filter.status]
            placeholders = [f"${i+1}" for i in range(len(statuses))]
            return f" WHERE status IN ({', '.join(placeholders)})", statuses
        return " WHERE status = $1", [filter.status.value]

    async def list(self, filter: JobFilter | None = None) -> list[JobRecord]:
        await self._ensure_table()

        filter = filter or JobFilter()
        where, params = self._where(filter)
        idx = len(params) + 1
        q = (
            f'SELECT * FROM "{self._table}"{where}'
            f" ORDER BY created_at DESC LIMIT ${idx} OFFSET ${idx + 1}"
        )
        params.extend([filter.limit, filter.offset])

        async with _driver_errors("jobs.list", self._table):
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(q, *params)
        return [self._row_to_job(row) for row in rows]

    async def count(self, filter: JobFilter | None = None) -> int:
        await self._ensure_table()

        where, params = self._where(filter)
        async with _driver_errors("jobs.count", self._table):
            async with self._pool.acquire() as conn:
                return await conn.fetchval(f'SELECT COUNT(*) FROM "{self._table}"{where}', *params)


__all__ = [
    "get_pool",
    "PostgresAllowlistStore",
    "PostgresJobStore",
]
