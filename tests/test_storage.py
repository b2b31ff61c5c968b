"""
Tests for the persistent storage adapters, using in-process fakes for the drivers.
"""

from __future__ import annotations

import pytest

from redis.exceptions import ConnectionError as RedisConnectionError

from browza.errors import StoreUnavailableError
from browza.jobs import JobMetrics, JobRecord, JobStatus, JobUpdate
from browza.policy import NormalizedJob
from browza.storage import PostgresAllowlistStore, PostgresJobStore, RedisAllowlistStore
from browza.storage.postgres import _sanitize_table_name


class FakeRedis:
    """The subset of redis.asyncio.Redis used by the allow-list store."""

    def __init__(self, fail: bool = False):
        self.sets: dict[str, set[str]] = {}
        self.fail = fail
        self.closed = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("Connection refused")

    async def sismember(self, key, member):
        self._check()
        return int(member in self.sets.get(key, set()))

    async def sadd(self, key, *members):
        self._check()
        bucket = self.sets.setdefault(key, set())
        before = len(bucket)
        bucket.update(members)
        return len(bucket) - before

    async def smembers(self, key):
        self._check()
        return set(self.sets.get(key, set()))

    async def scard(self, key):
        self._check()
        return len(self.sets.get(key, set()))

    async def aclose(self):
        self.closed = True


class TestRedisAllowlistStore:
    @pytest.mark.asyncio
    async def test_membership_and_idempotent_add(self):
        client = FakeRedis()
        store = RedisAllowlistStore(client)

        await store.add("WWW.Example.com")
        await store.add("www.example.com")

        assert await store.contains("www.example.com")
        assert not await store.contains("api.example.com")
        assert await store.list() == ["www.example.com"]
        assert await store.count() == 1
        assert client.sets == {"browza:allowlist": {"www.example.com"}}

    @pytest.mark.asyncio
    async def test_driver_errors_become_store_unavailable(self):
        store = RedisAllowlistStore(FakeRedis(fail=True))

        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.contains("www.example.com")

        assert exc_info.value.context.backend == "redis"

    @pytest.mark.asyncio
    async def test_close(self):
        client = FakeRedis()
        await RedisAllowlistStore(client).close()
        assert client.closed


class TestPostgresHelpers:
    @pytest.mark.parametrize("name", ["browza_jobs", "Jobs2"])
    def test_valid_table_names(self, name):
        assert _sanitize_table_name(name) == name

    @pytest.mark.parametrize("name", ["", "jobs; drop table x", 'jobs"', "a-b"])
    def test_invalid_table_names(self, name):
        with pytest.raises(ValueError):
            _sanitize_table_name(name)

    def test_custom_table_name_validated(self):
        with pytest.raises(ValueError):
            PostgresAllowlistStore(pool=object(), table_name="bad name")

    def test_job_row_round_trip(self):
        store = PostgresJobStore(pool=object())
        record = JobRecord.from_normalized(NormalizedJob(
            url="https://www.example.com/",
            method="GET",
            headers={"accept": "*/*"},
        ))
        record = record.apply(JobUpdate(status=JobStatus.RUNNING, metrics=JobMetrics(http_code=200)))

        row = store._job_to_row(record)
        restored = store._row_to_job(row)

        assert restored.job_id == record.job_id
        assert restored.status is JobStatus.RUNNING
        assert restored.headers == {"accept": "*/*"}
        assert restored.metrics == record.metrics
        assert restored.started_at == pytest.approx(record.started_at)
        assert restored.completed_at is None
