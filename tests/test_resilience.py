"""
Tests for the store guard (timeout + circuit breaker).
"""

import asyncio

import pytest

from browza.errors import ErrorCode, JobNotFoundError, StoreUnavailableError
from browza.resilience import StoreGuard, StoreGuardConfig


async def _refused():
    raise ConnectionRefusedError("refused")


async def _value(v):
    return v


class TestStoreGuard:
    @pytest.mark.asyncio
    async def test_passes_result_through(self):
        guard = StoreGuard("test")
        assert await guard.call(_value(42), operation="read") == 42
        assert guard.state == "closed"

    @pytest.mark.asyncio
    async def test_timeout(self, fast_guard_config):
        guard = StoreGuard("test", fast_guard_config)

        with pytest.raises(StoreUnavailableError) as exc_info:
            await guard.call(asyncio.sleep(5), operation="slow")

        assert exc_info.value.code is ErrorCode.STORE_UNAVAILABLE
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_error_code_override(self):
        guard = StoreGuard("allowlist")

        with pytest.raises(StoreUnavailableError) as exc_info:
            await guard.call(_refused(), operation="contains", code=ErrorCode.POLICY_UNAVAILABLE)

        assert exc_info.value.code is ErrorCode.POLICY_UNAVAILABLE
        assert exc_info.value.to_response() == {"error": "policy_unavailable"}

    @pytest.mark.asyncio
    async def test_breaker_opens_after_threshold(self, fast_guard_config):
        guard = StoreGuard("test", fast_guard_config)

        for _ in range(fast_guard_config.failure_threshold):
            with pytest.raises(StoreUnavailableError):
                await guard.call(_refused(), operation="write")
        assert guard.state == "open"

        touched = False

        async def attempt():
            nonlocal touched
            touched = True

        with pytest.raises(StoreUnavailableError):
            await guard.call(attempt(), operation="write")
        assert not touched

    @pytest.mark.asyncio
    async def test_half_open_trial_closes_breaker(self):
        guard = StoreGuard("test", StoreGuardConfig(failure_threshold=1, recovery_timeout=0.0))

        with pytest.raises(StoreUnavailableError):
            await guard.call(_refused(), operation="write")
        assert guard.state == "open"

        assert await guard.call(_value("ok"), operation="write") == "ok"
        assert guard.state == "closed"

    @pytest.mark.asyncio
    async def test_domain_errors_pass_through(self, fast_guard_config):
        guard = StoreGuard("test", fast_guard_config)

        async def missing():
            raise JobNotFoundError("job_x")

        for _ in range(fast_guard_config.failure_threshold + 1):
            with pytest.raises(JobNotFoundError):
                await guard.call(missing(), operation="get")

        assert guard.state == "closed"
