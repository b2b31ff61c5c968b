"""
Store guard: request-scoped timeouts plus a circuit breaker.

Every allow-list and job-store call made by the core goes through a
StoreGuard so that a slow or unreachable backend surfaces as
StoreUnavailableError instead of hanging the caller.
"""
from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import TypeVar

from .errors import BrokerError, ErrorCode, ErrorContext, StoreUnavailableError

T = TypeVar("T")


@dataclass(frozen=True)
class StoreGuardConfig:
    timeout_seconds: float = 2.0
    failure_threshold: int = 5
    recovery_timeout: float = 30.0


class StoreGuard:
    """Wrap store awaitables with a deadline and a closed/open/half-open breaker.

    Domain errors raised by the store (not-found, invalid transition, ...)
    pass through untouched and do not count as failures.
    """

    def __init__(self, name: str, config: StoreGuardConfig | None = None) -> None:
        self.name = name
        self.config = config or StoreGuardConfig()
        self._state = "closed"
        self._failure_count = 0
        self._opened_at = 0.0
        self._trial_in_flight = False
        self._lock = asyncio.Lock()

    @property
    def state(self) -> str:
        return self._state

    async def call(
        self,
        awaitable: Awaitable[T],
        *,
        operation: str,
        code: ErrorCode = ErrorCode.STORE_UNAVAILABLE,
    ) -> T:
        if not await self._allow():
            # Never awaited; close it.
            close = getattr(awaitable, "close", None)
            if close is not None:
                close()
            raise StoreUnavailableError(
                f"{self.name} circuit open",
                code=code,
                context=ErrorContext(operation=operation, backend=self.name),
            )

        try:
            result = await asyncio.wait_for(awaitable, timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError as exc:
            await self._on_failure()
            raise StoreUnavailableError(
                f"{self.name} timed out after {self.config.timeout_seconds}s",
                code=code,
                context=ErrorContext(operation=operation, backend=self.name),
                cause=exc,
            ) from exc
        except StoreUnavailableError as exc:
            await self._on_failure()
            exc.code = code
            raise
        except BrokerError:
            await self._on_success()
            raise
        except (ConnectionError, OSError) as exc:
            await self._on_failure()
            raise StoreUnavailableError(
                f"{self.name} connection failed",
                code=code,
                context=ErrorContext(operation=operation, backend=self.name),
                cause=exc,
            ) from exc

        await self._on_success()
        return result

    async def _allow(self) -> bool:
        async with self._lock:
            if self._state == "open":
                if time.monotonic() - self._opened_at < self.config.recovery_timeout:
                    return False
                self._state = "half_open"
                self._trial_in_flight = False

            if self._state == "half_open":
                if self._trial_in_flight:
                    return False
                self._trial_in_flight = True
            return True

    async def _on_success(self) -> None:
        async with self._lock:
            self._state = "closed"
            self._failure_count = 0
            self._trial_in_flight = False

    async def _on_failure(self) -> None:
        async with self._lock:
            self._trial_in_flight = False
            if self._state == "half_open":
                self._trip()
                return
            self._failure_count += 1
            if self._failure_count >= self.config.failure_threshold:
                self._trip()

    def _trip(self) -> None:
        self._state = "open"
        self._opened_at = time.monotonic()
        self._failure_count = 0


__all__ = ["StoreGuardConfig", "StoreGuard"]
