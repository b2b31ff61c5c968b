"""
Redis storage for the allow-list.

The allow-list is a single Redis set: SISMEMBER for admission checks,
SADD for admin inserts. Redis operations are atomic, so no client-side
locking is needed.
"""

from __future__ import annotations

from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..allowlist.store import AllowlistStore, normalize_host
from ..errors import ErrorContext, StoreUnavailableError


def create_client(url: str) -> Any:
    """Build a redis.asyncio client that returns str instead of bytes."""
    return redis.from_url(url, decode_responses=True)


class RedisAllowlistStore(AllowlistStore):
    """Redis-backed allow-list stored under one set key."""

    KEY = "browza:allowlist"

    def __init__(self, client: Any, key: str | None = None):
        self._client = client
        self._key = key or self.KEY

    async def _run(self, operation: str, awaitable):
        try:
            return await awaitable
        except RedisError as exc:
            raise StoreUnavailableError(
                f"Redis {operation} failed",
                context=ErrorContext(operation=operation, backend="redis", extra={"key": self._key}),
                cause=exc,
            ) from exc

    async def contains(self, host: str) -> bool:
        result = await self._run("allowlist.contains", self._client.sismember(self._key, normalize_host(host)))
        return bool(result)

    async def add(self, host: str) -> str:
        normalized = normalize_host(host)
        if not normalized:
            raise ValueError("host is required")
        await self._run("allowlist.add", self._client.sadd(self._key, normalized))
        return normalized

    async def list(self) -> list[str]:
        members = await self._run("allowlist.list", self._client.smembers(self._key))
        return sorted(m.decode() if isinstance(m, bytes) else m for m in members)

    async def count(self) -> int:
        return int(await self._run("allowlist.count", self._client.scard(self._key)))

    async def close(self) -> None:
        await self._client.aclose()


__all__ = [
    "create_client",
    "RedisAllowlistStore",
]
