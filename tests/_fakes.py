"""Fake stores that fail or stall, for store-guard paths."""

from __future__ import annotations

import asyncio

from browza.allowlist import InMemoryAllowlistStore
from browza.errors import StoreUnavailableError
from browza.jobs import InMemoryJobStore


class UnreachableAllowlistStore(InMemoryAllowlistStore):
    """Accepts writes but every membership lookup fails."""

    def __init__(self, hosts=None):
        super().__init__(hosts)
        self.lookups = 0

    async def contains(self, host: str) -> bool:
        self.lookups += 1
        raise StoreUnavailableError("allow-list backend down")


class StalledAllowlistStore(InMemoryAllowlistStore):
    """Membership lookups never return within any sane deadline."""

    async def contains(self, host: str) -> bool:
        await asyncio.sleep(10)
        return True


class RefusingJobStore(InMemoryJobStore):
    """Every read fails as if the connection was refused."""

    async def get(self, job_id: str):
        raise ConnectionRefusedError("connection refused")
