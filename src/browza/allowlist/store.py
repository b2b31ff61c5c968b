"""
Allow-list store implementations.

This module provides the AllowlistStore interface, hostname normalization,
and an in-memory implementation. Persistent backends live in
``browza.storage``.
"""

from __future__ import annotations

import asyncio
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable
from urllib.parse import urlsplit


_REG_NAME = re.compile(r"^[a-z0-9\-._~!$&'()*+,;=]+$")
_IPV6_LITERAL = re.compile(r"^[0-9a-f:.]+$")


def canonical_host(hostname: str | None) -> str | None:
    """Canonical form of a bare hostname, or None if it is not a valid host.

    IDN labels become punycode, case is folded, and a trailing root dot is
    dropped. IPv6 literals are accepted without brackets.
    """
    if not hostname:
        return None
    hostname = hostname.lower()
    if ":" in hostname:
        return hostname if _IPV6_LITERAL.match(hostname) else None
    hostname = hostname.rstrip(".")
    if not hostname:
        return None
    try:
        host = hostname.encode("idna").decode("ascii")
    except UnicodeError:
        return None
    host = host.lower()
    if not _REG_NAME.match(host):
        return None
    return host


def normalize_host(value: str | None) -> str:
    """Reduce an admin-supplied host to the form admission lookups use.

    Accepts a bare host, ``host:port``, ``host/path`` or a pasted URL and
    keeps only the canonical hostname. Returns "" when nothing usable remains.
    """
    if not value:
        return ""
    host = value.strip()
    if host.count(":") > 1 and "[" not in host and "/" not in host:
        return canonical_host(host) or ""
    if "://" not in host:
        host = "//" + host
    try:
        hostname = urlsplit(host).hostname
    except ValueError:
        return ""
    return canonical_host(hostname) or ""


class AllowlistStore(ABC):
    """Abstract interface for the set of fetchable hostnames.

    Membership is exact: no wildcard or subdomain matching.
    Implementations must be safe for concurrent readers and writers.
    """

    @abstractmethod
    async def contains(self, host: str) -> bool:
        """Return True if the (normalized) host is allow-listed."""
        ...

    @abstractmethod
    async def add(self, host: str) -> str:
        """Insert a host. Idempotent; returns the stored (normalized) host.

        Raises:
            ValueError: If the host normalizes to an empty string
        """
        ...

    @abstractmethod
    async def list(self) -> list[str]:
        """Return all hosts, sorted."""
        ...

    async def count(self) -> int:
        return len(await self.list())

    async def seed(self, hosts: Iterable[str]) -> int:
        """Add every non-empty host; returns how many were supplied."""
        added = 0
        for host in hosts:
            if normalize_host(host):
                await self.add(host)
                added += 1
        return added

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryAllowlistStore(AllowlistStore):
    """In-memory allow-list.

    Suitable for testing and single-process deployments.
    Writes are serialized via asyncio.Lock; reads are lock-free set lookups.
    """

    def __init__(self, hosts: Iterable[str] | None = None):
        self._hosts: set[str] = set()
        self._lock = asyncio.Lock()
        for host in hosts or ():
            normalized = normalize_host(host)
            if normalized:
                self._hosts.add(normalized)

    async def contains(self, host: str) -> bool:
        return normalize_host(host) in self._hosts

    async def add(self, host: str) -> str:
        normalized = normalize_host(host)
        if not normalized:
            raise ValueError("host is required")
        async with self._lock:
            self._hosts.add(normalized)
        return normalized

    async def list(self) -> list[str]:
        return sorted(self._hosts)

    async def count(self) -> int:
        return len(self._hosts)


__all__ = [
    "canonical_host",
    "normalize_host",
    "AllowlistStore",
    "InMemoryAllowlistStore",
]
