"""
Allow-list of hostnames eligible as fetch targets.
"""

from .store import (
    canonical_host,
    normalize_host,
    AllowlistStore,
    InMemoryAllowlistStore,
)

__all__ = [
    "canonical_host",
    "normalize_host",
    "AllowlistStore",
    "InMemoryAllowlistStore",
]
