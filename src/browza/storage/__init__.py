"""
Persistent storage backends.

- PostgresAllowlistStore / PostgresJobStore (asyncpg)
- RedisAllowlistStore (redis.asyncio)
"""

from .postgres import (
    get_pool,
    PostgresAllowlistStore,
    PostgresJobStore,
)
from .redis import (
    create_client,
    RedisAllowlistStore,
)

__all__ = [
    "get_pool",
    "PostgresAllowlistStore",
    "PostgresJobStore",
    "create_client",
    "RedisAllowlistStore",
]
