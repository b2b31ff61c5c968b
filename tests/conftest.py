"""
Shared test fixtures for broker tests.

This module provides:
- Seeded in-memory allow-list and job store
- PolicyEngine / JobManager wired to them
- A structured logger isolated from the application logger
"""

from __future__ import annotations

import pytest

from browza.allowlist import InMemoryAllowlistStore
from browza.jobs import InMemoryJobStore, JobManager
from browza.logging import StructuredLogger
from browza.policy import PolicyEngine
from browza.resilience import StoreGuard, StoreGuardConfig


ALLOWED_HOSTS = ("www.example.com", "www.google.com")


@pytest.fixture
def test_logger() -> StructuredLogger:
    return StructuredLogger("browza.tests", json_output=True)


@pytest.fixture
def allowlist() -> InMemoryAllowlistStore:
    return InMemoryAllowlistStore(ALLOWED_HOSTS)


@pytest.fixture
def fast_guard_config() -> StoreGuardConfig:
    return StoreGuardConfig(timeout_seconds=0.05, failure_threshold=2, recovery_timeout=60.0)


@pytest.fixture
def engine(allowlist, test_logger) -> PolicyEngine:
    return PolicyEngine(allowlist, logger=test_logger)


@pytest.fixture
def job_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def manager(job_store, test_logger) -> JobManager:
    return JobManager(job_store, guard=StoreGuard("job_store"), logger=test_logger)
