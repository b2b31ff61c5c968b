"""
Browza - Admission and lifecycle core for a bandwidth-sharing fetch broker.

Buyers submit fetch jobs; sellers' devices execute them. This package
provides the pieces between the two:
- Domain allow-list (in-memory, Redis, PostgreSQL)
- Policy engine that canonicalizes URLs and rejects unsafe jobs
- Job lifecycle (queued, running, completed, failed) with quality metrics
- Store guard (timeouts + circuit breaker) and structured logging

Example:
    ```python
    from browza import InMemoryAllowlistStore, InMemoryJobStore, JobManager, PolicyEngine

    engine = PolicyEngine(InMemoryAllowlistStore(["www.google.com"]))
    manager = JobManager(InMemoryJobStore())

    result = await engine.admit({"url": "https://www.google.com/search?q=x"})
    if result.admitted:
        record = await manager.create(result.job)
    ```
"""

from .errors import (
    ErrorCode,
    ErrorContext,
    BrokerError,
    StoreUnavailableError,
    JobNotFoundError,
    InvalidTransitionError,
    InvalidMetricsError,
)
from .allowlist import (
    normalize_host,
    AllowlistStore,
    InMemoryAllowlistStore,
)
from .policy import (
    RejectionReason,
    JobRequest,
    NormalizedJob,
    AdmissionResult,
    ParsedTarget,
    parse_target,
    strip_sensitive_headers,
    PolicyEngine,
)
from .jobs import (
    JobStatus,
    JobMetrics,
    JobUpdate,
    JobRecord,
    JobFilter,
    JobStore,
    InMemoryJobStore,
    JobManager,
)
from .resilience import StoreGuard, StoreGuardConfig
from .logging import StructuredLogger, configure_logging, get_logger

__all__ = [
    # Errors
    "ErrorCode",
    "ErrorContext",
    "BrokerError",
    "StoreUnavailableError",
    "JobNotFoundError",
    "InvalidTransitionError",
    "InvalidMetricsError",
    # Allow-list
    "normalize_host",
    "AllowlistStore",
    "InMemoryAllowlistStore",
    # Policy
    "RejectionReason",
    "JobRequest",
    "NormalizedJob",
    "AdmissionResult",
    "ParsedTarget",
    "parse_target",
    "strip_sensitive_headers",
    "PolicyEngine",
    # Jobs
    "JobStatus",
    "JobMetrics",
    "JobUpdate",
    "JobRecord",
    "JobFilter",
    "JobStore",
    "InMemoryJobStore",
    "JobManager",
    # Infrastructure
    "StoreGuard",
    "StoreGuardConfig",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
]

__version__ = "0.1.0"
