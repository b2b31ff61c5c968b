"""
Job lifecycle for admitted fetches.

This module provides:
- JobStatus, JobMetrics and JobRecord
- JobStore interface with an in-memory implementation
- JobManager for validated transitions and metric writes
"""

from .types import (
    JobStatus,
    VALID_TRANSITIONS,
    DISPATCH_METRICS,
    SUMMARY_METRICS,
    WIRE_NAMES,
    JobMetrics,
    JobUpdate,
    JobRecord,
)
from .store import (
    JobFilter,
    JobStore,
    InMemoryJobStore,
)
from .manager import JobManager

__all__ = [
    "JobStatus",
    "VALID_TRANSITIONS",
    "DISPATCH_METRICS",
    "SUMMARY_METRICS",
    "WIRE_NAMES",
    "JobMetrics",
    "JobUpdate",
    "JobRecord",
    "JobFilter",
    "JobStore",
    "InMemoryJobStore",
    "JobManager",
]
