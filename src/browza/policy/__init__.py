"""
Admission policy for fetch jobs.

This module provides the PolicyEngine that turns a raw JobRequest into
either a NormalizedJob or a typed rejection:
- Domain allow-list check
- Sensitive-path blocking
- Read-only method enforcement (GET/HEAD)
- Credential header stripping
- URL canonicalization
"""

from .types import (
    RejectionReason,
    JobRequest,
    NormalizedJob,
    AdmissionResult,
)
from .engine import (
    DEFAULT_BLOCKED_PATH_PATTERN,
    DEFAULT_ALLOWED_METHODS,
    SENSITIVE_HEADERS,
    ParsedTarget,
    parse_target,
    strip_sensitive_headers,
    PolicyEngine,
)

__all__ = [
    "RejectionReason",
    "JobRequest",
    "NormalizedJob",
    "AdmissionResult",
    "DEFAULT_BLOCKED_PATH_PATTERN",
    "DEFAULT_ALLOWED_METHODS",
    "SENSITIVE_HEADERS",
    "ParsedTarget",
    "parse_target",
    "strip_sensitive_headers",
    "PolicyEngine",
]
