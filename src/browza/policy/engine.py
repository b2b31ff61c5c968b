"""
Policy engine for job admission.

This module provides the PolicyEngine that decides whether a submitted
fetch job is safe to execute. Checks run in a fixed order and the first
failure wins:

1. URL present
2. URL parses as an absolute http(s) URL with a hostname
3. Hostname is on the allow-list
4. Path does not touch a sensitive area (login, checkout, ...)
5. Method is GET or HEAD (default GET)
6. Credential-bearing headers are dropped from the embedded headers map

On success the engine emits a NormalizedJob whose URL is re-serialized from
the parsed form, never the caller's original string.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, unquote, urlsplit

from ..allowlist import AllowlistStore, canonical_host
from ..errors import ErrorCode, StoreUnavailableError
from ..logging import AdmissionLog, StructuredLogger, get_logger, timed
from ..resilience import StoreGuard
from .types import AdmissionResult, JobRequest, NormalizedJob, RejectionReason


DEFAULT_BLOCKED_PATH_PATTERN = re.compile(
    r"(/login|/signin|/account|/profile|/cart|/checkout|/wp-admin)",
    re.IGNORECASE,
)
DEFAULT_ALLOWED_METHODS = frozenset({"GET", "HEAD"})
SENSITIVE_HEADERS = frozenset({"cookie", "authorization", "set-cookie"})

_DEFAULT_PORTS = {"http": 80, "https": 443}
_CONTROL_CHARS = re.compile(r"[\t\r\n]")
_PATH_SAFE = "/%:@!$&'()*+,;=-._~"
_QUERY_SAFE = "/?%:@!$&'()*+,;=-._~"
_SINGLE_DOT = {".", "%2e"}
_DOUBLE_DOT = {"..", ".%2e", "%2e.", "%2e%2e"}


@dataclass(frozen=True)
class ParsedTarget:
    """A fetch target broken into canonical components."""
    scheme: str
    host: str
    port: int | None
    path: str
    query: str

    @property
    def netloc(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}" if self.port is not None else host

    def geturl(self) -> str:
        url = f"{self.scheme}://{self.netloc}{self.path}"
        if self.query:
            url += f"?{self.query}"
        return url


def parse_target(raw: str) -> ParsedTarget | None:
    """Parse and canonicalize a fetch URL; None if it is not acceptable.

    Scheme and host are lowercased (IDN hosts become punycode), default
    ports and any userinfo are dropped, dot segments are resolved,
    unsafe characters are percent-encoded, and the fragment is discarded.
    """
    candidate = _CONTROL_CHARS.sub("", raw).strip()
    if not candidate:
        return None
    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError:
        return None

    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        return None

    host = canonical_host(parts.hostname)
    if host is None:
        return None
    if port == _DEFAULT_PORTS[scheme]:
        port = None

    path = _remove_dot_segments(parts.path.replace("\\", "/") or "/")
    return ParsedTarget(
        scheme=scheme,
        host=host,
        port=port,
        path=quote(path, safe=_PATH_SAFE),
        query=quote(parts.query, safe=_QUERY_SAFE),
    )


def _remove_dot_segments(path: str) -> str:
    segments = path.split("/")[1:]
    output: list[str] = []
    for segment in segments:
        lowered = segment.lower()
        if lowered in _SINGLE_DOT:
            continue
        if lowered in _DOUBLE_DOT:
            if output:
                output.pop()
            continue
        output.append(segment)
    resolved = "/" + "/".join(output)
    if segments and segments[-1].lower() in (_SINGLE_DOT | _DOUBLE_DOT) and not resolved.endswith("/"):
        resolved += "/"
    return resolved


def strip_sensitive_headers(
    headers: Mapping[str, str],
    sensitive: frozenset[str] = SENSITIVE_HEADERS,
) -> dict[str, str]:
    """Drop credential-bearing keys (case-insensitive); keys come back lowercased."""
    return {
        key.lower(): value
        for key, value in headers.items()
        if key.lower() not in sensitive
    }


class PolicyEngine:
    """Admission gate between buyers and the job store.

    The engine is stateless per call: its only I/O is a single allow-list
    lookup, run through a StoreGuard. Every outcome, including an
    unreachable allow-list, comes back as an AdmissionResult; ``admit``
    does not raise for any request content.
    """

    def __init__(
        self,
        allowlist: AllowlistStore,
        *,
        guard: StoreGuard | None = None,
        blocked_paths: re.Pattern[str] = DEFAULT_BLOCKED_PATH_PATTERN,
        allowed_methods: frozenset[str] = DEFAULT_ALLOWED_METHODS,
        sensitive_headers: frozenset[str] = SENSITIVE_HEADERS,
        logger: StructuredLogger | None = None,
    ):
        self._allowlist = allowlist
        self._guard = guard or StoreGuard("allowlist")
        self._blocked_paths = blocked_paths
        self._allowed_methods = allowed_methods
        self._sensitive_headers = sensitive_headers
        self._logger = logger or get_logger()

    async def admit(self, request: JobRequest | Mapping[str, Any]) -> AdmissionResult:
        """Run every check in order and return the first failure or the job."""
        if not isinstance(request, JobRequest):
            request = JobRequest.from_payload(request)

        with self._logger.request_context(operation="admit") as request_id:
            with timed() as timer:
                result = await self._evaluate(request)
            self._logger.log_admission(AdmissionLog(
                request_id=request_id,
                outcome=result.outcome,
                host=result.host if result.host else _host_of(result.job),
                method=result.job.method if result.job else None,
                duration_ms=timer.elapsed_ms,
            ))
        return result

    async def _evaluate(self, request: JobRequest) -> AdmissionResult:
        if not request.url:
            return AdmissionResult.reject(RejectionReason.URL_REQUIRED)

        target = parse_target(request.url)
        if target is None:
            return AdmissionResult.reject(RejectionReason.INVALID_URL)

        try:
            allowed = await self._guard.call(
                self._allowlist.contains(target.host),
                operation="allowlist.contains",
                code=ErrorCode.POLICY_UNAVAILABLE,
            )
        except StoreUnavailableError as exc:
            self._logger.log_error(exc, "Allow-list lookup failed")
            return AdmissionResult.reject(RejectionReason.POLICY_UNAVAILABLE)
        if not allowed:
            return AdmissionResult.reject(RejectionReason.DOMAIN_NOT_ALLOWED, host=target.host)

        if self.path_blocked(target.path):
            return AdmissionResult.reject(RejectionReason.PATH_BLOCKED)

        method = (request.method or "GET").strip().upper()
        if method not in self._allowed_methods:
            return AdmissionResult.reject(RejectionReason.METHOD_NOT_ALLOWED)

        headers = strip_sensitive_headers(request.headers, self._sensitive_headers)

        return AdmissionResult.accept(NormalizedJob(
            url=target.geturl(),
            method=method,
            headers=headers,
        ))

    def path_blocked(self, path: str) -> bool:
        """Check both the encoded and decoded path so escapes cannot hide a match."""
        return any(
            self._blocked_paths.search(candidate)
            for candidate in {path, unquote(path)}
        )


def _host_of(job: NormalizedJob | None) -> str | None:
    if job is None:
        return None
    return urlsplit(job.url).hostname


__all__ = [
    "DEFAULT_BLOCKED_PATH_PATTERN",
    "DEFAULT_ALLOWED_METHODS",
    "SENSITIVE_HEADERS",
    "ParsedTarget",
    "parse_target",
    "strip_sensitive_headers",
    "PolicyEngine",
]
