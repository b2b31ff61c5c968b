"""Transport middleware: header sanitation, body size limit, access log."""

from __future__ import annotations

import json

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from browza.errors import ErrorCode
from browza.logging import StructuredLogger, get_logger, timed


STRIPPED_REQUEST_HEADERS = frozenset({b"cookie", b"authorization", b"set-cookie"})


class SanitizeHeadersMiddleware:
    """Remove credential headers from every inbound request before routing.

    Runs as plain ASGI so handlers, dependencies and other middleware never
    see the stripped values.
    """

    def __init__(self, app: ASGIApp, stripped: frozenset[bytes] = STRIPPED_REQUEST_HEADERS) -> None:
        self.app = app
        self.stripped = stripped

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] in ("http", "websocket"):
            scope = dict(scope)
            scope["headers"] = [
                (name, value)
                for name, value in scope.get("headers", [])
                if name.lower() not in self.stripped
            ]
        await self.app(scope, receive, send)


class BodySizeLimitMiddleware:
    """Refuse request bodies above ``max_bytes`` with 413 payload_too_large."""

    def __init__(self, app: ASGIApp, max_bytes: int) -> None:
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        declared = _content_length(scope)
        if declared is not None and declared > self.max_bytes:
            await _reject(send)
            return

        # Buffer the body (bounded by max_bytes) so chunked uploads are capped too.
        messages: list[Message] = []
        total = 0
        while True:
            message = await receive()
            messages.append(message)
            if message["type"] != "http.request":
                break
            total += len(message.get("body", b""))
            if total > self.max_bytes:
                await _reject(send)
                return
            if not message.get("more_body", False):
                break

        async def replay() -> Message:
            if messages:
                return messages.pop(0)
            return await receive()

        await self.app(scope, replay, send)


def _content_length(scope: Scope) -> int | None:
    for name, value in scope.get("headers", []):
        if name.lower() == b"content-length":
            try:
                return int(value)
            except ValueError:
                return None
    return None


async def _reject(send: Send) -> None:
    body = json.dumps({"error": ErrorCode.PAYLOAD_TOO_LARGE.value}).encode()
    await send({
        "type": "http.response.start",
        "status": 413,
        "headers": [
            (b"content-type", b"application/json"),
            (b"content-length", str(len(body)).encode()),
        ],
    })
    await send({"type": "http.response.body", "body": body})


class AccessLogMiddleware(BaseHTTPMiddleware):
    """One structured line per request: method, path, status, duration."""

    def __init__(self, app, logger: StructuredLogger | None = None):
        super().__init__(app)
        self.logger = logger or get_logger()

    async def dispatch(self, request: Request, call_next):
        with self.logger.request_context(operation="http") as request_id:
            with timed() as timer:
                response = await call_next(request)
            self.logger.info(
                f"{request.method} {request.url.path} {response.status_code}",
                event_type="access",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round(timer.elapsed_ms, 2),
            )
        response.headers["x-request-id"] = request_id
        return response


__all__ = [
    "STRIPPED_REQUEST_HEADERS",
    "SanitizeHeadersMiddleware",
    "BodySizeLimitMiddleware",
    "AccessLogMiddleware",
]
