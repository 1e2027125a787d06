"""
ASGI middleware for correlation ID propagation and a last-resort error boundary.
"""

import json

from grounded_qa.config import is_debug
from grounded_qa.errors import format_user_error
from grounded_qa.logging_config import (
    CORRELATION_HEADER,
    generate_correlation_id,
    get_correlation_id,
    get_logger,
    redact_secrets,
    set_correlation_id,
)

logger = get_logger("grounded_qa.gateway.middleware")

_CID_HEADER = CORRELATION_HEADER.encode("latin-1")


class CorrelationIdMiddleware:
    """Reads or generates x-correlation-id, binds it to the logging context
    and echoes it on the response."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        cid = headers.get(_CID_HEADER, b"").decode("latin-1").strip()
        if not cid:
            cid = generate_correlation_id()
        set_correlation_id(cid)

        async def send_with_correlation(message):
            if message["type"] == "http.response.start":
                response_headers = [
                    (k, v) for k, v in message.get("headers", []) if k.lower() != _CID_HEADER
                ]
                response_headers.append((_CID_HEADER, cid.encode("latin-1")))
                message = {**message, "headers": response_headers}
            await send(message)

        await self.app(scope, receive, send_with_correlation)


class ErrorBoundaryMiddleware:
    """Catches exceptions that escaped the route handlers.

    Logs them with stack trace and answers with an INTERNAL_ERROR payload,
    unless the response has already started (mid-stream), in which case the
    connection is simply closed.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = False

        async def tracking_send(message):
            nonlocal started
            if message["type"] == "http.response.start":
                started = True
            await send(message)

        try:
            await self.app(scope, receive, tracking_send)
        except Exception as exc:
            logger.error(f"Unhandled exception: {exc}", exc_info=True)
            if started:
                return

            payload = {
                "error": format_user_error(exc),
                "code": "INTERNAL_ERROR",
                "correlationId": get_correlation_id(),
            }
            if is_debug():
                payload["debug"] = {"originalError": redact_secrets(str(exc))}

            await send({
                "type": "http.response.start",
                "status": 500,
                "headers": [(b"content-type", b"application/json")],
            })
            await send({
                "type": "http.response.body",
                "body": json.dumps(payload, ensure_ascii=False).encode("utf-8"),
            })
