"""Request correlation for the API server."""

from __future__ import annotations

import logging
import time

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..core.context import REQUEST_ID_HEADER, new_operation_id, operation_scope

logger = logging.getLogger(__name__)


class CorrelationIdMiddleware:
    """Run each request under the caller's ``X-Request-ID`` and echo it back.

    The client forwards the id of the synchronizer operation that issued the
    call, so one id can be followed through both processes. The id is kept in
    ``scope["state"]`` where the exception handlers read it, and the request
    is logged once it completes.
    """

    def __init__(self, app: ASGIApp, header_name: str = REQUEST_ID_HEADER) -> None:
        self.app = app
        self.header_name = header_name

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = Headers(scope=scope).get(self.header_name) or new_operation_id()
        scope.setdefault("state", {})["request_id"] = request_id
        status_code = 500
        started = time.perf_counter()

        async def send_with_request_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                MutableHeaders(scope=message).setdefault(self.header_name, request_id)
            await send(message)

        with operation_scope(request_id, http_method=scope["method"], http_path=scope["path"]):
            try:
                await self.app(scope, receive, send_with_request_id)
            finally:
                logger.info(
                    "%s %s -> %d",
                    scope["method"],
                    scope["path"],
                    status_code,
                    extra={"status_code": status_code, "duration_ms": round((time.perf_counter() - started) * 1000, 2)},
                )


__all__ = ["CorrelationIdMiddleware"]
