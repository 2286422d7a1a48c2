"""Request ID middleware for per-request tracking.

This middleware:
1. Extracts request ID from X-Request-ID header if present
2. Generates a new UUID if header is missing
3. Stores the ID in request.state.request_id
4. Adds the ID to logging context
5. Includes X-Request-ID in response headers
6. Cleans up logging context after request completes
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from starlette.datastructures import MutableHeaders

from notify_service.infra.logging.context import clear_log_context, set_log_context

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send


class RequestIDMiddleware:
    """Add a unique request ID to all requests for log correlation.

    Pure ASGI implementation, so the ID is visible to every downstream
    middleware, route handler and exception handler.

    Usage:
        app = FastAPI()
        app.add_middleware(RequestIDMiddleware)
    """

    header_name = "x-request-id"
    state_key = "request_id"
    log_context_key = "request_id"

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = self._extract_or_generate(scope)
        scope.setdefault("state", {})[self.state_key] = request_id
        set_log_context(**{self.log_context_key: request_id})

        async def send_with_header(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                headers.append(self.header_name, request_id)
            await send(message)

        try:
            await self.app(scope, receive, send_with_header)
        finally:
            clear_log_context()

    def _extract_or_generate(self, scope: Scope) -> str:
        headers = dict(scope.get("headers", []))
        header_bytes = headers.get(self.header_name.encode("latin-1"))
        if header_bytes:
            return header_bytes.decode("latin-1")
        return str(uuid.uuid4())
