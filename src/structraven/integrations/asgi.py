"""ASGI middleware recording each request as a breadcrumb.

Works with any ASGI framework (FastAPI, Starlette, Litestar, etc.)::

    trail = BreadcrumbBuffer()
    app = BreadcrumbMiddleware(app, trail)

Each HTTP request adds one breadcrumb such as ``"200 GET /health 1.52ms"``;
responses outside the 2xx/3xx range are recorded at ``error`` level.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeAlias

from structraven.breadcrumbs import BreadcrumbBuffer

Scope: TypeAlias = dict[str, Any]
Receive: TypeAlias = Callable[[], Awaitable[dict[str, Any]]]
Send: TypeAlias = Callable[[dict[str, Any]], Awaitable[None]]
ASGIApp: TypeAlias = Callable[[Scope, Receive, Send], Awaitable[None]]


def elapsed_text(seconds: float) -> str:
    """Render a duration as milliseconds, or microseconds below one millisecond."""
    millis = seconds * 1000
    if millis >= 1:
        return f"{round(millis, 2)}ms"
    return f"{round(millis * 1000, 2)}µs"


class BreadcrumbMiddleware:
    """Record one breadcrumb per HTTP request.

    Parameters
    ----------
    app:
        The ASGI application to wrap.
    buffer:
        The trail to record into.
    category:
        Breadcrumb category.
    """

    def __init__(
        self,
        app: ASGIApp,
        buffer: BreadcrumbBuffer,
        *,
        category: str = "asgi.request",
    ) -> None:
        self.app = app
        self.buffer = buffer
        self.category = category

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.perf_counter()
        status_code = 500

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            elapsed = elapsed_text(time.perf_counter() - start_time)
            method = scope.get("method", "GET")
            path = scope.get("path", "")
            self.buffer.record(
                message=f"{status_code} {method} {path} {elapsed}",
                category=self.category,
                level="info" if 200 <= status_code < 400 else "error",
                data={"status_code": status_code, "method": method, "url": path},
            )
