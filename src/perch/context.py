"""Per-request context.

``RequestContext`` is created by the dispatcher once per request,
immediately before the pipeline runs, and discarded after the response
is produced. Handlers receive it as their third argument and may also
reach it through ``get_context()``.

Ownership:
    ``params`` is a read-only view built fresh from the route match.
    ``locals`` and ``headers`` are owned, mutable, and never shared
    between requests. ``app_locals`` is the app-wide mapping and *is*
    shared.

Thread safety:
    ``ContextVar`` is task-local under asyncio and thread-local under
    free-threading. No locks needed.
"""

import logging
import time
from collections.abc import Mapping
from contextvars import ContextVar
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from perch.errors import HTTPError
from perch.http.connection import ConnectionInfo
from perch.http.headers import MutableHeaders
from perch.http.request import Request


@dataclass(slots=True, eq=False)
class RequestContext:
    """State for one request, shared by every handler in its chain.

    Usage::

        def show(request, info, ctx):
            ctx.locals["user"] = load_user(ctx.params["id"])
            ctx.headers["X-Custom"] = "value"
            return ctx.locals["user"]
    """

    params: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    route: str = ""
    locals: dict[str, Any] = field(default_factory=dict)
    headers: MutableHeaders = field(default_factory=MutableHeaders)
    status: int = 200
    error: HTTPError | None = None
    ip: str | None = None
    start_time: float = field(default_factory=time.time)
    app_locals: dict[str, Any] = field(default_factory=dict)
    logger: logging.Logger | None = None

    @classmethod
    def create(
        cls,
        *,
        params: Mapping[str, str] | None = None,
        route: str = "",
        ip: str | None = None,
        start_time: float | None = None,
        app_locals: dict[str, Any] | None = None,
        logger: logging.Logger | None = None,
    ) -> "RequestContext":
        """Build a fresh context; *params* is copied, never aliased."""
        return cls(
            params=MappingProxyType(dict(params or {})),
            route=route,
            ip=ip,
            start_time=time.time() if start_time is None else start_time,
            app_locals=app_locals if app_locals is not None else {},
            logger=logger,
        )

    @property
    def elapsed_ms(self) -> int:
        """Milliseconds since the request was received."""
        return int((time.time() - self.start_time) * 1000)


def client_ip(request: Request, info: ConnectionInfo) -> str | None:
    """Best-effort client address.

    Respects the standard comma-separated proxy chain (first hop is the
    client), then ``X-Real-IP``, then the transport peer.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return info.remote_addr


# -- Current context --

context_var: ContextVar[RequestContext] = ContextVar("perch_context")
"""The current request context. Set by the dispatcher around the pipeline."""


def get_context() -> RequestContext:
    """Return the context of the request being handled.

    Raises ``LookupError`` if called outside a request.
    """
    return context_var.get()
