"""Perch application class.

Mutable during setup (route registration, middleware, error handler).
Frozen at runtime when the first request, the ASGI lifespan startup, or
an explicit ``freeze()`` arrives.
"""

import logging
import re
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from perch._internal.asgi import Receive, Scope, Send
from perch._internal.types import ErrorHandler, Handler, HandlerArg
from perch.config import AppConfig
from perch.context import RequestContext, client_ip, context_var
from perch.errors import (
    ConfigurationError,
    HandlerError,
    MethodNotAllowed,
    MethodNotImplemented,
    NotFound,
    RouteRegistrationError,
)
from perch.http.connection import ConnectionInfo
from perch.http.request import Request
from perch.http.response import AnyResponse
from perch.middleware.pipeline import Pipeline, ensure_unique, flatten_handlers
from perch.routing.protocol import Router, RouterFactory, require_string
from perch.routing.route import RouteMatch
from perch.routing.router import BracketRouter
from perch.server.coerce import coerce_response, is_finalized
from perch.server.errors import render_error
from perch.server.handler import handle_lifespan, handle_request

access_logger = logging.getLogger("perch.access")

ALL = "ALL"
SUPPORTED_METHODS = ("CONNECT", "DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT", "TRACE")

# Methods probed for a 405 when a HEAD request matches nothing
_HEAD_PROBE_METHODS = ("DELETE", "GET", "OPTIONS", "PATCH", "POST", "PUT")

_DYNAMIC_CHARS = re.compile(r"[\[\]:*]")

_DEFAULT_LOGGER: Any = object()


def validate_mount_path(mount_path: str) -> str:
    """Return *mount_path* or raise ``ConfigurationError``."""
    if not isinstance(mount_path, str):
        msg = f"Mount path must be a string, got {type(mount_path).__name__}"
        raise ConfigurationError(msg)
    if mount_path and not mount_path.startswith("/"):
        msg = f"Mount path must be either empty or must start with a slash (path: {mount_path})"
        raise ConfigurationError(msg)
    if mount_path.endswith("/"):
        msg = f"Mount path must not end with a slash (path: {mount_path})"
        raise ConfigurationError(msg)
    if _DYNAMIC_CHARS.search(mount_path):
        msg = f"Mount path must not contain dynamic segments (path: {mount_path})"
        raise ConfigurationError(msg)
    return mount_path


@dataclass(slots=True)
class _RouteEntry:
    """A registered route; its pipeline is compiled at freeze."""

    method: str
    route: str
    handlers: list[Handler]
    pipeline: Pipeline | None = None

    async def run(self, request: Request, info: ConnectionInfo, ctx: RequestContext) -> Any:
        if self.pipeline is None:
            msg = f"Route {self.method} {self.route} was not compiled; call App.freeze() first"
            raise RuntimeError(msg)
        return await self.pipeline.execute(request, info, ctx)


class App:
    """The perch application.

    Usage::

        app = App("/api")
        app.use(trailing_slash(False))
        app.get("/users/[id]", load_user, show_user)
        app.error(lambda request, info, ctx: {"error": ctx.error.message})

    Thread safety:
        The setup phase is single-threaded (registration at import time).
        The freeze transition uses a Lock + double-check to ensure exactly
        one thread compiles the pipelines, even when several ASGI workers
        deliver a first request concurrently.
    """

    __slots__ = (
        "_app_middleware",
        "_entries",
        "_error_handler",
        "_freeze_lock",
        "_frozen",
        "_locals",
        "_logger",
        "_mount_path",
        "_route_middleware",
        "_routers",
        "config",
    )

    def __init__(
        self,
        mount_path: str = "",
        middleware: HandlerArg | Iterable[HandlerArg] = (),
        config: AppConfig | None = None,
        *,
        router_factory: RouterFactory | None = None,
        error_handler: ErrorHandler | None = None,
        locals: dict[str, Any] | None = None,  # noqa: A002
        logger: logging.Logger | None = _DEFAULT_LOGGER,
    ) -> None:
        self._mount_path = validate_mount_path(mount_path)
        self.config: AppConfig = config or AppConfig()
        factory = router_factory or BracketRouter
        self._routers: dict[str, Router] = {m: factory() for m in (ALL, *SUPPORTED_METHODS)}
        self._entries: list[_RouteEntry] = []
        self._app_middleware: list[Handler] = flatten_handlers(
            [middleware] if callable(middleware) else middleware
        )
        self._route_middleware: dict[str, list[Handler]] = {}
        self._error_handler: ErrorHandler | None = error_handler
        self._locals: dict[str, Any] = locals if locals is not None else {}
        self._logger: logging.Logger | None = logging.getLogger(__name__) if logger is _DEFAULT_LOGGER else logger
        self._frozen: bool = False
        self._freeze_lock: threading.Lock = threading.Lock()

    # -- Properties --

    @property
    def mount_path(self) -> str:
        return self._mount_path

    @property
    def locals(self) -> dict[str, Any]:
        """App-wide mapping shared by every request (``ctx.app_locals``)."""
        return self._locals

    @property
    def logger(self) -> logging.Logger | None:
        return self._logger

    # -- Route registration --

    def get(self, pattern: str, *handlers: HandlerArg) -> "App":
        """Register a GET route (also answers HEAD)."""
        return self._add("GET", pattern, handlers)

    def post(self, pattern: str, *handlers: HandlerArg) -> "App":
        return self._add("POST", pattern, handlers)

    def put(self, pattern: str, *handlers: HandlerArg) -> "App":
        return self._add("PUT", pattern, handlers)

    def patch(self, pattern: str, *handlers: HandlerArg) -> "App":
        return self._add("PATCH", pattern, handlers)

    def delete(self, pattern: str, *handlers: HandlerArg) -> "App":
        return self._add("DELETE", pattern, handlers)

    def options(self, pattern: str, *handlers: HandlerArg) -> "App":
        return self._add("OPTIONS", pattern, handlers)

    def connect(self, pattern: str, *handlers: HandlerArg) -> "App":
        return self._add("CONNECT", pattern, handlers)

    def trace(self, pattern: str, *handlers: HandlerArg) -> "App":
        return self._add("TRACE", pattern, handlers)

    def head(self, pattern: str, *handlers: HandlerArg) -> "App":
        """Register an explicit HEAD route.

        Rarely needed: every GET route already answers HEAD.
        """
        if self._logger is not None:
            self._logger.warning(
                "Explicit HEAD handler for %r: HEAD is answered automatically by GET routes",
                pattern,
            )
        return self._add("HEAD", pattern, handlers)

    def all(self, pattern: str, *handlers: HandlerArg) -> "App":
        """Register a route for every method, tried after method-specific routes."""
        return self._add(ALL, pattern, handlers)

    def route(self, pattern: str, *, methods: Iterable[str] | None = None) -> Callable[[Handler], Handler]:
        """Register a route handler via decorator.

        Args:
            pattern: Route pattern, e.g. ``/users/[id]``.
            methods: HTTP methods (or ``"ALL"``). Defaults to ``["GET"]``.
        """

        def decorator(func: Handler) -> Handler:
            for method in methods or ("GET",):
                method = method.upper()
                if method != ALL and method not in SUPPORTED_METHODS:
                    msg = f"Unsupported method {method!r} for route {pattern!r}"
                    raise ConfigurationError(msg)
                self._add(method, pattern, (func,))
            return func

        return decorator

    def _add(self, method: str, pattern: str, handlers: Iterable[HandlerArg]) -> "App":
        self._check_not_frozen()
        methods = [method, "HEAD"] if method in ("GET", ALL) else [method]

        try:
            chain = flatten_handlers(handlers)
            if not chain:
                msg = "No handler given"
                raise RouteRegistrationError(msg)
            route = self._prefix(require_string(pattern))
        except RouteRegistrationError as exc:
            self._warn_invalid(method, self._prefix(str(pattern)), exc)
            return self

        if self.config.check_duplicates:
            ensure_unique([*self._app_middleware, *self._route_middleware.get(route, ()), *chain])

        for m in methods:
            router = self._routers[m]
            try:
                router.validate(route)
            except RouteRegistrationError as exc:
                self._warn_invalid(m, route, exc)
                continue
            entry = _RouteEntry(m, route, chain)
            router.register(route, lambda params, entry=entry: entry)
            self._entries.append(entry)
            if self.config.verbose and self._logger is not None:
                self._logger.debug("registered %s %s", m, route)

        return self

    def _prefix(self, pattern: str) -> str:
        """Join the mount path onto *pattern*, inside a leading ``^`` anchor."""
        if pattern.startswith("^"):
            return "^" + re.escape(self._mount_path) + pattern[1:]
        return self._mount_path + pattern

    def _warn_invalid(self, method: str, route: str, exc: Exception) -> None:
        # Non-fatal: other routes may work fine
        if self._logger is not None:
            self._logger.warning("[Invalid] %s %s (%s)", method, route, exc)

    # -- Middleware --

    def use(self, *args: str | HandlerArg) -> "App":
        """Register middleware.

        String arguments are routes: the middleware then runs only for
        those routes (before their local handlers). Without routes it
        runs for every route of this app::

            app.use(cors_headers)
            app.use("/admin", "/admin/[page]", require_login)
        """
        self._check_not_frozen()
        routes = [a for a in args if isinstance(a, str)]
        handlers = flatten_handlers(a for a in args if not isinstance(a, str))
        if self.config.check_duplicates:
            self._check_chains(routes, handlers)
        if routes:
            for r in routes:
                self._route_middleware.setdefault(self._prefix(r), []).extend(handlers)
        else:
            self._app_middleware.extend(handlers)
        return self

    def _check_chains(self, routes: list[str], handlers: list[Handler]) -> None:
        """Raise ``DuplicateHandlerError`` before *handlers* join any chain."""
        targets = {self._prefix(r) for r in routes}
        existing: list[list[Handler]] = [
            [*self._app_middleware, *self._route_middleware.get(entry.route, ()), *entry.handlers]
            for entry in self._entries
            if not targets or entry.route in targets
        ]
        if targets:
            existing += [self._route_middleware.get(route, []) for route in targets]
        else:
            existing.append(self._app_middleware)
        for chain in existing:
            ensure_unique([*chain, *handlers])
        ensure_unique(handlers)

    # -- Error handling / logging --

    def error(self, handler: ErrorHandler) -> "App":
        """Set the error handler: ``handler(request, info, ctx)``, error in ``ctx.error``."""
        self._check_not_frozen()
        self._error_handler = handler
        return self

    def set_logger(self, logger: logging.Logger | None) -> "App":
        """Replace the app logger; ``None`` silences app and access logging."""
        self._logger = logger
        return self

    # -- Introspection --

    def info(self) -> dict[str, dict[str, dict[str, int]]]:
        """Per-route, per-method middleware counts.

        ``local`` counts the route's own middleware (its last handler
        excluded); ``global`` counts route-global middleware from ``use()``.
        """
        routes: dict[str, dict[str, dict[str, int]]] = {}
        for entry in self._entries:
            routes.setdefault(entry.route, {})[entry.method] = {
                "local": len(entry.handlers) - 1,
                "global": len(self._route_middleware.get(entry.route, ())),
            }
        return routes

    # -- Request handling --

    async def handle(self, request: Request, info: ConnectionInfo) -> AnyResponse:
        """Transport-agnostic entry point. Always returns a response."""
        start = time.time()
        method = request.method.upper()
        ip = client_ip(request, info)
        ctx = RequestContext.create(ip=ip, start_time=start, app_locals=self._locals, logger=self._logger)
        token = context_var.set(ctx)
        try:
            try:
                self.freeze()
                match = self._resolve(method, request.path)
                entry: _RouteEntry = match.value
                ctx = RequestContext.create(
                    params=match.params,
                    route=entry.route,
                    ip=ip,
                    start_time=start,
                    app_locals=self._locals,
                    logger=self._logger,
                )
                context_var.set(ctx)
                result = await entry.run(request, info, ctx)
                if not is_finalized(result):
                    self._instrument(ctx)
                response = coerce_response(request, result, ctx)
            except Exception as exc:
                response = await render_error(
                    HandlerError.wrap(exc),
                    request,
                    info,
                    ctx,
                    self._error_handler,
                    self._logger,
                    instrument=self._instrument,
                )
        finally:
            context_var.reset(token)

        if self._logger is not None:
            access_logger.info(
                "%s %s %d %dms %s",
                method,
                request.path,
                response.status,
                int((time.time() - start) * 1000),
                ip or "-",
            )
        return response

    def _resolve(self, method: str, path: str) -> RouteMatch:
        """Method router first, then ALL. Raises the routing errors."""
        if method not in SUPPORTED_METHODS:
            raise MethodNotImplemented(method)

        match = self._routers[method].match(path) or self._routers[ALL].match(path)
        if match is not None:
            return match

        if method == "HEAD":
            allowed = frozenset(m for m in _HEAD_PROBE_METHODS if self._routers[m].match(path))
            if allowed:
                raise MethodNotAllowed(allowed)
        raise NotFound()

    def _instrument(self, ctx: RequestContext) -> None:
        cfg = self.config
        if cfg.x_powered_by and "x-powered-by" not in ctx.headers:
            ctx.headers["X-Powered-By"] = cfg.powered_by
        if cfg.x_response_time and "x-response-time" not in ctx.headers:
            ctx.headers["X-Response-Time"] = f"{ctx.elapsed_ms}ms"

    # -- ASGI interface --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point."""
        if scope["type"] == "lifespan":
            await handle_lifespan(receive, send, startup=self.freeze)
            return
        if scope["type"] != "http":
            return
        await handle_request(scope, receive, send, dispatch=self.handle)

    # -- Freeze --

    def freeze(self) -> None:
        """Thread-safe freeze with double-check locking.

        Idempotent. Raises ``DuplicateHandlerError`` if a compiled chain
        repeats a non-duplicable handler.
        """
        if self._frozen:
            return
        with self._freeze_lock:
            if self._frozen:
                return
            self._freeze()

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _freeze(self) -> None:
        """Compile every route's full chain into a pipeline.

        MUST only be called while holding _freeze_lock.
        """
        cfg = self.config
        pipelines = [
            Pipeline(
                [
                    *self._app_middleware,
                    *self._route_middleware.get(entry.route, ()),
                    *entry.handlers,
                ],
                preexecute_sort=cfg.preexecute_sort,
                check_duplicates=cfg.check_duplicates,
            )
            for entry in self._entries
        ]
        # All or nothing: a failed compile leaves every entry unfrozen
        for entry, pipeline in zip(self._entries, pipelines, strict=True):
            entry.pipeline = pipeline
        self._frozen = True

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = (
                "Cannot modify the app after it has started serving requests. "
                "Register routes, middleware, and the error handler before the first request."
            )
            raise RuntimeError(msg)
