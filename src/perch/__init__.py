"""Perch — a small ASGI request-dispatch framework.

Routes, a short-circuiting middleware pipeline, response coercion, and
mount composition. Handlers take ``(request, info, ctx)`` and return
whatever is convenient: a string, a dict, ``None``, or a ``Response``.

Basic usage::

    from perch import App

    app = App()
    app.get("/users/[id]", lambda request, info, ctx: {"id": ctx.params["id"]})

Several apps behind one ASGI callable::

    from perch import App, compose

    application = compose([App(), App("/api")])
"""

__version__ = "0.1.0"
__all__ = [
    "App",
    "AppConfig",
    "BracketRouter",
    "ConfigurationError",
    "ConnectionInfo",
    "HTTPError",
    "MethodNotAllowed",
    "NotFound",
    "Order",
    "PerchError",
    "RateLimitConfig",
    "Redirect",
    "Request",
    "RequestContext",
    "Response",
    "StreamingResponse",
    "TokenBucket",
    "TooManyRequests",
    "compose",
    "duplicable",
    "get_context",
    "order",
    "rate_limit",
    "redirect",
    "trailing_slash",
    "with_timeout",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import perch`` fast while providing a clean top-level API.
    """
    if name == "App":
        from perch.app import App

        return App

    if name == "compose":
        from perch.compose import compose

        return compose

    if name in ("AppConfig", "RateLimitConfig"):
        from perch import config as _config

        return getattr(_config, name)

    if name == "Request":
        from perch.http.request import Request

        return Request

    if name == "ConnectionInfo":
        from perch.http.connection import ConnectionInfo

        return ConnectionInfo

    if name in ("Response", "Redirect", "StreamingResponse"):
        from perch.http import response as _resp

        return getattr(_resp, name)

    if name in ("RequestContext", "get_context"):
        from perch import context as _ctx

        return getattr(_ctx, name)

    if name == "BracketRouter":
        from perch.routing.router import BracketRouter

        return BracketRouter

    if name in ("Order", "duplicable", "order", "rate_limit", "redirect", "trailing_slash"):
        from perch import middleware as _mw

        return getattr(_mw, name)

    if name == "TokenBucket":
        from perch.token_bucket import TokenBucket

        return TokenBucket

    if name == "with_timeout":
        from perch.timeout import with_timeout

        return with_timeout

    if name in ("ConfigurationError", "HTTPError", "MethodNotAllowed", "NotFound", "PerchError", "TooManyRequests"):
        from perch import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
