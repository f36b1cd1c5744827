"""Trailing-slash normalization.

Redirects (301) to the canonical form of the path, either with the
trailing slash (``add=True``: ``/foo/bar`` -> ``/foo/bar/``) or
without it (``add=False``: ``/foo/bar/`` -> ``/foo/bar``). The query
string is preserved.

Only ``GET`` and ``HEAD`` are redirected. The root path and paths whose
last segment looks like a file (contains a dot) are left alone.
"""

import logging

from perch._internal.types import Handler
from perch.context import RequestContext
from perch.http.connection import ConnectionInfo
from perch.http.request import Request
from perch.http.response import Redirect
from perch.middleware.pipeline import Order, order

logger = logging.getLogger("perch.app")


def trailing_slash(add: bool = True) -> Handler:
    """Create the middleware. Always ordered first in its chain."""

    def trailing_slash_middleware(request: Request, info: ConnectionInfo, ctx: RequestContext) -> Redirect | None:
        path = request.path
        if request.method not in ("GET", "HEAD") or path == "/":
            return None
        if "." in path.split("/")[-1]:
            return None

        if add and not path.endswith("/"):
            target = path + "/"
        elif not add and path.endswith("/"):
            target = path[:-1]
        else:
            return None

        qs = request.query_string
        if qs:
            target = f"{target}?{qs.decode('latin-1')}"
        logger.debug("trailing slash: 301 %s -> %s", path, target)
        return Redirect(target, status=301)

    return order(trailing_slash_middleware, Order.ALWAYS_FIRST)
