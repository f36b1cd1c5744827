"""Fixed redirect middleware."""

from urllib.parse import urljoin

from perch._internal.types import Handler
from perch.context import RequestContext
from perch.http.connection import ConnectionInfo
from perch.http.request import Request
from perch.http.response import Redirect

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


def redirect(url: str, status: int = 302) -> Handler:
    """Redirect every request reaching this middleware to *url*.

    Relative URLs are resolved against the request path::

        app.get("/old", redirect("/new", 301))
        app.get("/docs/v1", redirect("../v2"))   # -> /v2
    """
    if status not in REDIRECT_STATUSES:
        msg = f"Redirect status must be one of {sorted(REDIRECT_STATUSES)}, got {status!r}"
        raise ValueError(msg)

    def redirect_middleware(request: Request, info: ConnectionInfo, ctx: RequestContext) -> Redirect:
        return Redirect(urljoin(request.path, url), status=status)

    return redirect_middleware
