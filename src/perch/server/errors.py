"""Error handling for perch requests.

Every per-request failure arrives here as an ``HTTPError`` (raised
exceptions and returned exception values are normalized first with
``HandlerError.wrap``). The app's custom error handler gets the first
try; whenever it fails or produces nothing usable the default formatter
answers, so a request always ends with a response.
"""

import logging
from collections.abc import Callable

from perch._internal.invoke import invoke
from perch._internal.types import ErrorHandler
from perch.context import RequestContext
from perch.errors import HTTPError
from perch.http.connection import ConnectionInfo
from perch.http.request import Request
from perch.http.response import CONTENT_TYPE_TEXT, AnyResponse, Response
from perch.server.coerce import coerce_response, is_finalized

fallback_logger = logging.getLogger("perch.server")


def default_error_response(error: HTTPError, ctx: RequestContext) -> Response:
    """Plain-text response: body is the error message, status the error's.

    Headers accumulated on the context survive, except ``content-type``.
    """
    if "content-type" in ctx.headers:
        del ctx.headers["content-type"]
    response = Response(
        body=error.message,
        status=error.status or 500,
        content_type=CONTENT_TYPE_TEXT,
        headers=error.headers,
    )
    extra = [(k, v) for k, v in ctx.headers.items_list() if not response.has_header(k)]
    return response.with_headers(extra) if extra else response


def log_error(error: HTTPError, request: Request, logger: logging.Logger | None) -> None:
    """Log every error except 404 at ERROR, with the original traceback."""
    if logger is None or error.status == 404:
        return
    cause = error.__cause__
    logger.error(
        "%d %s %s: %s",
        error.status,
        request.method,
        request.path,
        error.detail,
        exc_info=(type(cause), cause, cause.__traceback__) if cause is not None else None,
    )


async def render_error(
    error: HTTPError,
    request: Request,
    info: ConnectionInfo,
    ctx: RequestContext,
    handler: ErrorHandler | None,
    logger: logging.Logger | None = None,
    *,
    instrument: Callable[[RequestContext], None] | None = None,
) -> AnyResponse:
    """Produce the response for *error*. Never raises.

    A custom *handler* result is used when it is a response; any other
    non-``None`` value is coerced with the error's status. ``None``, an
    exception value, a raised exception, or a failed coercion fall back
    to ``default_error_response``. *instrument* runs on the context
    before any response is generated from it.
    """
    ctx.error = error
    ctx.status = error.status
    log_error(error, request, logger)

    if handler is not None:
        try:
            result = await invoke(handler, request, info, ctx)
            if is_finalized(result):
                return coerce_response(request, result, ctx)
            if result is not None and not isinstance(result, BaseException):
                if instrument is not None:
                    instrument(ctx)
                return coerce_response(request, result, ctx)
        except Exception:
            (logger or fallback_logger).exception(
                "Error handler failed for %s %s; using the default error response",
                request.method,
                request.path,
            )

    if instrument is not None:
        instrument(ctx)
    return default_error_response(error, ctx)
