"""Response coercion — maps pipeline results to responses.

A pipeline result is first classified into exactly one ``Outcome``:

    Empty           ``None``
    Data            dict, list, tuple, dataclass, or an object with
                    ``to_json()`` / ``__json__()``
    Text            anything else (``bytes`` kept as-is, the rest ``str()``)
    ErrorValue      an exception instance that was *returned*, not raised
    FinalResponse   ``Response``, ``StreamingResponse`` or ``Redirect``

and then converted with one ``match``. Coercing an already finalized
``Response`` again is a no-op.
"""

import dataclasses
import json
from dataclasses import dataclass
from typing import Any, TypeAlias

from perch.context import RequestContext
from perch.errors import HandlerError
from perch.http.request import Request
from perch.http.response import (
    CONTENT_TYPE_HTML,
    CONTENT_TYPE_JSON,
    AnyResponse,
    Redirect,
    Response,
    StreamingResponse,
)

CONTENT_TYPE_BYTES = "application/octet-stream"


@dataclass(frozen=True, slots=True)
class Empty:
    pass


@dataclass(frozen=True, slots=True)
class Data:
    value: Any


@dataclass(frozen=True, slots=True)
class Text:
    value: str | bytes


@dataclass(frozen=True, slots=True)
class ErrorValue:
    error: BaseException


@dataclass(frozen=True, slots=True)
class FinalResponse:
    response: AnyResponse


Outcome: TypeAlias = Empty | Data | Text | ErrorValue | FinalResponse


def _json_capable(value: Any) -> bool:
    return callable(getattr(value, "to_json", None)) or callable(getattr(value, "__json__", None))


def classify(value: Any) -> Outcome:
    """Classify a pipeline result."""
    match value:
        case None:
            return Empty()
        case Response() | StreamingResponse():
            return FinalResponse(value)
        case Redirect():
            return FinalResponse(
                Response(body="", status=value.status, content_type=None)
                .with_header("Location", value.url)
                .with_headers(value.headers)
            )
        case BaseException():
            return ErrorValue(value)
        case str() | bytes():
            return Text(value)
        case dict() | list() | tuple():
            return Data(value)
        case _ if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return Data(value)
        case _ if _json_capable(value):
            return Data(value)
        case _:
            return Text(str(value))


def is_finalized(value: Any) -> bool:
    """Whether *value* is already a transport response."""
    return isinstance(value, Response | StreamingResponse | Redirect)


def _json_default(value: Any) -> Any:
    to_json = getattr(value, "to_json", None) or getattr(value, "__json__", None)
    if callable(to_json):
        return to_json()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, set | frozenset):
        return list(value)
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)


def dump_json(value: Any) -> str:
    """Serialize a ``Data`` payload."""
    return json.dumps(value, default=_json_default)


def _context_headers(ctx: RequestContext) -> tuple[tuple[str, str], ...]:
    return tuple((k, v) for k, v in ctx.headers.items_list() if k != "content-type")


def _merge_context_headers(response: Response, ctx: RequestContext) -> Response:
    """Add context headers the response does not already carry."""
    additions = [(k, v) for k, v in _context_headers(ctx) if not response.has_header(k)]
    content_type = ctx.headers.get("content-type")
    if response.content_type is None and content_type is not None and response.status not in (204, 304):
        response = response.with_content_type(content_type)
    if not additions:
        return response
    return response.with_headers(additions)


def coerce_response(request: Request, value: Any, ctx: RequestContext) -> AnyResponse:
    """Convert a pipeline result into a response.

    ``Data`` and ``Text`` use ``ctx.status`` and the context
    ``content-type`` when set. Every outcome except ``StreamingResponse``
    carries the context headers. An ``ErrorValue`` is raised as
    ``HandlerError`` so the caller's error path handles it.

    For ``HEAD`` requests the body of a generated response is dropped.
    """
    head = request.method == "HEAD"
    match classify(value):
        case FinalResponse(response=StreamingResponse() as streaming):
            return streaming
        case FinalResponse(response=Response() as final):
            return _merge_context_headers(final, ctx)
        case ErrorValue(error=error):
            raise HandlerError.wrap(error)
        case Empty():
            return Response(body=b"", status=204, content_type=None, headers=_context_headers(ctx))
        case Data(value=data):
            body = dump_json(data)
            content_type = ctx.headers.get("content-type") or CONTENT_TYPE_JSON
        case Text(value=bytes() as raw):
            body = raw
            content_type = ctx.headers.get("content-type") or CONTENT_TYPE_BYTES
        case Text(value=text):
            body = text
            content_type = ctx.headers.get("content-type") or CONTENT_TYPE_HTML

    return Response(
        body=b"" if head else body,
        status=ctx.status,
        content_type=content_type,
        headers=_context_headers(ctx),
    )
