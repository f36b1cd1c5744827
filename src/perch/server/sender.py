"""ASGI response sending — translates perch responses to ASGI messages.

Handles both standard single-body responses and chunked streaming responses.
"""

import logging
from collections.abc import AsyncIterator

from perch._internal.asgi import Send
from perch.http.response import AnyResponse, Response, StreamingResponse

logger = logging.getLogger("perch.server")


def _body_allowed(status: int) -> bool:
    """Whether an HTTP status code permits a response body."""
    # RFC: 1xx, 204, and 304 responses do not include a message body.
    return not (100 <= status < 200 or status in {204, 304})


def _encode_headers(
    content_type: str | None,
    headers: tuple[tuple[str, str], ...],
) -> list[tuple[bytes, bytes]]:
    raw_headers: list[tuple[bytes, bytes]] = []
    if content_type is not None:
        raw_headers.append((b"content-type", content_type.encode("latin-1")))
    for name, value in headers:
        lower = name.lower()
        if lower == "content-length" or (lower == "content-type" and content_type is not None):
            continue
        raw_headers.append((lower.encode("latin-1"), value.encode("latin-1")))
    return raw_headers


async def send_response(response: Response, send: Send, *, head: bool = False) -> None:
    """Translate a Response into ASGI send() calls.

    For ``HEAD`` the body is withheld.
    """
    allowed = _body_allowed(response.status)
    raw_headers = _encode_headers(response.content_type if allowed else None, response.headers)

    body = response.body_bytes if allowed else b""
    raw_headers.append((b"content-length", str(len(body)).encode("latin-1")))

    await send(
        {
            "type": "http.response.start",
            "status": response.status,
            "headers": raw_headers,
        }
    )
    await send(
        {
            "type": "http.response.body",
            "body": b"" if head else body,
        }
    )


async def send_streaming_response(response: StreamingResponse, send: Send, *, head: bool = False) -> None:
    """Send a streaming response via chunked transfer encoding.

    Sends headers immediately, then each chunk as an ASGI body
    message with ``more_body=True``. Closes with an empty body.
    A mid-stream error is logged and the stream is closed.
    """
    raw_headers = _encode_headers(response.content_type, response.headers)
    raw_headers.append((b"transfer-encoding", b"chunked"))

    # No content-length: chunked transfer encoding signals body boundaries
    await send(
        {
            "type": "http.response.start",
            "status": response.status,
            "headers": raw_headers,
        }
    )

    def _encode_chunk(chunk: str | bytes) -> bytes:
        return chunk.encode("utf-8") if isinstance(chunk, str) else chunk

    if not head:
        try:
            if isinstance(response.chunks, AsyncIterator):
                async for chunk in response.chunks:
                    if chunk:
                        await send(
                            {
                                "type": "http.response.body",
                                "body": _encode_chunk(chunk),
                                "more_body": True,
                            }
                        )
            else:
                for chunk in response.chunks:
                    if chunk:
                        await send(
                            {
                                "type": "http.response.body",
                                "body": _encode_chunk(chunk),
                                "more_body": True,
                            }
                        )
        except Exception:
            # Headers are already sent; the status can no longer change.
            logger.exception("Streaming response failed mid-stream")

    # Close the stream
    await send(
        {
            "type": "http.response.body",
            "body": b"",
            "more_body": False,
        }
    )


async def send_any(response: AnyResponse, send: Send, *, head: bool = False) -> None:
    """Send either response type."""
    if isinstance(response, StreamingResponse):
        await send_streaming_response(response, send, head=head)
    else:
        await send_response(response, send, head=head)
