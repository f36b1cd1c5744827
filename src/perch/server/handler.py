"""ASGI handler — translates ASGI scope/messages to perch types.

The only component that touches raw ASGI directly. Converts scope dicts
to typed ``Request`` and ``ConnectionInfo`` objects, hands them to a
transport-agnostic dispatch callable, and sends the result back through
ASGI ``send()``.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeAlias

from perch._internal.asgi import Receive, Scope, Send
from perch.http.connection import ConnectionInfo
from perch.http.request import Request
from perch.http.response import AnyResponse
from perch.server.sender import send_any

logger = logging.getLogger("perch.server")

Dispatch: TypeAlias = Callable[[Request, ConnectionInfo], Awaitable[AnyResponse]]


async def handle_request(scope: Scope, receive: Receive, send: Send, *, dispatch: Dispatch) -> None:
    """Process a single HTTP request."""
    if scope["type"] != "http":
        return

    request = Request.from_asgi(scope, receive)
    info = ConnectionInfo.from_asgi(scope)
    response = await dispatch(request, info)
    await send_any(response, send, head=request.method == "HEAD")


async def handle_lifespan(receive: Receive, send: Send, *, startup: Callable[[], Any]) -> None:
    """Run the ASGI lifespan protocol.

    *startup* runs on ``lifespan.startup``; a failure is reported back
    to the server as ``lifespan.startup.failed``.
    """
    while True:
        message = await receive()
        msg_type = message["type"]

        if msg_type == "lifespan.startup":
            try:
                startup()
            except Exception as exc:
                logger.exception("Startup failed")
                await send({"type": "lifespan.startup.failed", "message": str(exc)})
                return
            await send({"type": "lifespan.startup.complete"})

        elif msg_type == "lifespan.shutdown":
            await send({"type": "lifespan.shutdown.complete"})
            return
