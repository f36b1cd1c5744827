"""Mount composition — several apps behind one ASGI callable.

Each app keeps its own middleware stack and error handler; the composer
only picks which app answers. Resolution for a request path:

1. an app mounted at exactly that path;
2. otherwise strip path segments from the right (``/api/users/1`` ->
   ``/api/users`` -> ``/api`` -> ``/``) and take the first mounted app;
3. otherwise the not-found responder.

Only whole segments are stripped, so ``/apix`` never reaches ``/api``.

Usage::

    home = App()
    api = App("/api")
    admin = App("/admin", [require_admin])

    application = compose([home, api, admin])
"""

import logging
from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any, TypeAlias

from perch._internal.asgi import Receive, Scope, Send
from perch._internal.invoke import invoke
from perch.app import App
from perch.http.connection import ConnectionInfo
from perch.http.request import Request
from perch.http.response import CONTENT_TYPE_TEXT, AnyResponse, Response, StreamingResponse
from perch.server.handler import handle_lifespan, handle_request

logger = logging.getLogger("perch.server")

# (request, info) -> response, sync or async
NotFoundResponder: TypeAlias = Callable[[Request, ConnectionInfo], Any]


def default_not_found(request: Request, info: ConnectionInfo) -> Response:
    return Response("Not Found", status=404, content_type=CONTENT_TYPE_TEXT)


class Composer:
    """A mount table of apps, itself an ASGI app.

    The table is built once; when two apps share a mount path the later
    one wins. It is read-only afterwards.
    """

    __slots__ = ("_mounts", "_not_found")

    def __init__(self, apps: Iterable[App], not_found: NotFoundResponder | None = None) -> None:
        mounts: dict[str, App] = {}
        for app in apps:
            key = app.mount_path or "/"
            if key in mounts:
                logger.debug("mount path %s registered twice; the later app wins", key)
            mounts[key] = app
        self._mounts: Mapping[str, App] = MappingProxyType(mounts)
        self._not_found: NotFoundResponder = not_found or default_not_found

    @property
    def mounts(self) -> Mapping[str, App]:
        return self._mounts

    def resolve(self, path: str) -> App | None:
        """The app responsible for *path*, or ``None``."""
        app = self._mounts.get(path)
        if app is not None:
            return app
        while path:
            cut = path.rfind("/")
            path = path[:cut] if cut >= 0 else ""
            app = self._mounts.get(path or "/")
            if app is not None:
                return app
        return None

    async def handle(self, request: Request, info: ConnectionInfo) -> AnyResponse:
        """Transport-agnostic entry point."""
        app = self.resolve(request.path)
        if app is not None:
            return await app.handle(request, info)
        response = await invoke(self._not_found, request, info)
        if not isinstance(response, Response | StreamingResponse):
            logger.error("not_found returned %s instead of a Response", type(response).__name__)
            return default_not_found(request, info)
        return response

    def freeze(self) -> None:
        for app in self._mounts.values():
            app.freeze()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point."""
        if scope["type"] == "lifespan":
            await handle_lifespan(receive, send, startup=self.freeze)
            return
        if scope["type"] != "http":
            return
        await handle_request(scope, receive, send, dispatch=self.handle)


def compose(apps: Iterable[App], not_found: NotFoundResponder | None = None) -> Composer:
    """Compose *apps* into one ASGI app. See ``Composer``."""
    return Composer(apps, not_found)
