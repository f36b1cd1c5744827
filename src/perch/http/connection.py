"""Connection metadata handed to every handler as ``info``."""

from dataclasses import dataclass

from perch._internal.asgi import Scope


@dataclass(frozen=True, slots=True)
class ConnectionInfo:
    """Transport-level facts about one request's connection.

    ``client`` and ``server`` are ``(host, port)`` pairs when the
    transport provides them.
    """

    client: tuple[str, int] | None = None
    server: tuple[str, int] | None = None
    scheme: str = "http"

    @property
    def remote_addr(self) -> str | None:
        """The peer host, if known."""
        return self.client[0] if self.client else None

    @classmethod
    def from_asgi(cls, scope: Scope) -> "ConnectionInfo":
        client = scope.get("client")
        server = scope.get("server")
        return cls(
            client=tuple(client) if client else None,
            server=tuple(server) if server else None,
            scheme=scope.get("scheme", "http"),
        )
