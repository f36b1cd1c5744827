"""The router protocol.

A router is anything with this shape — no base class required::

    class MyRouter:
        def register(self, pattern, callback): ...
        def match(self, path): ...
        def validate(self, pattern): ...
        def patterns(self): ...

``callback`` receives the matched params and its return value is
carried back in ``RouteMatch.value``. ``validate`` raises
``RouteRegistrationError`` for a pattern the router cannot use; the
dispatcher calls it before ``register`` so a malformed pattern is
reported and skipped instead of crashing the app.
"""

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable, TypeAlias

from perch.errors import RouteRegistrationError
from perch.routing.route import RouteMatch

MatchCallback: TypeAlias = Callable[[dict[str, str]], Any]


@runtime_checkable
class Router(Protocol):
    """Protocol for perch routers."""

    def register(self, pattern: str, callback: MatchCallback) -> None: ...

    def match(self, path: str) -> RouteMatch | None: ...

    def validate(self, pattern: str) -> None: ...

    def patterns(self) -> list[str]: ...


RouterFactory: TypeAlias = Callable[[], Router]


def require_string(pattern: object) -> str:
    """Reject non-string patterns with a registration error."""
    if not isinstance(pattern, str):
        msg = f"Route must be a string, got {type(pattern).__name__}"
        raise RouteRegistrationError(msg)
    return pattern


def require_leading_slash(pattern: object) -> str:
    """Request paths always start with ``/`` — so must route patterns."""
    pattern = require_string(pattern)
    if not pattern.startswith("/"):
        msg = f"Route must start with a forward slash: {pattern!r}"
        raise RouteRegistrationError(msg)
    return pattern
