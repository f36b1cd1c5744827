"""Alternative routing strategies.

Each is a drop-in replacement for ``BracketRouter`` via
``App(router_factory=...)``. Unlike the bracket router they match in
registration order: the first registered pattern that matches wins.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass

from perch.errors import RouteRegistrationError
from perch.routing.protocol import MatchCallback, require_leading_slash, require_string
from perch.routing.route import RouteMatch

_TEMPLATE_PARAM = re.compile(r"^:([A-Za-z_][A-Za-z0-9_]*)$")


@dataclass(frozen=True, slots=True)
class _CompiledEntry:
    pattern: str
    regex: re.Pattern[str]
    callback: MatchCallback


class _OrderedRoutes:
    """Compiled patterns searched in registration order."""

    __slots__ = ("_compile", "_entries")

    def __init__(self, compile_pattern: Callable[[str], re.Pattern[str]]) -> None:
        self._compile = compile_pattern
        self._entries: list[_CompiledEntry] = []

    def validate(self, pattern: str) -> None:
        self._compile(pattern)

    def add(self, pattern: str, callback: MatchCallback) -> None:
        self._entries.append(_CompiledEntry(pattern, self._compile(pattern), callback))

    def find(self, path: str) -> tuple[_CompiledEntry, dict[str, str]] | None:
        """First entry whose regex matches *path*, with its groups (``None`` -> ``""``)."""
        for entry in self._entries:
            m = entry.regex.search(path)
            if m is not None:
                return entry, {k: v if v is not None else "" for k, v in m.groupdict().items()}
        return None

    def patterns(self) -> list[str]:
        return [entry.pattern for entry in self._entries]


def _compile_regex(pattern: str) -> re.Pattern[str]:
    pattern = require_string(pattern)
    try:
        return re.compile(pattern)
    except re.error as exc:
        msg = f"Invalid regular expression {pattern!r}: {exc}"
        raise RouteRegistrationError(msg) from exc


class RegexRouter:
    """Patterns are regular expressions searched against the path.

    Named groups become params. Anchor patterns yourself
    (``^/users/(?P<id>\\d+)$``); an unanchored pattern matches anywhere.
    """

    __slots__ = ("_routes",)

    def __init__(self) -> None:
        self._routes = _OrderedRoutes(_compile_regex)

    def validate(self, pattern: str) -> None:
        self._routes.validate(pattern)

    def register(self, pattern: str, callback: MatchCallback) -> None:
        self._routes.add(pattern, callback)

    def match(self, path: str) -> RouteMatch | None:
        found = self._routes.find(path)
        if found is None:
            return None
        entry, params = found
        return RouteMatch(entry.pattern, params, entry.callback(params))

    def patterns(self) -> list[str]:
        return self._routes.patterns()


class FixedRouter:
    """Exact string equality. No params."""

    __slots__ = ("_routes",)

    def __init__(self) -> None:
        self._routes: dict[str, MatchCallback] = {}

    def validate(self, pattern: str) -> None:
        require_leading_slash(pattern)

    def register(self, pattern: str, callback: MatchCallback) -> None:
        self.validate(pattern)
        # keep the first registration for identical patterns
        self._routes.setdefault(pattern, callback)

    def match(self, path: str) -> RouteMatch | None:
        callback = self._routes.get(path)
        if callback is None:
            return None
        return RouteMatch(path, {}, callback({}))

    def patterns(self) -> list[str]:
        return list(self._routes)


class TemplateRouter:
    """``:name`` segments and a trailing ``*``.

    ``/users/:id`` binds ``params["id"]``; ``/files/*`` binds the
    remainder to ``params["*"]``. Trailing slashes are optional.
    """

    __slots__ = ("_routes",)

    def __init__(self) -> None:
        self._routes = _OrderedRoutes(_compile_template)

    def validate(self, pattern: str) -> None:
        self._routes.validate(pattern)

    def register(self, pattern: str, callback: MatchCallback) -> None:
        self._routes.add(pattern, callback)

    def match(self, path: str) -> RouteMatch | None:
        found = self._routes.find(path)
        if found is None:
            return None
        entry, params = found
        if "__wildcard" in params:
            params["*"] = params.pop("__wildcard").rstrip("/")
        return RouteMatch(entry.pattern, params, entry.callback(params))

    def patterns(self) -> list[str]:
        return self._routes.patterns()


def _compile_template(pattern: str) -> re.Pattern[str]:
    pattern = require_leading_slash(pattern)
    parts = [p for p in pattern.split("/") if p]
    pieces: list[str] = []
    names: set[str] = set()
    wildcard = False
    for i, part in enumerate(parts):
        if part == "*":
            if i != len(parts) - 1:
                msg = f"Wildcard '*' must be the last segment: {pattern!r}"
                raise RouteRegistrationError(msg)
            wildcard = True
            continue
        if part.startswith(":"):
            m = _TEMPLATE_PARAM.match(part)
            if m is None:
                msg = f"Invalid segment name {part!r} in route {pattern!r}"
                raise RouteRegistrationError(msg)
            name = m.group(1)
            if name in names:
                msg = f"Duplicate segment name {name!r} in route {pattern!r}"
                raise RouteRegistrationError(msg)
            names.add(name)
            pieces.append(f"/(?P<{name}>[^/]+)")
        else:
            pieces.append("/" + re.escape(part))
    body = "".join(pieces)
    if wildcard:
        # the catch-all group is renamed to "*" in match()
        return re.compile(f"^{body}(?:/(?P<__wildcard>.*))?/?$")
    return re.compile(f"^{body}/?$")
