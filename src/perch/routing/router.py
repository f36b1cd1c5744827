"""Bracket-segment router with specificity ordering.

The default router. Patterns use ``[name]`` for named segments and a
trailing ``*`` for a catch-all::

    /users              static
    /users/[id]         binds params["id"]
    /static/*           binds the remainder to params["*"]

Candidates are kept sorted by specificity, so registration order never
decides which of two overlapping patterns wins:

1. patterns with more segments before patterns with fewer (a trailing
   ``*`` does not count);
2. at the first differing position, static beats ``[name]`` beats ``*``;
3. remaining ties by the full pattern string.

Matching is first-match-wins over that order. Identical patterns keep
their registration order, so the first registration wins.
"""

import bisect
import re
from dataclasses import dataclass
from typing import TypeAlias

from perch.errors import RouteRegistrationError
from perch.routing.protocol import MatchCallback, require_string
from perch.routing.route import PathSegment, RouteMatch, SegmentKind

_PARAM_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")

SpecificityKey: TypeAlias = tuple[int, tuple[int, ...], str]


def parse_path(pattern: str) -> tuple[PathSegment, ...]:
    """Parse a bracket pattern into segments.

    Examples::

        "/users"        -> (PathSegment("users"),)
        "/users/[id]"   -> (PathSegment("users"), PathSegment("[id]", PARAM, "id"))
        "/files/*"      -> (PathSegment("files"), PathSegment("*", WILDCARD, "*"))
        "/" and ""      -> ()

    Raises ``RouteRegistrationError`` on malformed input.
    """
    pattern = require_string(pattern)
    if pattern not in ("", "*") and not pattern.startswith("/"):
        msg = f"Route must be either empty, '*', or start with a forward slash: {pattern!r}"
        raise RouteRegistrationError(msg)

    parts = [p for p in pattern.split("/") if p]
    segments: list[PathSegment] = []
    seen: set[str] = set()

    for i, part in enumerate(parts):
        if part == "*":
            if i != len(parts) - 1:
                msg = f"Wildcard '*' must be the last segment: {pattern!r}"
                raise RouteRegistrationError(msg)
            segments.append(PathSegment(part, SegmentKind.WILDCARD, "*"))
        elif part.startswith("[") and part.endswith("]"):
            name = part[1:-1]
            if not _PARAM_NAME.match(name):
                msg = f"Invalid segment name {name!r} in route {pattern!r}"
                raise RouteRegistrationError(msg)
            if name in seen:
                msg = f"Duplicate segment name {name!r} in route {pattern!r}"
                raise RouteRegistrationError(msg)
            seen.add(name)
            segments.append(PathSegment(part, SegmentKind.PARAM, name))
        elif "[" in part or "]" in part or "*" in part:
            msg = f"Malformed segment {part!r} in route {pattern!r} (use /[name] or a trailing /*)"
            raise RouteRegistrationError(msg)
        else:
            segments.append(PathSegment(part))

    return tuple(segments)


def specificity_key(pattern: str) -> SpecificityKey:
    """Sort key placing the most specific pattern first.

    Usable on its own by route loaders::

        sorted(["/users/[id]", "/users/admin", "/api", "/api/v2/users"], key=specificity_key)
        # ["/api/v2/users", "/users/admin", "/users/[id]", "/api"]
    """
    return _key(parse_path(pattern), pattern)


def _key(segments: tuple[PathSegment, ...], pattern: str) -> SpecificityKey:
    # a trailing wildcard adds no depth: "/files" ranks before "/files/*"
    depth = sum(1 for s in segments if s.kind is not SegmentKind.WILDCARD)
    return (-depth, tuple(int(s.kind) for s in segments), pattern)


def match_segments(segments: tuple[PathSegment, ...], parts: list[str]) -> dict[str, str] | None:
    """Match split path *parts* against parsed *segments*."""
    params: dict[str, str] = {}
    for i, seg in enumerate(segments):
        if seg.kind is SegmentKind.WILDCARD:
            params["*"] = "/".join(parts[i:])
            return params
        if i >= len(parts):
            return None
        if seg.kind is SegmentKind.PARAM:
            params[seg.name or ""] = parts[i]
        elif seg.value != parts[i]:
            return None
    if len(parts) != len(segments):
        return None
    return params


@dataclass(frozen=True, slots=True)
class _Entry:
    key: SpecificityKey
    pattern: str
    segments: tuple[PathSegment, ...]
    callback: MatchCallback


class BracketRouter:
    """Specificity-ordered router for ``[name]`` patterns.

    Usage::

        router = BracketRouter()
        router.register("/users/[id]", lambda params: "show")
        router.register("/users/admin", lambda params: "admin")
        router.match("/users/admin").value  # "admin"
        router.match("/users/42").params    # {"id": "42"}

    Routes may be added until traffic starts; concurrent registration
    during live traffic is not supported.
    """

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: list[_Entry] = []

    def validate(self, pattern: str) -> None:
        """Raise ``RouteRegistrationError`` if *pattern* is unusable."""
        parse_path(pattern)

    def register(self, pattern: str, callback: MatchCallback) -> None:
        """Add *pattern*, keeping candidates in specificity order."""
        segments = parse_path(pattern)
        key = _key(segments, pattern)
        # insort_right keeps equal keys in registration order
        bisect.insort_right(
            self._entries,
            _Entry(key, pattern, segments, callback),
            key=lambda entry: entry.key,
        )

    def match(self, path: str) -> RouteMatch | None:
        """Return the first specificity-ordered match for *path*, or ``None``."""
        parts = [p for p in path.split("/") if p]
        for entry in self._entries:
            params = match_segments(entry.segments, parts)
            if params is not None:
                return RouteMatch(entry.pattern, params, entry.callback(params))
        return None

    def patterns(self) -> list[str]:
        """Registered patterns, in match order."""
        return [entry.pattern for entry in self._entries]
