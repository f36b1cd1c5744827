"""PathSegment and RouteMatch frozen dataclasses."""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class SegmentKind(IntEnum):
    """Segment kinds, ordered from most to least specific."""

    STATIC = 0
    PARAM = 1
    WILDCARD = 2


@dataclass(frozen=True, slots=True)
class PathSegment:
    """A parsed segment of a route pattern.

    Static:    ``/users``  (kind=STATIC)
    Param:     ``/[id]``   (kind=PARAM, name="id")
    Wildcard:  ``/*``      (kind=WILDCARD, name="*"), last segment only
    """

    value: str
    kind: SegmentKind = SegmentKind.STATIC
    name: str | None = None

    @property
    def is_param(self) -> bool:
        return self.kind is SegmentKind.PARAM


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """Result of a successful match: the params and the callback's result."""

    pattern: str
    params: dict[str, str] = field(default_factory=dict)
    value: Any = None
