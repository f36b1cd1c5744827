"""Routing — pluggable path matchers behind one narrow protocol.

Routes are registered during setup; the dispatcher keeps one router per
HTTP method and only ever calls ``register``, ``match`` and ``validate``.
"""

from perch.routing.protocol import Router, RouterFactory
from perch.routing.route import PathSegment, RouteMatch, SegmentKind
from perch.routing.router import BracketRouter, parse_path, specificity_key
from perch.routing.strategies import FixedRouter, RegexRouter, TemplateRouter

__all__ = [
    "BracketRouter",
    "FixedRouter",
    "PathSegment",
    "RegexRouter",
    "RouteMatch",
    "Router",
    "RouterFactory",
    "SegmentKind",
    "TemplateRouter",
    "parse_path",
    "specificity_key",
]
