"""Middleware — plain ``(request, info, ctx)`` callables.

A middleware is any handler that returns ``None`` to continue the chain.
There is no distinction from a route handler beyond position.

Built-in middleware:
    rate_limit -- Per-client token-bucket rate limiting
    trailing_slash -- 301 to the canonical trailing-slash form
    redirect -- Fixed redirect, relative URLs resolved against the path

Chain control:
    Order, order, ordered -- Explicit position within a chain
    duplicable -- Allow a handler to repeat in one chain
"""

from perch.middleware.pipeline import Order, Pipeline, duplicable, order, ordered
from perch.middleware.rate_limit import RateLimiter, rate_limit
from perch.middleware.redirect import redirect
from perch.middleware.trailing_slash import trailing_slash

__all__ = [
    "Order",
    "Pipeline",
    "RateLimiter",
    "duplicable",
    "order",
    "ordered",
    "rate_limit",
    "redirect",
    "trailing_slash",
]
