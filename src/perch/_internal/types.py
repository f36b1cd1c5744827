"""Shared type aliases used across perch modules."""

from collections.abc import Callable
from typing import Any, TypeAlias

# Handler or middleware: ``(request, info, ctx) -> value | None``, sync or async
Handler: TypeAlias = Callable[..., Any]

# Error handler: same signature; reads ``ctx.error``
ErrorHandler: TypeAlias = Callable[..., Any]

# Route-registration argument: a handler or a list of handlers
HandlerArg: TypeAlias = Handler | list[Handler] | tuple[Handler, ...]
