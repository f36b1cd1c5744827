"""The middleware pipeline.

A chain of ``(request, info, ctx)`` handlers run strictly in sequence.
``None`` means "continue"; any other value (an exception *value*
included) ends the chain and becomes its result. Raised exceptions
propagate out of ``execute()`` untouched: converting them into a
response is the dispatcher's job.

Ordering:
    Every handler carries an ``Order``. Handlers marked with ``order()``
    keep their mark; unmarked ones get ``Order.MIDDLEWARE``, except the
    last one in the chain, which gets ``Order.HANDLER``. With
    pre-execute sorting enabled the chain is stable-sorted by that key,
    so handlers sharing an order keep their registration order.

Duplicates:
    The same handler object twice in one chain is rejected at
    construction, unless it was marked with ``duplicable()``.
"""

import enum
import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from perch._internal.invoke import invoke
from perch._internal.types import Handler
from perch.context import RequestContext
from perch.errors import DuplicateHandlerError, RouteRegistrationError
from perch.http.connection import ConnectionInfo
from perch.http.request import Request

_ORDER_ATTR = "_perch_order"
_DUPLICABLE_ATTR = "_perch_duplicable"


class Order(enum.Enum):
    """Execution position of a handler within its chain."""

    ALWAYS_FIRST = -math.inf
    MIDDLEWARE = 1000
    HANDLER = math.inf


class _Marked:
    """Callable proxy carrying marks for objects that reject attributes."""

    __slots__ = ("__wrapped__", _DUPLICABLE_ATTR, _ORDER_ATTR)

    def __init__(self, handler: Handler) -> None:
        self.__wrapped__ = handler

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self.__wrapped__(*args, **kwargs)

    def __repr__(self) -> str:
        return f"<marked {self.__wrapped__!r}>"


def _mark(handler: Handler, attr: str, value: Any) -> Handler:
    if not callable(handler):
        msg = f"Handler must be callable, got {type(handler).__name__}"
        raise TypeError(msg)
    try:
        setattr(handler, attr, value)
    except (AttributeError, TypeError):
        handler = _Marked(handler)
        setattr(handler, attr, value)
    return handler


def order(handler: Handler, position: Order) -> Handler:
    """Mark *handler* with an explicit chain position.

    Returns the handler (or a callable proxy when the object cannot
    carry attributes, e.g. a bound method). Use the return value::

        guard = order(check_maintenance, Order.ALWAYS_FIRST)
        app.use(guard)
    """
    if not isinstance(position, Order):
        msg = f"Expected an Order, got {position!r}"
        raise TypeError(msg)
    return _mark(handler, _ORDER_ATTR, position)


def ordered(position: Order):
    """Decorator form of ``order()``::

    @ordered(Order.ALWAYS_FIRST)
    def guard(request, info, ctx): ...
    """

    def decorator(handler: Handler) -> Handler:
        return order(handler, position)

    return decorator


def duplicable(handler: Handler) -> Handler:
    """Allow *handler* to appear more than once in the same chain.

    For handlers known to be idempotent, e.g. a header-setting helper
    shared by app-global and route middleware.
    """
    return _mark(handler, _DUPLICABLE_ATTR, True)


def is_duplicable(handler: Handler) -> bool:
    return getattr(handler, _DUPLICABLE_ATTR, False) is True


def get_order(handler: Handler) -> Order | None:
    """The explicit mark on *handler*, or ``None``."""
    value = getattr(handler, _ORDER_ATTR, None)
    return value if isinstance(value, Order) else None


def flatten_handlers(args: Iterable[Any]) -> list[Handler]:
    """Flatten handlers and lists/tuples of handlers into one list.

    Raises ``RouteRegistrationError`` for anything not callable.
    """
    out: list[Handler] = []
    for arg in args:
        if isinstance(arg, list | tuple):
            out.extend(flatten_handlers(arg))
        elif callable(arg):
            out.append(arg)
        else:
            msg = f"Handler must be callable, got {type(arg).__name__}"
            raise RouteRegistrationError(msg)
    return out


def ensure_unique(handlers: Iterable[Handler]) -> None:
    """Raise ``DuplicateHandlerError`` if a non-duplicable handler repeats."""
    seen: set[int] = set()
    for handler in handlers:
        if is_duplicable(handler):
            continue
        key = id(handler)
        if key in seen:
            name = getattr(handler, "__qualname__", None) or repr(handler)
            msg = (
                f"Handler {name} is registered more than once in the same chain. "
                "Mark it with duplicable() if that is intended."
            )
            raise DuplicateHandlerError(msg)
        seen.add(key)


@dataclass(frozen=True, slots=True)
class Step:
    """One handler and its resolved chain position."""

    handler: Handler
    order: Order


class Pipeline:
    """A compiled, immutable handler chain.

    Usage::

        pipeline = Pipeline([auth, load_user, show_user])
        result = await pipeline.execute(request, info, ctx)
    """

    __slots__ = ("_steps",)

    def __init__(
        self,
        handlers: Iterable[Handler],
        *,
        preexecute_sort: bool = True,
        check_duplicates: bool = True,
    ) -> None:
        handlers = list(handlers)
        if check_duplicates:
            ensure_unique(handlers)

        last = len(handlers) - 1
        steps = [
            Step(h, get_order(h) or (Order.HANDLER if i == last else Order.MIDDLEWARE))
            for i, h in enumerate(handlers)
        ]
        if preexecute_sort:
            # list.sort is stable: equal orders keep registration order
            steps.sort(key=lambda step: step.order.value)
        self._steps: tuple[Step, ...] = tuple(steps)

    @property
    def steps(self) -> tuple[Step, ...]:
        return self._steps

    @property
    def handlers(self) -> tuple[Handler, ...]:
        """Handlers in execution order."""
        return tuple(step.handler for step in self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    async def execute(self, request: Request, info: ConnectionInfo, ctx: RequestContext) -> Any:
        """Run the chain; return the first non-``None`` result, or ``None``."""
        for step in self._steps:
            result = await invoke(step.handler, request, info, ctx)
            if result is not None:
                return result
        return None
