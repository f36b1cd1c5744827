"""Tests for perch.middleware.pipeline — ordering, duplicates, short-circuit."""

import pytest

from perch.context import RequestContext
from perch.errors import DuplicateHandlerError, RouteRegistrationError
from perch.http.connection import ConnectionInfo
from perch.http.request import Request
from perch.middleware.pipeline import (
    Order,
    Pipeline,
    duplicable,
    flatten_handlers,
    get_order,
    order,
    ordered,
)

REQUEST = Request(method="GET", path="/")
INFO = ConnectionInfo()


def _recorder(log: list[str], name: str, result: object = None):
    def handler(request, info, ctx):
        log.append(name)
        return result

    handler.__qualname__ = name
    return handler


class TestExecute:
    async def test_runs_all_when_every_handler_continues(self) -> None:
        log: list[str] = []
        pipeline = Pipeline([_recorder(log, "a"), _recorder(log, "b"), _recorder(log, "c")])
        assert await pipeline.execute(REQUEST, INFO, RequestContext()) is None
        assert log == ["a", "b", "c"]

    async def test_short_circuit_on_defined_value(self) -> None:
        log: list[str] = []
        pipeline = Pipeline(
            [_recorder(log, "a"), _recorder(log, "b", "stop"), _recorder(log, "c", "never")]
        )
        assert await pipeline.execute(REQUEST, INFO, RequestContext()) == "stop"
        assert log == ["a", "b"]

    async def test_returned_exception_is_a_result(self) -> None:
        error = ValueError("returned")
        pipeline = Pipeline([lambda r, i, c: error, lambda r, i, c: "never"])
        assert await pipeline.execute(REQUEST, INFO, RequestContext()) is error

    async def test_raised_exception_propagates(self) -> None:
        def boom(request, info, ctx):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await Pipeline([boom]).execute(REQUEST, INFO, RequestContext())

    async def test_async_handlers_are_awaited(self) -> None:
        async def first(request, info, ctx):
            ctx.locals["seen"] = True

        async def last(request, info, ctx):
            return ctx.locals["seen"]

        assert await Pipeline([first, last]).execute(REQUEST, INFO, RequestContext()) is True

    async def test_falsy_values_terminate(self) -> None:
        pipeline = Pipeline([lambda r, i, c: 0, lambda r, i, c: "never"])
        assert await pipeline.execute(REQUEST, INFO, RequestContext()) == 0


class TestOrdering:
    def test_last_handler_sorts_last(self) -> None:
        a, b, c = (_recorder([], n) for n in "abc")
        pipeline = Pipeline([a, b, c])
        assert [s.order for s in pipeline.steps] == [Order.MIDDLEWARE, Order.MIDDLEWARE, Order.HANDLER]

    def test_always_first_moves_to_front(self) -> None:
        log: list[str] = []
        a = _recorder(log, "a")
        b = _recorder(log, "b")
        first = order(_recorder(log, "first"), Order.ALWAYS_FIRST)
        assert Pipeline([a, b, first]).handlers == (first, a, b)

    def test_sort_is_stable(self) -> None:
        hs = [_recorder([], n) for n in "abcd"]
        assert Pipeline(hs).handlers == tuple(hs)

    def test_sort_can_be_disabled(self) -> None:
        a = _recorder([], "a")
        first = order(_recorder([], "first"), Order.ALWAYS_FIRST)
        assert Pipeline([a, first], preexecute_sort=False).handlers == (a, first)

    def test_ordered_decorator(self) -> None:
        @ordered(Order.ALWAYS_FIRST)
        def guard(request, info, ctx):
            return None

        assert get_order(guard) is Order.ALWAYS_FIRST

    def test_order_rejects_non_enum(self) -> None:
        with pytest.raises(TypeError):
            order(lambda r, i, c: None, -1)  # type: ignore[arg-type]

    def test_bound_methods_get_a_proxy(self) -> None:
        class Guard:
            def check(self, request, info, ctx):
                return "checked"

        marked = order(Guard().check, Order.ALWAYS_FIRST)
        assert get_order(marked) is Order.ALWAYS_FIRST
        assert marked(REQUEST, INFO, RequestContext()) == "checked"


class TestDuplicates:
    def test_duplicate_rejected_at_construction(self) -> None:
        a = _recorder([], "a")
        with pytest.raises(DuplicateHandlerError):
            Pipeline([a, _recorder([], "b"), a])

    def test_duplicable_allows_reuse(self) -> None:
        a = duplicable(_recorder([], "a"))
        assert len(Pipeline([a, a, _recorder([], "b")])) == 3

    def test_check_can_be_disabled(self) -> None:
        a = _recorder([], "a")
        assert len(Pipeline([a, a], check_duplicates=False)) == 2


class TestFlatten:
    def test_nested_lists(self) -> None:
        a, b, c = (_recorder([], n) for n in "abc")
        assert flatten_handlers([a, [b, (c,)]]) == [a, b, c]

    def test_non_callable_rejected(self) -> None:
        with pytest.raises(RouteRegistrationError):
            flatten_handlers(["nope"])
