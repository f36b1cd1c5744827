"""Deadline enforcement for slow operations.

``with_timeout`` races a callable against a timer. On expiry the
caller's wait is abandoned and ``TimeoutExceeded`` (504) is raised. An
``async`` callable is cancelled at its next checkpoint; a sync callable
runs in a worker thread that is left to finish on its own, its result
discarded.

Usage::

    async def proxy(request, info, ctx):
        return await with_timeout(lambda: fetch_upstream(request), 2.5)
"""

import inspect
from collections.abc import Callable
from typing import Any

import anyio
import anyio.to_thread

from perch.errors import TimeoutExceeded


async def with_timeout(
    fn: Callable[[], Any],
    seconds: float,
    message: str | None = None,
) -> Any:
    """Run ``fn()`` with a deadline of *seconds*.

    *fn* may be a coroutine function, a plain function returning an
    awaitable, or a blocking sync function.
    """
    if seconds <= 0:
        raise TimeoutExceeded(message or f"Timed out after {seconds}s")

    result: Any = None
    with anyio.move_on_after(seconds) as scope:
        if inspect.iscoroutinefunction(fn):
            result = await fn()
        else:
            result = await anyio.to_thread.run_sync(fn, abandon_on_cancel=True)
            if inspect.isawaitable(result):
                result = await result

    if scope.cancelled_caught:
        raise TimeoutExceeded(message or f"Timed out after {seconds}s")
    return result
