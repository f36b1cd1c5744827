"""Tests for perch.timeout — deadlines for async and blocking callables."""

import time

import anyio
import pytest

from perch.app import App
from perch.errors import TimeoutExceeded
from perch.testing import TestClient
from perch.timeout import with_timeout


async def fast() -> str:
    return "done"


async def slow() -> str:
    await anyio.sleep(5)
    return "late"


class TestWithTimeout:
    async def test_async_within_deadline(self) -> None:
        assert await with_timeout(fast, 1) == "done"

    async def test_async_past_deadline(self) -> None:
        with pytest.raises(TimeoutExceeded) as excinfo:
            await with_timeout(slow, 0.05)
        assert excinfo.value.status == 504
        assert excinfo.value.detail == "Timed out after 0.05s"

    async def test_sync_within_deadline(self) -> None:
        assert await with_timeout(lambda: 42, 1) == 42

    async def test_blocking_sync_past_deadline(self) -> None:
        with pytest.raises(TimeoutExceeded):
            await with_timeout(lambda: time.sleep(0.5), 0.05)

    async def test_sync_returning_awaitable(self) -> None:
        assert await with_timeout(lambda: fast(), 1) == "done"

    async def test_custom_message(self) -> None:
        with pytest.raises(TimeoutExceeded, match="upstream too slow"):
            await with_timeout(slow, 0.01, "upstream too slow")

    @pytest.mark.parametrize("seconds", [0, -1])
    async def test_non_positive_deadline(self, seconds: float) -> None:
        with pytest.raises(TimeoutExceeded):
            await with_timeout(fast, seconds)

    async def test_errors_propagate(self) -> None:
        async def broken() -> None:
            raise ValueError("broken")

        with pytest.raises(ValueError, match="broken"):
            await with_timeout(broken, 1)


class TestThroughApp:
    async def test_timeout_becomes_504(self) -> None:
        async def handler(request, info, ctx):
            return await with_timeout(slow, 0.05)

        app = App()
        app.get("/", handler)
        async with TestClient(app) as client:
            response = await client.get("/")
        assert response.status == 504
        assert response.text == "Timed out after 0.05s"
