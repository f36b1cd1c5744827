"""Tests for perch.middleware.redirect."""

import pytest

from perch.app import App
from perch.middleware import redirect
from perch.testing import TestClient


class TestRedirect:
    async def test_old_to_new(self) -> None:
        app = App()
        app.get("/old", redirect("/new"))
        app.get("/new", lambda request, info, ctx: "new")
        async with TestClient(app) as client:
            response = await client.get("/old")
        assert response.status == 302
        assert response.header("Location") == "/new"
        assert response.body == b""

    async def test_permanent(self) -> None:
        app = App()
        app.get("/old", redirect("/new", 301))
        async with TestClient(app) as client:
            assert (await client.get("/old")).status == 301

    async def test_relative_target(self) -> None:
        app = App()
        app.get("/docs/v1", redirect("../v2"))
        async with TestClient(app) as client:
            assert (await client.get("/docs/v1")).header("Location") == "/v2"

    async def test_absolute_url(self) -> None:
        app = App()
        app.all("/*", redirect("https://example.com/", 308))
        async with TestClient(app) as client:
            response = await client.post("/anything")
        assert response.status == 308
        assert response.header("Location") == "https://example.com/"

    @pytest.mark.parametrize("status", [200, 300, 304, 404])
    def test_invalid_status(self, status: int) -> None:
        with pytest.raises(ValueError, match="Redirect status"):
            redirect("/x", status)
