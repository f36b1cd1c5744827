"""Tests for perch.http.request and perch.http.connection."""

import json

import pytest

from perch.http.connection import ConnectionInfo
from perch.http.request import Request


def _scope(**overrides: object) -> dict[str, object]:
    scope: dict[str, object] = {
        "type": "http",
        "http_version": "1.1",
        "method": "get",
        "path": "/",
        "query_string": b"",
        "headers": [],
        "scheme": "https",
        "server": ("example.com", 443),
        "client": ("10.0.0.7", 51000),
    }
    scope.update(overrides)
    return scope


def _receive(*bodies: bytes):
    messages = [
        {"type": "http.request", "body": body, "more_body": i < len(bodies) - 1}
        for i, body in enumerate(bodies)
    ] or [{"type": "http.request", "body": b"", "more_body": False}]
    it = iter(messages)

    async def receive():
        return next(it)

    return receive


class TestFromASGI:
    def test_fields(self) -> None:
        req = Request.from_asgi(
            _scope(
                path="/search",
                query_string=b"q=perch",
                headers=[(b"content-type", b"application/json")],
            ),
            _receive(),
        )
        assert req.method == "GET"
        assert req.path == "/search"
        assert req.query["q"] == "perch"
        assert req.url == "/search?q=perch"
        assert req.content_type == "application/json"

    def test_query_string_is_kept_raw(self) -> None:
        req = Request.from_asgi(_scope(query_string=b"name=J%C3%BCrgen+X"), _receive())
        assert req.query_string == b"name=J%C3%BCrgen+X"
        assert req.query["name"] == "Jürgen X"

    def test_url_without_query(self) -> None:
        assert Request(method="GET", path="/users").url == "/users"

    def test_is_frozen(self) -> None:
        req = Request(method="GET", path="/")
        with pytest.raises(AttributeError):
            req.path = "/other"  # type: ignore[misc]


class TestQuery:
    def test_first_value_and_all_values(self) -> None:
        req = Request(method="GET", path="/", query_string=b"page=2&page=3&q=perch")
        assert req.query["page"] == "2"
        assert req.query_list("page") == ["2", "3"]
        assert dict(req.query) == {"page": "2", "q": "perch"}

    def test_missing_and_blank(self) -> None:
        req = Request(method="GET", path="/", query_string=b"debug=")
        assert req.query["debug"] == ""
        assert req.query.get("page") is None
        assert req.query_list("page") == []
        with pytest.raises(KeyError):
            req.query["page"]

    def test_view_is_read_only(self) -> None:
        req = Request(method="GET", path="/", query_string=b"q=perch")
        with pytest.raises(TypeError):
            req.query["q"] = "other"  # type: ignore[index]
        req.query_list("q").append("other")
        assert req.query_list("q") == ["perch"]

    def test_empty_by_default(self) -> None:
        req = Request(method="GET", path="/")
        assert req.query_string == b""
        assert len(req.query) == 0


class TestBody:
    async def test_chunks_are_joined_and_cached(self) -> None:
        req = Request.from_asgi(_scope(), _receive(b"hello ", b"world"))
        assert await req.body() == b"hello world"
        assert await req.body() == b"hello world"
        assert await req.text() == "hello world"

    async def test_json(self) -> None:
        req = Request.from_asgi(_scope(), _receive(json.dumps({"name": "ada"}).encode()))
        assert await req.json() == {"name": "ada"}

    async def test_stream(self) -> None:
        req = Request.from_asgi(_scope(), _receive(b"a", b"b"))
        assert [chunk async for chunk in req.stream()] == [b"a", b"b"]

    async def test_default_receive_is_empty(self) -> None:
        assert await Request(method="GET", path="/").body() == b""


class TestConnectionInfo:
    def test_from_asgi(self) -> None:
        info = ConnectionInfo.from_asgi(_scope())
        assert info.client == ("10.0.0.7", 51000)
        assert info.server == ("example.com", 443)
        assert info.scheme == "https"
        assert info.remote_addr == "10.0.0.7"

    def test_missing_transport_details(self) -> None:
        scope = _scope()
        del scope["client"]
        del scope["server"]
        del scope["scheme"]
        info = ConnectionInfo.from_asgi(scope)
        assert info.client is None
        assert info.remote_addr is None
        assert info.scheme == "http"
