"""Tests for wren.http — request, headers, and query parameters."""

from typing import Any

from wren.http.headers import Headers
from wren.http.query import QueryParams
from wren.http.request import Request


def _receiver(*chunks: bytes):
    messages = [
        {"type": "http.request", "body": chunk, "more_body": i < len(chunks) - 1}
        for i, chunk in enumerate(chunks)
    ]

    async def receive() -> dict[str, Any]:
        return messages.pop(0)

    return receive


class TestHeaders:
    def test_case_insensitive(self) -> None:
        headers = Headers([("Content-Type", "text/plain")])
        assert headers["content-type"] == "text/plain"
        assert "CONTENT-TYPE" in headers

    def test_repeated_values(self) -> None:
        headers = Headers.from_raw([(b"accept", b"text/html"), (b"accept", b"*/*")])
        assert headers["accept"] == "text/html"
        assert headers.get_list("accept") == ["text/html", "*/*"]
        assert len(headers) == 1

    def test_get_default(self) -> None:
        assert Headers().get("x-missing", "fallback") == "fallback"


class TestQueryParams:
    def test_first_value(self) -> None:
        query = QueryParams(b"tag=a&tag=b&q=")
        assert query["tag"] == "a"
        assert query.get_list("tag") == ["a", "b"]
        assert query["q"] == ""
        assert dict(query) == {"tag": "a", "q": ""}


class TestRequest:
    def test_from_asgi(self) -> None:
        scope = {
            "type": "http",
            "method": "get",
            "path": "/users/1",
            "query_string": b"page=2",
            "headers": [(b"accept", b"application/json")],
            "client": ("127.0.0.1", 5000),
        }
        request = Request.from_asgi(scope, _receiver(b""))
        assert request.method == "GET"
        assert request.query["page"] == "2"
        assert request.accept == "application/json"
        assert request.client == ("127.0.0.1", 5000)

    def test_with_path_params(self) -> None:
        request = Request(method="GET", path="/users/1")
        updated = request.with_path_params({"id": "1"})
        assert updated.path_params == {"id": "1"}
        assert request.path_params == {}

    def test_accepts(self) -> None:
        request = Request(
            method="GET", path="/", headers=Headers([("accept", "text/html;q=0.5, */*;q=0.1")])
        )
        assert request.accepts("json", "html") == "text/html"

    def test_content_length(self) -> None:
        request = Request(method="POST", path="/", headers=Headers([("content-length", "12")]))
        assert request.content_length == 12
        bad = Request(method="POST", path="/", headers=Headers([("content-length", "x")]))
        assert bad.content_length is None

    async def test_body_chunks_joined_and_cached(self) -> None:
        request = Request(method="POST", path="/", _receive=_receiver(b"hel", b"lo"))
        assert await request.body() == b"hello"
        assert await request.body() == b"hello"

    async def test_parsed_body_json(self) -> None:
        request = Request(
            method="POST",
            path="/",
            headers=Headers([("content-type", "application/json; charset=utf-8")]),
            _receive=_receiver(b'{"a": 1}'),
        )
        assert await request.parsed_body() == {"a": 1}

    async def test_parsed_body_form(self) -> None:
        request = Request(
            method="POST",
            path="/",
            headers=Headers([("content-type", "application/x-www-form-urlencoded")]),
            _receive=_receiver(b"name=wren&name=other"),
        )
        assert await request.parsed_body() == {"name": "wren"}

    async def test_parsed_body_empty(self) -> None:
        request = Request(method="POST", path="/", _receive=_receiver(b""))
        assert await request.parsed_body() is None
