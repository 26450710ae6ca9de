"""Async test client for wren applications.

Uses the same Request and Response types as production.
No wrapper translation layer.
"""

from __future__ import annotations

import json as json_module
import math
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from urllib.parse import urlencode

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from wren.app import App
from wren.http.response import Response
from wren.http.websocket import NORMAL_CLOSURE, WebSocketDisconnect


def _split_target(path: str, query: dict[str, str] | None) -> tuple[str, str]:
    """Split *path* into path and query string, appending *query*."""
    if "?" in path:
        path_part, query_string = path.split("?", 1)
    else:
        path_part = path
        query_string = ""
    if query:
        extra = urlencode(query)
        query_string = f"{query_string}&{extra}" if query_string else extra
    return path_part, query_string


def _raw_headers(headers: dict[str, str]) -> list[tuple[bytes, bytes]]:
    return [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in headers.items()
    ]


class TestClient:
    """Async test client for wren applications.

    Returns the same ``Response`` type used in production. Sends requests
    through the ASGI interface directly — no HTTP involved. Entering the
    context runs startup hooks; leaving it runs shutdown hooks and tears
    down singleton dependencies, as a server's lifespan would.

    Usage::

        async with TestClient(app) as client:
            response = await client.get("/users/42")
            assert response.status == 200
    """

    __test__ = False  # Tell pytest this is not a test class

    __slots__ = ("app",)

    def __init__(self, app: App) -> None:
        self.app = app

    async def __aenter__(self) -> TestClient:
        await self.app.startup()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.app.shutdown()

    async def get(
        self,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        query: dict[str, str] | None = None,
    ) -> Response:
        """Send a GET request."""
        return await self.request("GET", path, headers=headers, query=query)

    async def head(self, path: str, *, headers: dict[str, str] | None = None) -> Response:
        return await self.request("HEAD", path, headers=headers)

    async def options(self, path: str, *, headers: dict[str, str] | None = None) -> Response:
        return await self.request("OPTIONS", path, headers=headers)

    async def post(
        self,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
        json: Any = None,
    ) -> Response:
        """Send a POST request. ``json=`` encodes the body and sets its content type."""
        return await self.request("POST", path, headers=headers, body=body, json=json)

    async def put(
        self,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
        json: Any = None,
    ) -> Response:
        return await self.request("PUT", path, headers=headers, body=body, json=json)

    async def patch(
        self,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
        json: Any = None,
    ) -> Response:
        return await self.request("PATCH", path, headers=headers, body=body, json=json)

    async def delete(
        self,
        path: str,
        *,
        headers: dict[str, str] | None = None,
    ) -> Response:
        """Send a DELETE request."""
        return await self.request("DELETE", path, headers=headers)

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
        json: Any = None,
        query: dict[str, str] | None = None,
    ) -> Response:
        """Send an arbitrary request through the ASGI app."""
        path_part, query_string = _split_target(path, query)

        merged: dict[str, str] = {}
        request_body = body or b""
        if json is not None:
            request_body = json_module.dumps(json).encode("utf-8")
            merged["content-type"] = "application/json"
        merged.update(headers or {})
        if request_body:
            merged.setdefault("content-length", str(len(request_body)))

        raw_headers = _raw_headers(merged)

        scope: dict[str, Any] = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": method.upper(),
            "path": path_part,
            "raw_path": path_part.encode("latin-1"),
            "query_string": query_string.encode("latin-1"),
            "root_path": "",
            "headers": raw_headers,
            "server": ("testserver", 80),
            "client": ("127.0.0.1", 0),
        }

        body_sent = False

        async def receive() -> dict[str, Any]:
            nonlocal body_sent
            if not body_sent:
                body_sent = True
                return {"type": "http.request", "body": request_body, "more_body": False}
            # After body is sent, wait for disconnect (simplified)
            return {"type": "http.disconnect"}

        # Capture response via send
        response_status = 200
        response_headers: list[tuple[bytes, bytes]] = []
        response_body_parts: list[bytes] = []

        async def send(message: dict[str, Any]) -> None:
            nonlocal response_status, response_headers
            if message["type"] == "http.response.start":
                response_status = message["status"]
                response_headers = list(message.get("headers", []))
            elif message["type"] == "http.response.body":
                response_body_parts.append(message.get("body", b""))

        await self.app(scope, receive, send)

        content_type = ""
        extra_headers: list[tuple[str, str]] = []
        for name_b, value_b in response_headers:
            name_str = name_b.decode("latin-1")
            value_str = value_b.decode("latin-1")
            if name_str == "content-type":
                content_type = value_str
            else:
                extra_headers.append((name_str, value_str))

        return Response(
            body=b"".join(response_body_parts),
            status=response_status,
            content_type=content_type,
            headers=tuple(extra_headers),
        )

    @asynccontextmanager
    async def websocket_connect(
        self,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        subprotocols: tuple[str, ...] = (),
    ) -> AsyncIterator[WebSocketSession]:
        """Open a WebSocket connection to the app.

        Raises ``WebSocketDisconnect`` if the app rejects the handshake.
        Leaving the block disconnects the client (if the app hasn't closed
        already) and waits for the app's handler to finish::

            async with client.websocket_connect("/chat/lobby") as ws:
                await ws.send_text("hello")
                assert await ws.receive_text() == "lobby: hello"
        """
        path_part, query_string = _split_target(path, None)
        scope: dict[str, Any] = {
            "type": "websocket",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "scheme": "ws",
            "path": path_part,
            "raw_path": path_part.encode("latin-1"),
            "query_string": query_string.encode("latin-1"),
            "root_path": "",
            "headers": _raw_headers(headers or {}),
            "subprotocols": list(subprotocols),
            "server": ("testserver", 80),
            "client": ("127.0.0.1", 0),
        }

        to_app, app_inbox = anyio.create_memory_object_stream[dict[str, Any]](math.inf)
        app_outbox, from_app = anyio.create_memory_object_stream[dict[str, Any]](math.inf)
        session = WebSocketSession(to_app, from_app)

        async def run_app() -> None:
            async with app_outbox:
                await self.app(scope, app_inbox.receive, app_outbox.send)

        async with to_app, app_inbox, from_app:
            async with anyio.create_task_group() as tg:
                tg.start_soon(run_app)
                await session.handshake()
                if session.accepted:
                    try:
                        yield session
                    finally:
                        await session.close()

        if not session.accepted:
            raise WebSocketDisconnect(session.close_code or NORMAL_CLOSURE)


class WebSocketSession:
    """Client end of an in-process WebSocket connection."""

    __slots__ = ("_incoming", "_outgoing", "accepted", "close_code", "subprotocol")

    def __init__(
        self,
        outgoing: MemoryObjectSendStream[dict[str, Any]],
        incoming: MemoryObjectReceiveStream[dict[str, Any]],
    ) -> None:
        self._outgoing = outgoing
        self._incoming = incoming
        self.accepted = False
        self.close_code: int | None = None
        self.subprotocol: str | None = None

    async def handshake(self) -> None:
        await self._outgoing.send({"type": "websocket.connect"})
        message = await self._next()
        if message["type"] == "websocket.accept":
            self.accepted = True
            self.subprotocol = message.get("subprotocol")
        elif message["type"] == "websocket.close":
            self.close_code = message.get("code", NORMAL_CLOSURE)

    async def _next(self) -> dict[str, Any]:
        try:
            return await self._incoming.receive()
        except anyio.EndOfStream:
            # The app returned without closing explicitly
            return {"type": "websocket.close", "code": NORMAL_CLOSURE}

    async def receive(self) -> dict[str, Any]:
        """Next message from the app. Raises once the app has closed."""
        if self.close_code is not None:
            raise WebSocketDisconnect(self.close_code)
        message = await self._next()
        if message["type"] == "websocket.close":
            self.close_code = message.get("code", NORMAL_CLOSURE)
            raise WebSocketDisconnect(self.close_code, message.get("reason", "") or "")
        return message

    async def receive_text(self) -> str:
        message = await self.receive()
        return message.get("text") or (message.get("bytes") or b"").decode("utf-8")

    async def receive_bytes(self) -> bytes:
        message = await self.receive()
        return message.get("bytes") or (message.get("text") or "").encode("utf-8")

    async def receive_json(self) -> Any:
        return json_module.loads(await self.receive_text())

    async def send_text(self, data: str) -> None:
        await self._outgoing.send({"type": "websocket.receive", "text": data})

    async def send_bytes(self, data: bytes) -> None:
        await self._outgoing.send({"type": "websocket.receive", "bytes": data})

    async def send_json(self, data: Any) -> None:
        await self.send_text(json_module.dumps(data))

    async def close(self, code: int = NORMAL_CLOSURE) -> None:
        """Disconnect from the client side. No-op once either side closed."""
        if self.close_code is not None:
            return
        self.close_code = code
        await self._outgoing.send({"type": "websocket.disconnect", "code": code})
