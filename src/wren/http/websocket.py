"""WebSocket connection over ASGI.

Framing is the server's job; this wraps the ``websocket.*`` ASGI messages
in an object with the same metadata surface as ``Request`` (``path``,
``headers``, ``query``, ``path_params``), so dependency factories written
for requests work for connections too.
"""

from __future__ import annotations

import json as json_module
from collections.abc import AsyncIterator
from typing import Any

from wren._internal.asgi import Receive, Scope, Send
from wren.http.headers import Headers
from wren.http.query import QueryParams

# Close codes (RFC 6455 section 7.4.1)
NORMAL_CLOSURE = 1000
INTERNAL_ERROR = 1011


class WebSocketDisconnect(Exception):  # noqa: N818
    """The peer closed the connection (or never got to open it)."""

    def __init__(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        super().__init__(f"WebSocket closed with code {code}")
        self.code = code
        self.reason = reason


class WebSocket:
    """One WebSocket connection.

    Usage::

        @app.websocket("/chat/:room")
        async def chat(websocket: WebSocket, room: str):
            await websocket.accept()
            async for message in websocket.iter_text():
                await websocket.send_text(f"{room}: {message}")

    ``receive_*`` raises ``WebSocketDisconnect`` once the peer goes away.
    """

    __slots__ = (
        "_receive",
        "_send",
        "accepted",
        "client",
        "close_code",
        "headers",
        "path",
        "path_params",
        "query",
        "subprotocols",
    )

    def __init__(
        self,
        path: str,
        receive: Receive,
        send: Send,
        *,
        headers: Headers | None = None,
        query: QueryParams | None = None,
        path_params: dict[str, str] | None = None,
        subprotocols: tuple[str, ...] = (),
        client: tuple[str, int] | None = None,
    ) -> None:
        self.path = path
        self.headers = headers or Headers()
        self.query = query or QueryParams()
        self.path_params: dict[str, str] = path_params or {}
        self.subprotocols = subprotocols
        self.client = client
        self.accepted = False
        self.close_code: int | None = None
        self._receive = receive
        self._send = send

    @classmethod
    def from_asgi(cls, scope: Scope, receive: Receive, send: Send) -> WebSocket:
        client = scope.get("client")
        return cls(
            scope["path"],
            receive,
            send,
            headers=Headers.from_raw(scope.get("headers", ())),
            query=QueryParams(scope.get("query_string", b"")),
            subprotocols=tuple(scope.get("subprotocols", ())),
            client=tuple(client) if client else None,
        )

    @property
    def closed(self) -> bool:
        return self.close_code is not None

    # -- Handshake --

    async def accept(self, subprotocol: str | None = None) -> None:
        """Complete the opening handshake."""
        if self.accepted:
            return
        message = await self._receive()
        if message["type"] == "websocket.disconnect":
            self.close_code = message.get("code", NORMAL_CLOSURE)
            raise WebSocketDisconnect(self.close_code)
        reply: dict[str, Any] = {"type": "websocket.accept"}
        if subprotocol is not None:
            reply["subprotocol"] = subprotocol
        await self._send(reply)
        self.accepted = True

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """Close the connection. Before ``accept()`` this rejects it."""
        if self.closed:
            return
        self.close_code = code
        await self._send({"type": "websocket.close", "code": code, "reason": reason})

    # -- Receiving --

    async def receive(self) -> dict[str, Any]:
        """Next ``websocket.receive`` message. Raises on disconnect."""
        if self.closed:
            raise WebSocketDisconnect(self.close_code or NORMAL_CLOSURE)
        message = await self._receive()
        if message["type"] == "websocket.disconnect":
            self.close_code = message.get("code", NORMAL_CLOSURE)
            raise WebSocketDisconnect(self.close_code, message.get("reason", "") or "")
        return message

    async def receive_text(self) -> str:
        message = await self.receive()
        text = message.get("text")
        if text is None:
            return (message.get("bytes") or b"").decode("utf-8")
        return text

    async def receive_bytes(self) -> bytes:
        message = await self.receive()
        data = message.get("bytes")
        if data is None:
            return (message.get("text") or "").encode("utf-8")
        return data

    async def receive_json(self) -> Any:
        return json_module.loads(await self.receive_text())

    async def iter_text(self) -> AsyncIterator[str]:
        """Yield text messages until the peer disconnects."""
        try:
            while True:
                yield await self.receive_text()
        except WebSocketDisconnect:
            return

    # -- Sending --

    async def send_text(self, data: str) -> None:
        await self._send({"type": "websocket.send", "text": data})

    async def send_bytes(self, data: bytes) -> None:
        await self._send({"type": "websocket.send", "bytes": data})

    async def send_json(self, data: Any) -> None:
        await self.send_text(json_module.dumps(data))

    def with_path_params(self, path_params: dict[str, str]) -> WebSocket:
        """Attach the matched route's path parameters. Returns ``self``."""
        self.path_params = dict(path_params)
        return self

    def __repr__(self) -> str:
        return f"<WebSocket {self.path}>"
