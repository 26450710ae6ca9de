"""Tests for WebSocket routing, dispatch, and the connection object."""

import logging
from typing import Any

import pytest

from wren.app import App
from wren.background import BackgroundTasks
from wren.dependencies import Depends
from wren.errors import ConfigurationError
from wren.http.websocket import WebSocket, WebSocketDisconnect
from wren.routing.pattern import parse_pattern
from wren.routing.websocket import WebSocketRoute, WebSocketRouter
from wren.testing import TestClient


async def _noop(websocket: WebSocket) -> None: ...


def _route(path: str, name: str | None = None) -> WebSocketRoute:
    return WebSocketRoute(pattern=parse_pattern(path), handler=_noop, name=name)


class TestWebSocketRouter:
    def test_capture_match(self) -> None:
        router = WebSocketRouter()
        router.add(_route("/chat/:room"))
        match = router.resolve("/chat/lobby")
        assert match is not None
        assert match.path_params == {"room": "lobby"}

    def test_unknown_path(self) -> None:
        router = WebSocketRouter()
        router.add(_route("/chat/:room"))
        assert router.resolve("/chat") is None
        assert router.resolve("/chat/lobby/extra") is None
        assert router.resolve("/chat//") is None

    def test_literal_beats_capture(self) -> None:
        router = WebSocketRouter()
        router.add(_route("/chat/:room", name="room"))
        router.add(_route("/chat/admin", name="admin"))
        match = router.resolve("/chat/admin")
        assert match is not None
        assert match.route.name == "admin"

    def test_duplicate_rejected(self) -> None:
        router = WebSocketRouter()
        router.add(_route("/chat/:room"))
        with pytest.raises(ConfigurationError, match="already registered"):
            router.add(_route("/chat/:channel"))

    def test_add_after_compile_raises(self) -> None:
        router = WebSocketRouter()
        router.compile()
        with pytest.raises(RuntimeError):
            router.add(_route("/chat/:room"))


class TestWebSocketRegistration:
    def test_decorator(self) -> None:
        app = App()

        @app.websocket("/chat/:room", name="chat")
        async def chat(websocket: WebSocket, room: str) -> None: ...

        (route,) = app.websocket_routes
        assert str(route) == "WEBSOCKET /chat/:room"
        assert route.name == "chat"
        assert app.routes == []

    def test_reserved_capture_rejected(self) -> None:
        app = App()
        with pytest.raises(ConfigurationError, match="reserved"):

            @app.websocket("/chat/:websocket")
            async def chat(**kwargs: Any) -> None: ...

    def test_dependency_name_clash(self) -> None:
        app = App()
        with pytest.raises(ConfigurationError, match="clashes"):

            @app.websocket("/chat/:room", dependencies={"room": Depends(object)})
            async def chat(room: str) -> None: ...


class TestWebSocketConnections:
    async def test_echo_with_path_params(self) -> None:
        app = App()

        @app.websocket("/chat/:room")
        async def chat(websocket: WebSocket, room: str) -> None:
            await websocket.accept()
            async for message in websocket.iter_text():
                await websocket.send_text(f"{room}: {message}")

        async with TestClient(app) as client:
            async with client.websocket_connect("/chat/lobby") as ws:
                await ws.send_text("hello")
                assert await ws.receive_text() == "lobby: hello"
                await ws.send_text("again")
                assert await ws.receive_text() == "lobby: again"

    async def test_json_messages(self) -> None:
        app = App()

        @app.websocket("/rpc")
        async def rpc(websocket: WebSocket) -> None:
            await websocket.accept()
            request = await websocket.receive_json()
            await websocket.send_json({"result": request["a"] + request["b"]})
            await websocket.close()

        async with TestClient(app) as client:
            async with client.websocket_connect("/rpc") as ws:
                await ws.send_json({"a": 2, "b": 3})
                assert await ws.receive_json() == {"result": 5}
                with pytest.raises(WebSocketDisconnect) as exc_info:
                    await ws.receive_text()
                assert exc_info.value.code == 1000

    async def test_unknown_path_rejected(self) -> None:
        app = App()

        @app.websocket("/chat/:room")
        async def chat(websocket: WebSocket) -> None:
            await websocket.accept()

        async with TestClient(app) as client:
            with pytest.raises(WebSocketDisconnect):
                async with client.websocket_connect("/nope"):
                    pass

    async def test_handler_can_reject(self) -> None:
        app = App()

        @app.websocket("/private")
        async def private(websocket: WebSocket) -> None:
            if websocket.headers.get("authorization") is None:
                await websocket.close(4401)
                return
            await websocket.accept()

        async with TestClient(app) as client:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                async with client.websocket_connect("/private"):
                    pass
            assert exc_info.value.code == 4401

            async with client.websocket_connect(
                "/private", headers={"Authorization": "Bearer t"}
            ) as ws:
                assert ws.accepted

    async def test_subprotocol(self) -> None:
        app = App()

        @app.websocket("/proto")
        async def proto(websocket: WebSocket) -> None:
            await websocket.accept(subprotocol=websocket.subprotocols[0])

        async with TestClient(app) as client:
            async with client.websocket_connect("/proto", subprotocols=("chat.v2",)) as ws:
                assert ws.subprotocol == "chat.v2"

    async def test_dependencies_cleaned_up_after_disconnect(self) -> None:
        app = App()
        events: list[str] = []

        def presence(websocket: WebSocket):
            events.append(f"join {websocket.path_params['room']}")
            yield "presence"
            events.append("leave")

        @app.websocket("/chat/:room", dependencies={"presence": Depends(presence)})
        async def chat(websocket: WebSocket, presence: str) -> None:
            await websocket.accept()
            await websocket.send_text(presence)
            async for _ in websocket.iter_text():
                pass
            events.append("handler done")

        async with TestClient(app) as client:
            async with client.websocket_connect("/chat/lobby") as ws:
                assert await ws.receive_text() == "presence"
                assert events == ["join lobby"]

        assert events == ["join lobby", "handler done", "leave"]

    async def test_background_runs_before_cleanup(self) -> None:
        app = App()
        events: list[str] = []

        def session():
            yield "s"
            events.append("cleanup")

        @app.websocket("/feed", dependencies={"session": Depends(session)})
        async def feed(websocket: WebSocket, background: BackgroundTasks) -> None:
            await websocket.accept()
            background.add_task(events.append, "task")
            await websocket.close()

        async with TestClient(app) as client:
            async with client.websocket_connect("/feed"):
                pass

        assert events == ["task", "cleanup"]

    async def test_singleton_shared_with_http_routes(self) -> None:
        app = App()
        created: list[int] = []

        def hub() -> int:
            created.append(1)
            return len(created)

        shared = Depends(hub, scope="singleton")

        @app.get("/hub", dependencies={"hub": shared})
        def http_hub(hub: int) -> int:
            return hub

        @app.websocket("/hub", dependencies={"hub": shared})
        async def ws_hub(websocket: WebSocket, hub: int) -> None:
            await websocket.accept()
            await websocket.send_json(hub)

        async with TestClient(app) as client:
            response = await client.get("/hub")
            async with client.websocket_connect("/hub") as ws:
                assert await ws.receive_json() == response.json_body() == 1

        assert created == [1]

    async def test_failing_dependency_closes_with_internal_error(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        app = App()
        handled: list[str] = []

        def broken() -> None:
            raise RuntimeError("no broker")

        @app.websocket("/events", dependencies={"broker": Depends(broken)})
        async def events(websocket: WebSocket, broker: Any) -> None:
            handled.append("handler")

        with caplog.at_level(logging.ERROR, logger="wren.server"):
            async with TestClient(app) as client:
                with pytest.raises(WebSocketDisconnect) as exc_info:
                    async with client.websocket_connect("/events"):
                        pass

        assert exc_info.value.code == 1011
        assert handled == []
        assert "/events" in caplog.text

    async def test_failing_handler_closes_with_internal_error(self) -> None:
        app = App()

        @app.websocket("/crash")
        async def crash(websocket: WebSocket) -> None:
            await websocket.accept()
            await websocket.receive_text()
            raise ValueError("bad frame")

        async with TestClient(app) as client:
            async with client.websocket_connect("/crash") as ws:
                await ws.send_text("x")
                with pytest.raises(WebSocketDisconnect) as exc_info:
                    await ws.receive_text()
                assert exc_info.value.code == 1011
