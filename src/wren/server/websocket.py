"""ASGI WebSocket handler — one connection, start to finish.

Resolves the path against the WebSocket routes, resolves the route's
dependencies into a ``RequestScope`` exactly as an HTTP request would,
then hands the connection to the handler. When the handler returns (or
the peer goes away) the background tasks run, then the dependencies are
torn down.

A path with no WebSocket route is rejected by closing before the
handshake, which servers answer with HTTP 403. A failing dependency or
handler closes the connection with 1011.
"""

import logging
from collections.abc import Callable
from typing import Any

from wren._internal.asgi import Receive, Scope, Send
from wren._internal.invoke import invoke
from wren.background import BackgroundTasks
from wren.config import AppConfig
from wren.dependencies import DependencyResolver, RequestScope
from wren.http.websocket import INTERNAL_ERROR, NORMAL_CLOSURE, WebSocket, WebSocketDisconnect
from wren.routing.websocket import WebSocketRoute, WebSocketRouter
from wren.server.pipeline import BACKGROUND_PARAM, accepted_params

logger = logging.getLogger("wren.server")

WEBSOCKET_PARAM = "websocket"

RESERVED_PARAMS = frozenset({WEBSOCKET_PARAM, BACKGROUND_PARAM})


def build_websocket_kwargs(
    handler: Callable[..., Any],
    websocket: WebSocket,
    dependencies: dict[str, Any],
    background: BackgroundTasks,
) -> dict[str, Any]:
    """Keyword arguments for a WebSocket handler.

    ``websocket``, ``background``, path parameters and declared
    dependencies, by name.
    """
    names, var_keyword = accepted_params(handler)
    available: dict[str, Any] = {WEBSOCKET_PARAM: websocket, BACKGROUND_PARAM: background}
    available.update(websocket.path_params)
    available.update(dependencies)
    if var_keyword:
        return available
    return {name: value for name, value in available.items() if name in names}


async def handle_websocket(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    router: WebSocketRouter,
    resolver: DependencyResolver,
    config: AppConfig,
) -> None:
    """Serve one WebSocket connection."""
    websocket = WebSocket.from_asgi(scope, receive, send)
    match = router.resolve(websocket.path)
    if match is None:
        logger.debug("No WebSocket route for %s", websocket.path)
        await websocket.close(NORMAL_CLOSURE)
        return

    route = match.route
    websocket.with_path_params(match.path_params)
    dependency_scope = RequestScope()
    try:
        finished = await _run_handler(route, websocket, resolver, dependency_scope)
        if finished and dependency_scope.background:
            await dependency_scope.background.run(timeout=config.background_timeout)
    finally:
        errors = await dependency_scope.close()
        if errors:
            logger.warning(
                "WEBSOCKET %s: %d dependency cleanup(s) failed", websocket.path, len(errors)
            )


async def _run_handler(
    route: WebSocketRoute,
    websocket: WebSocket,
    resolver: DependencyResolver,
    dependency_scope: RequestScope,
) -> bool:
    """Resolve dependencies and run the handler. True unless it failed."""
    try:
        values = await resolver.resolve_all(route.dependencies, websocket, dependency_scope)
        kwargs = build_websocket_kwargs(
            route.handler, websocket, values, dependency_scope.background
        )
        await invoke(route.handler, **kwargs)
    except WebSocketDisconnect as exc:
        logger.debug("WebSocket %s disconnected with code %d", websocket.path, exc.code)
        return True
    except Exception:
        logger.exception("WebSocket handler for %s failed", route)
        dependency_scope.background.clear()
        await websocket.close(INTERNAL_ERROR)
        return False
    await websocket.close()
    return True
