"""Wren — a small request-handling core for Python web services.

Routes by path pattern, negotiates the representation, resolves declared
dependencies with request or singleton lifetimes, and maps every failure
to a structured response.

Basic usage::

    from wren import App, Depends

    app = App()

    def open_session(request):
        return Session(user=request.headers.get("x-user"))

    @app.get("/users/:id", dependencies={"session": Depends(open_session)})
    async def show(id: str, session: Session):
        return {"id": id, "viewer": session.user}
"""

import importlib

__version__ = "0.1.0"
__all__ = [
    "App",
    "AppConfig",
    "BackgroundTasks",
    "ConfigurationError",
    "DependencyError",
    "Depends",
    "EventDispatcher",
    "HTTPError",
    "MethodNotAllowed",
    "NoAdapter",
    "NotAcceptable",
    "NotFound",
    "Request",
    "Response",
    "ValidationError",
    "WebSocket",
    "WebSocketDisconnect",
    "WrenError",
]

# Public name -> defining module, imported on first access
_EXPORTS: dict[str, str] = {
    "App": "wren.app",
    "AppConfig": "wren.config",
    "BackgroundTasks": "wren.background",
    "Depends": "wren.dependencies",
    "EventDispatcher": "wren.events",
    "NoAdapter": "wren.events",
    "Request": "wren.http.request",
    "Response": "wren.http.response",
    "WebSocket": "wren.http.websocket",
    "WebSocketDisconnect": "wren.http.websocket",
    "ConfigurationError": "wren.errors",
    "DependencyError": "wren.errors",
    "HTTPError": "wren.errors",
    "MethodNotAllowed": "wren.errors",
    "NotAcceptable": "wren.errors",
    "NotFound": "wren.errors",
    "ValidationError": "wren.errors",
    "WrenError": "wren.errors",
}


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import wren`` fast while providing a clean top-level API.
    """
    module_name = _EXPORTS.get(name)
    if module_name is None:
        msg = f"module 'wren' has no attribute {name!r}"
        raise AttributeError(msg)

    return getattr(importlib.import_module(module_name), name)
