"""Wren application class.

Mutable during setup (HTTP and WebSocket routes, error handlers, event
adapters).
Frozen at runtime when ``__call__()`` is first invoked.
"""

import inspect
import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from wren._internal.asgi import Receive, Scope, Send
from wren._internal.types import ErrorHandler, Handler
from wren.config import AppConfig
from wren.dependencies import Depends, DependencyResolver
from wren.errors import ConfigurationError
from wren.events import EventAdapter, EventDispatcher
from wren.routing.pattern import parse_pattern
from wren.routing.route import Route
from wren.routing.router import Router
from wren.routing.websocket import WebSocketRoute, WebSocketRouter
from wren.server.errors import ErrorMapper
from wren.server.handler import handle_request
from wren.server.negotiation import expand_shorthand
from wren.server.pipeline import RESERVED_PARAMS, Pipeline
from wren.server.websocket import RESERVED_PARAMS as WEBSOCKET_RESERVED_PARAMS
from wren.server.websocket import handle_websocket
from wren.validation import RuleValidator, SchemaValidator

logger = logging.getLogger("wren.app")


class App:
    """The wren application.

    Mutable during setup (routes, error handlers, adapters, hooks).
    Frozen at runtime when ``__call__()`` is first invoked.

    Thread safety:
        The setup phase is single-threaded (decorators at import time).
        The freeze transition uses a Lock + double-check to ensure exactly
        one thread compiles the app, even when several ASGI workers call
        ``__call__()`` concurrently on first request.
    """

    __slots__ = (
        "_error_handlers",
        "_events",
        "_freeze_lock",
        "_frozen",
        # Compiled state (populated by _freeze)
        "_pipeline",
        "_resolver",
        "_router",
        "_shutdown_hooks",
        "_startup_hooks",
        "_validator",
        "_ws_router",
        "config",
    )

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        validator: SchemaValidator | None = None,
    ) -> None:
        self.config: AppConfig = config or AppConfig()
        self._router: Router = Router()
        self._ws_router: WebSocketRouter = WebSocketRouter()
        self._resolver: DependencyResolver = DependencyResolver()
        self._validator: SchemaValidator = validator or RuleValidator()
        self._events: EventDispatcher = EventDispatcher()
        self._error_handlers: dict[int | type[BaseException], ErrorHandler] = {}
        self._startup_hooks: list[Callable[..., Any]] = []
        self._shutdown_hooks: list[Callable[..., Any]] = []
        self._frozen: bool = False
        self._freeze_lock: threading.Lock = threading.Lock()

        # Compiled state, set during _freeze()
        self._pipeline: Pipeline | None = None

    # -- Route registration --

    def route(
        self,
        path: str,
        *,
        methods: Iterable[str] | None = None,
        representations: Iterable[str] | None = None,
        default: str | None = None,
        strict: bool | None = None,
        dependencies: Mapping[str, Depends | Callable[..., Any]] | None = None,
        params: Any = None,
        query: Any = None,
        body: Any = None,
        response: Any = None,
        name: str | None = None,
    ) -> Callable[[Handler], Handler]:
        """Register a route handler via decorator.

        Args:
            path: URL path pattern. Use ``:param`` for path parameters.
            methods: HTTP methods. Defaults to ``["GET"]``.
            representations: Media types the handler can be rendered as;
                shorthands like ``"json"`` or ``"html"`` are expanded.
                Defaults to ``AppConfig.representations``.
            default: Representation used when the client states no usable
                preference. Defaults to ``AppConfig.default_media_type`` if
                the route offers it, else the first representation.
            strict: Answer 406 when nothing offered is acceptable, instead
                of serving the default. Defaults to
                ``AppConfig.strict_negotiation``.
            dependencies: Name -> ``Depends`` (a bare callable means a
                request-scoped ``Depends``). Resolved in this order.
            params, query, body, response: Schemas for the path params,
                query string, request body, and handler result.
            name: Optional route name.

        Registration errors (bad pattern, duplicate route, unknown
        representation, a capture or dependency named like a reserved
        handler argument) raise ``ConfigurationError`` immediately, before
        any of the route's methods is registered.
        """

        def decorator(func: Handler) -> Handler:
            self._check_not_frozen()
            pattern = parse_pattern(path)
            self._check_captures(path, pattern.capture_names, RESERVED_PARAMS)
            offered = tuple(
                expand_shorthand(t) for t in (representations or self.config.representations)
            )
            if not offered:
                msg = f"Route {path!r} must offer at least one representation."
                raise ConfigurationError(msg)
            chosen = self._default_representation(path, offered, default)
            deps = self._normalize_dependencies(
                path, pattern.capture_names, dependencies, RESERVED_PARAMS
            )

            self._router.add_all(
                Route(
                    method=method.upper(),
                    pattern=pattern,
                    handler=func,
                    dependencies=deps,
                    representations=offered,
                    default_representation=chosen,
                    strict_negotiation=(
                        self.config.strict_negotiation if strict is None else strict
                    ),
                    params_schema=params,
                    query_schema=query,
                    body_schema=body,
                    response_schema=response,
                    name=name,
                )
                for method in methods or ("GET",)
            )
            return func

        return decorator

    def get(self, path: str, **options: Any) -> Callable[[Handler], Handler]:
        return self.route(path, methods=["GET"], **options)

    def post(self, path: str, **options: Any) -> Callable[[Handler], Handler]:
        return self.route(path, methods=["POST"], **options)

    def put(self, path: str, **options: Any) -> Callable[[Handler], Handler]:
        return self.route(path, methods=["PUT"], **options)

    def patch(self, path: str, **options: Any) -> Callable[[Handler], Handler]:
        return self.route(path, methods=["PATCH"], **options)

    def delete(self, path: str, **options: Any) -> Callable[[Handler], Handler]:
        return self.route(path, methods=["DELETE"], **options)

    def _default_representation(
        self, path: str, offered: tuple[str, ...], default: str | None
    ) -> str:
        if default is None:
            configured = self.config.default_media_type
            return configured if configured in offered else offered[0]
        chosen = expand_shorthand(default)
        if chosen not in offered:
            msg = (
                f"Route {path!r}: default representation {chosen!r} is not one of "
                f"its representations {offered!r}."
            )
            raise ConfigurationError(msg)
        return chosen

    @staticmethod
    def _check_captures(path: str, captures: tuple[str, ...], reserved: frozenset[str]) -> None:
        clashes = sorted(set(captures) & reserved)
        if clashes:
            msg = (
                f"Route {path!r}: path parameter {clashes[0]!r} clashes with a reserved "
                f"handler argument. Reserved names: {', '.join(sorted(reserved))}."
            )
            raise ConfigurationError(msg)

    @staticmethod
    def _normalize_dependencies(
        path: str,
        captures: tuple[str, ...],
        dependencies: Mapping[str, Depends | Callable[..., Any]] | None,
        reserved: frozenset[str],
    ) -> tuple[tuple[str, Depends], ...]:
        normalized: list[tuple[str, Depends]] = []
        for dep_name, dep in (dependencies or {}).items():
            if dep_name in reserved or dep_name in captures:
                msg = (
                    f"Route {path!r}: dependency name {dep_name!r} clashes with a "
                    f"path parameter or a reserved handler argument."
                )
                raise ConfigurationError(msg)
            if not isinstance(dep, Depends):
                if not callable(dep):
                    msg = f"Route {path!r}: dependency {dep_name!r} is not callable."
                    raise ConfigurationError(msg)
                dep = Depends(dep)
            normalized.append((dep_name, dep))
        return tuple(normalized)

    # -- WebSocket routes --

    def websocket(
        self,
        path: str,
        *,
        dependencies: Mapping[str, Depends | Callable[..., Any]] | None = None,
        name: str | None = None,
    ) -> Callable[[Handler], Handler]:
        """Register a WebSocket endpoint via decorator.

        The handler gets the ``websocket`` connection, path parameters,
        declared dependencies and ``background`` by name::

            @app.websocket("/chat/:room")
            async def chat(websocket, room: str):
                await websocket.accept()
                ...

        Dependencies live for the whole connection and are cleaned up
        after the handler returns.
        """

        def decorator(func: Handler) -> Handler:
            self._check_not_frozen()
            pattern = parse_pattern(path)
            self._check_captures(path, pattern.capture_names, WEBSOCKET_RESERVED_PARAMS)
            deps = self._normalize_dependencies(
                path, pattern.capture_names, dependencies, WEBSOCKET_RESERVED_PARAMS
            )
            self._ws_router.add(
                WebSocketRoute(pattern=pattern, handler=func, dependencies=deps, name=name)
            )
            return func

        return decorator

    # -- Error handlers --

    def error(
        self,
        code_or_exception: int | type[BaseException],
    ) -> Callable[[ErrorHandler], ErrorHandler]:
        """Register an error handler via decorator.

        Usage::

            @app.error(404)
            def not_found(request):
                return {"detail": f"Nothing at {request.path}"}

            @app.error(KeyError)
            def missing(request, exc):
                return {"detail": str(exc)}, 404
        """

        def decorator(func: ErrorHandler) -> ErrorHandler:
            self._check_not_frozen()
            self._error_handlers[code_or_exception] = func
            return func

        return decorator

    # -- Event adapters --

    def event_adapter(self, adapter: EventAdapter, *, replace: bool = False) -> EventAdapter:
        """Register an adapter for non-HTTP events."""
        self._check_not_frozen()
        self._events.register(adapter, replace=replace)
        return adapter

    async def dispatch_event(self, event: Any, context: Any = None) -> Any:
        """Route a non-HTTP event to the first adapter that accepts it."""
        self._ensure_frozen()
        return await self._events.dispatch(event, context)

    # -- Lifecycle hooks --

    def on_startup(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync startup hook via decorator.

        Hooks run in registration order during ASGI lifespan startup,
        before the server begins accepting HTTP requests.
        """
        self._check_not_frozen()
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync shutdown hook via decorator.

        Hooks run in registration order during ASGI lifespan shutdown,
        before singleton dependencies are torn down.
        """
        self._check_not_frozen()
        self._shutdown_hooks.append(func)
        return func

    async def startup(self) -> None:
        """Freeze the app and run startup hooks."""
        self._ensure_frozen()
        for hook in self._startup_hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result

    async def shutdown(self) -> None:
        """Run shutdown hooks, then clean up singleton dependencies."""
        for hook in self._shutdown_hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result
        await self._resolver.shutdown()

    # -- Logging --

    def configure_logging(self) -> None:
        """Send ``wren.*`` log records to stderr at ``config.log_level``.

        Wren never configures logging on import; call this from an entry
        point if the host application doesn't configure logging itself.
        """
        root = logging.getLogger("wren")
        root.setLevel(self.config.log_level.upper())
        if not root.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
            )
            root.addHandler(handler)

    # -- ASGI interface --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point.

        Handles lifespan scopes directly, then delegates HTTP scopes to
        the request pipeline and WebSocket scopes to the connection handler.
        """
        if scope["type"] == "lifespan":
            await self._handle_lifespan(scope, receive, send)
            return

        self._ensure_frozen()

        assert self._pipeline is not None

        if scope["type"] == "websocket":
            await handle_websocket(
                scope,
                receive,
                send,
                router=self._ws_router,
                resolver=self._resolver,
                config=self.config,
            )
            return

        await handle_request(scope, receive, send, pipeline=self._pipeline)

    async def _handle_lifespan(
        self,
        scope: Scope,
        receive: Receive,
        send: Send,
    ) -> None:
        """Run the ASGI lifespan protocol."""
        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                try:
                    await self.startup()
                except Exception as exc:
                    logger.exception("Startup failed")
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})

            elif msg_type == "lifespan.shutdown":
                try:
                    await self.shutdown()
                except Exception as exc:
                    logger.exception("Shutdown failed")
                    await send({"type": "lifespan.shutdown.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.shutdown.complete"})
                return

    # -- Introspection --

    @property
    def routes(self) -> list[Route]:
        return self._router.routes

    @property
    def websocket_routes(self) -> list[WebSocketRoute]:
        return self._ws_router.routes

    @property
    def resolver(self) -> DependencyResolver:
        return self._resolver

    @property
    def pipeline(self) -> Pipeline:
        """The compiled request pipeline. Freezes the app."""
        self._ensure_frozen()
        assert self._pipeline is not None
        return self._pipeline

    # -- Internal --

    def _ensure_frozen(self) -> None:
        """Thread-safe freeze with double-check locking."""
        if self._frozen:
            return
        with self._freeze_lock:
            if self._frozen:
                return
            self._freeze()

    def _freeze(self) -> None:
        """Compile the app into its frozen runtime state.

        MUST only be called while holding _freeze_lock.
        """
        self._router.compile()
        self._ws_router.compile()
        mapper = ErrorMapper(
            self._error_handlers,
            debug=self.config.debug,
            include_path=self.config.include_error_path,
        )
        self._pipeline = Pipeline(
            self._router, self._resolver, mapper, self._validator, self.config
        )
        self._frozen = True
        logger.debug("App frozen with %d routes", len(self._router.routes))

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = (
                "Cannot modify the app after it has started serving requests. "
                "Register routes, error handlers, and adapters before the first request."
            )
            raise RuntimeError(msg)
