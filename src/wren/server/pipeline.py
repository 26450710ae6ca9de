"""The request pipeline — one request, start to finish.

Stages run strictly in order, each one able to end the request early::

    route          404 / 405 (or an automatic OPTIONS reply)
    validate       422 for path params, query, body
    negotiate      406 when the route is strict
    dependencies   mapped error (500 unless the factory raised an HTTPError)
    handler        mapped error
    render         response validation failure -> 500

Every early exit becomes a ``Response`` through the ``ErrorMapper``, so
``dispatch`` always returns one. Background tasks and dependency teardown
are *not* run here: ``dispatch`` hands back the ``RequestScope`` and the
transport runs both once the response has been sent.
"""

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from wren._internal.invoke import invoke
from wren.background import BackgroundTasks
from wren.config import AppConfig
from wren.dependencies import DependencyResolver, RequestScope
from wren.errors import (
    HandlerError,
    HTTPError,
    MethodNotAllowed,
    NotAcceptable,
    NotFound,
    ValidationError,
)
from wren.http.request import Request
from wren.http.response import Response
from wren.routing.route import Route, RouteMethodNotAllowed, RouteNotFound
from wren.routing.router import Router
from wren.server.errors import ErrorMapper
from wren.server.negotiation import NegotiationResult, negotiate
from wren.server.render import render
from wren.validation import SchemaValidator, check

logger = logging.getLogger("wren.server")

# Handler parameter names filled from the request itself
REQUEST_PARAM = "request"
QUERY_PARAM = "query"
BODY_PARAM = "body"
BACKGROUND_PARAM = "background"

RESERVED_PARAMS = frozenset({REQUEST_PARAM, QUERY_PARAM, BODY_PARAM, BACKGROUND_PARAM})


@dataclass(frozen=True, slots=True)
class Outcome:
    """What the pipeline produced for one request.

    ``scope`` still holds the request's pending dependency cleanups;
    whoever sends ``response`` must ``await scope.close()`` afterwards.
    """

    response: Response
    scope: RequestScope
    route: Route | None = None
    negotiation: NegotiationResult | None = None


def options_response(allowed: frozenset[str]) -> Response:
    """204 reply to an ``OPTIONS`` request no route handles itself."""
    allow = ", ".join(sorted(allowed | {"OPTIONS"}))
    return Response(body=b"", status=204).with_header("Allow", allow)


def accepted_params(handler: Callable[..., Any]) -> tuple[frozenset[str], bool]:
    """Parameter names *handler* takes by keyword, and whether it has ``**kwargs``."""
    names: set[str] = set()
    var_keyword = False
    for param in inspect.signature(handler).parameters.values():
        if param.kind is inspect.Parameter.VAR_KEYWORD:
            var_keyword = True
        elif param.kind in (
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
            inspect.Parameter.KEYWORD_ONLY,
        ):
            names.add(param.name)
    return frozenset(names), var_keyword


def build_handler_kwargs(
    handler: Callable[..., Any],
    request: Request,
    path_params: dict[str, Any],
    dependencies: dict[str, Any],
    *,
    query: Any = None,
    body: Any = None,
    background: BackgroundTasks | None = None,
) -> dict[str, Any]:
    """Build keyword arguments from the handler's signature.

    Available by name:
    - ``request``, ``query`` and ``body`` (the latter two after validation)
    - ``background``, the request's ``BackgroundTasks``
    - path parameters
    - declared dependencies

    Registration guarantees these names never collide. Parameters the
    request can't supply are left to their defaults.
    """
    names, var_keyword = accepted_params(handler)
    available: dict[str, Any] = {
        REQUEST_PARAM: request,
        QUERY_PARAM: query,
        BODY_PARAM: body,
        BACKGROUND_PARAM: background,
    }
    available.update(path_params)
    available.update(dependencies)

    if var_keyword:
        return available
    return {name: value for name, value in available.items() if name in names}


def _wants(handler: Callable[..., Any], name: str) -> bool:
    names, var_keyword = accepted_params(handler)
    return var_keyword or name in names


class Pipeline:
    """Runs requests through routing, validation, negotiation, dependencies,
    the handler, and rendering.

    Holds only read-only collaborators (the compiled router, the mapper,
    the validator, the config) plus the resolver, whose singleton cache is
    the single piece of state shared between requests.
    """

    __slots__ = ("_config", "_mapper", "_resolver", "_router", "_validator")

    def __init__(
        self,
        router: Router,
        resolver: DependencyResolver,
        mapper: ErrorMapper,
        validator: SchemaValidator,
        config: AppConfig,
    ) -> None:
        self._router = router
        self._resolver = resolver
        self._mapper = mapper
        self._validator = validator
        self._config = config

    @property
    def config(self) -> AppConfig:
        return self._config

    async def dispatch(self, request: Request, scope: RequestScope | None = None) -> Outcome:
        """Produce the response for *request*. Never raises for request errors.

        Pass *scope* to keep hold of the cleanup stack even if this task is
        cancelled part way through.
        """
        scope = scope if scope is not None else RequestScope()
        route: Route | None = None
        negotiation: NegotiationResult | None = None
        try:
            resolution = self._router.resolve(request.method, request.path)
            if isinstance(resolution, RouteNotFound):
                raise NotFound()
            if isinstance(resolution, RouteMethodNotAllowed):
                if request.method == "OPTIONS":
                    return Outcome(options_response(resolution.allowed), scope)
                raise MethodNotAllowed(resolution.allowed)

            route = resolution.route
            request = request.with_path_params(resolution.path_params)
            response, negotiation = await self._serve(route, request, scope)
        except Exception as exc:
            # Tasks belong to a successful response
            scope.background.clear()
            response = await self._mapper.map_error(exc, request)

        if route is not None and len(route.representations) > 1:
            response = response.with_header("Vary", "Accept")
        return Outcome(response, scope, route, negotiation)

    async def _serve(
        self,
        route: Route,
        request: Request,
        scope: RequestScope,
    ) -> tuple[Response, NegotiationResult]:
        handler = route.handler

        # -- validate --
        params = self._validate(route.params_schema, dict(request.path_params), "path")
        query = self._validate(route.query_schema, dict(request.query), "query")
        body = None
        if route.body_schema is not None or _wants(handler, BODY_PARAM):
            body = self._validate(route.body_schema, await self._read_body(request), "body")

        # -- negotiate --
        negotiation = negotiate(
            request.accept, route.representations, route.default_representation
        )
        if not negotiation.acceptable and route.strict_negotiation:
            raise NotAcceptable(route.representations)

        # -- dependencies (DependencyError propagates to the mapper) --
        dependencies = await self._resolver.resolve_all(route.dependencies, request, scope)

        # -- handler --
        kwargs = build_handler_kwargs(
            handler,
            request,
            params,
            dependencies,
            query=query,
            body=body,
            background=scope.background,
        )
        try:
            result = await invoke(handler, **kwargs)
        except HTTPError:
            raise
        except Exception as exc:
            raise HandlerError(str(route), exc) from exc

        # -- render --
        if route.response_schema is not None:
            self._validate_output(route, result)
        return render(result, negotiation.selected), negotiation

    def _validate(self, schema: Any, value: Any, location: str) -> Any:
        result = check(self._validator, schema, value)
        if not result:
            raise ValidationError(result.errors, location)
        return result.data

    def _validate_output(self, route: Route, result: Any) -> None:
        value = result
        if isinstance(value, tuple) and len(value) in (2, 3) and isinstance(value[1], int):
            value = value[0]
        if isinstance(value, Response):
            return
        outcome = check(self._validator, route.response_schema, value)
        if outcome:
            return
        logger.error("Response from %s failed validation: %s", route, outcome.errors)
        raise ValidationError(
            outcome.errors if self._config.debug else {},
            "response",
            status=500,
            detail="Response failed validation",
        )

    async def _read_body(self, request: Request) -> Any:
        length = request.content_length
        limit = self._config.max_content_length
        if length is not None and length > limit:
            raise HTTPError(status=413, detail=f"Request body exceeds {limit} bytes")
        raw = await request.body()
        if len(raw) > limit:
            raise HTTPError(status=413, detail=f"Request body exceeds {limit} bytes")
        try:
            return await request.parsed_body()
        except (ValueError, UnicodeDecodeError) as exc:
            raise HTTPError(status=400, detail="Malformed request body") from exc
