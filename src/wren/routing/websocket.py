"""WebSocket route table.

Same patterns and the same literal-first precedence as the HTTP router,
without methods: a path either has a WebSocket endpoint or it doesn't.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from wren.errors import ConfigurationError
from wren.routing.pattern import RoutePattern, match_segments, split_path

if TYPE_CHECKING:
    from wren.dependencies import Depends


@dataclass(frozen=True, slots=True)
class WebSocketRoute:
    """A frozen WebSocket endpoint definition."""

    pattern: RoutePattern
    handler: Callable[..., Any]
    dependencies: tuple[tuple[str, Depends], ...] = ()
    name: str | None = None

    @property
    def path(self) -> str:
        return self.pattern.source

    def __str__(self) -> str:
        return f"WEBSOCKET {self.pattern.source}"


@dataclass(frozen=True, slots=True)
class WebSocketMatch:
    route: WebSocketRoute
    path_params: dict[str, str]


class WebSocketRouter:
    """Resolves a connection path to a single WebSocket route.

    ``resolve`` returns ``None`` for an unknown path.
    """

    __slots__ = ("_compiled", "_routes", "_shapes")

    def __init__(self) -> None:
        self._routes: list[WebSocketRoute] = []
        self._shapes: set[tuple[str | None, ...]] = set()
        self._compiled = False

    def add(self, route: WebSocketRoute) -> None:
        if self._compiled:
            msg = "Cannot add WebSocket routes after compilation."
            raise RuntimeError(msg)
        shape = route.pattern.shape
        if shape in self._shapes:
            msg = (
                f"WebSocket route {route.pattern.source!r} is already registered "
                f"(an equivalent pattern exists)."
            )
            raise ConfigurationError(msg)
        self._shapes.add(shape)
        self._routes.append(route)

    def compile(self) -> None:
        self._compiled = True

    @property
    def routes(self) -> list[WebSocketRoute]:
        return list(self._routes)

    def resolve(self, path: str) -> WebSocketMatch | None:
        """Most specific route matching *path*, literal segments first."""
        parts = split_path(path)
        best: tuple[tuple[int, ...], WebSocketRoute, dict[str, str]] | None = None
        for route in self._routes:
            result = match_segments(route.pattern, parts)
            if not result.matched:
                continue
            rank = route.pattern.specificity
            if best is None or rank < best[0]:
                best = (rank, route, result.params)
        if best is None:
            return None
        _, route, params = best
        return WebSocketMatch(route=route, path_params=params)
