"""Route definition and route-resolution results."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeAlias

from wren.routing.pattern import RoutePattern

if TYPE_CHECKING:
    from wren.dependencies import Depends


@dataclass(frozen=True, slots=True)
class Route:
    """A frozen route definition.

    One per (method, pattern) pair. Created during app setup, read-only
    while serving.

    ``dependencies`` keeps declaration order, which is also resolution
    order. ``representations`` lists the media types the handler can be
    rendered as; ``default_representation`` is used when the client sends
    no usable ``Accept`` header.
    """

    method: str
    pattern: RoutePattern
    handler: Callable[..., Any]
    dependencies: tuple[tuple[str, Depends], ...] = ()
    representations: tuple[str, ...] = ("application/json",)
    default_representation: str = "application/json"
    strict_negotiation: bool = False
    params_schema: Any = None
    query_schema: Any = None
    body_schema: Any = None
    response_schema: Any = None
    name: str | None = None

    @property
    def path(self) -> str:
        return self.pattern.source

    def __str__(self) -> str:
        return f"{self.method} {self.pattern.source}"


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """A route was found for the request."""

    route: Route
    path_params: dict[str, str]


@dataclass(frozen=True, slots=True)
class RouteNotFound:
    """No registered pattern matches the path."""

    path: str


@dataclass(frozen=True, slots=True)
class RouteMethodNotAllowed:
    """Some pattern matches the path, but none for this method."""

    path: str
    allowed: frozenset[str] = field(default_factory=frozenset)


Resolution: TypeAlias = RouteMatch | RouteNotFound | RouteMethodNotAllowed
