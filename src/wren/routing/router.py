"""Route table with pattern scanning and literal-first precedence.

Capture segments defeat exact hashing, so routes are kept as a flat list
of compiled patterns checked in registration order. Patterns are split
once at registration; a lookup splits the request path once and walks
the list.
"""

from collections.abc import Iterable

from wren.errors import ConfigurationError
from wren.routing.pattern import match_segments, split_path
from wren.routing.route import (
    Resolution,
    Route,
    RouteMatch,
    RouteMethodNotAllowed,
    RouteNotFound,
)


class Router:
    """Route table resolving ``(method, path)`` to a single route.

    Usage::

        router = Router()
        router.add(Route("GET", parse_pattern("/users/:id"), handler))
        router.compile()
        result = router.resolve("GET", "/users/42")

    ``resolve`` returns a ``RouteMatch``, ``RouteNotFound`` or
    ``RouteMethodNotAllowed``; ordinary misses never raise.
    """

    __slots__ = ("_compiled", "_keys", "_routes")

    def __init__(self) -> None:
        self._routes: list[Route] = []
        self._keys: set[tuple[str, tuple[str | None, ...]]] = set()
        self._compiled = False

    def add(self, route: Route) -> None:
        """Register *route*. Must be called before ``compile()``.

        Raises ``ConfigurationError`` if a route with the same method and
        an equivalent pattern is already registered.
        """
        self.add_all((route,))

    def add_all(self, routes: Iterable[Route]) -> None:
        """Register several routes, all or none.

        Every (method, pattern) pair is checked, against the table and
        against the rest of the batch, before any route is added.
        """
        if self._compiled:
            msg = "Cannot add routes after compilation."
            raise RuntimeError(msg)

        batch = list(routes)
        keys: set[tuple[str, tuple[str | None, ...]]] = set()
        for route in batch:
            key = (route.method, route.pattern.shape)
            if key in self._keys or key in keys:
                msg = (
                    f"Route {route.method} {route.pattern.source!r} is already registered "
                    f"(an equivalent pattern exists for this method)."
                )
                raise ConfigurationError(msg)
            keys.add(key)

        self._keys.update(keys)
        self._routes.extend(batch)

    def compile(self) -> None:
        """Freeze the router. No more routes can be added."""
        self._compiled = True

    @property
    def routes(self) -> list[Route]:
        """All registered routes, in registration order."""
        return list(self._routes)

    def resolve(self, method: str, path: str) -> Resolution:
        """Find the unique route for *method* and *path*.

        Every route whose pattern matches the path is considered,
        regardless of method, so that "no such path" (404) can be told
        apart from "wrong method" (405). Among routes with the right
        method the most specific pattern wins: literal segments outrank
        captures, compared left to right.

        ``HEAD`` is also served by ``GET`` routes. They compete on
        specificity with explicit ``HEAD`` routes, which win only ties.
        """
        method = method.upper()
        parts = split_path(path)

        allowed: set[str] = set()
        best: tuple[tuple[tuple[int, ...], bool], Route, dict[str, str]] | None = None

        for route in self._routes:
            result = match_segments(route.pattern, parts)
            if not result.matched:
                continue
            allowed.add(route.method)
            if route.method == method or (method == "HEAD" and route.method == "GET"):
                rank = (route.pattern.specificity, route.method != method)
                if best is None or rank < best[0]:
                    best = (rank, route, result.params)

        if best is not None:
            _, route, params = best
            return RouteMatch(route=route, path_params=params)

        if not allowed:
            return RouteNotFound(path=path)
        if "GET" in allowed:
            allowed.add("HEAD")
        return RouteMethodNotAllowed(path=path, allowed=frozenset(allowed))

    def allowed_methods(self, path: str) -> frozenset[str]:
        """Methods registered for any pattern matching *path*."""
        parts = split_path(path)
        methods = {
            route.method
            for route in self._routes
            if match_segments(route.pattern, parts).matched
        }
        if "GET" in methods:
            methods.add("HEAD")
        return frozenset(methods)
