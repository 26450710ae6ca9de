"""Wren exception hierarchy.

Shared across Router, resolver, pipeline, and error mapper so every module
raises and catches the same types.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


class WrenError(Exception):
    """Base for all wren-specific errors."""


class ConfigurationError(WrenError):
    """Raised when app configuration or route registration is invalid.

    Surfaces at registration time or during ``App._freeze()``, never while
    serving.
    """


@dataclass(frozen=True, slots=True)
class HTTPError(WrenError):
    """An error that maps directly to an HTTP status code.

    Raised by the pipeline or by handlers. The pipeline catches these and
    renders a structured response, or hands them to a registered error
    handler.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class RoutingError(HTTPError):
    """No route could be selected for the request."""


class NotFound(RoutingError):  # noqa: N818
    """404 — no route pattern matches the request path."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)


class MethodNotAllowed(RoutingError):  # noqa: N818
    """405 — a route owns the path but not for this HTTP method.

    Includes an ``Allow`` header listing the valid methods.
    """

    def __init__(self, allowed: frozenset[str], detail: str = "") -> None:
        allow_value = ", ".join(sorted(allowed))
        default_detail = f"Method not allowed. Allowed methods: {allow_value}"
        super().__init__(
            status=405,
            detail=detail or default_detail,
            headers=(("Allow", allow_value),),
        )


class ValidationError(HTTPError):
    """422 — input failed its schema, or 500 when the handler output did.

    ``errors`` maps field names to lists of messages. ``location`` names
    what was validated: ``"path"``, ``"query"``, ``"body"`` or
    ``"response"``.
    """

    errors: Mapping[str, Any]
    location: str

    def __init__(
        self,
        errors: Mapping[str, Any],
        location: str,
        *,
        status: int = 422,
        detail: str = "",
    ) -> None:
        super().__init__(status=status, detail=detail or f"Invalid {location}")
        object.__setattr__(self, "errors", errors)
        object.__setattr__(self, "location", location)


class NegotiationError(HTTPError):
    """No representation the route produces is acceptable to the client."""


class NotAcceptable(NegotiationError):  # noqa: N818
    """406 — raised only for routes that opt into strict negotiation."""

    def __init__(self, available: tuple[str, ...], detail: str = "") -> None:
        default_detail = f"Not Acceptable. Available representations: {', '.join(available)}"
        super().__init__(status=406, detail=detail or default_detail)


class DependencyError(WrenError):
    """A declared dependency's factory raised.

    The original exception is kept on ``original`` (and as ``__cause__``)
    so error handlers registered for it still apply.
    """

    def __init__(self, name: str, original: BaseException) -> None:
        super().__init__(f"Dependency {name!r} failed: {original!r}")
        self.name = name
        self.original = original


class HandlerError(WrenError):
    """A route handler raised something other than an ``HTTPError``."""

    def __init__(self, route: str, original: BaseException) -> None:
        super().__init__(f"Handler for {route} failed: {original!r}")
        self.route = route
        self.original = original


class CleanupError(WrenError):
    """A dependency cleanup raised. Logged and reported, never fatal."""

    def __init__(self, name: str, original: BaseException) -> None:
        super().__init__(f"Cleanup for {name!r} failed: {original!r}")
        self.name = name
        self.original = original
