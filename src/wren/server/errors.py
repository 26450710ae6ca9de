"""Error mapping — exceptions to structured responses.

Everything that goes wrong while serving a request ends up here, either as
an ``HTTPError`` (routing, validation, negotiation, or raised on purpose by
a handler) or as something unexpected wrapped in ``DependencyError`` /
``HandlerError``. Wrappers are unwrapped first, so a handler registered
for ``KeyError`` also sees a ``KeyError`` raised inside a dependency
factory.
"""

import logging
from collections.abc import Mapping
from typing import Any

from wren._internal.invoke import call_with_optional, invoke
from wren._internal.types import ErrorHandler
from wren.errors import DependencyError, HandlerError, HTTPError, ValidationError
from wren.http.request import Request
from wren.http.response import Response
from wren.server.render import render

logger = logging.getLogger("wren.server")

INTERNAL_ERROR_DETAIL = "Internal Server Error"


def unwrap(exc: BaseException) -> BaseException:
    """Strip ``DependencyError`` / ``HandlerError`` wrappers."""
    while isinstance(exc, (DependencyError, HandlerError)):
        exc = exc.original
    return exc


def error_response(
    status: int,
    detail: str,
    path: str | None,
    *,
    headers: tuple[tuple[str, str], ...] = (),
    errors: Mapping[str, Any] | None = None,
) -> Response:
    """The JSON error body: ``{"status", "detail", "path"[, "errors"]}``."""
    payload: dict[str, Any] = {"status": status, "detail": detail}
    if path is not None:
        payload["path"] = path
    if errors:
        payload["errors"] = dict(errors)
    response = Response.json(payload, status=status)
    for name, value in headers:
        response = response.with_header(name, value)
    return response


class ErrorMapper:
    """Turns exceptions into responses, consulting registered handlers.

    Handlers are keyed by exception type or status code. Lookup order for
    an exception: its exact type, then its status (500 for anything that
    is not an ``HTTPError``), then its base classes in MRO order.

    A handler may take ``()``, ``(request)`` or ``(request, exc)`` and may
    be sync or async. It can return a ``Response`` or any value
    ``render`` understands; a plain value keeps the error's status.
    """

    __slots__ = ("_debug", "_handlers", "_include_path")

    def __init__(
        self,
        handlers: Mapping[int | type[BaseException], ErrorHandler] | None = None,
        *,
        debug: bool = False,
        include_path: bool = True,
    ) -> None:
        self._handlers: dict[int | type[BaseException], ErrorHandler] = dict(handlers or {})
        self._debug = debug
        self._include_path = include_path

    def register(self, key: int | type[BaseException], handler: ErrorHandler) -> None:
        self._handlers[key] = handler

    def lookup(self, exc: BaseException) -> ErrorHandler | None:
        """Find the handler for *exc* (already unwrapped), if any."""
        handlers = self._handlers
        if not handlers:
            return None
        exc_type = type(exc)
        if exc_type in handlers:
            return handlers[exc_type]
        status = exc.status if isinstance(exc, HTTPError) else 500
        if status in handlers:
            return handlers[status]
        for cls in exc_type.__mro__[1:]:
            if cls in handlers:
                return handlers[cls]
        return None

    async def map_error(self, exc: BaseException, request: Request) -> Response:
        """Map *exc* raised while serving *request* to a response."""
        original = unwrap(exc)

        if isinstance(original, HTTPError):
            logger.debug(
                "%d %s %s: %s", original.status, request.method, request.path, original.detail
            )
            status = original.status
        else:
            logger.error("500 %s %s", request.method, request.path, exc_info=original)
            status = 500

        handler = self.lookup(original)
        if handler is not None:
            return await self._call_handler(handler, request, original, status)

        return self.default_response(original, request)

    def default_response(self, exc: BaseException, request: Request) -> Response:
        path = request.path if self._include_path else None
        if isinstance(exc, HTTPError):
            errors = exc.errors if isinstance(exc, ValidationError) else None
            return error_response(
                exc.status,
                exc.detail or f"Error {exc.status}",
                path,
                headers=exc.headers,
                errors=errors,
            )
        detail = f"{INTERNAL_ERROR_DETAIL}: {exc!r}" if self._debug else INTERNAL_ERROR_DETAIL
        return error_response(500, detail, path)

    async def _call_handler(
        self,
        handler: ErrorHandler,
        request: Request,
        exc: BaseException,
        status: int,
    ) -> Response:
        try:
            result = await invoke(call_with_optional, handler, request, exc)
        except Exception:
            logger.exception("Error handler %r failed", handler)
            return self.default_response(exc, request)

        if isinstance(result, Response):
            # Keep the error status unless the handler chose its own
            return result.with_status(status) if result.status == 200 else result
        return render(result, "application/json", status=status)
