"""Immutable HTTP request.

Frozen metadata with async body access. The request is honest about
what it is: received data that doesn't change.
"""

from __future__ import annotations

import json as json_module
from dataclasses import dataclass, field, replace
from typing import Any
from urllib.parse import parse_qs

from wren._internal.asgi import Receive, Scope
from wren.http.headers import Headers
from wren.http.query import QueryParams


async def _empty_receive() -> dict[str, Any]:
    return {"type": "http.request", "body": b"", "more_body": False}


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    Metadata (method, path, headers, etc.) is frozen at creation.
    Body is accessed asynchronously via ``.body()``, ``.json()``, ``.form()``.
    ``path_params`` is filled in once the route has been resolved.
    """

    method: str
    path: str
    headers: Headers = field(default_factory=Headers)
    query: QueryParams = field(default_factory=QueryParams)
    path_params: dict[str, str] = field(default_factory=dict)
    client: tuple[str, int] | None = None

    # Private: ASGI receive callable for body streaming
    _receive: Receive = _empty_receive

    # Private: mutable cache for the body and parsed forms
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    # -- Computed properties --

    @property
    def accept(self) -> str | None:
        """The raw ``Accept`` header, verbatim."""
        return self.headers.get("accept")

    @property
    def content_type(self) -> str | None:
        """The Content-Type header value."""
        return self.headers.get("content-type")

    @property
    def content_length(self) -> int | None:
        """The Content-Length header as int."""
        value = self.headers.get("content-length")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    def accepts(self, *types: str) -> str | None:
        """Return the best of *types* for this request's ``Accept`` header.

        Shorthands (``"json"``, ``"html"``, ...) are expanded. Returns
        ``None`` when none of them is acceptable::

            if request.accepts("json") is None:
                raise NotAcceptable(("application/json",))
        """
        from wren.server.negotiation import Accepts

        return Accepts(self.accept).best(*types)

    def with_path_params(self, path_params: dict[str, str]) -> Request:
        """Return a copy carrying the matched route's path parameters.

        The body cache is shared so anything already read isn't lost.
        """
        return replace(self, path_params=path_params)

    # -- Async body access --

    async def body(self) -> bytes:
        """Read the full request body.

        Result is cached — the ASGI receive is consumed once, then
        the same bytes are returned on subsequent calls.
        """
        if "_body" in self._cache:
            return self._cache["_body"]
        chunks: list[bytes] = []
        while True:
            message = await self._receive()
            chunk = message.get("body", b"")
            if chunk:
                chunks.append(chunk)
            if not message.get("more_body", False):
                break
        result = b"".join(chunks)
        self._cache["_body"] = result
        return result

    async def json(self) -> Any:
        """Parse the body as JSON."""
        raw = await self.body()
        return json_module.loads(raw)

    async def text(self) -> str:
        """Read the body as text (UTF-8)."""
        raw = await self.body()
        return raw.decode("utf-8")

    async def form(self) -> dict[str, str]:
        """Parse a URL-encoded body into a flat dict (first value wins)."""
        if "_form" in self._cache:
            return self._cache["_form"]
        raw = await self.body()
        parsed = parse_qs(raw.decode("latin-1"), keep_blank_values=True)
        result = {key: values[0] for key, values in parsed.items()}
        self._cache["_form"] = result
        return result

    async def parsed_body(self) -> Any:
        """Decode the body according to its Content-Type.

        JSON for ``*/json`` and ``*+json``, a dict for URL-encoded forms,
        text for ``text/*``, raw bytes otherwise. An empty body is ``None``.
        """
        raw = await self.body()
        if not raw:
            return None
        ct = (self.content_type or "").split(";", 1)[0].strip().lower()
        if ct.endswith("/json") or ct.endswith("+json"):
            return await self.json()
        if ct == "application/x-www-form-urlencoded":
            return await self.form()
        if ct.startswith("text/"):
            return await self.text()
        return raw

    # -- Factory --

    @classmethod
    def from_asgi(cls, scope: Scope, receive: Receive) -> Request:
        """Create a Request from an ASGI scope and receive callable."""
        client = scope.get("client")
        return cls(
            method=scope["method"].upper(),
            path=scope["path"],
            headers=Headers.from_raw(scope.get("headers", ())),
            query=QueryParams(scope.get("query_string", b"")),
            client=tuple(client) if client else None,
            _receive=receive,
        )
