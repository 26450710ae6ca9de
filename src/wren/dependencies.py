"""Declared dependencies — scopes, caches, and ordered teardown.

A route declares its dependencies by name::

    @app.get("/users/:id", dependencies={"db": Depends(open_db, cleanup=close_db)})
    async def show(id: str, db: Connection): ...

Each ``Depends`` names a factory (sync, async, or a generator that yields
the value once), a scope, and an optional cleanup.

Scopes:

- ``"request"`` — built at most once per request, cached in that request's
  ``RequestScope`` and torn down when the request finishes.
- ``"singleton"`` — built at most once per process. The first resolver
  parks an in-flight slot in the cache *before* awaiting the factory, so
  concurrent first users wait for that one construction instead of
  starting their own.

Resolution is a single flat pass in declaration order. A factory may read
the request (headers, path params) but never another dependency's value;
there is no dependency graph.

Thread safety:
    The singleton cache is the only state shared between requests. Its
    dict is guarded by a ``threading.Lock`` held only for lookups and
    stores (never across an ``await``). Waiting happens on the in-flight
    slot: an ``anyio.Event`` for waiters on the owner's thread, a
    ``threading.Event`` (waited on from a worker thread) for waiters that
    run their own event loop in another thread.

    A waiter that loses the race to a failing factory gets a fresh
    ``DependencyError`` chained to the owner's exception, never the
    owner's exception object itself.
"""

import inspect
import logging
import threading
from collections.abc import Awaitable, Callable, Iterable, Mapping
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass
from typing import Any, Literal, TypeAlias

import anyio
import anyio.to_thread

from wren._internal.invoke import call_with_optional, invoke, positional_arity
from wren._internal.types import Cleanup, Factory
from wren.background import BackgroundTasks
from wren.errors import CleanupError, ConfigurationError, DependencyError
from wren.http.request import Request
from wren.http.websocket import WebSocket

logger = logging.getLogger("wren.dependencies")

DependencyScope: TypeAlias = Literal["request", "singleton"]
Teardown: TypeAlias = Callable[[], Awaitable[Any]]

# What a factory may read: the HTTP request or the WebSocket connection
Connection: TypeAlias = Request | WebSocket

SCOPES: frozenset[str] = frozenset({"request", "singleton"})


@dataclass(frozen=True, slots=True)
class Depends:
    """A dependency declaration. Immutable once registered.

    Identity for caching is the factory itself: two ``Depends`` wrapping
    the same factory share one singleton, and within one request share one
    request-scoped value.
    """

    factory: Factory
    scope: DependencyScope = "request"
    cleanup: Cleanup | None = None

    def __post_init__(self) -> None:
        if self.scope not in SCOPES:
            msg = f"Unknown dependency scope {self.scope!r}. Use 'request' or 'singleton'."
            raise ConfigurationError(msg)
        if self.cleanup is not None and self.is_generator:
            msg = (
                f"Dependency factory {self.factory!r} is a generator; its code after "
                f"'yield' is the cleanup. Do not also pass cleanup=."
            )
            raise ConfigurationError(msg)

    @property
    def is_generator(self) -> bool:
        return inspect.isgeneratorfunction(self.factory) or inspect.isasyncgenfunction(
            self.factory
        )


@dataclass(slots=True)
class Resolved:
    """A constructed dependency and the teardown it registered, if any."""

    name: str
    value: Any
    scope: DependencyScope
    teardown: Teardown | None = None


class _InFlight:
    """A singleton under construction.

    ``done`` belongs to the owner's event loop and only wakes waiters on
    that loop. Waiters running their own loop in another thread block on
    ``finished`` from a worker thread instead.
    """

    __slots__ = ("done", "error", "finished", "owner_thread", "resolved")

    def __init__(self) -> None:
        self.done = anyio.Event()
        self.finished = threading.Event()
        self.owner_thread = threading.get_ident()
        self.resolved: Resolved | None = None
        self.error: BaseException | None = None

    async def wait(self) -> None:
        if threading.get_ident() == self.owner_thread:
            await self.done.wait()
        else:
            await anyio.to_thread.run_sync(self.finished.wait, abandon_on_cancel=True)

    def set(self) -> None:
        # Called on the owner's loop
        self.finished.set()
        self.done.set()


class RequestScope:
    """Request-lifetime cache and cleanup stack.

    Owned by exactly one request's task, so it needs no locking.
    ``close()`` runs registered teardowns once, newest first.
    ``background`` holds the tasks the handler scheduled for after the
    response.
    """

    __slots__ = ("_cache", "_closed", "_stack", "background", "errors")

    def __init__(self) -> None:
        self._cache: dict[Any, Resolved] = {}
        self._stack: list[Resolved] = []
        self._closed = False
        self.background = BackgroundTasks()
        self.errors: list[CleanupError] = []

    def get(self, factory: Factory) -> Resolved | None:
        return self._cache.get(factory)

    def add(self, factory: Factory, resolved: Resolved) -> None:
        self._cache[factory] = resolved
        if resolved.teardown is not None:
            self._stack.append(resolved)

    @property
    def pending_cleanups(self) -> list[str]:
        """Names whose teardown is still due, in the order they will run."""
        return [resolved.name for resolved in reversed(self._stack)]

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> list[CleanupError]:
        """Run every pending teardown in reverse resolution order.

        Each teardown is isolated: a failure is logged and recorded as a
        ``CleanupError`` and the remaining teardowns still run. Calling
        ``close()`` again is a no-op.
        """
        if self._closed:
            return []
        self._closed = True
        errors = await _run_teardowns(self._stack)
        self._stack.clear()
        self.errors.extend(errors)
        return errors


async def _run_teardowns(stack: list[Resolved]) -> list[CleanupError]:
    errors: list[CleanupError] = []
    with anyio.CancelScope(shield=True):
        for resolved in reversed(stack):
            assert resolved.teardown is not None
            try:
                await resolved.teardown()
            except Exception as exc:
                logger.exception("Cleanup for dependency %r failed", resolved.name)
                errors.append(CleanupError(resolved.name, exc))
    return errors


async def _construct(name: str, dep: Depends, request: Connection | None) -> Resolved:
    """Run *dep*'s factory (shielded from cancellation) and bind its teardown."""
    args = (request,)
    with anyio.CancelScope(shield=True):
        if inspect.isasyncgenfunction(dep.factory):
            acm = asynccontextmanager(dep.factory)(*args[: _arity(dep.factory)])
            value = await acm.__aenter__()

            async def teardown() -> Any:
                return await acm.__aexit__(None, None, None)

            return Resolved(name, value, dep.scope, teardown)

        if inspect.isgeneratorfunction(dep.factory):
            cm = contextmanager(dep.factory)(*args[: _arity(dep.factory)])
            value = cm.__enter__()

            async def teardown() -> Any:
                return cm.__exit__(None, None, None)

            return Resolved(name, value, dep.scope, teardown)

        value = await invoke(call_with_optional, dep.factory, *args)

    if dep.cleanup is None:
        return Resolved(name, value, dep.scope)

    cleanup = dep.cleanup

    async def teardown() -> Any:
        return await invoke(cleanup, value)

    return Resolved(name, value, dep.scope, teardown)


def _arity(func: Callable[..., Any]) -> int:
    return min(positional_arity(func), 1)


class DependencyResolver:
    """Resolves declared dependencies against the two caches.

    One resolver lives on the ``App`` for the lifetime of the process and
    holds the singleton cache. Per-request state lives in the
    ``RequestScope`` passed to ``resolve_all``.

    Usage::

        resolver = DependencyResolver()
        scope = RequestScope()
        try:
            values = await resolver.resolve_all(route.dependencies, request, scope)
            ...
        finally:
            await scope.close()
    """

    __slots__ = ("_lock", "_order", "_singletons")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._singletons: dict[Any, Resolved | _InFlight] = {}
        self._order: list[Resolved] = []

    async def resolve_all(
        self,
        dependencies: Mapping[str, Depends] | Iterable[tuple[str, Depends]],
        request: Connection | None,
        scope: RequestScope,
    ) -> dict[str, Any]:
        """Resolve every declared dependency, in declaration order.

        If a factory raises, resolution stops; the teardowns already
        registered in *scope* run (newest first) and a ``DependencyError``
        naming the failed dependency propagates.
        """
        items = dependencies.items() if isinstance(dependencies, Mapping) else dependencies
        values: dict[str, Any] = {}
        for name, dep in items:
            try:
                values[name] = await self.resolve(name, dep, request, scope)
            except DependencyError:
                await scope.close()
                raise
            except Exception as exc:
                await scope.close()
                raise DependencyError(name, exc) from exc
        return values

    async def resolve(
        self,
        name: str,
        dep: Depends,
        request: Connection | None,
        scope: RequestScope,
    ) -> Any:
        """Resolve one dependency, honouring its scope's cache."""
        if dep.scope == "singleton":
            return await self._resolve_singleton(name, dep, request)

        cached = scope.get(dep.factory)
        if cached is not None:
            return cached.value
        resolved = await _construct(name, dep, request)
        scope.add(dep.factory, resolved)
        return resolved.value

    async def _resolve_singleton(
        self, name: str, dep: Depends, request: Connection | None
    ) -> Any:
        key = dep.factory
        with self._lock:
            entry = self._singletons.get(key)
            owner = entry is None
            if entry is None:
                entry = _InFlight()
                self._singletons[key] = entry

        if isinstance(entry, Resolved):
            return entry.value

        if not owner:
            await entry.wait()
            if entry.error is not None:
                raise DependencyError(name, entry.error) from entry.error
            assert entry.resolved is not None
            return entry.resolved.value

        try:
            resolved = await _construct(name, dep, request)
        except BaseException as exc:
            # Evict so a later request can retry; current waiters share the failure
            entry.error = exc
            with self._lock:
                self._singletons.pop(key, None)
            entry.set()
            raise

        logger.debug("Constructed singleton dependency %r", name)
        with self._lock:
            self._singletons[key] = resolved
            if resolved.teardown is not None:
                self._order.append(resolved)
        entry.resolved = resolved
        entry.set()
        return resolved.value

    def is_resolved(self, dep: Depends) -> bool:
        """Whether *dep*'s singleton has finished constructing."""
        with self._lock:
            return isinstance(self._singletons.get(dep.factory), Resolved)

    async def shutdown(self) -> list[CleanupError]:
        """Tear down singletons (newest first) and empty the cache."""
        with self._lock:
            stack = list(self._order)
            self._order.clear()
            self._singletons.clear()
        return await _run_teardowns(stack)
