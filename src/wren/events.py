"""Non-HTTP event intake — adapters and the dispatcher that picks one.

An event adapter turns a foreign trigger (a queue message, a storage
notification, a scheduled tick) into work for the app. Wren ships the seam,
not the adapters::

    class TickAdapter:
        event_type = "tick"

        def can_handle(self, event: object) -> bool:
            return isinstance(event, dict) and event.get("source") == "scheduler"

        async def handle(self, event: object, context: object = None) -> object:
            ...

    app.event_adapter(TickAdapter())
    result = await app.dispatch_event({"source": "scheduler"})

Adapters are tried in registration order; the first whose ``can_handle``
returns true gets the event. No match gives a ``NoAdapter`` result rather
than an exception.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from wren._internal.invoke import invoke
from wren.errors import ConfigurationError

logger = logging.getLogger("wren.events")


@runtime_checkable
class EventAdapter(Protocol):
    """What the dispatcher needs from an adapter.

    ``event_type`` names the adapter; it must be unique per dispatcher.
    ``handle`` may be sync or async.
    """

    event_type: str

    def can_handle(self, event: Any) -> bool: ...

    def handle(self, event: Any, context: Any = None) -> Any: ...


@dataclass(frozen=True, slots=True)
class NoAdapter:
    """No registered adapter accepted the event."""

    event: Any
    detail: str = "Unknown event type"


class EventDispatcher:
    """Ordered registry of event adapters.

    Mutable during app setup; read-only once the app serves, so lookups
    need no locking.
    """

    __slots__ = ("_adapters",)

    def __init__(self) -> None:
        self._adapters: dict[str, EventAdapter] = {}

    def register(self, adapter: EventAdapter, *, replace: bool = False) -> None:
        """Add *adapter*. Its ``event_type`` must not be taken unless *replace*."""
        if not isinstance(adapter, EventAdapter):
            msg = (
                f"{adapter!r} is not an event adapter: it needs an 'event_type' "
                f"attribute and 'can_handle' and 'handle' methods."
            )
            raise ConfigurationError(msg)
        if adapter.event_type in self._adapters and not replace:
            msg = f"An adapter for event type {adapter.event_type!r} is already registered."
            raise ConfigurationError(msg)
        self._adapters[adapter.event_type] = adapter

    def get(self, event_type: str) -> EventAdapter | None:
        return self._adapters.get(event_type)

    @property
    def adapters(self) -> tuple[EventAdapter, ...]:
        return tuple(self._adapters.values())

    def find(self, event: Any) -> EventAdapter | None:
        """First adapter, in registration order, that accepts *event*."""
        if event is None:
            return None
        for adapter in self._adapters.values():
            if adapter.can_handle(event):
                return adapter
        return None

    async def dispatch(self, event: Any, context: Any = None) -> Any:
        """Hand *event* to the matching adapter and return its result.

        Returns ``NoAdapter`` when nothing accepts the event. Errors raised
        by the adapter propagate to the caller.
        """
        adapter = self.find(event)
        if adapter is None:
            logger.debug("No adapter for event %r", event)
            return NoAdapter(event)
        logger.debug("Dispatching event to %r adapter", adapter.event_type)
        return await invoke(adapter.handle, event, context)
