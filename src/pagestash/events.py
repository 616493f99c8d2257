"""Typed event dispatch table connecting the engine to its scheduler.

The host framework owns *when* things happen (a post is published, the
hourly timer fires, the settings form is saved); the engine owns *what*
happens.  :class:`EventDispatcher` is the seam between the two: handlers
are registered per :class:`EventType` and invoked in registration order
when :meth:`EventDispatcher.dispatch` is called.

A failing handler never stops the remaining handlers from running; its
exception is logged and recorded in the returned :class:`DispatchResult`.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventType(str, enum.Enum):
    """Events the engine reacts to or emits."""

    CONTENT_CHANGED = "content_changed"
    """Payload: :class:`~pagestash.models.ContentChange`."""

    TIMER_TICK = "timer_tick"
    """Payload: none. Drives the expiry sweep."""

    CACHE_CLEARED = "cache_cleared"
    """Payload: the number of entries removed. Emitted after a full flush."""

    SETTINGS_CHANGED = "settings_changed"
    """Payload: the new :class:`~pagestash.models.CacheSettings` snapshot."""


Handler = Callable[[Any], Any]


@dataclass
class DispatchResult:
    """Outcome of one :meth:`EventDispatcher.dispatch` call.

    Attributes:
        event: The dispatched event.
        results: Return values of the handlers that succeeded, in order.
        errors: Exceptions raised by failing handlers.
    """

    event: EventType
    results: list[Any] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class EventDispatcher:
    """Explicit event-to-handler registration table."""

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[Handler]] = {event: [] for event in EventType}

    def register(self, event: EventType, handler: Handler) -> Handler:
        """Register *handler* for *event*. Returns the handler unchanged."""
        self._handlers[event].append(handler)
        return handler

    def unregister(self, event: EventType, handler: Handler) -> None:
        try:
            self._handlers[event].remove(handler)
        except ValueError:
            pass

    def on(self, event: EventType) -> Callable[[Handler], Handler]:
        """Decorator form of :meth:`register`."""

        def decorator(handler: Handler) -> Handler:
            return self.register(event, handler)

        return decorator

    def handlers(self, event: EventType) -> list[Handler]:
        return list(self._handlers[event])

    def dispatch(self, event: EventType, payload: Any = None) -> DispatchResult:
        """Invoke every handler registered for *event* with *payload*.

        Args:
            event: The event to dispatch.
            payload: Event-specific payload (see :class:`EventType`).

        Returns:
            A :class:`DispatchResult` collecting handler results and errors.
        """
        result = DispatchResult(event=event)
        for handler in list(self._handlers[event]):
            try:
                result.results.append(handler(payload))
            except Exception as exc:
                logger.exception("Handler %r for %s failed", handler, event.value)
                result.errors.append(exc)
        return result
