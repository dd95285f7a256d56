"""Client events and the per-instance handler registry."""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable
from enum import StrEnum
from typing import Any, Generic, TypeVar

_logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)

EventHandler = Callable[[Any], Any]


class ClientEvent(StrEnum):
    """Events emitted to observers of the client."""

    DEVICES_CHANGED = "devicesChanged"
    NOISE_CANCELLATION_CHANGED = "noiseCancellationChanged"
    ACCENT_CONVERSION_CHANGED = "accentConversionChanged"
    IN_CALL_CHANGED = "inCallChanged"
    CONNECTION_CHANGED = "connectionChanged"
    ERROR = "error"


class HandlerRegistry(Generic[K]):
    """Map of event key to an ordered set of handlers.

    Dispatch is synchronous and follows registration order. A handler
    that raises is logged and does not prevent the remaining handlers
    from running; nothing propagates to the caller of :meth:`dispatch`.
    """

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._handlers: dict[K, dict[EventHandler, None]] = {}
        self._logger = logger or _logger

    def add(self, key: K, handler: EventHandler) -> None:
        self._handlers.setdefault(key, {})[handler] = None

    def remove(self, key: K, handler: EventHandler | None = None) -> None:
        """Remove *handler* for *key*, or every handler for *key* when omitted."""
        handlers = self._handlers.get(key)
        if handlers is None:
            return
        if handler is None:
            handlers.clear()
        else:
            handlers.pop(handler, None)
        if not handlers:
            self._handlers.pop(key, None)

    def clear(self) -> None:
        self._handlers.clear()

    def handlers(self, key: K) -> tuple[EventHandler, ...]:
        return tuple(self._handlers.get(key, ()))

    def dispatch(self, key: K, data: Any) -> None:
        # Snapshot first: one-shot handlers remove themselves while running.
        for handler in self.handlers(key):
            try:
                handler(data)
            except Exception:
                self._logger.warning("Handler %r for %s failed", handler, key, exc_info=True)
