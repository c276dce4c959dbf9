"""Minimal observable value container.

Consumers read :meth:`Observable.get` for a snapshot and register a
listener with :meth:`Observable.subscribe` to be told about every change.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

_logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], None]


class Observable(Generic[T]):
    """Holds one value and notifies listeners when it changes.

    Listeners are called synchronously, in registration order, with the
    new value.  A failing listener is logged and does not stop the
    others or the writer.
    """

    def __init__(self, value: T, *, name: str = "") -> None:
        self._value = value
        self._name = name
        self._listeners: list[Listener[T]] = []

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> bool:
        """Store *value*; return whether it differed from the old one."""
        if value is self._value or value == self._value:
            self._value = value
            return False
        self._value = value
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                _logger.debug("Listener for %s failed", self._name or "observable", exc_info=True)
        return True

    def subscribe(self, listener: Listener[T]) -> Callable[[], None]:
        """Register *listener*; the returned callable unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
