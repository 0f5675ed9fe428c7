"""Observable values with replay-on-subscribe."""

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Unsubscribe = Callable[[], None]


class Observable(Generic[T]):
    """Holds a value and pushes every change to subscribers.

    New subscribers are called immediately with the current value.
    """

    def __init__(self, initial: T, *, distinct: bool = True):
        self._value = initial
        self._distinct = distinct
        self._subscribers: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, callback: Callable[[T], None]) -> Unsubscribe:
        """Register a callback and replay the current value to it."""
        self._subscribers.append(callback)
        self._call(callback, self._value)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def set(self, value: T) -> None:
        """Update the value, notifying subscribers unless unchanged."""
        if self._distinct and value == self._value:
            return
        self._value = value
        # Snapshot so callbacks may unsubscribe during notification
        for callback in list(self._subscribers):
            self._call(callback, value)

    def _call(self, callback: Callable[[T], None], value: T) -> None:
        try:
            callback(value)
        except Exception:
            logger.exception("Subscriber %r failed", callback)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
