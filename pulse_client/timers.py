"""Cancellable one-shot and repeating timers."""

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Timer capability used by the connection state machine.

    Callbacks run on the same serialized context as transport events.
    """

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...

    def call_repeating(self, interval: float, callback: Callable[[], None]) -> TimerHandle: ...


class RepeatingTimer:
    """Re-arms a loop.call_later handle after every tick until cancelled."""

    def __init__(self, loop: asyncio.AbstractEventLoop, interval: float, callback: Callable[[], None]):
        self._loop = loop
        self._interval = interval
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._cancelled = False

    def start(self) -> "RepeatingTimer":
        self._handle = self._loop.call_later(self._interval, self._tick)
        return self

    def _tick(self) -> None:
        if self._cancelled:
            return
        # Re-arm first so a failing callback does not stop the timer
        self._handle = self._loop.call_later(self._interval, self._tick)
        try:
            self._callback()
        except Exception:
            logger.exception("Repeating timer callback failed")

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle:
            self._handle.cancel()
            self._handle = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(delay, callback)

    def call_repeating(self, interval: float, callback: Callable[[], None]) -> RepeatingTimer:
        return RepeatingTimer(self.loop, interval, callback).start()
