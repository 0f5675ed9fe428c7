"""Shared test helpers for pulse_client tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

from websockets.protocol import State

from pulse_client.errors import SendError
from pulse_client.transport import Transport, TransportListener

FIXED_NOW_MS = 1_700_000_000_000


def make_frame(event: str, *, topic: str | None = None, payload: dict | None = None, ref: str | None = None) -> str:
    """Build an inbound wire frame.

    Args:
        event: Event name
        topic: Optional topic, omitted when None
        payload: Payload mapping, defaults to {}
        ref: Optional message ref

    Returns:
        JSON text as the server would send it
    """
    message: dict[str, Any] = {"event": event, "payload": payload or {}}
    if topic is not None:
        message["topic"] = topic
    if ref is not None:
        message["ref"] = ref
    return json.dumps(message)


class FakeTimer:
    def __init__(self, due: float, callback: Callable[[], None], interval: float | None = None):
        self.due = due
        self.callback = callback
        self.interval = interval
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Deterministic scheduler driven by advance()."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    def call_repeating(self, interval: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.now + interval, callback, interval)
        self.timers.append(timer)
        return timer

    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self.now + seconds
        while True:
            due = [t for t in self.pending() if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.now = timer.due
            if timer.interval is None:
                self.timers.remove(timer)
            else:
                timer.due += timer.interval
            timer.callback()
        self.now = target


class FakeTransport(Transport):
    """Transport double that records frames and lets tests inject events.

    Unlike the real adapter it keeps delivering events after close(), so
    tests can exercise stale-callback handling.
    """

    def __init__(self, url: str, listener: TransportListener):
        self.url = url
        self.listener = listener
        self.sent: list[str] = []
        self.opened = False
        self.closed_with: int | None = None
        self.fail_sends = False
        self._socket_open = False

    def open(self) -> None:
        self.opened = True

    def send(self, text: str) -> None:
        if self.fail_sends or not self.is_open:
            raise SendError("Socket is not open")
        self.sent.append(text)

    def close(self, code: int = 1000) -> None:
        if self.closed_with is None:
            self.closed_with = code

    @property
    def is_open(self) -> bool:
        return self._socket_open and self.closed_with is None

    @property
    def sent_messages(self) -> list[dict]:
        return [json.loads(text) for text in self.sent]

    def simulate_open(self) -> None:
        self._socket_open = True
        self.listener.on_open()

    def simulate_message(self, text: str) -> None:
        self.listener.on_message(text)

    def simulate_close(self, code: int = 1006, reason: str = "") -> None:
        self._socket_open = False
        self.listener.on_close(code, reason)

    def simulate_error(self, error: Exception) -> None:
        self._socket_open = False
        self.listener.on_error(error)


class TransportRecorder:
    """Transport factory remembering every transport it created."""

    def __init__(self) -> None:
        self.created: list[FakeTransport] = []

    def __call__(self, url: str, listener: TransportListener) -> FakeTransport:
        transport = FakeTransport(url, listener)
        self.created.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.created[-1]


class FakeWebSocket:
    """Stand-in for a websockets ClientConnection."""

    def __init__(
        self,
        messages: list[str | bytes] | None = None,
        *,
        close_code: int | None = 1000,
        close_reason: str = "",
        hold_open: bool = False,
    ):
        self._messages = list(messages or [])
        self.close_code = close_code
        self.close_reason = close_reason
        self.hold_open = hold_open
        self.state = State.OPEN
        self.sent: list[str] = []
        self.close_calls: list[int] = []
        self._closed = asyncio.Event()

    async def send(self, text: str) -> None:
        self.sent.append(text)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_calls.append(code)
        self.state = State.CLOSED
        self._closed.set()

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self._messages:
            yield message
        if self.hold_open:
            await self._closed.wait()
        self.state = State.CLOSED


async def settle(rounds: int = 10) -> None:
    """Let pending tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
