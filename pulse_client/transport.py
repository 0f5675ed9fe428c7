"""WebSocket transport adapter."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Protocol
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.protocol import State

from .errors import SendError, TransportError

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000
GOING_AWAY = 1001
ABNORMAL_CLOSURE = 1006

NORMAL_CLOSE_CODES = frozenset({NORMAL_CLOSURE, GOING_AWAY})


class TransportListener(Protocol):
    """Receiver of transport events."""

    def on_open(self) -> None: ...

    def on_message(self, text: str) -> None: ...

    def on_close(self, code: int, reason: str) -> None: ...

    def on_error(self, error: Exception) -> None: ...


class Transport(ABC):
    """
    One WebSocket connection attempt.

    Contract:
      - open() starts connecting and returns immediately; outcomes arrive via the listener.
      - send(text) queues a text frame, raising SendError if the socket is not open.
      - close(code) is idempotent; after it returns no further listener callbacks fire.
      - Instances are single use: a reconnect creates a new transport.
    """

    @abstractmethod
    def open(self) -> None: ...

    @abstractmethod
    def send(self, text: str) -> None: ...

    @abstractmethod
    def close(self, code: int = NORMAL_CLOSURE) -> None: ...

    @property
    @abstractmethod
    def is_open(self) -> bool: ...


TransportFactory = Callable[[str, TransportListener], Transport]


def build_socket_url(url: str, device_id: str, token: str = "") -> str:
    """Fill the device id into the URL template and append the auth token."""
    url = url.replace("{device_id}", quote(device_id, safe=""))
    if not token:
        return url
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "token"]
    query.append(("token", token))
    return urlunsplit(parts._replace(query=urlencode(query)))


class WebSocketTransport(Transport):
    """Transport backed by a websockets client connection."""

    def __init__(
        self,
        url: str,
        listener: TransportListener,
        open_timeout: float = 10.0,
    ):
        self.url = url
        self._listener = listener
        self._open_timeout = open_timeout
        self._ws: ClientConnection | None = None
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._writer: asyncio.Task | None = None
        self._closed = False
        # Strong references to fire-and-forget shutdown tasks
        self._background: set[asyncio.Task] = set()

    @property
    def is_open(self) -> bool:
        return not self._closed and self._ws is not None and self._ws.state is State.OPEN

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> None:
        """Start the connection task."""
        if self._task is not None or self._closed:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def send(self, text: str) -> None:
        if not self.is_open:
            raise SendError("Socket is not open")
        self._outbox.put_nowait(text)

    def close(self, code: int = NORMAL_CLOSURE) -> None:
        if self._closed:
            return
        self._closed = True
        if self._task is None:
            return
        task = asyncio.get_running_loop().create_task(self._shutdown(code))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _emit(self, callback: Callable[..., None], *args: object) -> None:
        """Deliver an event unless the transport has been closed."""
        if self._closed:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Transport listener failed")

    async def _run(self) -> None:
        """Connect, then pump inbound frames until the socket closes."""
        try:
            logger.debug("Opening %s", self._safe_url())
            ws = await connect(self.url, open_timeout=self._open_timeout)
        except (OSError, TimeoutError, WebSocketException) as e:
            logger.debug("Connection failed: %s", e)
            self._emit(self._listener.on_error, TransportError(f"Connection failed: {e}"))
            return

        if self._closed:
            await ws.close()
            return

        self._ws = ws
        self._writer = asyncio.create_task(self._write_loop(ws))
        self._emit(self._listener.on_open)

        try:
            async for message in ws:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                self._emit(self._listener.on_message, message)
        except ConnectionClosed:
            pass  # Close code is read below
        finally:
            self._writer.cancel()

        code = ws.close_code if ws.close_code is not None else ABNORMAL_CLOSURE
        logger.debug("Socket closed: %d %s", code, ws.close_reason or "")
        self._emit(self._listener.on_close, code, ws.close_reason or "")

    async def _write_loop(self, ws: ClientConnection) -> None:
        while True:
            text = await self._outbox.get()
            try:
                await ws.send(text)
            except ConnectionClosed:
                return  # Reader reports the close

    async def _shutdown(self, code: int) -> None:
        if self._ws is not None:
            try:
                await self._ws.close(code=code)
            except (OSError, WebSocketException) as e:
                logger.debug("Error while closing socket: %s", e)
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _safe_url(self) -> str:
        """URL with the token query stripped for logging."""
        parts = urlsplit(self.url)
        return urlunsplit(parts._replace(query=""))
