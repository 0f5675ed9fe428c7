"""Heart rate connection lifecycle: join, heartbeat, leave and auto-reconnect."""

import logging
from collections.abc import Callable
from time import time_ns

from . import protocol
from .errors import ProtocolDecodeError, ReconnectExhaustedError, SendError
from .models import (
    INVALID_DEVICE_ID,
    ConnectionPhase,
    ConnectionStatus,
    HeartRateSample,
    ReconnectPolicy,
    SessionConfig,
    is_valid_device_id,
)
from .network import AlwaysAvailable, NetworkAvailability
from .observable import Observable, Unsubscribe
from .protocol import DEFAULT_VARIANT, Envelope, ProtocolVariant
from .timers import AsyncioScheduler, Scheduler, TimerHandle
from .transport import (
    NORMAL_CLOSE_CODES,
    NORMAL_CLOSURE,
    Transport,
    TransportFactory,
    WebSocketTransport,
    build_socket_url,
)

logger = logging.getLogger(__name__)

DEFAULT_URL = "wss://app.hyperate.io/socket/websocket"

StatusCallback = Callable[[ConnectionStatus], None]
HeartRateCallback = Callable[[HeartRateSample | None], None]


def _now_ms() -> int:
    return time_ns() // 1_000_000


class _SessionListener:
    """Routes transport events to the connection, tagged with a generation.

    Events from a superseded transport carry a stale generation and are dropped.
    """

    def __init__(self, connection: "HeartRateConnection", generation: int):
        self._connection = connection
        self._generation = generation

    def on_open(self) -> None:
        self._connection._handle_open(self._generation)

    def on_message(self, text: str) -> None:
        self._connection._handle_message(self._generation, text)

    def on_close(self, code: int, reason: str) -> None:
        self._connection._handle_close(self._generation, code, reason)

    def on_error(self, error: Exception) -> None:
        self._connection._handle_error(self._generation, error)


class HeartRateConnection:
    """Self-healing subscription to one device's heart rate channel.

    All methods must be called from the event loop that drives the transport
    and scheduler; transport callbacks and timer firings are delivered there,
    so every transition is serialized.

    connect() and disconnect() return immediately. Outcomes are published to
    subscribers of status and heart rate.
    """

    def __init__(
        self,
        url: str = DEFAULT_URL,
        auth_token: str = "",
        *,
        transport_factory: TransportFactory | None = None,
        scheduler: Scheduler | None = None,
        network: NetworkAvailability | None = None,
        variant: ProtocolVariant = DEFAULT_VARIANT,
        policy: ReconnectPolicy | None = None,
        heartbeat_interval: float = 15.0,
        leave_grace: float = 0.1,
        clock: Callable[[], int] = _now_ms,
    ):
        self.url = url
        self.auth_token = auth_token
        self._transport_factory = transport_factory or WebSocketTransport
        self._scheduler = scheduler or AsyncioScheduler()
        self._network = network or AlwaysAvailable()
        self._variant = variant
        self._policy = policy or ReconnectPolicy()
        self._heartbeat_interval = heartbeat_interval
        self._leave_grace = leave_grace
        self._clock = clock

        self._status: Observable[ConnectionStatus] = Observable(ConnectionStatus.disconnected())
        # Every sample is pushed, even a repeated bpm
        self._heart_rate: Observable[HeartRateSample | None] = Observable(None, distinct=False)

        self._phase = ConnectionPhase.IDLE
        self._session: SessionConfig | None = None
        self._transport: Transport | None = None
        self._generation = 0
        self._manual_disconnect = False
        self._heartbeat_timer: TimerHandle | None = None
        self._reconnect_timer: TimerHandle | None = None

    # -- observer API --

    @property
    def status(self) -> ConnectionStatus:
        return self._status.value

    @property
    def heart_rate(self) -> HeartRateSample | None:
        return self._heart_rate.value

    @property
    def phase(self) -> ConnectionPhase:
        return self._phase

    @property
    def device_id(self) -> str | None:
        return self._session.device_id if self._session else None

    @property
    def attempt_count(self) -> int:
        return self._policy.attempt_count

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None

    @property
    def heartbeat_active(self) -> bool:
        return self._heartbeat_timer is not None

    def subscribe_status(self, callback: StatusCallback) -> Unsubscribe:
        return self._status.subscribe(callback)

    def subscribe_heart_rate(self, callback: HeartRateCallback) -> Unsubscribe:
        return self._heart_rate.subscribe(callback)

    # -- commands --

    def connect(self, device_id: str) -> None:
        """Start a new session for device_id, replacing any current one."""
        self._manual_disconnect = False
        self._policy.reset()
        self._teardown()

        device_id = (device_id or "").strip()
        if not is_valid_device_id(device_id):
            logger.warning("Rejected device id %r", device_id)
            self._session = None
            self._set_status(ConnectionStatus.error(INVALID_DEVICE_ID))
            return

        self._session = SessionConfig(device_id=device_id, auth_token=self.auth_token)
        self._open_session()

    def disconnect(self) -> None:
        """Leave the channel and close the socket without reconnecting."""
        self._manual_disconnect = True
        self._policy.reset()
        self._teardown()
        self._set_status(ConnectionStatus.disconnected())

    def retry(self) -> None:
        """Reconnect to the last device, e.g. after attempts were exhausted."""
        if self._session is None:
            self._set_status(ConnectionStatus.error(INVALID_DEVICE_ID))
            return
        self.connect(self._session.device_id)

    def toggle(self) -> None:
        """Disconnect if a session is live or retrying, otherwise reconnect."""
        if self._phase is not ConnectionPhase.IDLE or self._reconnect_timer is not None:
            self.disconnect()
        else:
            self.retry()

    # -- session management --

    def _open_session(self) -> None:
        assert self._session is not None
        self._generation += 1
        url = build_socket_url(self.url, self._session.device_id, self._session.auth_token)
        logger.info("Connecting to device %s (attempt %d)", self._session.device_id, self._policy.attempt_count)
        self._phase = ConnectionPhase.CONNECTING
        self._set_status(ConnectionStatus.connecting())
        self._transport = self._transport_factory(url, _SessionListener(self, self._generation))
        self._transport.open()

    def _teardown(self, leave: bool = True) -> None:
        """Stop timers and release the current transport.

        With leave set, a joined channel gets a leave frame and a short grace
        period before the socket is closed.
        """
        self._cancel_reconnect()
        self._stop_heartbeat()

        transport = self._transport
        self._transport = None
        # Invalidate callbacks still in flight from the old transport
        self._generation += 1

        if transport is not None:
            if leave and self._phase is ConnectionPhase.CONNECTED and self._session is not None:
                self._send(protocol.leave_message(self._session.device_id, self._clock()), transport)
                logger.debug("Closing transport in %.2fs", self._leave_grace)
                self._scheduler.call_later(self._leave_grace, lambda: transport.close(NORMAL_CLOSURE))
            else:
                transport.close(NORMAL_CLOSURE)

        self._phase = ConnectionPhase.IDLE
        self._clear_heart_rate()

    def _end_session(self, status: ConnectionStatus) -> None:
        """Handle a closure the caller did not ask for."""
        self._teardown(leave=False)
        if self._manual_disconnect:
            self._set_status(ConnectionStatus.disconnected())
            return
        self._set_status(status)
        self._schedule_reconnect()

    # -- reconnection --

    def _schedule_reconnect(self) -> None:
        try:
            delay = self._policy.next_delay()
        except ReconnectExhaustedError as e:
            logger.warning("Giving up after %d reconnect attempts", self._policy.max_attempts)
            self._set_status(ConnectionStatus.error(str(e)))
            return
        logger.info("Reconnecting in %.1fs (attempt %d/%d)", delay, self._policy.attempt_count, self._policy.max_attempts)
        self._set_status(ConnectionStatus.connecting())
        self._reconnect_timer = self._scheduler.call_later(delay, self._on_reconnect_timer)

    def _on_reconnect_timer(self) -> None:
        self._reconnect_timer = None
        if self._manual_disconnect or self._session is None or self._phase is not ConnectionPhase.IDLE:
            return
        if not self._network.is_available():
            logger.info("Network unavailable, skipping reconnect attempt")
            self._schedule_reconnect()
            return
        self._open_session()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    # -- heartbeat --

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        self._heartbeat_timer = self._scheduler.call_repeating(self._heartbeat_interval, self._send_heartbeat)

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_timer is not None:
            self._heartbeat_timer.cancel()
            self._heartbeat_timer = None

    def _send_heartbeat(self) -> None:
        if self._phase is not ConnectionPhase.CONNECTED or self._transport is None:
            return
        if not self._send(protocol.heartbeat_message(self._clock(), self._variant)):
            self._end_session(ConnectionStatus.error("heartbeat send failed"))

    # -- transport events --

    def _is_current(self, generation: int) -> bool:
        if generation != self._generation:
            logger.debug("Ignoring event from superseded transport")
            return False
        return True

    def _handle_open(self, generation: int) -> None:
        if not self._is_current(generation) or self._phase is not ConnectionPhase.CONNECTING:
            return
        assert self._session is not None
        logger.debug("Socket open, joining %s", self._session.topic)
        self._phase = ConnectionPhase.AWAITING_JOIN_ACK
        if not self._send(protocol.join_message(self._session.device_id)):
            self._end_session(ConnectionStatus.error("join send failed"))

    def _handle_message(self, generation: int, text: str) -> None:
        if not self._is_current(generation) or self._session is None:
            return
        try:
            envelope = protocol.decode(text)
        except ProtocolDecodeError as e:
            logger.warning("Dropping malformed frame: %s", e)
            return

        if envelope.topic is not None and envelope.topic != self._session.topic:
            # Heartbeat acks and other system traffic
            logger.debug("Ignoring %s on %s", envelope.event, envelope.topic)
            return

        if protocol.is_heart_rate_update(envelope, self._variant):
            self._handle_update(envelope)
        elif protocol.is_join_reply(envelope):
            self._handle_join_reply()
        elif envelope.event == protocol.EVENT_ERROR:
            reason = envelope.payload.get("reason")
            self._end_session(ConnectionStatus.error(str(reason) if reason else "channel error"))
        elif envelope.event == protocol.EVENT_CLOSE:
            logger.info("Server closed channel %s", self._session.topic)
            self._end_session(ConnectionStatus.disconnected())

    def _handle_join_reply(self) -> None:
        if self._phase is not ConnectionPhase.AWAITING_JOIN_ACK:
            return
        logger.info("Joined %s", self._session.topic if self._session else "?")
        self._phase = ConnectionPhase.CONNECTED
        self._policy.reset()
        self._cancel_reconnect()
        self._start_heartbeat()
        self._set_status(ConnectionStatus.connected())

    def _handle_update(self, envelope: Envelope) -> None:
        if self._phase not in (ConnectionPhase.AWAITING_JOIN_ACK, ConnectionPhase.CONNECTED):
            return
        bpm = protocol.extract_bpm(envelope, self._variant)
        if bpm is None:
            logger.warning("Update without usable %r: %s", self._variant.bpm_key, envelope.payload)
            return
        logger.debug("HR: %d bpm", bpm)
        self._heart_rate.set(HeartRateSample(bpm=bpm, timestamp_ms=self._clock()))

    def _handle_close(self, generation: int, code: int, reason: str) -> None:
        if not self._is_current(generation):
            return
        logger.info("Connection closed (code %d%s)", code, f": {reason}" if reason else "")
        if code in NORMAL_CLOSE_CODES:
            self._end_session(ConnectionStatus.disconnected())
        else:
            detail = f"connection closed (code {code}{f': {reason}' if reason else ''})"
            self._end_session(ConnectionStatus.error(detail))

    def _handle_error(self, generation: int, error: Exception) -> None:
        if not self._is_current(generation):
            return
        logger.warning("Transport error: %s", error)
        self._end_session(ConnectionStatus.error(str(error) or type(error).__name__))

    # -- helpers --

    def _send(self, envelope: Envelope, transport: Transport | None = None) -> bool:
        transport = transport or self._transport
        if transport is None:
            return False
        try:
            transport.send(protocol.encode(envelope))
        except SendError as e:
            logger.warning("Failed to send %s: %s", envelope.event, e)
            return False
        return True

    def _set_status(self, status: ConnectionStatus) -> None:
        if status != self._status.value:
            logger.debug("Status: %s", status.description)
        self._status.set(status)

    def _clear_heart_rate(self) -> None:
        if self._heart_rate.value is not None:
            self._heart_rate.set(None)
