"""Connection state and heart rate data types."""

import re
from dataclasses import dataclass
from enum import Enum, StrEnum

from .errors import ConfigError, ReconnectExhaustedError

DEVICE_ID_PATTERN = re.compile(r"[A-Za-z0-9]{3,6}")

INVALID_DEVICE_ID = "invalid device id"
RECONNECT_EXHAUSTED = "reconnect attempts exhausted"


class StatusKind(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass(frozen=True)
class ConnectionStatus:
    """Observer-facing connection status.

    `message` is only set for the ERROR kind.
    """

    kind: StatusKind
    message: str | None = None

    @classmethod
    def disconnected(cls) -> "ConnectionStatus":
        return cls(StatusKind.DISCONNECTED)

    @classmethod
    def connecting(cls) -> "ConnectionStatus":
        return cls(StatusKind.CONNECTING)

    @classmethod
    def connected(cls) -> "ConnectionStatus":
        return cls(StatusKind.CONNECTED)

    @classmethod
    def error(cls, message: str) -> "ConnectionStatus":
        return cls(StatusKind.ERROR, message)

    @property
    def is_error(self) -> bool:
        return self.kind is StatusKind.ERROR

    @property
    def description(self) -> str:
        """Human readable status text."""
        if self.kind is StatusKind.CONNECTING:
            return "Connecting..."
        if self.kind is StatusKind.ERROR:
            return f"Error: {self.message or ''}"
        return self.kind.value.capitalize()


class ConnectionPhase(Enum):
    """Internal state of the connection state machine."""

    IDLE = "idle"
    CONNECTING = "connecting"
    AWAITING_JOIN_ACK = "awaiting_join_ack"
    CONNECTED = "connected"


@dataclass(frozen=True)
class HeartRateSample:
    """A single heart rate reading received from the service."""

    bpm: int
    timestamp_ms: int  # Local receive time, epoch milliseconds


@dataclass(frozen=True)
class SessionConfig:
    device_id: str
    auth_token: str = ""

    @property
    def topic(self) -> str:
        return f"hr:{self.device_id}"


@dataclass
class ReconnectPolicy:
    """Exponential backoff bookkeeping for automatic reconnection."""

    max_attempts: int = 10
    base_delay: float = 2.0
    max_delay: float = 60.0
    attempt_count: int = 0

    @property
    def exhausted(self) -> bool:
        return self.attempt_count >= self.max_attempts

    def reset(self) -> None:
        self.attempt_count = 0

    def next_delay(self) -> float:
        """Consume one attempt and return its delay in seconds.

        Raises:
            ReconnectExhaustedError: If max_attempts have been used
        """
        if self.exhausted:
            raise ReconnectExhaustedError(RECONNECT_EXHAUSTED)
        self.attempt_count += 1
        return min(self.base_delay * 2 ** (self.attempt_count - 1), self.max_delay)


def is_valid_device_id(value: str) -> bool:
    return bool(DEVICE_ID_PATTERN.fullmatch(value))


def validate_device_id(value: str) -> str:
    """Trim and validate a device id.

    Raises:
        ConfigError: If the id is not 3-6 alphanumeric characters
    """
    device_id = value.strip()
    if not is_valid_device_id(device_id):
        raise ConfigError(f"{INVALID_DEVICE_ID}: {value!r}")
    return device_id
