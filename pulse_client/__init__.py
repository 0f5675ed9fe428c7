"""Self-healing HypeRate heart rate WebSocket client."""

from .config import Config, load_config
from .connection import HeartRateConnection
from .errors import (
    ConfigError,
    DecodeError,
    ProtocolDecodeError,
    PulseClientError,
    ReconnectExhaustedError,
    SendError,
    TransportError,
)
from .log import setup_logging
from .models import (
    ConnectionPhase,
    ConnectionStatus,
    HeartRateSample,
    ReconnectPolicy,
    SessionConfig,
    StatusKind,
    validate_device_id,
)
from .protocol import Envelope, ProtocolVariant, decode, encode
from .transport import Transport, WebSocketTransport

__all__ = [
    "HeartRateConnection",
    "ConnectionStatus",
    "ConnectionPhase",
    "StatusKind",
    "HeartRateSample",
    "SessionConfig",
    "ReconnectPolicy",
    "validate_device_id",
    "Envelope",
    "ProtocolVariant",
    "encode",
    "decode",
    "Transport",
    "WebSocketTransport",
    "Config",
    "load_config",
    "setup_logging",
    "PulseClientError",
    "TransportError",
    "SendError",
    "ProtocolDecodeError",
    "DecodeError",
    "ConfigError",
    "ReconnectExhaustedError",
]
