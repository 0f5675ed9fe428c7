"""Exception types raised inside the client layers."""


class PulseClientError(Exception):
    """Base class for pulse_client failures."""


class TransportError(PulseClientError):
    """Socket-level failure or abnormal close."""


class SendError(TransportError):
    """Frame could not be queued because the socket is not open."""


class ProtocolDecodeError(PulseClientError, ValueError):
    """Inbound frame is not a valid envelope."""


DecodeError = ProtocolDecodeError


class ConfigError(PulseClientError, ValueError):
    """Session configuration is unusable (e.g. bad device id)."""


class ReconnectExhaustedError(PulseClientError):
    """Automatic reconnection gave up after the maximum number of attempts."""
