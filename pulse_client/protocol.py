"""Phoenix channel envelope encoding and decoding.

Frames are UTF-8 JSON objects of the form
``{"topic": ..., "event": ..., "payload": {...}, "ref": ...}``.
Everything here is pure; the connection state machine owns all state.
"""

import json
from dataclasses import dataclass, field
from time import time_ns
from typing import Any

from .errors import ProtocolDecodeError

EVENT_JOIN = "phx_join"
EVENT_LEAVE = "phx_leave"
EVENT_REPLY = "phx_reply"
EVENT_ERROR = "phx_error"
EVENT_CLOSE = "phx_close"

JOIN_REF = "1"
TOPIC_PREFIX = "hr:"

# Plausible BPM range; anything outside is treated as a bad reading
MIN_BPM = 0
MAX_BPM = 300


@dataclass(frozen=True)
class ProtocolVariant:
    """Deployment-specific event and key names.

    An empty heartbeat_topic omits the topic field from heartbeat frames.
    """

    update_event: str = "hr_update"
    bpm_key: str = "hr"
    heartbeat_topic: str = "phoenix"
    heartbeat_event: str = "heartbeat"


DEFAULT_VARIANT = ProtocolVariant()


@dataclass(frozen=True)
class Envelope:
    """One protocol message."""

    event: str
    topic: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    ref: str | None = None


def device_topic(device_id: str) -> str:
    return f"{TOPIC_PREFIX}{device_id}"


def _now_ms() -> int:
    return time_ns() // 1_000_000


def encode(envelope: Envelope) -> str:
    """Serialize an envelope to wire text."""
    message: dict[str, Any] = {}
    if envelope.topic is not None:
        message["topic"] = envelope.topic
    message["event"] = envelope.event
    message["payload"] = envelope.payload
    message["ref"] = envelope.ref
    return json.dumps(message, separators=(",", ":"))


def decode(text: str | bytes) -> Envelope:
    """Parse wire text into an envelope.

    Unknown fields are ignored.

    Raises:
        ProtocolDecodeError: If the text is not a JSON object with an event
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolDecodeError(f"Invalid JSON frame: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolDecodeError(f"Frame is not a JSON object: {type(data).__name__}")

    event = data.get("event")
    if not isinstance(event, str):
        raise ProtocolDecodeError("Frame has no event field")

    topic = data.get("topic")
    payload = data.get("payload")
    ref = data.get("ref")

    return Envelope(
        event=event,
        topic=topic if isinstance(topic, str) else None,
        payload=payload if isinstance(payload, dict) else {},
        # Phoenix may send integer refs
        ref=str(ref) if ref is not None else None,
    )


def join_message(device_id: str) -> Envelope:
    return Envelope(topic=device_topic(device_id), event=EVENT_JOIN, ref=JOIN_REF)


def leave_message(device_id: str, now_ms: int | None = None) -> Envelope:
    """Build a leave envelope with a timestamp ref."""
    if now_ms is None:
        now_ms = _now_ms()
    return Envelope(topic=device_topic(device_id), event=EVENT_LEAVE, ref=str(now_ms))


def heartbeat_message(now_ms: int, variant: ProtocolVariant = DEFAULT_VARIANT) -> Envelope:
    return Envelope(
        topic=variant.heartbeat_topic or None,
        event=variant.heartbeat_event,
        payload={"timestamp": now_ms},
        ref=str(now_ms),
    )


def is_reply(envelope: Envelope) -> bool:
    return envelope.event == EVENT_REPLY


def is_join_reply(envelope: Envelope) -> bool:
    """Check whether a reply acknowledges the join.

    Replies without a ref are accepted; replies carrying another ref
    (heartbeat acks) are not.
    """
    return is_reply(envelope) and envelope.ref in (None, JOIN_REF)


def is_heart_rate_update(envelope: Envelope, variant: ProtocolVariant = DEFAULT_VARIANT) -> bool:
    return envelope.event == variant.update_event


def extract_bpm(envelope: Envelope, variant: ProtocolVariant = DEFAULT_VARIANT) -> int | None:
    """Return the BPM carried by an update, or None if absent or implausible."""
    value = envelope.payload.get(variant.bpm_key)
    # bool is an int subclass
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if not isinstance(value, int):
        return None
    if not MIN_BPM <= value <= MAX_BPM:
        return None
    return value
