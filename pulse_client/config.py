"""Configuration file loading and defaults."""

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from .protocol import ProtocolVariant

logger = logging.getLogger(__name__)

TOKEN_ENV_VAR = "HYPERATE_API_KEY"


@dataclass
class ServiceConfig:
    url: str = "wss://app.hyperate.io/socket/websocket"
    token: str = ""
    open_timeout: float = 10.0
    heartbeat_interval: float = 15.0
    leave_grace: float = 0.1
    log_level: str = "INFO"


@dataclass
class ProtocolConfig:
    update_event: str = "hr_update"
    bpm_key: str = "hr"
    heartbeat_topic: str = "phoenix"
    heartbeat_event: str = "heartbeat"

    def to_variant(self) -> ProtocolVariant:
        return ProtocolVariant(
            update_event=self.update_event,
            bpm_key=self.bpm_key,
            heartbeat_topic=self.heartbeat_topic,
            heartbeat_event=self.heartbeat_event,
        )


@dataclass
class ReconnectConfig:
    max_attempts: int = 10
    base_delay: float = 2.0
    max_delay: float = 60.0


@dataclass
class DeviceConfig:
    device_id: str = ""


@dataclass
class Config:
    service: ServiceConfig = field(default_factory=ServiceConfig)
    protocol: ProtocolConfig = field(default_factory=ProtocolConfig)
    reconnect: ReconnectConfig = field(default_factory=ReconnectConfig)
    device: DeviceConfig = field(default_factory=DeviceConfig)


def load_config() -> Config:
    """Load config from file, with defaults for missing values."""
    paths = [
        Path("./config.toml"),
        Path.home() / ".config" / "pulse-client" / "config.toml",
    ]

    config = Config()
    for path in paths:
        if path.exists():
            try:
                with open(path, "rb") as f:
                    data = tomllib.load(f)
                config = _parse_config(data)
            except tomllib.TOMLDecodeError as e:
                logger.warning("Failed to parse config '%s': %s. Using defaults.", path, e)
            break

    return _apply_env(config)


def _parse_config(data: dict) -> Config:
    """Parse TOML dict into Config dataclass.

    Uses dataclass defaults for missing values.
    """
    return Config(
        service=ServiceConfig(**data.get("service", {})),
        protocol=ProtocolConfig(**data.get("protocol", {})),
        reconnect=ReconnectConfig(**data.get("reconnect", {})),
        device=DeviceConfig(**data.get("device", {})),
    )


def _apply_env(config: Config) -> Config:
    """Fill the auth token from the environment when the file has none."""
    if not config.service.token:
        config.service.token = os.environ.get(TOKEN_ENV_VAR, "")
    return config
