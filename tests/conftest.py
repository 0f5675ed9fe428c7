"""Shared test fixtures for pulse_client tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from pulse_client.connection import HeartRateConnection
from pulse_client.network import ManualAvailability
from tests.helpers import FIXED_NOW_MS, FakeScheduler, TransportRecorder, make_frame

TEST_URL = "wss://hr.example.test/socket/websocket"
TEST_TOKEN = "secret-token"
DEVICE_ID = "abc123"


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def transports() -> TransportRecorder:
    return TransportRecorder()


@pytest.fixture
def network() -> ManualAvailability:
    return ManualAvailability(True)


@pytest.fixture
def connection(scheduler, transports, network) -> HeartRateConnection:
    """Connection wired to fake transport, timers and clock."""
    return HeartRateConnection(
        TEST_URL,
        TEST_TOKEN,
        transport_factory=transports,
        scheduler=scheduler,
        network=network,
        clock=lambda: FIXED_NOW_MS,
    )


@pytest.fixture
def status_log(connection) -> list:
    """Every status published by the connection, starting with the replay."""
    statuses: list = []
    connection.subscribe_status(statuses.append)
    return statuses


@pytest.fixture
def heart_rate_log(connection) -> list:
    samples: list = []
    connection.subscribe_heart_rate(samples.append)
    return samples


@pytest.fixture
def joined(connection, transports):
    """Connection that has completed the join handshake for DEVICE_ID."""
    connection.connect(DEVICE_ID)
    transport = transports.latest
    transport.simulate_open()
    transport.simulate_message(make_frame("phx_reply", topic=f"hr:{DEVICE_ID}", payload={"status": "ok"}, ref="1"))
    return connection


@pytest.fixture
def mock_listener():
    """Transport listener with recording callbacks."""
    return MagicMock()


# Config fixtures
@pytest.fixture
def sample_config_dict() -> dict:
    """Sample config dict as would be parsed from TOML."""
    return {
        "service": {
            "url": "wss://hr.example.test/ws/{device_id}",
            "token": "abc-token",
            "open_timeout": 5.0,
            "heartbeat_interval": 30.0,
            "leave_grace": 0.2,
            "log_level": "DEBUG",
        },
        "protocol": {
            "update_event": "hr:update",
            "bpm_key": "heartrate",
            "heartbeat_topic": "",
            "heartbeat_event": "ping",
        },
        "reconnect": {
            "max_attempts": 5,
            "base_delay": 1.0,
            "max_delay": 30.0,
        },
        "device": {
            "device_id": "xyz789",
        },
    }


@pytest.fixture
def partial_config_dict() -> dict:
    """Partial config dict with some values missing."""
    return {
        "service": {"heartbeat_interval": 20.0},
        "reconnect": {"max_attempts": 3},
    }
