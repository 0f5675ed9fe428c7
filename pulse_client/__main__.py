"""Entry point for pulse-client."""

import argparse
import asyncio
import functools
import logging
import signal

from .config import Config, load_config
from .connection import HeartRateConnection
from .errors import ConfigError
from .log import setup_logging
from .models import ConnectionStatus, HeartRateSample, ReconnectPolicy, validate_device_id
from .transport import WebSocketTransport

logger = logging.getLogger(__name__)

# Shutdown event for graceful termination
_shutdown_event: asyncio.Event | None = None


def _signal_handler() -> None:
    """Handle shutdown signals."""
    if _shutdown_event:
        logger.info("Shutdown requested...")
        _shutdown_event.set()


def _print_status(status: ConnectionStatus) -> None:
    print(f"status: {status.description}", flush=True)


def _print_heart_rate(sample: HeartRateSample | None) -> None:
    if sample is not None:
        print(f"{sample.bpm} bpm", flush=True)


def build_connection(config: Config) -> HeartRateConnection:
    """Create a connection wired from config values."""
    return HeartRateConnection(
        url=config.service.url,
        auth_token=config.service.token,
        transport_factory=functools.partial(WebSocketTransport, open_timeout=config.service.open_timeout),
        variant=config.protocol.to_variant(),
        policy=ReconnectPolicy(
            max_attempts=config.reconnect.max_attempts,
            base_delay=config.reconnect.base_delay,
            max_delay=config.reconnect.max_delay,
        ),
        heartbeat_interval=config.service.heartbeat_interval,
        leave_grace=config.service.leave_grace,
    )


async def run(config: Config, device_id: str) -> None:
    """Stream heart rate for device_id until interrupted."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    connection = build_connection(config)
    unsubscribers = [
        connection.subscribe_status(_print_status),
        connection.subscribe_heart_rate(_print_heart_rate),
    ]
    try:
        connection.connect(device_id)
        await _shutdown_event.wait()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        connection.disconnect()
        # Give the leave frame time to flush before the loop stops
        await asyncio.sleep(config.service.leave_grace * 2)
        for unsubscribe in unsubscribers:
            unsubscribe()
        logger.info("Shutdown complete")


def main() -> None:
    """CLI entry point."""
    config = load_config()

    parser = argparse.ArgumentParser(description="HypeRate heart rate WebSocket client")
    parser.add_argument("device_id", nargs="?", default=config.device.device_id or None, help="Device id (3-6 letters/digits)")
    parser.add_argument("-u", "--url", default=config.service.url, help="WebSocket URL ({device_id} is substituted)")
    parser.add_argument("-t", "--token", default=config.service.token, help="API token")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if not args.device_id:
        parser.error("a device id is required (argument or [device] device_id in config)")
    try:
        device_id = validate_device_id(args.device_id)
    except ConfigError as e:
        parser.error(str(e))

    config.service.url = args.url
    config.service.token = args.token

    # Setup logging before anything else
    log_level = "DEBUG" if args.verbose else config.service.log_level
    setup_logging(log_level)

    asyncio.run(run(config, device_id))


if __name__ == "__main__":
    main()
