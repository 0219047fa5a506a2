"""Command-line entry point."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import dataclasses
import logging
import signal
import sys

import aiohttp
from dotenv import find_dotenv, load_dotenv

from smartmail import __version__
from smartmail._constants import EXIT_CONFIG, EXIT_GATEWAY, EXIT_MQTT
from smartmail._mqtt import MqttSettings
from smartmail._redact import redact_for_log
from smartmail.config import SmartmailConfig
from smartmail.dispatcher import UplinkDispatcher
from smartmail.exceptions import SmartmailConfigError, SmartmailGatewayError, SmartmailTransportError
from smartmail.listener import Listener
from smartmail.notify import ThreemaGateway
from smartmail.state.tracker import MailboxState, MailboxTracker
from smartmail.telemetry import InfluxTelemetry, NullTelemetry, TelemetrySink

_logger = logging.getLogger("smartmail")

BANNER = r"""
                  ____.----.
        ____.----'          \
        \                    \
         \                    \
          \                    \
           \          ____.----'`--.__
            \___.----'          |     `--.____
           /`-._                |       __.-' \
          /     `-._            ___.---'       \
         /          `-.____.---'                \
        /            / | \                       \
       /            /  |  \                   _.--'
       `-.         /   |   \            __.--'
          `-._    /    |    \     __.--'     |
            | `-./     |     \_.-'           |
            |          |                     |
            |          |                     |
            |          |                     |
            |          |                     |
            |          |                     |   VK
            |          |                     |
     _______|          |                     |_______________
            `-.        |                  _.-'
               `-.     |           __..--'
                  `-.  |      __.-'
                     `-|__.--'

Welcome to smartmail!
"""


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="smartmail",
        description="Notify when the mailbox fills up or is emptied.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Only log warnings and errors.",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Load environment variables from this file (default: ./.env if present).",
    )
    parser.add_argument(
        "--no-banner",
        action="store_true",
        help="Do not print the start-up banner.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def _setup_logging(args: argparse.Namespace) -> None:
    level = logging.INFO
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _serve(config: SmartmailConfig) -> int:
    timeout = aiohttp.ClientTimeout(total=config.http_timeout)
    async with aiohttp.ClientSession(timeout=timeout) as http:
        try:
            gateway = ThreemaGateway(config, http)
            remaining = await gateway.check_credits()
        except SmartmailGatewayError as exc:
            print(f"Could not initialize Threema E2E API: {exc}", file=sys.stderr)
            return EXIT_GATEWAY
        _logger.info("Threema Gateway ready, %d credits left", remaining)

        telemetry: TelemetrySink
        if config.influxdb is not None:
            telemetry = InfluxTelemetry(config.influxdb, http)
        else:
            _logger.info("InfluxDB not configured, telemetry disabled")
            telemetry = NullTelemetry()

        tracker = MailboxTracker(
            MailboxState(),
            threshold_mm=config.threshold_mm,
            lock_timeout=config.lock_timeout,
        )
        dispatcher = UplinkDispatcher(
            tracker,
            notifier=gateway,
            recipients=config.threema_to,
            telemetry=telemetry,
            keepalive_port=config.keepalive_port,
            distance_port=config.distance_port,
        )
        listener = Listener(dispatcher)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, listener.request_stop)

        settings = MqttSettings.from_config(config)
        print(f"--> Connecting to {settings.host}:{settings.port}...")
        print("--> Subscribing to uplink messages...")
        try:
            await listener.start(settings)
        except SmartmailTransportError as exc:
            print(f"Could not connect to MQTT broker: {exc}", file=sys.stderr)
            return EXIT_MQTT

        print("--> Listening!")
        await listener.run()
        _logger.info("Listener stopped")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    _setup_logging(args)
    load_dotenv(args.env_file or find_dotenv(usecwd=True))

    if not args.no_banner:
        print(BANNER)

    try:
        config = SmartmailConfig.from_env()
    except SmartmailConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_CONFIG
    _logger.debug("Configuration: %s", redact_for_log(dataclasses.asdict(config)))

    return asyncio.run(_serve(config))


if __name__ == "__main__":
    raise SystemExit(main())
