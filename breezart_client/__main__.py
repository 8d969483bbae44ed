"""Command line access to a Breezart controller.

Usage:
    python -m breezart_client --host 192.168.1.50 status
    python -m breezart_client --host 192.168.1.50 --password 1234 speed 5
    python -m breezart_client --host 192.168.1.50 power off
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from typing import Any

from .client import BreezartClient
from .config import BreezartConfig
from .const import DEFAULT_PASSWORD, DEFAULT_PORT
from .errors import BreezartError

_LOGGER = logging.getLogger(__name__)


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Arguments to parse, sys.argv[1:] if None.

    Returns:
        Parsed arguments namespace.

    """
    parser = argparse.ArgumentParser(
        prog="breezart_client",
        description="Query and control a Breezart ventilation unit",
    )
    parser.add_argument("--host", required=True, help="Controller address")
    parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT, help="Controller TCP port"
    )
    parser.add_argument(
        "--password",
        type=int,
        default=DEFAULT_PASSWORD,
        help="Numeric controller password (0-65535)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("properties", help="Print the unit properties")
    commands.add_parser("status", help="Print the status and sensor readings")
    speed = commands.add_parser("speed", help="Set the target fan speed")
    speed.add_argument("value", type=int)
    temperature = commands.add_parser(
        "temperature", help="Set the target temperature"
    )
    temperature.add_argument("value", type=int)
    humidity = commands.add_parser("humidity", help="Set the target humidity")
    humidity.add_argument("value", type=int)
    power = commands.add_parser("power", help="Turn the unit on or off")
    power.add_argument("value", choices=["on", "off"])

    return parser.parse_args(args)


async def async_run(args: argparse.Namespace) -> Any:
    """Connect, run one command and disconnect.

    Returns:
        The command result, ready for JSON output.

    Raises:
        BreezartError: If the connection or the command fails.

    """
    config = BreezartConfig.from_dict(
        {
            "host": args.host,
            "port": args.port,
            "password": args.password,
            "idle_timeout": None,
            "auto_reconnect": False,
        }
    )
    client = BreezartClient(config)
    errors: list[Exception] = []
    client.register_error_callback(errors.append)

    if not await client.async_connect():
        await client.async_disconnect()
        if errors:
            raise errors[-1]
        msg = f"Cannot connect to {config.label}"
        raise BreezartError(msg)

    try:
        if args.command == "properties":
            return asdict(client.properties)
        if args.command == "status":
            snapshot = (await client.async_get_current_status()).as_dict()
            return {"status": snapshot["status"], "sensors": snapshot["sensors"]}
        if args.command == "speed":
            return {"speed_target": await client.async_set_fan_speed(args.value)}
        if args.command == "temperature":
            return {"temper_target": await client.async_set_temperature(args.value)}
        if args.command == "humidity":
            return {"humid_target": await client.async_set_humidity(args.value)}
        return {"power": await client.async_set_power(args.value == "on")}
    finally:
        await client.async_disconnect()


def main(argv: list[str] | None = None) -> int:
    """Run the command line interface and return the exit code."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        result = asyncio.run(async_run(args))
    except BreezartError as err:
        _LOGGER.debug("Command failed", exc_info=True)
        print(f"Error: {err}", file=sys.stderr)  # noqa: T201
        return 1

    print(json.dumps(result, indent=2))  # noqa: T201
    return 0


if __name__ == "__main__":
    sys.exit(main())
