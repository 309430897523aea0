"""Command line entry point: load a configuration file and run the bridge."""

from __future__ import annotations

import logging
import sys
from typing import Sequence

from dconbridge.config import Config, ConfigError
from dconbridge.serialport import SerialSettings
from dconbridge.server import BridgeServer, ServerSettings

PARAMETERS = (
    "Ip",
    "Device",
    "Port",
    "StopBit",
    "DataBit",
    "Baud",
    "MaxUsers",
    "Debug",
    "Parity",
    "TimeMsWaitResponse",
    "MaxSizeResponse",
    "MaxSizeRequest",
)

_PROG = "dconbridge"


def _print_help() -> None:
    print(f"Usage: {_PROG} <keys> [args]")
    print("-f -- path to configuration file.")
    print("-h -- show help.")


def write_template(config: Config) -> None:
    """Create ``config`` with every parameter present and left empty."""
    config.create()
    with config.open("r+"):
        for key in PARAMETERS:
            config.add_value(key, "")


def load_settings(config: Config) -> ServerSettings:
    """Read ``config`` and build the server settings it describes."""
    config.read_all()
    host = config.get_str("Ip")
    device = config.get_str("Device")
    port = config.get_int("Port")
    stop_bits = config.get_int("StopBit")
    data_bits = config.get_int("DataBit")
    baud = config.get_int("Baud")
    max_users = config.get_int("MaxUsers")
    debug = config.get_int("Debug")
    parity = config.get_char("Parity")
    timeout_ms = config.get_int("TimeMsWaitResponse")
    max_response_size = config.get_int("MaxSizeResponse")
    max_request_size = config.get_int("MaxSizeRequest")

    serial = SerialSettings(
        device=device,
        baud=baud,
        data_bits=data_bits,
        stop_bits=stop_bits,
        parity=parity,
    )
    return ServerSettings(
        host=host,
        port=port,
        serial=serial,
        max_users=max_users,
        timeout_ms=timeout_ms,
        max_response_size=max_response_size,
        max_request_size=max_request_size,
        debug=bool(debug),
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) < 2 or args[0] != "-f":
        _print_help()
        return 0

    config = Config(args[1])
    if not config.exists():
        try:
            write_template(config)
        except ConfigError as exc:
            print(f"Create configuration file failed: {exc}", file=sys.stderr)
            return 1
        print("Create configuration file success!", file=sys.stderr)
        return 0

    try:
        settings = load_settings(config)
    except (ConfigError, ValueError) as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    if settings.debug:
        logging.basicConfig(level=logging.INFO, format="%(message)s")

    try:
        with BridgeServer(settings) as server:
            server.serve_forever()
    except OSError as exc:
        print(f"Server failed: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 0
    return 0


if __name__ == "__main__":
    sys.exit(main())