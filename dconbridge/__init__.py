"""TCP server relaying client requests to a serial device, with its config and serial-port helpers."""

__version__ = "0.1.0"