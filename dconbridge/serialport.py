"""Serial terminal device configured for raw, byte-oriented exchange."""

from __future__ import annotations

import errno
import fcntl
import os
import select
import termios
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Iterator

_BAUD_RATES = (
    0, 50, 75, 110, 134, 150, 200, 300, 600, 1200, 1800, 2400,
    4800, 9600, 19200, 38400, 57600, 115200, 230400,
)


class SerialSettingsError(ValueError):
    """Raised for a line setting the serial port does not support."""


class Parity(str, Enum):
    NONE = "N"
    ODD = "O"
    EVEN = "E"


def baud_constant(baud: int) -> int:
    """Return the termios speed constant for a baud rate."""
    if baud not in _BAUD_RATES:
        raise SerialSettingsError(f"unsupported baud rate: {baud}")
    try:
        return getattr(termios, f"B{baud}")
    except AttributeError:
        raise SerialSettingsError(
            f"baud rate {baud} is not available on this platform"
        ) from None


@dataclass(frozen=True)
class SerialSettings:
    """Line settings of a serial device."""

    device: str
    baud: int = 9600
    data_bits: int = 8
    stop_bits: int = 1
    parity: Parity = Parity.NONE

    def __post_init__(self) -> None:
        try:
            parity = Parity(self.parity)
        except ValueError:
            raise SerialSettingsError(f"unsupported parity: {self.parity!r}") from None
        object.__setattr__(self, "parity", parity)
        if self.stop_bits not in (1, 2):
            raise SerialSettingsError(f"unsupported stop bits: {self.stop_bits}")
        if self.data_bits not in (7, 8):
            raise SerialSettingsError(f"unsupported data bits: {self.data_bits}")
        baud_constant(self.baud)


def apply_settings(attrs: list, settings: SerialSettings) -> list:
    """Return a raw-mode copy of termios ``attrs`` with the given line settings."""
    _iflag, oflag, cflag, _lflag, _ispeed, _ospeed, cc = attrs

    cflag &= ~termios.CSTOPB
    if settings.stop_bits == 2:
        cflag |= termios.CSTOPB

    cflag &= ~termios.CSIZE
    cflag |= termios.CS7 if settings.data_bits == 7 else termios.CS8

    cflag &= ~(termios.PARENB | termios.PARODD)
    if settings.parity is Parity.ODD:
        cflag |= termios.PARENB | termios.PARODD
    elif settings.parity is Parity.EVEN:
        cflag |= termios.PARENB

    cflag |= termios.CREAD | termios.CLOCAL
    speed = baud_constant(settings.baud)

    cc = list(cc)
    cc[termios.VMIN] = 1
    cc[termios.VTIME] = 0

    return [0, oflag & ~termios.OPOST, cflag, 0, speed, speed, cc]


class SerialPort:
    """An opened serial device; the original line settings are restored on close."""

    def __init__(self, settings: SerialSettings) -> None:
        self.settings = settings
        self._fd: int | None = None
        self._saved: list | None = None

    @property
    def is_open(self) -> bool:
        return self._fd is not None

    @property
    def fd(self) -> int:
        return self._require_open()

    def _require_open(self) -> int:
        if self._fd is None:
            raise ValueError(f"serial port {self.settings.device} is not open")
        return self._fd

    def open(self) -> SerialPort:
        """Open the device and switch it to raw mode with the configured settings."""
        if self._fd is not None:
            return self
        device = self.settings.device
        fd = os.open(device, os.O_RDWR | os.O_NOCTTY | os.O_SYNC)
        try:
            if not os.isatty(fd):
                raise OSError(errno.ENOTTY, os.strerror(errno.ENOTTY), device)
            saved = termios.tcgetattr(fd)
            termios.tcsetattr(fd, termios.TCSANOW, apply_settings(saved, self.settings))
        except BaseException as exc:
            os.close(fd)
            if isinstance(exc, termios.error):
                raise OSError(*exc.args) from exc
            raise
        self._fd = fd
        self._saved = saved
        return self

    def close(self) -> None:
        """Restore the saved line settings and close the device."""
        if self._fd is None:
            return
        fd, saved = self._fd, self._saved
        self._fd = None
        self._saved = None
        try:
            if saved is not None:
                termios.tcsetattr(fd, termios.TCSANOW, saved)
        except termios.error:
            pass
        finally:
            os.close(fd)

    @contextmanager
    def locked(self) -> Iterator[SerialPort]:
        """Hold an exclusive advisory lock on the device for the block."""
        fd = self._require_open()
        fcntl.flock(fd, fcntl.LOCK_EX)
        try:
            yield self
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)

    def write(self, data: bytes) -> int:
        """Write ``data`` to the device and return the number of bytes written."""
        return os.write(self._require_open(), data)

    def read(self, size: int, timeout_ms: int) -> bytes:
        """Wait up to ``timeout_ms`` for input and read at most ``size`` bytes.

        Returns ``b""`` if nothing arrived in time.
        """
        fd = self._require_open()
        poller = select.poll()
        poller.register(fd, select.POLLIN)
        if not poller.poll(timeout_ms):
            return b""
        return os.read(fd, size)

    def __enter__(self) -> SerialPort:
        return self.open()

    def __exit__(self, *args: object) -> None:
        self.close()