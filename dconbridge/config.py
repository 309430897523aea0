"""Plain ``key=value`` configuration files, one entry per line."""

from __future__ import annotations

import os
from pathlib import Path
from typing import IO

_DIGITS = frozenset("0123456789")


class ConfigError(Exception):
    """Raised when a configuration file cannot be created, opened or parsed."""


class KeyNotFoundError(ConfigError):
    """Raised when a key has no ``key=value`` line in the loaded content."""


class Config:
    """A configuration file of ``key=value`` lines.

    Values are written through an open handle with :meth:`add_value` and
    read back with the ``get_*`` methods after :meth:`read_all`.
    """

    def __init__(self, name: str | os.PathLike[str]) -> None:
        self._name = os.fspath(name)
        self._file: IO[str] | None = None
        self._content = ""

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"Config({self._name!r}, {state})"

    @property
    def name(self) -> str:
        """Path of the configuration file."""
        return self._name

    @property
    def content(self) -> str:
        """Text loaded by the last call to :meth:`read_all`."""
        return self._content

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def create(self) -> None:
        """Create the file, emptying it if it already exists."""
        try:
            with open(self._name, "w+", encoding="utf-8"):
                pass
        except OSError as exc:
            raise ConfigError(f"cannot create {self._name}: {exc.strerror}") from exc

    def exists(self) -> bool:
        """Whether the configuration file is present."""
        return Path(self._name).is_file()

    def open(self, mode: str = "r+") -> Config:
        """Open the file in the given text mode; does nothing if already open."""
        if self._file is None:
            try:
                self._file = open(self._name, mode, encoding="utf-8", newline="")
            except OSError as exc:
                raise ConfigError(f"cannot open {self._name}: {exc.strerror}") from exc
        return self

    def close(self) -> None:
        """Close the file if it is open."""
        if self._file is not None:
            self._file.close()
            self._file = None

    def rename(self, name: str | os.PathLike[str]) -> None:
        """Point this object at another file; not allowed while open."""
        if self._file is not None:
            raise ConfigError(f"cannot rename {self._name} while it is open")
        self._name = os.fspath(name)

    def add_value(self, key: str, value: str | int) -> None:
        """Append a ``key=value`` line to the open file."""
        if self._file is None:
            raise ConfigError(f"{self._name} is not open")
        self._file.write(f"{key}={value}\n")
        self._file.flush()

    def read_all(self) -> str:
        """Load the whole file into :attr:`content` and return it."""
        try:
            if self._file is not None:
                self._file.seek(0)
                content = self._file.read()
                self._file.seek(0)
            else:
                content = Path(self._name).read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"cannot read {self._name}: {exc}") from exc
        self._content = content
        return content

    def _lookup(self, key: str) -> str:
        for line in self._content.split("\n"):
            name, sep, value = line.partition("=")
            if sep and name == key:
                return value.rstrip("\r")
        raise KeyNotFoundError(f"key {key!r} not found in {self._name}")

    def get_str(self, key: str) -> str:
        """Return the text after ``=`` on the line for ``key``."""
        return self._lookup(key)

    def get_int(self, key: str) -> int:
        """Return the value for ``key`` as a non-negative integer."""
        value = self._lookup(key)
        if not value or not set(value) <= _DIGITS:
            raise ConfigError(f"value of {key!r} is not a number: {value!r}")
        return int(value)

    def get_char(self, key: str) -> str:
        """Return the first character of the value, or ``""`` if it is empty."""
        return self._lookup(key)[:1]

    def __enter__(self) -> Config:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()