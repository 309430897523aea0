"""TCP server that relays client requests to a serial device and returns its replies."""

from __future__ import annotations

import logging
import selectors
import socket
import threading
from dataclasses import dataclass
from typing import Callable, Protocol

from dconbridge.serialport import SerialPort, SerialSettings

_log = logging.getLogger(__name__)

_POLL_INTERVAL = 0.2


class _Port(Protocol):
    def open(self) -> object: ...

    def close(self) -> None: ...

    def locked(self) -> object: ...

    def write(self, data: bytes) -> int: ...

    def read(self, size: int, timeout_ms: int) -> bytes: ...


@dataclass(frozen=True)
class ServerSettings:
    """Network and exchange settings of the bridge."""

    host: str
    port: int
    serial: SerialSettings
    max_users: int
    timeout_ms: int
    max_response_size: int
    max_request_size: int
    debug: bool = False

    def __post_init__(self) -> None:
        if self.max_users < 0:
            raise ValueError(f"max_users must not be negative: {self.max_users}")
        if self.max_request_size < 1:
            raise ValueError(f"max_request_size must be positive: {self.max_request_size}")
        if self.max_response_size < 1:
            raise ValueError(f"max_response_size must be positive: {self.max_response_size}")


class BridgeServer:
    """Accepts TCP clients and forwards each request to the serial device.

    Every client is served in its own thread with its own handle on the
    device; an exclusive lock on the device keeps one request/response
    exchange from interleaving with another.
    """

    def __init__(
        self,
        settings: ServerSettings,
        port_factory: Callable[[SerialSettings], _Port] = SerialPort,
    ) -> None:
        self.settings = settings
        self._port_factory = port_factory
        self._listener: socket.socket | None = None
        self._active = 0
        self._count_lock = threading.Lock()
        self._stop = threading.Event()

    @property
    def address(self) -> tuple[str, int]:
        """Host and port the server listens on."""
        host, port = self._require_listener().getsockname()[:2]
        return host, port

    @property
    def active_connections(self) -> int:
        with self._count_lock:
            return self._active

    def _require_listener(self) -> socket.socket:
        if self._listener is None:
            raise ValueError("server is not set up")
        return self._listener

    def _debug(self, message: str, *args: object) -> None:
        if self.settings.debug:
            _log.info(message, *args)

    def _error(self, message: str, *args: object) -> None:
        if self.settings.debug:
            _log.error(message, *args)

    def setup(self) -> BridgeServer:
        """Check that the serial device can be configured, then bind and listen."""
        if self._listener is not None:
            return self
        probe = self._port_factory(self.settings.serial)
        probe.open()
        probe.close()

        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            listener.bind((self.settings.host, self.settings.port))
            listener.listen(self.settings.max_users)
        except BaseException:
            listener.close()
            raise
        self._listener = listener
        return self

    def _try_acquire(self) -> bool:
        with self._count_lock:
            if self._active >= self.settings.max_users:
                return False
            self._active += 1
            return True

    def _release(self) -> None:
        with self._count_lock:
            self._active -= 1

    def _run_client(self, conn: socket.socket) -> None:
        try:
            self.handle_client(conn)
        finally:
            self._release()

    def serve_forever(self) -> None:
        """Accept clients until :meth:`shutdown` is called."""
        listener = self._require_listener()
        self._stop.clear()
        self._debug("Server has been started!")
        with selectors.DefaultSelector() as selector:
            selector.register(listener, selectors.EVENT_READ)
            while not self._stop.is_set():
                try:
                    if not selector.select(timeout=_POLL_INTERVAL):
                        continue
                    conn, _peer = listener.accept()
                except OSError as exc:
                    if self._stop.is_set():
                        break
                    self._error("%s", exc)
                    continue
                if not self._try_acquire():
                    conn.close()
                    continue
                threading.Thread(
                    target=self._run_client, args=(conn,), daemon=True
                ).start()

    def handle_client(self, conn: socket.socket) -> None:
        """Relay requests from ``conn`` to the device until the client disconnects."""
        settings = self.settings
        with conn:
            port = self._port_factory(settings.serial)
            try:
                port.open()
            except OSError as exc:
                self._error("%s", exc)
                return
            try:
                while True:
                    request = conn.recv(settings.max_request_size)
                    if not request:
                        break
                    self._debug("Receive from socket: %d %r", len(request), request)
                    with port.locked():
                        written = port.write(request)
                        self._debug("Write in port: %d", written)
                        response = port.read(settings.max_response_size, settings.timeout_ms)
                    if response:
                        self._debug("Receive from port: %d", len(response))
                    else:
                        self._error("Nothing was read from port")
                    conn.sendall(response)
                    self._debug("Write in socket: %d %r", len(response), response)
            except OSError as exc:
                self._error("%s", exc)
            finally:
                port.close()

    def shutdown(self) -> None:
        """Ask :meth:`serve_forever` to return."""
        self._stop.set()

    def close(self) -> None:
        """Stop serving and release the listening socket."""
        self.shutdown()
        if self._listener is not None:
            self._listener.close()
            self._listener = None

    def __enter__(self) -> BridgeServer:
        return self.setup()

    def __exit__(self, *args: object) -> None:
        self.close()