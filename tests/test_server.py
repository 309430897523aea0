import socket
import threading
import time
from contextlib import contextmanager

import pytest

from dconbridge.serialport import SerialSettings
from dconbridge.server import BridgeServer, ServerSettings


class FakePort:
    def __init__(self, settings, reply=True, fail_open=False):
        self.settings = settings
        self.reply = reply
        self.fail_open = fail_open
        self.is_open = False
        self.written = []
        self.lock_count = 0

    def open(self):
        if self.fail_open:
            raise OSError("device unavailable")
        self.is_open = True
        return self

    def close(self):
        self.is_open = False

    @contextmanager
    def locked(self):
        self.lock_count += 1
        yield self

    def write(self, data):
        self.written.append(data)
        return len(data)

    def read(self, size, timeout_ms):
        if not self.reply:
            return b""
        return self.written[-1].upper()[:size]

    def __enter__(self):
        return self.open()

    def __exit__(self, *args):
        self.close()


def make_factory(**kwargs):
    ports = []

    def factory(settings):
        port = FakePort(settings, **kwargs)
        ports.append(port)
        return port

    return factory, ports


def make_settings(**overrides):
    values = dict(
        host="127.0.0.1",
        port=0,
        serial=SerialSettings(device="/dev/null"),
        max_users=4,
        timeout_ms=100,
        max_response_size=64,
        max_request_size=64,
    )
    values.update(overrides)
    return ServerSettings(**values)


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


def run_session(server, payload):
    client, served = socket.socketpair()
    with client:
        client.sendall(payload)
        client.shutdown(socket.SHUT_WR)
        server.handle_client(served)
        chunks = []
        while True:
            chunk = client.recv(1024)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


@contextmanager
def running(server):
    server.setup()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield thread
    finally:
        server.close()
        thread.join(5)


def test_handle_client_relays_request_and_response():
    factory, ports = make_factory()
    server = BridgeServer(make_settings(), factory)
    assert run_session(server, b"ping") == b"PING"
    assert ports[0].written == [b"ping"]
    assert ports[0].lock_count == 1
    assert ports[0].is_open is False


def test_request_is_split_by_max_request_size():
    factory, ports = make_factory()
    server = BridgeServer(make_settings(max_request_size=2), factory)
    assert run_session(server, b"abcd") == b"ABCD"
    assert ports[0].written == [b"ab", b"cd"]


def test_response_is_limited_by_max_response_size():
    factory, ports = make_factory()
    server = BridgeServer(make_settings(max_response_size=2), factory)
    assert run_session(server, b"abcd") == b"AB"


def test_no_reply_from_device_sends_nothing():
    factory, ports = make_factory(reply=False)
    server = BridgeServer(make_settings(), factory)
    assert run_session(server, b"query") == b""
    assert ports[0].written == [b"query"]


def test_setup_probes_device_and_releases_it():
    factory, ports = make_factory()
    server = BridgeServer(make_settings(), factory)
    try:
        server.setup()
        assert len(ports) == 1
        assert ports[0].is_open is False
        assert server.address[0] == "127.0.0.1"
        assert server.address[1] > 0
    finally:
        server.close()


def test_setup_fails_when_device_cannot_open():
    factory, _ = make_factory(fail_open=True)
    server = BridgeServer(make_settings(), factory)
    with pytest.raises(OSError):
        server.setup()
    with pytest.raises(ValueError):
        server.address


def test_setup_fails_when_address_in_use():
    occupant = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    with occupant:
        occupant.bind(("127.0.0.1", 0))
        occupant.listen(1)
        taken = occupant.getsockname()[1]
        factory, ports = make_factory()
        server = BridgeServer(make_settings(port=taken), factory)
        with pytest.raises(OSError):
            server.setup()
        assert ports[0].is_open is False


def test_settings_reject_nonpositive_sizes():
    with pytest.raises(ValueError):
        make_settings(max_request_size=0)
    with pytest.raises(ValueError):
        make_settings(max_response_size=0)
    with pytest.raises(ValueError):
        make_settings(max_users=-1)


def test_serves_clients_over_tcp_and_stops():
    factory, _ = make_factory()
    server = BridgeServer(make_settings(), factory)
    with running(server) as thread:
        with socket.create_connection(server.address, timeout=5) as client:
            client.sendall(b"hello")
            assert client.recv(64) == b"HELLO"
    assert not thread.is_alive()


def test_rejects_clients_beyond_max_users():
    factory, _ = make_factory()
    server = BridgeServer(make_settings(max_users=1), factory)
    with running(server):
        first = socket.create_connection(server.address, timeout=5)
        with first:
            first.sendall(b"a")
            assert first.recv(16) == b"A"
            assert server.active_connections == 1
            with socket.create_connection(server.address, timeout=5) as second:
                assert second.recv(16) == b""
        assert wait_for(lambda: server.active_connections == 0)
        with socket.create_connection(server.address, timeout=5) as third:
            third.sendall(b"b")
            assert third.recv(16) == b"B"


def test_context_manager_sets_up_and_closes():
    factory, _ = make_factory()
    with BridgeServer(make_settings(), factory) as server:
        assert server.address[1] > 0
    with pytest.raises(ValueError):
        server.address