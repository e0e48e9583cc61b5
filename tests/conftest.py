import socket
import threading
import uuid

import pytest

from common.config import BUFFER_SIZE, MULTICAST_GROUP, MULTICAST_PORT
from node.broadcast import open_multicast_socket


class RecordingLog:
    """Stands in for common.log.Log and keeps every event."""

    def __init__(self, node_id="test", role="node"):
        self.node_id = node_id
        self.role = role
        self.events = []
        self._lock = threading.Lock()

    def set_role(self, role):
        self.role = role

    def log(self, event, level="INFO", **fields):
        with self._lock:
            self.events.append((level, event, fields))

    def info(self, event, **fields):
        self.log(event, "INFO", **fields)

    def ok(self, event, **fields):
        self.log(event, "OK", **fields)

    def warn(self, event, **fields):
        self.log(event, "WARN", **fields)

    def error(self, event, **fields):
        self.log(event, "ERROR", **fields)

    def named(self, event):
        with self._lock:
            return [fields for _, e, fields in self.events if e == event]


class StubSocket:
    """Socket double for MulticastChannel: records sends, recvfrom blocks until closed."""

    def __init__(self):
        self.sent = []
        self.closed = threading.Event()

    def sendto(self, data, addr):
        self.sent.append((data, addr))

    def recvfrom(self, n):
        self.closed.wait()
        raise OSError("closed")

    def shutdown(self, how):
        self.closed.set()

    def close(self):
        self.closed.set()


def free_tcp_port():
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
    finally:
        s.close()


def _multicast_works(interface):
    try:
        rx = open_multicast_socket(interface=interface)
    except OSError:
        return False
    try:
        tx = open_multicast_socket(interface=interface)
    except OSError:
        rx.close()
        return False

    marker = f"probe-{uuid.uuid4().hex}".encode()
    try:
        rx.settimeout(1.0)
        tx.sendto(marker, (MULTICAST_GROUP, MULTICAST_PORT))
        while True:
            data, _ = rx.recvfrom(BUFFER_SIZE)
            if data == marker:
                return True
    except OSError:
        return False
    finally:
        rx.close()
        tx.close()


@pytest.fixture
def log():
    return RecordingLog()


@pytest.fixture(scope="session")
def multicast_interface():
    for interface in ("0.0.0.0", "127.0.0.1"):
        if _multicast_works(interface):
            return interface
    pytest.skip("multicast loopback is not available on this host")
