import socket
import struct
import threading
import time

from common.config import (
    BUFFER_SIZE,
    MULTICAST_GROUP,
    MULTICAST_INTERFACE,
    MULTICAST_PORT,
    MULTICAST_TTL,
)
from common.messages import Envelope, MessageError


class TransportError(Exception):
    """Local socket setup failed; the channel cannot be used."""


def open_multicast_socket(group=MULTICAST_GROUP, port=MULTICAST_PORT, interface=MULTICAST_INTERFACE):
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    try:
        # every node on the host binds the same port
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if hasattr(socket, "SO_REUSEPORT"):
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            except OSError:
                pass
        sock.bind(("", port))

        mreq = struct.pack("4s4s", socket.inet_aton(group), socket.inet_aton(interface))
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, MULTICAST_TTL)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, 1)
        if interface != "0.0.0.0":
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, socket.inet_aton(interface))
    except OSError:
        sock.close()
        raise
    return sock


class MulticastChannel:
    """
    Token-scoped channel on the shared multicast group.
    - send(): one envelope per datagram, best-effort
    - add_listener(): callbacks get every accepted envelope, in order, on one receive thread
    """

    def __init__(
        self,
        token: str,
        node_id: str,
        log,
        sock=None,
        group=MULTICAST_GROUP,
        port=MULTICAST_PORT,
        interface=MULTICAST_INTERFACE,
    ):
        self.token = token
        self.node_id = node_id
        self.log = log
        self.group = (group, port)

        if sock is None:
            try:
                sock = open_multicast_socket(group, port, interface)
            except OSError as e:
                raise TransportError(f"cannot open multicast group {group}:{port}: {e}") from e
        self.sock = sock

        self._listeners = []
        self._lock = threading.Lock()
        self._rx_thread = None
        self._closed = threading.Event()

        self.log.info("MULTICAST_INIT", addr=self.group, token=token)

    def send(self, envelope: Envelope):
        data = envelope.encode()
        try:
            self.sock.sendto(data, self.group)
        except OSError as e:
            self.log.warn("MULTICAST_TX_FAIL", addr=self.group, error=e)
            raise

    def add_listener(self, callback):
        with self._lock:
            self._listeners.append(callback)
            if self._rx_thread is None:
                self._rx_thread = threading.Thread(target=self._recv_loop, name="multicast-rx", daemon=True)
                self._rx_thread.start()

    def _recv_loop(self):
        while not self._closed.is_set():
            try:
                data, addr = self.sock.recvfrom(BUFFER_SIZE)
            except OSError:
                if self._closed.is_set():
                    return
                time.sleep(0.05)
                continue
            if self._closed.is_set():
                return
            try:
                self.dispatch(data, addr)
            except Exception as e:
                self.log.error("MULTICAST_RX_FAIL", addr=addr, error=e)

    def dispatch(self, data: bytes, addr=None):
        """Decode one datagram and hand it to every listener. Returns the envelope if accepted."""
        try:
            envelope = Envelope.decode(data)
        except MessageError as e:
            self.log.warn("MULTICAST_RX_DECODE_FAIL", addr=addr or "-", error=e)
            return None

        if not envelope.accepted_by(self.node_id, self.token):
            return None

        with self._lock:
            listeners = list(self._listeners)

        for callback in listeners:
            try:
                callback(envelope, addr)
            except Exception as e:
                self.log.error("MULTICAST_LISTENER_FAIL", listener=getattr(callback, "__name__", callback), error=e)
        return envelope

    def close(self):
        self.log.info("MULTICAST_CLOSE")
        self._closed.set()
        # shutdown() wakes a recvfrom() blocked in the receive thread
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            self.sock.close()
        except OSError:
            pass
