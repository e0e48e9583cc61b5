# common/syslog.py
import socket
from datetime import datetime, timezone

from common.config import (
    SYSLOG_ENABLED,
    SYSLOG_HOST,
    SYSLOG_PORT,
    SYSLOG_FACILITY,
)
from common.net import get_lan_ip

SEVERITY = {
    "ERROR": 3,
    "WARN": 4,
    "OK": 5,
    "INFO": 6,
}


# ------------------------------
# Helpers
# ------------------------------
def _ts():
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def _fmt(v):
    if v is None:
        return "-"
    if isinstance(v, tuple) and len(v) == 2:
        return f"{v[0]}:{v[1]}"
    return str(v)


class SyslogSink:
    """
    Best-effort RFC 5424 forwarder over UDP.
    Every event the console log prints can be mirrored here; send errors are dropped.
    """

    def __init__(self, host=SYSLOG_HOST, port=SYSLOG_PORT, facility=SYSLOG_FACILITY, app="lan-bootstrap"):
        if host == "auto":
            host = get_lan_ip()
        self.addr = (host, port)
        self.facility = facility
        self.app = app
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)

    def _pri(self, severity: int):
        # PRI = facility * 8 + severity
        return (self.facility * 8) + severity

    def format(self, level: str, event: str, node_id: str, role: str, **fields) -> str:
        payload_parts = [
            f"event={event}",
            f"level={level}",
            f"node_id={node_id}",
            f"role={role}",
        ]
        for k in sorted(fields.keys()):
            payload_parts.append(f"{k}={_fmt(fields[k])}")

        return (
            f"<{self._pri(SEVERITY.get(level, 6))}>1 "
            f"{_ts()} "
            f"{node_id} "
            f"{self.app} "
            f"- - - "
            f"{' '.join(payload_parts)}"
        )

    def send(self, level: str, event: str, node_id: str, role: str, **fields):
        msg = self.format(level, event, node_id, role, **fields)
        try:
            self._sock.sendto(msg.encode("utf-8", errors="replace"), self.addr)
        except OSError:
            pass

    def close(self):
        try:
            self._sock.close()
        except OSError:
            pass


def from_config():
    """Return a sink when SYSLOG_ENABLED=1, else None."""
    if not SYSLOG_ENABLED:
        return None
    return SyslogSink()
