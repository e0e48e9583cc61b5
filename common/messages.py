# Envelope                       (every datagram on the multicast group)
#   sender   node id of the sender, used to drop our own loopback copies
#   token    cluster token, nodes only talk within the same token
#   payload  typed content, {"type": ..., ...}
#
# leader_info / master_info      (leader -> group, periodic)
#   host, port of the leader endpoint

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Any, Dict

from common.config import BUFFER_SIZE, LEADER_INFO, MASTER_INFO


class MessageError(ValueError):
    """Raised for envelopes that cannot be encoded or decoded."""


def new_node_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass(frozen=True)
class LeaderInfo:
    host: str
    port: int

    @property
    def address(self):
        return (self.host, self.port)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": LEADER_INFO, "host": self.host, "port": self.port}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LeaderInfo":
        host = d.get("host")
        port = d.get("port")
        if not isinstance(host, str) or not host:
            raise MessageError(f"bad leader host: {host!r}")
        # bool is an int subclass
        if not isinstance(port, int) or isinstance(port, bool) or not 0 < port < 65536:
            raise MessageError(f"bad leader port: {port!r}")
        return cls(host, port)


# master_info is read as LeaderInfo and re-sent as leader_info
PAYLOAD_TYPES = {
    LEADER_INFO: LeaderInfo,
    MASTER_INFO: LeaderInfo,
}


@dataclass(frozen=True)
class Envelope:
    sender: str
    token: str
    payload: Any

    def encode(self) -> bytes:
        data = json.dumps(
            {"sender": self.sender, "token": self.token, "payload": self.payload.to_dict()},
            separators=(",", ":"),
        ).encode("utf-8")
        if len(data) > BUFFER_SIZE:
            raise MessageError(f"envelope is {len(data)} bytes, limit is {BUFFER_SIZE}")
        return data

    @classmethod
    def decode(cls, data: bytes) -> "Envelope":
        # deeply nested arrays exhaust the parser stack (RecursionError)
        try:
            msg = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError, RecursionError) as e:
            raise MessageError(f"undecodable datagram: {e}") from e

        if not isinstance(msg, dict):
            raise MessageError("envelope is not an object")

        sender = msg.get("sender")
        token = msg.get("token")
        payload = msg.get("payload")
        if not isinstance(sender, str) or not isinstance(token, str):
            raise MessageError("envelope is missing sender or token")
        if not isinstance(payload, dict):
            raise MessageError("envelope payload is not an object")

        payload_cls = PAYLOAD_TYPES.get(payload.get("type"))
        if payload_cls is None:
            raise MessageError(f"unknown payload type: {payload.get('type')!r}")

        return cls(sender, token, payload_cls.from_dict(payload))

    def accepted_by(self, node_id: str, token: str) -> bool:
        return self.sender != node_id and self.token == token
