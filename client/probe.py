import sys

from common.log import Log
from common.messages import LeaderInfo, new_node_id
from node.broadcast import MulticastChannel, TransportError
from node.gate import Gate


def wait_for_leader(channel, timeout):
    """Listen on channel until a leader announces itself. Returns (host, port) or None."""
    gate = Gate()
    found = []

    def on_envelope(envelope, addr=None):
        if isinstance(envelope.payload, LeaderInfo) and not found:
            found.append(envelope.payload.address)
            gate.signal()

    channel.add_listener(on_envelope)
    if not gate.wait(timeout):
        return None
    return found[0]


def main(argv):
    if len(argv) not in (2, 3):
        print("Usage: python -m client.probe <CLUSTER_TOKEN> [TIMEOUT]")
        return 1

    token = argv[1]
    timeout = float(argv[2]) if len(argv) == 3 else 10.0

    node_id = new_node_id()
    log = Log(node_id, role="probe")
    try:
        channel = MulticastChannel(token, node_id, log)
    except TransportError as e:
        log.error("TRANSPORT_FAIL", error=e)
        return 1

    try:
        leader = wait_for_leader(channel, timeout)
    finally:
        channel.close()

    if leader is None:
        log.warn("NO_LEADER", token=token, timeout=timeout)
        return 1

    print(f"Leader for {token} is at {leader[0]}:{leader[1]}")
    return 0


def cli():
    sys.exit(main(sys.argv))


if __name__ == "__main__":
    cli()
