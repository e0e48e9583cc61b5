import signal
import sys

from common import syslog
from common.config import FOLLOWER, LEADER, LEADER_PORT
from common.log import Log
from common.messages import Envelope, LeaderInfo, MessageError, new_node_id
from common.net import advertise_host
from node.broadcast import MulticastChannel, TransportError
from node.commands import CommandNotFound, EnvCommandResolver
from node.election import ElectionCoordinator
from node.supervisor import LaunchError, ProcessSupervisor


def install_signal_handlers(supervisor, log):
    def _on_signal(signum, frame):
        if supervisor.defer_signal(signum):
            # re-raised once the worker being spawned is registered
            return
        log.warn("SIGNAL", signal=signal.Signals(signum).name)
        supervisor.shutdown()
        sys.exit(0)

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)


class Node:
    def __init__(self, token, resolver=None, log=None):
        self.token = token
        self.node_id = new_node_id()
        self.log = log or Log(self.node_id, syslog=syslog.from_config())
        self.resolver = resolver or EnvCommandResolver()
        self.self_address = (advertise_host(), LEADER_PORT)

        self.channel = None
        self.supervisor = None
        self.coordinator = None

    def start(self):
        # resolve both roles before sending anything
        commands = {role: self.resolver.resolve(role) for role in (LEADER, FOLLOWER)}
        for role, (path, args) in commands.items():
            self.log.info("COMMAND_RESOLVED", worker=role, executable=path, args=" ".join(args))

        # the announcement must fit in one datagram
        Envelope(self.node_id, self.token, LeaderInfo(*self.self_address)).encode()

        self.channel = MulticastChannel(self.token, self.node_id, self.log)
        self.supervisor = ProcessSupervisor(self.log)
        install_signal_handlers(self.supervisor, self.log)

        self.coordinator = ElectionCoordinator(
            self.channel,
            self.supervisor,
            commands,
            self.log,
            self.self_address,
        )
        return self.coordinator.run()

    def wait(self) -> int:
        return self.coordinator.join()


def main(argv):
    if len(argv) != 2:
        print("Usage: python -m node.node <CLUSTER_TOKEN>")
        return 1

    node = Node(argv[1])
    node.log.info("NODE_START", token=node.token, addr=node.self_address)
    try:
        node.start()
    except CommandNotFound as e:
        node.log.error("COMMAND_NOT_FOUND", error=e)
        return 1
    except TransportError as e:
        node.log.error("TRANSPORT_FAIL", error=e)
        return 1
    except LaunchError as e:
        node.log.error("LAUNCH_FAIL", error=e)
        return 1
    except MessageError as e:
        node.log.error("ANNOUNCEMENT_TOO_LARGE", error=e)
        return 1

    node.wait()
    return 0


def cli():
    sys.exit(main(sys.argv))


if __name__ == "__main__":
    cli()
