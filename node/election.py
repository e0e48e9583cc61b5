import random
import threading
from dataclasses import dataclass
from typing import Tuple

from common.config import (
    ANNOUNCE_INTERVAL,
    FOLLOWER,
    LEADER,
    LEADER_FLAG,
    WAIT_MAX,
    WAIT_MIN,
)
from common.messages import Envelope, LeaderInfo, MessageError
from node.gate import Gate
from node.redirect import RedirectResponder

AWAITING_ANNOUNCEMENT = "AWAITING_ANNOUNCEMENT"


@dataclass(frozen=True)
class Leader:
    address: Tuple[str, int]

    role = LEADER


@dataclass(frozen=True)
class Follower:
    host: str
    port: int

    role = FOLLOWER

    @property
    def address(self):
        return (self.host, self.port)


class ElectionCoordinator:
    def __init__(
        self,
        channel,
        supervisor,
        commands,
        log,
        self_address,
        wait_window=(WAIT_MIN, WAIT_MAX),
        announce_interval=ANNOUNCE_INTERVAL,
        redirect_factory=RedirectResponder,
        rng=None,
    ):
        """
        channel     MulticastChannel (node_id, token, send, add_listener)
        supervisor  ProcessSupervisor (start)
        commands    role -> (executable_path, args), resolved before we get here
        self_address  (host, port) we announce if we become leader

        The wait is drawn uniformly from wait_window so that nodes started
        together are unlikely to time out at the same moment. That lowers the
        chance of two leaders; it does not rule it out.
        """
        self.channel = channel
        self.supervisor = supervisor
        self.commands = commands
        self.log = log
        self.self_address = tuple(self_address)
        self.wait_window = wait_window
        self.announce_interval = announce_interval
        self.redirect_factory = redirect_factory
        self.rng = rng or random.Random()

        self.gate = Gate()
        self._lock = threading.Lock()
        self._started = False

        # written by the receive thread before gate.signal(), read after gate.wait()
        self.leader_host = None
        self.leader_port = None

        self.result = None
        self.worker = None
        self.redirect = None
        self._announcer = None
        self._stop = threading.Event()

    @property
    def state(self) -> str:
        if self.result is None:
            return AWAITING_ANNOUNCEMENT
        return self.result.role.upper()

    def run(self):
        with self._lock:
            if self._started:
                raise RuntimeError("election already ran")
            self._started = True

        self.channel.add_listener(self.on_envelope)

        timeout = self.rng.uniform(*self.wait_window)
        self.log.info("ELECTION_WAIT", timeout=f"{timeout:.2f}", token=self.channel.token)

        announced = self.gate.wait(timeout)

        with self._lock:
            # an announcement may land between the timeout and this lock
            if self.leader_host is not None:
                self.result = Follower(self.leader_host, self.leader_port)
            else:
                self.result = Leader(self.self_address)
            result = self.result

        if isinstance(result, Follower):
            self.log.info("ELECTION_DONE", outcome="announcement" if announced else "late_announcement")
            self.become_follower(result)
        else:
            self.log.info("ELECTION_DONE", outcome="timeout")
            self.become_leader(result)
        return result

    def on_envelope(self, envelope, addr=None):
        """Receive-thread callback for every accepted envelope."""
        info = envelope.payload
        if not isinstance(info, LeaderInfo):
            return

        with self._lock:
            if self.result is not None:
                if isinstance(self.result, Leader):
                    self.log.warn("DUPLICATE_LEADER", other=info.address, sender=envelope.sender)
                return
            if self.leader_host is not None:
                # first announcement wins
                return
            self.leader_host = info.host
            self.leader_port = info.port

        self.log.info("LEADER_ANNOUNCEMENT_RECV", leader=info.address, sender=envelope.sender, addr=addr or "-")
        self.gate.signal()

    def become_leader(self, result: Leader):
        self.log.set_role(LEADER)
        self.log.ok("ROLE_LEADER", addr=result.address)

        executable, args = self.commands[LEADER]
        self.worker = self.supervisor.start(LEADER, executable, list(args))

        self._announcer = threading.Thread(target=self._announce_loop, name="leader-announcer", daemon=True)
        self._announcer.start()

    def become_follower(self, result: Follower):
        self.log.set_role(FOLLOWER)
        self.log.ok("ROLE_FOLLOWER", leader=result.address)

        executable, args = self.commands[FOLLOWER]
        args = list(args) + [f"{LEADER_FLAG}={result.host}:{result.port}"]
        self.worker = self.supervisor.start(FOLLOWER, executable, args)

        self.redirect = self.redirect_factory(result.host, result.port, self.log, self_address=self.self_address)
        self.redirect.start()

    def _announce_loop(self):
        envelope = Envelope(self.channel.node_id, self.channel.token, LeaderInfo(*self.self_address))
        while True:
            try:
                self.channel.send(envelope)
            except OSError:
                # logged by the channel, next tick tries again
                pass
            except MessageError as e:
                self.log.error("ANNOUNCE_ENCODE_FAIL", error=e)
            if self._stop.wait(self.announce_interval):
                return

    def join(self) -> int:
        if self.worker is None:
            raise RuntimeError("no worker started")
        return self.worker.join()

    def stop(self):
        self._stop.set()
        if self._announcer is not None:
            self._announcer.join()
        if self.redirect is not None:
            self.redirect.stop()
