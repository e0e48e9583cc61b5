import http.client
import json
import os
import shlex
import subprocess
import sys
import time
import uuid
from pathlib import Path

import pytest

from conftest import free_tcp_port

WORKER = Path(__file__).resolve().parent / "dummy_worker.py"


@pytest.fixture(scope="module")
def project_root():
    return Path(__file__).resolve().parents[1]


def read_report(path: Path):
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


def wait_for_report(path: Path, event: str, timeout_s: float):
    deadline = time.time() + timeout_s
    while time.time() < deadline:
        for entry in read_report(path):
            if entry["event"] == event:
                return entry
        time.sleep(0.1)
    return None


class NodeRunner:
    """Starts `python -m node.node` processes wired to dummy workers."""

    def __init__(self, project_root: Path, tmp_path: Path, interface: str, leader_port: int):
        self.project_root = project_root
        self.tmp_path = tmp_path
        self.interface = interface
        self.leader_port = leader_port
        self.procs = []

    def start(self, name: str, token: str, advertise: str):
        report = self.tmp_path / f"{name}.jsonl"
        worker = f"{shlex.quote(sys.executable)} {shlex.quote(str(WORKER))} {shlex.quote(str(report))}"

        env = dict(os.environ)
        env.update({
            "NO_COLOR": "1",
            "DISCOVERY_MULTICAST_IF": self.interface,
            "DISCOVERY_LEADER_PORT": str(self.leader_port),
            "DISCOVERY_REDIRECT_BIND": "127.0.0.1",
            "DISCOVERY_ADVERTISE_HOST": advertise,
            "DISCOVERY_WAIT_MIN": "1.0",
            "DISCOVERY_WAIT_MAX": "2.0",
            "DISCOVERY_ANNOUNCE_INTERVAL": "0.2",
            "DISCOVERY_LEADER_CMD": f"{worker} leader",
            "DISCOVERY_FOLLOWER_CMD": f"{worker} follower",
        })

        out = open(self.tmp_path / f"{name}.log", "w")
        proc = subprocess.Popen(
            [sys.executable, "-u", "-m", "node.node", token],
            cwd=str(self.project_root),
            env=env,
            stdout=out,
            stderr=subprocess.STDOUT,
            text=True,
        )
        out.close()
        self.procs.append(proc)
        return proc, report

    def output(self, name: str) -> str:
        return (self.tmp_path / f"{name}.log").read_text()

    def stop_all(self):
        for proc in self.procs:
            stop_node(proc)


def stop_node(proc: subprocess.Popen):
    if proc.poll() is not None:
        return
    proc.terminate()
    try:
        proc.wait(timeout=5.0)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()


@pytest.fixture
def nodes(project_root, tmp_path, multicast_interface):
    runner = NodeRunner(project_root, tmp_path, multicast_interface, free_tcp_port())
    try:
        yield runner
    finally:
        runner.stop_all()


def test_alone_becomes_leader_and_second_node_follows(nodes):
    token_x = f"x-{uuid.uuid4().hex}"
    token_y = f"y-{uuid.uuid4().hex}"

    _, report_a = nodes.start("a", token_x, "127.0.0.2")
    _, report_c = nodes.start("c", token_y, "127.0.0.3")

    started_a = wait_for_report(report_a, "started", timeout_s=8.0)
    assert started_a is not None, "node A never started a worker"
    assert started_a["role"] == "leader"
    assert started_a["flags"] == []

    time.sleep(1.0)
    _, report_b = nodes.start("b", token_x, "127.0.0.1")

    started_b = wait_for_report(report_b, "started", timeout_s=8.0)
    assert started_b is not None, "node B never started a worker"
    assert started_b["role"] == "follower"
    assert started_b["flags"] == [f"--leader=127.0.0.2:{nodes.leader_port}"]

    # C is on another token: it leads on its own and never hears A
    started_c = wait_for_report(report_c, "started", timeout_s=8.0)
    assert started_c is not None
    assert started_c["role"] == "leader"
    assert "LEADER_ANNOUNCEMENT_RECV" not in nodes.output("c")


def test_follower_redirects_the_conventional_port(nodes):
    token = f"x-{uuid.uuid4().hex}"

    _, report_a = nodes.start("a", token, "127.0.0.2")
    assert wait_for_report(report_a, "started", timeout_s=8.0)["role"] == "leader"

    _, report_b = nodes.start("b", token, "127.0.0.1")
    assert wait_for_report(report_b, "started", timeout_s=8.0)["role"] == "follower"

    resp = None
    deadline = time.time() + 5.0
    while time.time() < deadline:
        conn = http.client.HTTPConnection("127.0.0.1", nodes.leader_port, timeout=1.0)
        try:
            conn.request("GET", "/cluster/status")
            resp = conn.getresponse()
            resp.read()
            break
        except OSError:
            time.sleep(0.1)
        finally:
            conn.close()

    assert resp is not None, "redirect responder never answered"
    assert resp.status == 302
    assert resp.getheader("Location") == f"http://127.0.0.2:{nodes.leader_port}/"


def test_sigterm_terminates_the_worker(nodes):
    token = f"x-{uuid.uuid4().hex}"

    proc, report = nodes.start("a", token, "127.0.0.2")
    assert wait_for_report(report, "started", timeout_s=8.0) is not None

    stop_node(proc)

    assert proc.returncode == 0
    assert wait_for_report(report, "terminated", timeout_s=5.0) is not None


def test_missing_worker_binary_exits_before_discovery(project_root, tmp_path):
    env = dict(os.environ)
    env.update({
        "NO_COLOR": "1",
        "DISCOVERY_LEADER_CMD": "/nonexistent/leader-binary",
        "DISCOVERY_FOLLOWER_CMD": "/nonexistent/follower-binary",
    })
    result = subprocess.run(
        [sys.executable, "-u", "-m", "node.node", "tok"],
        cwd=str(project_root),
        env=env,
        capture_output=True,
        text=True,
        timeout=20,
    )

    assert result.returncode == 1
    assert "COMMAND_NOT_FOUND" in result.stdout
    assert "MULTICAST_INIT" not in result.stdout


def test_token_too_large_for_a_datagram_exits_before_discovery(project_root):
    env = dict(os.environ)
    env.update({
        "NO_COLOR": "1",
        "DISCOVERY_LEADER_CMD": shlex.quote(sys.executable),
        "DISCOVERY_FOLLOWER_CMD": shlex.quote(sys.executable),
    })
    result = subprocess.run(
        [sys.executable, "-u", "-m", "node.node", "t" * 1000],
        cwd=str(project_root),
        env=env,
        capture_output=True,
        text=True,
        timeout=20,
    )

    assert result.returncode == 1
    assert "ANNOUNCEMENT_TOO_LARGE" in result.stdout
    assert "MULTICAST_INIT" not in result.stdout


def test_usage_without_token(project_root):
    result = subprocess.run(
        [sys.executable, "-m", "node.node"],
        cwd=str(project_root),
        capture_output=True,
        text=True,
        timeout=20,
    )

    assert result.returncode == 1
    assert "Usage" in result.stdout
