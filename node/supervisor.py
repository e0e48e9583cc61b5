"""
node.supervisor

Runs the leader or follower worker program and makes sure it is told to stop.

- start() spawns the worker with stdout+stderr on one pipe and returns at once
- a pump thread forwards each output line to the log sink
- shutdown() sends SIGTERM to every worker exactly once; it is registered with
  atexit and called from the SIGINT/SIGTERM handlers in node.node
"""

from __future__ import annotations

import atexit
import signal
import subprocess
import threading
from typing import List, Optional


class LaunchError(Exception):
    """The worker executable could not be started."""


class WorkerProcess:
    def __init__(self, role: str, args: List[str], proc: subprocess.Popen, log):
        self.role = role
        self.args = args
        self.log = log
        self._proc = proc
        self._lock = threading.Lock()
        self._terminated = False

        self._pump = threading.Thread(target=self._forward_output, name=f"{role}-output", daemon=True)
        self._pump.start()

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def terminated(self) -> bool:
        return self._terminated

    def poll(self) -> Optional[int]:
        return self._proc.poll()

    def _forward_output(self):
        for line in self._proc.stdout:
            self.log.info("WORKER_OUTPUT", worker=self.role, line=line.rstrip("\n"))
        self._proc.stdout.close()

    def join(self) -> int:
        """Block until the worker exits on its own; returns the exit code."""
        code = self._proc.wait()
        self._pump.join()
        self.log.info("WORKER_EXIT", worker=self.role, pid=self.pid, code=code)
        return code

    def terminate(self):
        with self._lock:
            if self._terminated:
                return
            self._terminated = True

        self.log.info("WORKER_TERMINATE", worker=self.role, pid=self.pid)
        try:
            self._proc.terminate()
        except ProcessLookupError:
            # already gone
            pass


class ProcessSupervisor:
    def __init__(self, log, register_atexit=True):
        self.log = log
        self._workers: List[WorkerProcess] = []
        self._lock = threading.Lock()
        # a signal arriving while a worker is spawned but not yet registered
        self._spawning = 0
        self._deferred = None
        if register_atexit:
            atexit.register(self.shutdown)

    @property
    def workers(self) -> List[WorkerProcess]:
        with self._lock:
            return list(self._workers)

    def defer_signal(self, signum) -> bool:
        """Called from signal handlers. True means the signal is held until start() registers its worker."""
        if self._spawning:
            self._deferred = signum
            return True
        return False

    def start(self, role: str, executable: str, args: List[str]) -> WorkerProcess:
        self._spawning += 1
        try:
            worker = self._spawn(role, executable, args)
        finally:
            self._spawning -= 1
            signum, self._deferred = self._deferred, None
            if signum is not None and not self._spawning:
                signal.raise_signal(signum)

        self.log.ok("WORKER_START", worker=role, pid=worker.pid, executable=executable, args=" ".join(args))
        return worker

    def _spawn(self, role, executable, args):
        cmd = [executable] + list(args)
        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            self.log.error("WORKER_LAUNCH_FAIL", worker=role, executable=executable, error=e)
            raise LaunchError(f"cannot start {role} worker {executable}: {e}") from e

        worker = WorkerProcess(role, list(args), proc, self.log)
        with self._lock:
            self._workers.append(worker)
        return worker

    def shutdown(self):
        for worker in self.workers:
            worker.terminate()
