import os
import sys
import threading
import time

NO_COLOR = os.getenv("NO_COLOR") == "1"

COL = {
    "RESET": "\033[0m",
    "RED": "\033[31m",
    "GREEN": "\033[32m",
    "YELLOW": "\033[33m",
    "CYAN": "\033[36m",
}

LEVEL_COLOR = {
    "ERROR": "RED",
    "WARN": "YELLOW",
    "OK": "GREEN",
    "INFO": "CYAN",
}


def _color(s: str, c: str, stream) -> str:
    if NO_COLOR or not stream.isatty():
        return s
    return f"{COL[c]}{s}{COL['RESET']}"


def _value(v) -> str:
    if isinstance(v, tuple):
        return f"{v[0]}:{v[1]}"
    v = str(v)
    if v == "" or " " in v:
        return '"' + v.replace('"', '\\"') + '"'
    return v


def format_line(role: str, node_id: str, event: str, level: str = "INFO", **fields) -> str:
    ts = f"{time.time():.3f}"
    base = f"ts={ts} role={role} id={node_id} lvl={level} event={event}"

    if fields:
        parts = []
        for k in sorted(fields.keys()):
            parts.append(f"{k}={_value(fields[k])}")
        base += " " + " ".join(parts)
    return base


class Log:
    """
    Log sink for one node.

    Created once at startup and handed to every component, so there is no
    module-level logger. Lines go to ``stream`` (stdout by default) and, when a
    syslog sink is attached, are mirrored to it.
    """

    def __init__(self, node_id: str, role: str = "node", syslog=None, stream=None):
        self.node_id = node_id
        self.role = role
        self.syslog = syslog
        self.stream = stream if stream is not None else sys.stdout
        # re-entrant: signal handlers log from the main thread
        self._lock = threading.RLock()

    def set_role(self, role: str):
        self.role = role

    def log(self, event: str, level: str = "INFO", **fields):
        line = format_line(self.role, self.node_id, event, level, **fields)
        with self._lock:
            print(_color(line, LEVEL_COLOR.get(level, "CYAN"), self.stream), file=self.stream, flush=True)
        if self.syslog is not None:
            self.syslog.send(level, event, self.node_id, self.role, **fields)

    def info(self, event: str, **fields):
        self.log(event, "INFO", **fields)

    def ok(self, event: str, **fields):
        self.log(event, "OK", **fields)

    def warn(self, event: str, **fields):
        self.log(event, "WARN", **fields)

    def error(self, event: str, **fields):
        self.log(event, "ERROR", **fields)
