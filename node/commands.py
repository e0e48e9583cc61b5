import os
import shlex
import shutil

from common.config import FOLLOWER, FOLLOWER_CMD, LEADER, LEADER_CMD


class CommandNotFound(Exception):
    """No usable executable for a role."""


class EnvCommandResolver:
    """
    resolve(role) -> (executable_path, args)

    Commands are shell-style strings, e.g. ``"/opt/bin/store leader --port=9333"``.
    The first word is looked up on PATH; the rest are passed through as flags.
    """

    def __init__(self, commands=None):
        self.commands = commands if commands is not None else {LEADER: LEADER_CMD, FOLLOWER: FOLLOWER_CMD}

    def resolve(self, role: str):
        cmd = self.commands.get(role)
        if not cmd:
            raise CommandNotFound(f"no command configured for role {role!r}")

        parts = shlex.split(cmd)
        if not parts:
            raise CommandNotFound(f"empty command for role {role!r}")

        path = shutil.which(parts[0])
        if path is None:
            raise CommandNotFound(f"{role} executable not found: {parts[0]}")
        return os.path.abspath(path), parts[1:]
