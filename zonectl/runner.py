"""Command execution boundary for zonectl.

Every external binary is addressed by a logical name registered in a command
table. A ``CommandRunner`` is built once at start-up and handed to whatever
needs to talk to the system.
"""

from __future__ import annotations

import os
import shlex
import subprocess
from typing import Dict, List, Mapping, NoReturn, Optional, Sequence

from zonectl.constants import COMMANDS, ENV_ARGS_TEMPLATE
from zonectl.exceptions import CommandNotFoundError, ExecutionError, ManagerError
from zonectl.utils import get_env, log


class CommandRunner:
    """Run named system commands and capture their output."""

    def __init__(self, commands: Optional[Mapping[str, str]] = None) -> None:
        self._commands: Dict[str, str] = dict(COMMANDS if commands is None else commands)
        self._env_args: Dict[str, List[str]] = {
            name: shlex.split(get_env(ENV_ARGS_TEMPLATE.format(name=name.upper()), "") or "")
            for name in self._commands
        }

    def command(self, name: str, args: Sequence[str] = ()) -> List[str]:
        """Return the full argv for a logical command."""
        if name not in self._commands:
            raise CommandNotFoundError(name)
        return shlex.split(self._commands[name]) + self._env_args[name] + list(args)

    def run(self, name: str, args: Sequence[str] = (), check: bool = True) -> List[str]:
        """Run a command and return its stdout split into lines.

        With ``check`` disabled a nonzero exit status is tolerated and whatever
        was written to stdout is returned.
        """
        cmd = self.command(name, args)
        log("DEBUG", f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise ManagerError(f"executing '{name}': {exc}") from exc
        if check and result.returncode != 0:
            raise ExecutionError(name, result.returncode)
        return result.stdout.splitlines()

    def call(self, name: str, args: Sequence[str] = ()) -> int:
        """Run an interactive command attached to the terminal and return its exit status."""
        cmd = self.command(name, args)
        log("DEBUG", f"Running: {' '.join(cmd)}")
        return subprocess.call(cmd)

    def exec(self, name: str, args: Sequence[str] = ()) -> NoReturn:
        """Replace the current process with the command; only returns by raising."""
        cmd = self.command(name, args)
        log("DEBUG", f"Executing: {' '.join(cmd)}")
        try:
            os.execvp(cmd[0], cmd)
        except OSError as exc:
            raise ManagerError(f"executing '{name}': {exc}") from exc
