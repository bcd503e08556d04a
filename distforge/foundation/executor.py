from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections.abc import Mapping, Sequence

from distforge.foundation.reporter import INFO, Reporter

logger = logging.getLogger(__name__)


def split_command(command: str | Sequence[str]) -> list[str]:
    """Accept either a shell-style string or an argv list."""
    if isinstance(command, str):
        argv = shlex.split(command)
    else:
        argv = [str(part) for part in command]
    if not argv:
        raise ValueError("Command must not be empty")
    return argv


class CommandExecutor:
    """Run blocking subprocesses that inherit stdio; any failure aborts the command."""

    def __init__(self, reporter: Reporter):
        self.reporter = reporter

    def run(self, *argv: str, env: Mapping[str, str] | None = None) -> None:
        args = [str(part) for part in argv]
        self.reporter.print(" ".join(args), INFO)

        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)
            logger.debug("Subprocess env overrides: %s", dict(env))

        try:
            proc = subprocess.run(args, env=full_env)
        except FileNotFoundError as exc:
            logger.debug("Executable not found: %s", exc)
            self.reporter.error(f"Command not found: {args[0]}")
            return

        logger.debug("Command %s exited with %s", args[0], proc.returncode)
        if proc.returncode != 0:
            self.reporter.error("Giving up.")
