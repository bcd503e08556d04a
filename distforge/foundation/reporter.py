"""User-facing status lines.

Warnings and errors go to stderr, informational and success lines to
stdout. Colour is applied only when enabled.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

from rich.console import Console
from rich.prompt import Prompt

from distforge.errors import CommandExit

logger = logging.getLogger(__name__)

SUCCESS = 0
INFO = 1
WARN = 2
ERROR = 3

COLORS: dict[int, str] = {
    SUCCESS: "green",
    INFO: "cyan",
    WARN: "yellow",
    ERROR: "red",
}


def stdout_is_tty() -> bool:
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


class Reporter:
    def __init__(self, *, color: bool | None = None):
        self.color = stdout_is_tty() if color is None else bool(color)
        self._out = self._console(stderr=False)
        self._err = self._console(stderr=True)

    def _console(self, *, stderr: bool) -> Console:
        return Console(
            stderr=stderr,
            force_terminal=True if self.color else None,
            no_color=not self.color,
            highlight=False,
            emoji=False,
            soft_wrap=True,
        )

    def print(self, msg: str, level: int | None = None) -> None:
        console = self._err if level is not None and level >= WARN else self._out
        style = COLORS.get(level) if level is not None and self.color else None
        console.print(msg, style=style, markup=False, highlight=False, end="\n")

    def printf(self, template: str, *args: Any, level: int | None = None) -> None:
        self.print(template % args if args else template, level)

    def info(self, msg: str) -> None:
        self.print(msg, INFO)

    def infof(self, template: str, *args: Any) -> None:
        self.printf(template, *args, level=INFO)

    def warn(self, msg: str) -> None:
        self.print(msg, WARN)

    def warnf(self, template: str, *args: Any) -> None:
        self.printf(template, *args, level=WARN)

    def success(self, msg: str) -> None:
        self.print(msg, SUCCESS)

    def error(self, msg: str) -> None:
        """Print `msg` as an error and abort the current command."""
        self.print(msg, ERROR)
        logger.debug("Aborting command: %s", msg)
        raise CommandExit(msg)

    def prompt(self, message: str, default: str = "") -> str:
        try:
            answer = Prompt.ask(message, default=default, console=self._out)
        except EOFError:
            return default
        return answer if answer is not None else default
