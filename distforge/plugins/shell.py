"""Run shell commands when pipeline hooks fire.

    Shell:
      after_setup_workdir:
        - python tools/write_version.py
      after_build_dist: ls -l

Commands run in whatever directory is current when the hook fires (the
staging directory for `after_setup_workdir`). A failing command aborts
the run.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable

from distforge.foundation.executor import split_command


def _commands(hook: str, value: Any) -> list[list[str]]:
    if isinstance(value, str):
        value = [value]
    if (
        not isinstance(value, (list, tuple))
        or not value
        or not all(isinstance(item, str) for item in value)
    ):
        raise ValueError(f"Shell.{hook} must be a command string or a list of them")
    return [split_command(item) for item in value]


def _runner(commands: list[list[str]]) -> Callable[..., None]:
    def run(orchestrator: Any, *args: Any) -> None:
        for argv in commands:
            orchestrator.executor.run(*argv)

    return run


def init(context: Any, config: Any) -> None:
    if config is None:
        return
    if not isinstance(config, Mapping):
        raise ValueError("Shell plugin config must map hook names to commands")
    for hook, value in config.items():
        context.add_trigger(str(hook), _runner(_commands(str(hook), value)))
