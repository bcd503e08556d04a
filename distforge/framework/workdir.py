"""Isolated staging directories under the project's scratch root.

At most one staging directory is live per project: staging a new one first
removes everything left under the scratch root by earlier runs.
"""

from __future__ import annotations

import logging
import os
import secrets
import shutil
import string
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

EXTENDED_TESTS_DIR = "xt"

_RANDOM_ALPHABET = string.ascii_letters + string.digits


def scratch_dirname(platform: str | None = None) -> str:
    return "_build" if (platform or sys.platform).startswith("win") else ".build"


def randstr(length: int = 8) -> str:
    return "".join(secrets.choice(_RANDOM_ALPHABET) for _ in range(length))


class ScopedWorkDir:
    """Enter a directory on `__enter__`, return to the previous cwd on `__exit__`."""

    def __init__(self, path: str | os.PathLike[str], on_enter: Callable[[Path], None] | None = None):
        self.path = Path(path)
        self._on_enter = on_enter
        self._previous: str | None = None

    def __enter__(self) -> Path:
        self._previous = os.getcwd()
        os.chdir(self.path)
        logger.debug("Entered %s (from %s)", self.path, self._previous)
        try:
            if self._on_enter is not None:
                self._on_enter(self.path)
        except BaseException:
            self._restore()
            raise
        return self.path

    def __exit__(self, exc_type, exc, tb) -> None:
        self._restore()

    def _restore(self) -> None:
        if self._previous is None:
            return
        previous, self._previous = self._previous, None
        os.chdir(previous)
        logger.debug("Restored working directory %s", previous)


def pushd(path: str | os.PathLike[str]) -> ScopedWorkDir:
    return ScopedWorkDir(path)


class WorkDirManager:
    def __init__(
        self,
        base_dir: str | os.PathLike[str],
        *,
        after_stage: Callable[[Path], None] | None = None,
        platform: str | None = None,
    ):
        self.base_dir = Path(base_dir).resolve()
        self.scratch_root = self.base_dir / scratch_dirname(platform)
        self.after_stage = after_stage
        self.work_dir: Path | None = None

    def reclaim(self) -> list[Path]:
        """Remove leftovers of earlier runs; return what was removed."""
        removed: list[Path] = []
        if not self.scratch_root.is_dir():
            return removed
        for child in sorted(self.scratch_root.iterdir()):
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child)
            else:
                child.unlink()
            removed.append(child)
        return removed

    def allocate(self) -> Path:
        self.scratch_root.mkdir(parents=True, exist_ok=True)
        self.reclaim()
        work_dir = self.scratch_root / randstr(8)
        work_dir.mkdir()
        self.work_dir = work_dir
        return work_dir

    def stage(self, files: Iterable[str | os.PathLike[str]]) -> ScopedWorkDir:
        """Copy `files` (relative to the base dir) into a fresh staging dir.

        Directory entries are skipped. The returned scope changes into the
        staging dir on entry, ensures the extended-tests dir exists and runs
        the `after_stage` callback.
        """

        work_dir = self.allocate()
        copied = 0
        for entry in files:
            relative = Path(entry)
            if relative.is_absolute():
                relative = relative.relative_to(self.base_dir)
            src = self.base_dir / relative
            if src.is_dir():
                continue
            dst = work_dir / relative
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dst)
            copied += 1
        logger.debug("Staged %d file(s) into %s", copied, work_dir)

        return ScopedWorkDir(work_dir, on_enter=self._on_enter)

    def _on_enter(self, work_dir: Path) -> None:
        (work_dir / EXTENDED_TESTS_DIR).mkdir(exist_ok=True)
        if self.after_stage is not None:
            self.after_stage(work_dir)

    def cleanup(self) -> None:
        if self.scratch_root.exists():
            shutil.rmtree(self.scratch_root)
            logger.debug("Removed scratch root %s", self.scratch_root)
        self.work_dir = None
