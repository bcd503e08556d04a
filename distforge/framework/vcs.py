from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)


def list_tracked_files(base_dir: str | os.PathLike[str]) -> list[str]:
    """Files tracked by git under `base_dir`, relative to it, in git's order.

    Raises:
        FileNotFoundError: git is not installed.
        subprocess.CalledProcessError: `base_dir` is not inside a work tree.
    """

    proc = subprocess.run(
        ["git", "ls-files", "-z"],
        cwd=os.fspath(base_dir),
        capture_output=True,
        check=True,
    )
    files = [entry for entry in proc.stdout.decode("utf-8").split("\0") if entry]
    logger.debug("git ls-files listed %d file(s) under %s", len(files), base_dir)
    return files
