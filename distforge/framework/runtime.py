from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass
class DistContext:
    base_dir: Path
    work_dir: Path
    gathered: list[str]
    logger: logging.Logger
    test: bool = True

    outputs: dict[str, Any] = field(default_factory=dict)
    steps: list[dict[str, Any]] = field(default_factory=list)
