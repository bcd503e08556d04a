"""Derived distribution files: build script, descriptors, manifest, archive."""

from __future__ import annotations

import json
import logging
import os
import tarfile
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any

from distforge.framework.config import ProjectConfig
from distforge.framework.licenses import License
from distforge.framework.prereqs import ANY_VERSION, PrereqSpec
from distforge.framework.rendering import render

logger = logging.getLogger(__name__)

BUILD_SCRIPT_FILENAME = "setup.py"
LEGACY_META_FILENAME = "PKG-INFO"
META_FILENAME = "pydist.json"
MANIFEST_FILENAME = "MANIFEST"

LEGACY_META_VERSION = "1.2"
META_VERSION = "2.0"

DEFAULT_PYTHON_REQUIRES = "3.8"
SETUPTOOLS_FLOOR = "40.8.0"

_RELEASE_CLASSIFIERS: dict[str, str] = {
    "stable": "Development Status :: 5 - Production/Stable",
    "testing": "Development Status :: 4 - Beta",
    "unstable": "Development Status :: 3 - Alpha",
}


def archive_name(name: str, version: str) -> str:
    return f"{name}-{version}.tar.gz"


def render_build_script(
    config: ProjectConfig,
    prereqs: PrereqSpec,
    license: License,
    *,
    generated_by: str,
) -> str:
    configure_requires = {"setuptools": SETUPTOOLS_FLOOR}
    configure_requires.update(prereqs.packages("configure", "requires"))
    python_requires = prereqs.get("runtime", "requires", "python") or DEFAULT_PYTHON_REQUIRES
    return render(
        "setup.py.j2",
        generated_by=generated_by,
        name=config.name,
        version=config.version,
        license_name=license.name or "unknown",
        python_requires=python_requires,
        script_files=list(config.script_files),
        configure_requires=configure_requires,
        build_requires=prereqs.packages("build", "requires"),
        requires=prereqs.packages("runtime", "requires"),
    )


@dataclass(frozen=True)
class MetaDescriptor:
    name: str
    version: str
    abstract: str
    authors: tuple[str, ...]
    license: str
    prereqs: dict[str, Any] = field(default_factory=dict)
    release_status: str = "stable"
    generated_by: str = ""
    dynamic_config: bool = False

    @classmethod
    def from_project(
        cls,
        config: ProjectConfig,
        prereqs: PrereqSpec,
        license: License,
        *,
        generated_by: str,
    ) -> "MetaDescriptor":
        return cls(
            name=str(config.name),
            version=str(config.version),
            abstract=str(config.abstract),
            authors=(str(config.author),),
            license=license.spdx,
            prereqs=prereqs.as_dict(),
            release_status=config.release_status,
            generated_by=generated_by,
        )

    def to_structured(self) -> dict[str, Any]:
        return {
            "metadata_version": META_VERSION,
            "name": self.name,
            "version": self.version,
            "summary": self.abstract,
            "authors": list(self.authors),
            "license": self.license,
            "dynamic_config": self.dynamic_config,
            "release_status": self.release_status,
            "prereqs": self.prereqs,
            "generated_by": self.generated_by,
        }

    def to_legacy(self) -> str:
        """Header form. Only runtime requirements survive; other phases have no field."""
        lines = [
            f"Metadata-Version: {LEGACY_META_VERSION}",
            f"Name: {self.name}",
            f"Version: {self.version}",
            f"Summary: {self.abstract}",
            f"Author: {', '.join(self.authors)}",
            f"License: {self.license}",
        ]
        runtime = self.prereqs.get("runtime", {}).get("requires", {})
        python_floor = runtime.get("python")
        if python_floor:
            lines.append(f"Requires-Python: >={python_floor.lstrip('v')}")
        for package, floor in sorted(runtime.items()):
            if package == "python":
                continue
            if floor == ANY_VERSION:
                lines.append(f"Requires-Dist: {package}")
            else:
                lines.append(f"Requires-Dist: {package} (>={floor.lstrip('v')})")
        classifier = _RELEASE_CLASSIFIERS.get(self.release_status)
        if classifier:
            lines.append(f"Classifier: {classifier}")
        return "\n".join(lines) + "\n"


def write_descriptors(descriptor: MetaDescriptor, directory: str | os.PathLike[str] = ".") -> tuple[Path, Path]:
    directory = Path(directory)
    legacy_path = directory / LEGACY_META_FILENAME
    structured_path = directory / META_FILENAME

    legacy_path.write_text(descriptor.to_legacy(), encoding="utf-8")
    with open(structured_path, "w", encoding="utf-8") as handle:
        json.dump(descriptor.to_structured(), handle, ensure_ascii=False, indent=2)
        handle.write("\n")
    return legacy_path, structured_path


def manifest_entries(gathered: Iterable[str], generated: Sequence[str]) -> list[str]:
    """Gathered files in gather order, then generated names; first occurrence wins."""
    entries: list[str] = []
    seen: set[str] = set()
    for entry in [*gathered, *generated]:
        key = PurePosixPath(str(entry).replace(os.sep, "/")).as_posix()
        if key in seen:
            continue
        seen.add(key)
        entries.append(key)
    return entries


def write_manifest(entries: Sequence[str], path: str | os.PathLike[str] = MANIFEST_FILENAME) -> Path:
    path = Path(path)
    path.write_text("".join(f"{entry}\n" for entry in entries), encoding="utf-8")
    return path


def build_archive(
    entries: Sequence[str],
    *,
    name: str,
    version: str,
    source_dir: str | os.PathLike[str],
    dest_dir: str | os.PathLike[str],
) -> Path:
    """Write `<name>-<version>.tar.gz` into `dest_dir`, replacing any previous one.

    Entries are read from `source_dir` and stored under `<name>-<version>/`.
    """

    source_dir = Path(source_dir)
    target = Path(dest_dir) / archive_name(name, version)
    if target.exists():
        target.unlink()

    prefix = PurePosixPath(f"{name}-{version}")
    with tarfile.open(target, "w:gz") as tar:
        for entry in entries:
            src = source_dir / entry
            if src.is_dir():
                continue
            tar.add(src, arcname=(prefix / entry).as_posix(), recursive=False)
    logger.debug("Archived %d entries into %s", len(entries), target)
    return target
