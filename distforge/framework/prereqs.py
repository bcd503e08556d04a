"""Dependency specification: phase -> relation -> package -> version floor."""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from packaging.version import Version

logger = logging.getLogger(__name__)

PREREQS_FILENAME = "prereqs.yaml"

PHASES: tuple[str, ...] = ("configure", "build", "test", "runtime", "develop")
RELATIONS: tuple[str, ...] = ("requires", "recommends")

ANY_VERSION = "0"


def parse_floor(value: Any, path: str) -> str:
    if value is None:
        return ANY_VERSION
    if isinstance(value, bool):
        raise ValueError(f"Invalid version floor for {path}: {value!r}")
    if isinstance(value, float):
        raise ValueError(
            f"Invalid version floor for {path}: {value!r} was read as a number, quote it as a string"
        )
    if isinstance(value, int):
        return str(value)
    if not isinstance(value, str):
        raise ValueError(f"Invalid version floor for {path}: {value!r}")
    text = value.strip()
    return text or ANY_VERSION


class PrereqSpec:
    """In-memory dependency spec. `register` only ever raises a floor."""

    def __init__(self, data: Mapping[str, Mapping[str, Mapping[str, str]]] | None = None):
        self._data: dict[str, dict[str, dict[str, str]]] = {}
        if data:
            for phase, relations in data.items():
                for relation, packages in relations.items():
                    for package, floor in packages.items():
                        self.register(phase, relation, package, floor)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "PrereqSpec":
        """
        Build a spec from a decoded `prereqs.yaml` payload.

        Raises:
            ValueError: on unknown phases/relations or non-mapping levels.
        """

        if not isinstance(payload, Mapping):
            raise ValueError("Prereqs must be a mapping of phase -> relation -> package")

        spec = cls()
        for phase, relations in payload.items():
            if phase not in PHASES:
                raise ValueError(
                    f"Unknown prereq phase: {phase!r} (expected one of {', '.join(PHASES)})"
                )
            if relations is None:
                continue
            if not isinstance(relations, Mapping):
                raise ValueError(f"Prereqs for phase {phase} must be a mapping")
            for relation, packages in relations.items():
                if relation not in RELATIONS:
                    raise ValueError(
                        f"Unknown prereq relation: {phase}.{relation} "
                        f"(expected one of {', '.join(RELATIONS)})"
                    )
                if packages is None:
                    continue
                if not isinstance(packages, Mapping):
                    raise ValueError(f"Prereqs for {phase}.{relation} must be a mapping")
                for package, floor in packages.items():
                    if not isinstance(package, str) or not package.strip():
                        raise ValueError(f"Invalid package name under {phase}.{relation}")
                    spec.register(
                        phase,
                        relation,
                        package.strip(),
                        parse_floor(floor, f"{phase}.{relation}.{package}"),
                    )
        return spec

    def register(self, phase: str, relation: str, package: str, floor: str) -> str:
        """Insert or raise the floor for (phase, relation, package); return the stored floor.

        Malformed versions raise `packaging.version.InvalidVersion`.
        """

        floor = str(floor)
        packages = self._data.setdefault(phase, {}).setdefault(relation, {})
        current = packages.get(package)
        if current is None:
            Version(floor)
            packages[package] = floor
        elif Version(current) < Version(floor):
            logger.debug(
                "Raising %s.%s.%s floor from %s to %s", phase, relation, package, current, floor
            )
            packages[package] = floor
        return packages[package]

    def get(self, phase: str, relation: str, package: str) -> str | None:
        return self._data.get(phase, {}).get(relation, {}).get(package)

    def packages(self, phase: str, relation: str) -> dict[str, str]:
        return dict(self._data.get(phase, {}).get(relation, {}))

    def requirements(
        self, phases: Iterable[str], relation: str
    ) -> list[tuple[str, str, str]]:
        """(phase, package, floor) for every declared requirement, in declaration order."""
        out: list[tuple[str, str, str]] = []
        for phase in phases:
            for package, floor in self._data.get(phase, {}).get(relation, {}).items():
                out.append((phase, package, floor))
        return out

    def as_dict(self) -> dict[str, dict[str, dict[str, str]]]:
        return copy.deepcopy(self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PrereqSpec):
            return NotImplemented
        return self._data == other._data

    def __repr__(self) -> str:
        return f"PrereqSpec({self._data!r})"
