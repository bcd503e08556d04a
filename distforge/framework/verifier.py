from __future__ import annotations

import logging
import platform
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from importlib import metadata as importlib_metadata
from typing import Callable, Literal

from packaging.version import InvalidVersion, Version

from distforge.foundation.executor import CommandExecutor
from distforge.foundation.reporter import INFO, WARN, Reporter
from distforge.framework.prereqs import ANY_VERSION, PrereqSpec

logger = logging.getLogger(__name__)

IssueKind = Literal["missing", "outdated", "unparsable"]

PYTHON_PACKAGE = "python"


def installed_version(package: str) -> str | None:
    """Installed version of a distribution, or None when it is not installed."""
    if package == PYTHON_PACKAGE:
        return platform.python_version()
    try:
        return importlib_metadata.version(package)
    except importlib_metadata.PackageNotFoundError:
        return None


@dataclass(frozen=True)
class Issue:
    kind: IssueKind
    phase: str
    package: str
    required: str
    installed: str | None = None

    @property
    def message(self) -> str:
        if self.kind == "missing":
            return f"Package '{self.package}' is not installed"
        if self.kind == "unparsable":
            return (
                f"Cannot compare installed version ({self.installed}) of {self.package} "
                f"with '{self.required}'"
            )
        return (
            f"Installed version ({self.installed}) of {self.package} "
            f"is not in range '{self.required}'"
        )


class DependencyVerifier:
    def __init__(
        self,
        prereqs: PrereqSpec,
        *,
        reporter: Reporter,
        executor: CommandExecutor,
        installer: Sequence[str],
        auto_install: bool = True,
        probe: Callable[[str], str | None] = installed_version,
    ):
        self.prereqs = prereqs
        self.reporter = reporter
        self.executor = executor
        self.installer = list(installer)
        self.auto_install = auto_install
        self.probe = probe

    def check(self, phases: Iterable[str], relation: str) -> list[Issue]:
        """Compare declared requirements with what is installed. No side effects."""
        phases = tuple(phases)
        issues: list[Issue] = []
        for phase, package, floor in self.prereqs.requirements(phases, relation):
            current = self.probe(package)
            if current is None:
                issues.append(Issue("missing", phase, package, floor))
                continue
            if floor == ANY_VERSION:
                continue
            try:
                outdated = Version(current) < Version(floor)
            except InvalidVersion:
                issues.append(Issue("unparsable", phase, package, floor, current))
                continue
            if outdated:
                issues.append(Issue("outdated", phase, package, floor, current))
        logger.debug(
            "Checked %s/%s: %d issue(s)", ",".join(phases), relation, len(issues)
        )
        return issues

    def verify(self, phases: Iterable[str], relation: str) -> list[Issue]:
        """Check and resolve: install absent packages when allowed, warn about the rest.

        A failing installer aborts the command.
        """

        phases = tuple(phases)
        issues = self.check(phases, relation)
        for issue in issues:
            if issue.kind == "missing" and self.auto_install and issue.package != PYTHON_PACKAGE:
                self.reporter.print(f"Installing {issue.package}", INFO)
                self.executor.run(*self.installer, issue.package)
            else:
                self.reporter.print(f"Warning: {issue.message}", WARN)
        return issues
