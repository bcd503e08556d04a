from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from distforge.framework.rendering import render

LICENSE_FILENAME = "LICENSE"


@dataclass(frozen=True)
class LicenseKind:
    key: str
    name: str
    spdx: str
    template: str


LICENSES: dict[str, LicenseKind] = {
    kind.key.lower(): kind
    for kind in (
        LicenseKind("MIT", "The MIT (X11) License", "MIT", "licenses/MIT.txt.j2"),
        LicenseKind("BSD", "The (three-clause) BSD License", "BSD-3-Clause", "licenses/BSD.txt.j2"),
        LicenseKind("BSD_2", "The (two-clause) FreeBSD License", "BSD-2-Clause", "licenses/BSD_2.txt.j2"),
        LicenseKind("ISC", "The ISC License", "ISC", "licenses/ISC.txt.j2"),
        LicenseKind("Unlicense", "The Unlicense", "Unlicense", "licenses/Unlicense.txt.j2"),
    )
}


def available_licenses() -> tuple[str, ...]:
    return tuple(sorted(kind.key for kind in LICENSES.values()))


def lookup_license(identifier: str) -> LicenseKind | None:
    """Accept the table key or the SPDX id, case-insensitively."""
    key = (identifier or "").strip().lower()
    if key in LICENSES:
        return LICENSES[key]
    for kind in LICENSES.values():
        if kind.spdx.lower() == key:
            return kind
    return None


@dataclass(frozen=True)
class License:
    kind: LicenseKind
    holder: str
    year: int

    @property
    def name(self) -> str:
        return self.kind.name

    @property
    def spdx(self) -> str:
        return self.kind.spdx

    def fulltext(self) -> str:
        return render(self.kind.template, holder=self.holder, year=self.year)


def build_license(identifier: str, holder: str, *, year: int | None = None) -> License:
    kind = lookup_license(identifier)
    if kind is None:
        raise KeyError(identifier)
    return License(kind=kind, holder=holder, year=year or date.today().year)
