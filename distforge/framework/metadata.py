"""Identity metadata read from a project's primary module.

Only literal module-level assignments are understood (`__version__ = "1.0"`);
the module is parsed with `ast` and never imported.
"""

from __future__ import annotations

import ast
import os
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

_SOURCE_ROOTS = ("src", "lib")

_VERSION_ASSIGN_RE = re.compile(
    r"""^(?P<prefix>__version__\s*=\s*)(?P<quote>['"])(?P<version>[^'"]+)(?P=quote)""",
    re.MULTILINE,
)
_LAST_NUMBER_RE = re.compile(r"(\d+)(?!.*\d)")


@dataclass(frozen=True)
class ModuleMetadata:
    name: str | None
    abstract: str | None
    version: str | None
    author: str | None
    license: str | None
    python_requires: str | None


def dist_name(main_module: str) -> str | None:
    """`src/foo/bar.py` -> `foo-bar`; `foo/__init__.py` -> `foo`."""
    parts = list(PurePosixPath(main_module.replace(os.sep, "/")).parts)
    if parts and parts[0] in _SOURCE_ROOTS:
        parts = parts[1:]
    if not parts:
        return None
    last = parts[-1]
    if last.endswith(".py"):
        last = last[: -len(".py")]
    if last == "__init__":
        parts = parts[:-1]
    else:
        parts[-1] = last
    return "-".join(parts) or None


def _literal_str(node: ast.AST) -> str | None:
    try:
        value = ast.literal_eval(node)
    except (ValueError, TypeError, SyntaxError):
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (list, tuple)) and value and all(isinstance(v, str) for v in value):
        return ", ".join(v.strip() for v in value)
    return None


def _dunders(tree: ast.Module) -> dict[str, str]:
    found: dict[str, str] = {}
    for stmt in tree.body:
        if isinstance(stmt, ast.Assign):
            targets = [t.id for t in stmt.targets if isinstance(t, ast.Name)]
            value = stmt.value
        elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
            if stmt.value is None:
                continue
            targets = [stmt.target.id]
            value = stmt.value
        else:
            continue
        for target in targets:
            if target.startswith("__") and target.endswith("__"):
                text = _literal_str(value)
                if text is not None:
                    found[target] = text
    return found


def _abstract(docstring: str | None) -> str | None:
    if not docstring:
        return None
    for line in docstring.strip().splitlines():
        text = line.strip()
        if text:
            return text
    return None


def read_module_metadata(main_module: str, base_dir: str | os.PathLike[str] = ".") -> ModuleMetadata:
    path = Path(base_dir) / main_module
    source = path.read_text(encoding="utf-8")
    tree = ast.parse(source, filename=str(path))
    dunders = _dunders(tree)
    return ModuleMetadata(
        name=dist_name(main_module),
        abstract=_abstract(ast.get_docstring(tree)),
        version=dunders.get("__version__"),
        author=dunders.get("__author__"),
        license=dunders.get("__license__"),
        python_requires=dunders.get("__python_requires__"),
    )


def bump_version(main_module: str, base_dir: str | os.PathLike[str] = ".") -> tuple[str, str]:
    """Increment the last number in the module's `__version__`; return (old, new).

    Raises:
        ValueError: if there is no literal `__version__` to bump.
    """

    path = Path(base_dir) / main_module
    source = path.read_text(encoding="utf-8")
    match = _VERSION_ASSIGN_RE.search(source)
    if match is None:
        raise ValueError(f"No __version__ assignment found in {main_module}")

    old = match.group("version")
    number = _LAST_NUMBER_RE.search(old)
    if number is None:
        raise ValueError(f"Cannot bump non-numeric version {old!r} in {main_module}")
    digits = number.group(1)
    bumped = str(int(digits) + 1).zfill(len(digits))
    new = old[: number.start(1)] + bumped + old[number.end(1):]

    replacement = f"{match.group('prefix')}{match.group('quote')}{new}{match.group('quote')}"
    path.write_text(
        source[: match.start()] + replacement + source[match.end():], encoding="utf-8"
    )
    return old, new
