from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping

ReleaseStatus = Literal["stable", "testing", "unstable"]
RELEASE_STATUSES: tuple[str, ...] = ("stable", "testing", "unstable")

CONFIG_FILENAME = "distforge.yaml"
DEFAULT_CHANGES_FILE = "Changes"

# Bare N.N.N versions get a leading marker so they compare the same way as
# marker-prefixed ones. Other shapes are left alone.
_BARE_TRIPLE_RE = re.compile(r"\A[0-9]+\.[0-9]+\.[0-9]+\Z")
VERSION_MARKER = "v"


def normalize_version(version: str) -> str:
    if _BARE_TRIPLE_RE.match(version):
        return VERSION_MARKER + version
    return version


def is_plugin_key(key: Any) -> bool:
    return isinstance(key, str) and bool(key) and (key[0].isupper() or key[0] == "+")


def parse_bool(value: Any, path: str) -> bool:
    """
    Strict boolean parsing to avoid bool('false') footguns.

    Accepts:
      - True/False
      - 0/1 (ints)
      - strings: true/false/1/0/yes/no (case-insensitive, surrounding whitespace ignored)

    Raises:
      ValueError for anything else, with the provided config key path.
    """

    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value in (0, 1):
            return bool(value)
        raise ValueError(f"Invalid boolean for {path}: {value!r}")
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes"}:
            return True
        if normalized in {"false", "0", "no"}:
            return False
        raise ValueError(f"Invalid boolean for {path}: {value!r}")

    raise ValueError(f"Invalid boolean for {path}: {value!r}")


def parse_optional_str(value: Any, path: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid config type for {path}: expected string, got bool")
    if isinstance(value, float):
        # YAML has already turned `1.10` into 1.1; the written text is gone.
        raise ValueError(
            f"Invalid config value for {path}: {value!r} was read as a number, quote it as a string"
        )
    if isinstance(value, int):
        return str(value)
    if not isinstance(value, str):
        raise ValueError(f"Invalid config type for {path}: expected string")
    text = value.strip()
    return text or None


def parse_str_list(value: Any, path: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value.strip(),) if value.strip() else ()
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"Invalid config type for {path}: expected list of strings")
    items: list[str] = []
    for idx, item in enumerate(value):
        if not isinstance(item, str) or not item.strip():
            raise ValueError(f"Invalid config value for {path}[{idx}]: expected non-empty string")
        items.append(item.strip())
    return tuple(items)


def parse_command(value: Any, path: str) -> str | tuple[str, ...] | None:
    if value is None:
        return None
    if isinstance(value, str):
        if not value.strip():
            raise ValueError(f"Invalid config value for {path}: must not be empty")
        return value.strip()
    argv = parse_str_list(value, path)
    if not argv:
        raise ValueError(f"Invalid config value for {path}: must not be empty")
    return argv


@dataclass(frozen=True)
class PluginRegistration:
    identifier: str
    config: Any = None


@dataclass(frozen=True)
class ProjectConfig:
    main_module: str
    name: str | None = None
    abstract: str | None = None
    version: str | None = None
    author: str | None = None
    license: str | None = None
    copyright_holder: str | None = None

    test_command: str | tuple[str, ...] | None = None
    install_command: str | tuple[str, ...] | None = None
    upload_command: str | tuple[str, ...] | None = None
    script_files: tuple[str, ...] = ()
    changes_file: str = DEFAULT_CHANGES_FILE
    release_status: ReleaseStatus = "stable"

    plugins: tuple[PluginRegistration, ...] = field(default_factory=tuple)

    @property
    def holder(self) -> str | None:
        return self.copyright_holder or self.author

    def missing_identity_fields(self) -> list[str]:
        return [
            key
            for key in ("name", "abstract", "version", "author", "license")
            if not getattr(self, key)
        ]

    @staticmethod
    def from_dict(cfg: Mapping[str, Any]) -> tuple["ProjectConfig", list[str]]:
        """
        Parse and validate a project configuration, returning (ProjectConfig, warnings).

        Plugin registrations are the keys starting with an uppercase letter or
        `+`, kept in mapping order. `main_module` is the only required key;
        identity fields left empty here are back-filled by the caller.

        Raises:
            ValueError: if a key has the wrong type or value.
        """

        if not isinstance(cfg, Mapping):
            raise ValueError("Config must be a mapping")

        warnings: list[str] = []

        strict_unknown_keys = False
        if "strict" in cfg:
            strict_unknown_keys = parse_bool(cfg.get("strict"), "strict")

        known_keys = {
            "strict",
            "main_module",
            "name",
            "abstract",
            "version",
            "author",
            "license",
            "copyright_holder",
            "test_command",
            "install_command",
            "upload_command",
            "script_files",
            "changes_file",
            "release_status",
        }

        plugins: list[PluginRegistration] = []
        unknown: list[str] = []
        for key, value in cfg.items():
            if is_plugin_key(key):
                plugins.append(PluginRegistration(identifier=key, config=value))
                continue
            if key not in known_keys:
                unknown.append(str(key))

        if unknown:
            message = "Unknown config key(s): " + ", ".join(sorted(unknown))
            if strict_unknown_keys:
                raise ValueError(message)
            warnings.append(message)

        main_module = parse_optional_str(cfg.get("main_module"), "main_module")
        if not main_module:
            raise ValueError("Missing required config key: main_module")

        release_status_raw = parse_optional_str(cfg.get("release_status"), "release_status")
        release_status = (release_status_raw or "stable").lower()
        if release_status not in RELEASE_STATUSES:
            raise ValueError(
                "Invalid config value for release_status: expected one of "
                + ", ".join(RELEASE_STATUSES)
            )

        changes_file = (
            parse_optional_str(cfg.get("changes_file"), "changes_file") or DEFAULT_CHANGES_FILE
        )

        return (
            ProjectConfig(
                main_module=main_module,
                name=parse_optional_str(cfg.get("name"), "name"),
                abstract=parse_optional_str(cfg.get("abstract"), "abstract"),
                version=parse_optional_str(cfg.get("version"), "version"),
                author=parse_optional_str(cfg.get("author"), "author"),
                license=parse_optional_str(cfg.get("license"), "license"),
                copyright_holder=parse_optional_str(
                    cfg.get("copyright_holder"), "copyright_holder"
                ),
                test_command=parse_command(cfg.get("test_command"), "test_command"),
                install_command=parse_command(cfg.get("install_command"), "install_command"),
                upload_command=parse_command(cfg.get("upload_command"), "upload_command"),
                script_files=parse_str_list(cfg.get("script_files"), "script_files"),
                changes_file=changes_file,
                release_status=release_status,  # type: ignore[arg-type]
                plugins=tuple(plugins),
            ),
            warnings,
        )
