from __future__ import annotations

import importlib
import logging
import re
from typing import Any, Callable, Protocol

from distforge.errors import PluginLoadError

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "distforge.plugins"
VERBATIM_MARKER = "+"

_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


class Plugin(Protocol):
    def init(self, context: Any, config: Any) -> None: ...


def resolve_target(identifier: str) -> str:
    """Map a plugin identifier to an importable dotted path.

    `Shell` -> `distforge.plugins.shell`; `+mypkg.hooks.Stamp` is used as-is.
    """

    if not isinstance(identifier, str) or not identifier.strip():
        raise PluginLoadError(str(identifier), "<none>", "identifier must be a non-empty string")
    key = identifier.strip()
    if key.startswith(VERBATIM_MARKER):
        target = key[len(VERBATIM_MARKER):].strip()
        if not target:
            raise PluginLoadError(identifier, "<none>", "empty fully-qualified name")
        return target
    module_name = _CAMEL_BOUNDARY_RE.sub("_", key).lower()
    return f"{DEFAULT_NAMESPACE}.{module_name}"


def _import_target(identifier: str, target: str) -> Any:
    try:
        return importlib.import_module(target)
    except ModuleNotFoundError as exc:
        # Only fall through to `module.Attr` when the target itself is missing,
        # not when something it imports is.
        if exc.name != target and not target.startswith(f"{exc.name}."):
            raise PluginLoadError(identifier, target, str(exc)) from exc
        if "." not in target:
            raise PluginLoadError(identifier, target, "module not found") from exc
        module_name, attr = target.rsplit(".", 1)
        try:
            module = importlib.import_module(module_name)
        except ModuleNotFoundError as inner:
            raise PluginLoadError(identifier, target, "module not found") from inner
        try:
            return getattr(module, attr)
        except AttributeError as inner:
            raise PluginLoadError(identifier, target, f"{module_name} has no {attr}") from inner


def resolve(identifier: str) -> Callable[[Any, Any], Any]:
    target = resolve_target(identifier)
    implementation = _import_target(identifier, target)
    init = getattr(implementation, "init", None)
    if init is None or not callable(init):
        raise PluginLoadError(identifier, target, "no callable init(context, config)")
    return init


class PluginLoader:
    def __init__(self) -> None:
        self.loaded: list[str] = []

    def load(self, identifier: str, context: Any, config: Any) -> None:
        init = resolve(identifier)
        logger.debug("Initialising plugin %s via %s", identifier, resolve_target(identifier))
        init(context, config)
        self.loaded.append(identifier)
