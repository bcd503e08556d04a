"""Per-run event bus for named hooks.

Callbacks are stored per hook name in registration order and are invoked
with an owner object followed by whatever arguments the caller fires with.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable

Callback = Callable[..., Any]


class TriggerBus:
    def __init__(self) -> None:
        self._callbacks: dict[str, list[Callback]] = defaultdict(list)
        self._frozen = False

    def add(self, name: str, callback: Callback) -> None:
        if self._frozen:
            raise RuntimeError(f"Trigger bus is frozen; cannot register {name!r}")
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Trigger name must be a non-empty string")
        if not callable(callback):
            raise TypeError(f"Trigger callback must be callable (type={type(callback).__name__})")
        self._callbacks[name.strip()].append(callback)

    def freeze(self) -> None:
        """Refuse further registrations; the table is read-only from here on."""
        self._frozen = True

    def fire(self, name: str, owner: Any, *args: Any) -> None:
        # Copy so a callback registering more callbacks cannot extend this round.
        for callback in list(self._callbacks.get(name, ())):
            callback(owner, *args)

    def registered(self, name: str) -> tuple[Callback, ...]:
        return tuple(self._callbacks.get(name, ()))

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(key for key, value in self._callbacks.items() if value))
