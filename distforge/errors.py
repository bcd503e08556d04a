from __future__ import annotations


class CommandExit(Exception):
    """Abort the current command; the reason has already been printed.

    Raised by `Reporter.error`. The top-level run loop swallows it and
    returns a failure status without printing anything else.
    """


class PluginLoadError(ImportError):
    """A configured plugin could not be resolved or has no `init` callable."""

    def __init__(self, identifier: str, target: str, reason: str):
        super().__init__(f"Cannot load plugin {identifier!r} ({target}): {reason}")
        self.identifier = identifier
        self.target = target
        self.reason = reason
