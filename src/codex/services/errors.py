"""Service-layer exceptions."""

from codex.scripting.errors import ScriptError


class ScopeError(Exception):
    """Raised when a scope read/write targets an unknown or reserved namespace."""


class MissingSectionError(KeyError):
    """Raised when navigation references a section id the story does not define."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class MissingOptionError(KeyError):
    """Raised when an option id is unknown or not currently selectable."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class UnknownEventError(KeyError):
    """Raised when a trigger names an event with no registered handler."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class SaveLoadError(Exception):
    """Raised when save or load operations fail."""


__all__ = [
    "MissingOptionError",
    "MissingSectionError",
    "SaveLoadError",
    "ScopeError",
    "ScriptError",
    "UnknownEventError",
]
