"""Contract between the story engine and a script engine implementation."""
from __future__ import annotations

from typing import Any, Dict, Literal, Protocol

from codex.core.types import Value

ParseMode = Literal["exec", "eval"]


class ScriptEngine(Protocol):
    """A script runtime with one persistent global environment.

    Values crossing this boundary are booleans, numbers, strings, ``None``,
    lists and string-keyed dicts. Implementations raise
    :class:`codex.scripting.errors.ScriptError` for every failure.
    """

    def check(self, code: str, mode: ParseMode = "exec") -> None:
        """Validate syntax without running anything."""

    def execute(self, code: str) -> Any:
        """Run statements; return the ``return`` value or the last expression value."""

    def evaluate(self, expression: str) -> Any:
        """Evaluate a single expression."""

    def get_global(self, name: str) -> Any:
        """Return a global value, or ``None`` when it is not defined."""

    def has_global(self, name: str) -> bool:
        """Return True when a global (value or function) is defined."""

    def set_global(self, name: str, value: Value) -> None:
        """Create or replace a global value."""

    def delete_global(self, name: str) -> None:
        """Remove a global if present."""

    def call_named(self, name: str, *args: Value) -> Any:
        """Call a function defined by story code."""

    def get_all_globals(self) -> Dict[str, Value]:
        """Return every global value, excluding functions."""

    def to_text(self, value: Any) -> str:
        """Return the engine's native textual form of a value."""
