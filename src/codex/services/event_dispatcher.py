"""Externally triggered events and fixed lifecycle hooks."""
from __future__ import annotations

import logging
from typing import Dict, Mapping

from codex.core.types import HookName, Value
from codex.domain.defs import EventDef, HookDef
from codex.scripting import ScriptError
from codex.services.errors import UnknownEventError
from codex.services.scope_manager import ScopeManager

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Runs event handlers and hooks against the current section's scopes."""

    def __init__(
        self,
        scopes: ScopeManager,
        events: Mapping[str, EventDef],
        hooks: Mapping[HookName, HookDef],
    ) -> None:
        self._scopes = scopes
        self._events = dict(events)
        self._hooks = dict(hooks)

    @property
    def event_ids(self) -> list[str]:
        return sorted(self._events)

    def has_hook(self, name: HookName) -> bool:
        return name in self._hooks

    def trigger(self, event_id: str, *args: Value, section_id: str | None = None) -> str:
        """Run an event handler and return its result as user-facing text.

        Arguments are bound into a fresh ephemeral tier as ``t.args`` and, for
        declared parameters, ``t.<param>``. The caller's ephemeral values are
        restored afterwards.
        """
        try:
            event = self._events[event_id]
        except KeyError as exc:
            raise UnknownEventError(f"No event handler named '{event_id}'.") from exc

        bindings: Dict[str, Value] = {"args": list(args)}
        for index, param in enumerate(event.params):
            bindings[param] = args[index] if index < len(args) else None

        logger.debug("Triggering event '%s' with %d argument(s)", event_id, len(args))
        with self._scopes.transaction():
            previous = self._scopes.replace_ephemeral(bindings)
            try:
                outcome = self._scopes.run(event.run, section_id)
            except ScriptError as exc:
                raise ScriptError(f"Event '{event_id}': {exc}") from exc
            finally:
                self._scopes.replace_ephemeral(previous)
        if outcome.value is None:
            return ""
        return self._scopes.to_text(outcome.value)

    def run_hook(self, name: HookName, section_id: str | None) -> str | None:
        """Run a lifecycle hook; return the navigation it requested, if any."""
        hook = self._hooks.get(name)
        if hook is None:
            return None
        try:
            outcome = self._scopes.run(hook.run, section_id)
        except ScriptError as exc:
            raise ScriptError(f"Hook '{name}': {exc}") from exc
        return outcome.navigation
