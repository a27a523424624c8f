"""Tiered variable scopes mediating every access to the script engine."""
from __future__ import annotations

import copy
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, Mapping

from codex.core.types import (
    EPHEMERAL_SCOPE_NAME,
    NAVIGATION_NAME,
    RESERVED_NAMES,
    SECTION_ID_NAME,
    SECTION_SCOPE_NAME,
    SECTIONS_STATE_KEY,
    VISITS_NAME,
    Value,
)
from codex.scripting import ScriptEngine, ScriptError
from codex.services.errors import ScopeError

logger = logging.getLogger(__name__)

VISITS_KEY = "__visits__"
ONCE_PREFIX = "__once__:"

StateBlob = Dict[str, Any]


@dataclass(slots=True)
class ScriptOutcome:
    """Result of running code through the scoped view."""

    value: Any
    navigation: str | None = None


def _is_internal(key: str) -> bool:
    return key == VISITS_KEY or key.startswith(ONCE_PREFIX)


class ScopeManager:
    """Owns the global, section and ephemeral tiers.

    The global tier lives in the script engine's global table. Section and
    ephemeral tiers are kept here and are bound into the engine as the
    reserved mappings ``s`` and ``t`` only for the duration of a single run,
    together with the read-only ``visits`` and ``section_id`` values. Section
    mappings also hold internal bookkeeping keys (the visit counter and
    once-consumption markers) that scripts never see.
    """

    def __init__(self, engine: ScriptEngine, section_ids: Iterable[str]) -> None:
        self._engine = engine
        self._sections: Dict[str, Dict[str, Value]] = {section_id: {} for section_id in section_ids}
        self._ephemeral: Dict[str, Value] = {}

    # ----------------------------------------------------------------- global

    def get_global(self, name: str) -> Value:
        self._require_global_name(name)
        return copy.deepcopy(self._engine.get_global(name))

    def set_global(self, name: str, value: Value) -> None:
        self._require_global_name(name)
        _require_value(value, name)
        self._engine.set_global(name, copy.deepcopy(value))

    # ---------------------------------------------------------------- section

    def get_section_var(self, section_id: str, name: str) -> Value:
        self._require_public_key(name)
        return copy.deepcopy(self._section(section_id).get(name))

    def set_section_var(self, section_id: str, name: str, value: Value) -> None:
        self._require_public_key(name)
        _require_value(value, f"{section_id}.{name}")
        self._section(section_id)[name] = copy.deepcopy(value)

    def section_vars(self, section_id: str) -> Dict[str, Value]:
        """Return a copy of the script-visible variables of a section."""
        return {
            key: copy.deepcopy(value)
            for key, value in self._section(section_id).items()
            if not _is_internal(key)
        }

    def visit_count(self, section_id: str) -> int:
        return int(self._section(section_id).get(VISITS_KEY, 0))

    def increment_visits(self, section_id: str) -> int:
        section = self._section(section_id)
        section[VISITS_KEY] = int(section.get(VISITS_KEY, 0)) + 1
        return section[VISITS_KEY]

    def apply_defaults(self, section_id: str, defaults: Mapping[str, Value]) -> None:
        """Seed section variables, keeping any value already present."""
        section = self._section(section_id)
        for name, value in defaults.items():
            if name not in section:
                section[name] = copy.deepcopy(value)

    def is_consumed(self, section_id: str, option_id: str) -> bool:
        return bool(self._section(section_id).get(ONCE_PREFIX + option_id, False))

    def mark_consumed(self, section_id: str, option_id: str) -> None:
        self._section(section_id)[ONCE_PREFIX + option_id] = True

    # -------------------------------------------------------------- ephemeral

    def get_ephemeral(self, name: str) -> Value:
        return copy.deepcopy(self._ephemeral.get(name))

    def set_ephemeral(self, name: str, value: Value) -> None:
        _require_value(value, name)
        self._ephemeral[name] = copy.deepcopy(value)

    def clear_ephemeral(self) -> None:
        self._ephemeral = {}

    def replace_ephemeral(self, values: Mapping[str, Value]) -> Dict[str, Value]:
        """Install a new ephemeral tier and return the previous one."""
        for name, value in values.items():
            _require_value(value, name)
        previous = self._ephemeral
        self._ephemeral = copy.deepcopy(dict(values))
        return previous

    # ---------------------------------------------------------- script access

    def run(self, code: str, section_id: str | None) -> ScriptOutcome:
        """Execute statements with the tiers of `section_id` bound."""
        return self._invoke(lambda: self._engine.execute(code), section_id)

    def evaluate(self, expression: str, section_id: str | None) -> Any:
        """Evaluate an expression with the tiers of `section_id` bound."""
        return self._invoke(lambda: self._engine.evaluate(expression), section_id).value

    def to_text(self, value: Any) -> str:
        return self._engine.to_text(value)

    def _invoke(self, action: Callable[[], Any], section_id: str | None) -> ScriptOutcome:
        section = self._section(section_id) if section_id is not None else None
        bound_section: Dict[str, Value] = {}
        visits = 0
        if section is not None:
            bound_section = {key: copy.deepcopy(value) for key, value in section.items() if not _is_internal(key)}
            visits = int(section.get(VISITS_KEY, 0))
        bound_ephemeral = copy.deepcopy(self._ephemeral)

        engine = self._engine
        # Outside a section there is no section tier, so `s` stays unbound.
        if section is not None:
            engine.set_global(SECTION_SCOPE_NAME, bound_section)
        else:
            engine.delete_global(SECTION_SCOPE_NAME)
        engine.set_global(EPHEMERAL_SCOPE_NAME, bound_ephemeral)
        engine.set_global(VISITS_NAME, visits)
        engine.set_global(SECTION_ID_NAME, section_id)
        engine.delete_global(NAVIGATION_NAME)
        try:
            value = action()
            if section is not None:
                section_rebound = engine.get_global(SECTION_SCOPE_NAME) is not bound_section
            else:
                section_rebound = engine.has_global(SECTION_SCOPE_NAME)
            if section_rebound or engine.get_global(EPHEMERAL_SCOPE_NAME) is not bound_ephemeral:
                raise ScriptError(
                    f"'{SECTION_SCOPE_NAME}' and '{EPHEMERAL_SCOPE_NAME}' are scopes and cannot be reassigned."
                )
            if not _unchanged(engine.get_global(VISITS_NAME), visits) or not _unchanged(
                engine.get_global(SECTION_ID_NAME), section_id
            ):
                raise ScriptError(f"'{VISITS_NAME}' and '{SECTION_ID_NAME}' are read-only.")
            navigation = engine.get_global(NAVIGATION_NAME)
            if navigation is not None and not isinstance(navigation, str):
                raise ScriptError(f"'{NAVIGATION_NAME}' must be a section id string.")
        finally:
            for name in (SECTION_SCOPE_NAME, EPHEMERAL_SCOPE_NAME, VISITS_NAME, SECTION_ID_NAME, NAVIGATION_NAME):
                engine.delete_global(name)

        if section is not None:
            internal = {key: value for key, value in section.items() if _is_internal(key)}
            section.clear()
            section.update(
                {key: copy.deepcopy(value) for key, value in bound_section.items() if not _is_internal(key)}
            )
            section.update(internal)
        self._ephemeral = copy.deepcopy(bound_ephemeral)
        return ScriptOutcome(value=copy.deepcopy(value), navigation=navigation or None)

    # ------------------------------------------------------------ persistence

    def snapshot_state(self) -> StateBlob:
        """Return a deep, JSON-compatible copy of the global and section tiers."""
        state: StateBlob = {
            name: copy.deepcopy(value)
            for name, value in sorted(self._engine.get_all_globals().items())
            if name not in RESERVED_NAMES
        }
        state[SECTIONS_STATE_KEY] = {
            section_id: copy.deepcopy(dict(sorted(values.items())))
            for section_id, values in sorted(self._sections.items())
            if values
        }
        return state

    def restore_state(self, blob: Mapping[str, Any]) -> None:
        """Replace the global and section tiers with `blob` and empty the ephemeral tier.

        The blob is validated completely before anything is replaced.
        """
        if not isinstance(blob, Mapping):
            raise ScopeError("State must be a mapping.")
        sections_blob = blob.get(SECTIONS_STATE_KEY) or {}
        if not isinstance(sections_blob, Mapping):
            raise ScopeError(f"State '{SECTIONS_STATE_KEY}' must be a mapping.")

        restored_globals: Dict[str, Value] = {}
        for name, value in blob.items():
            if name == SECTIONS_STATE_KEY:
                continue
            if not isinstance(name, str) or name in RESERVED_NAMES:
                raise ScopeError(f"State contains reserved or invalid global name {name!r}.")
            _require_value(value, name)
            restored_globals[name] = copy.deepcopy(value)

        restored_sections: Dict[str, Dict[str, Value]] = {section_id: {} for section_id in self._sections}
        for section_id, values in sections_blob.items():
            if section_id not in restored_sections:
                logger.warning("Dropping saved state for unknown section '%s'.", section_id)
                continue
            if not isinstance(values, Mapping):
                raise ScopeError(f"State for section '{section_id}' must be a mapping.")
            for key, value in values.items():
                if not isinstance(key, str):
                    raise ScopeError(f"State for section '{section_id}' has a non-string key.")
                _require_value(value, f"{section_id}.{key}")
            restored_sections[section_id] = copy.deepcopy(dict(values))

        for name in list(self._engine.get_all_globals()):
            self._engine.delete_global(name)
        for name, value in restored_globals.items():
            self._engine.set_global(name, value)
        self._sections = restored_sections
        self._ephemeral = {}

    def reset(self) -> None:
        """Discard every global and section value."""
        self.restore_state({})

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Roll all tiers back to their prior values if the body raises."""
        saved_state = self.snapshot_state()
        saved_ephemeral = copy.deepcopy(self._ephemeral)
        try:
            yield
        except Exception:
            self.restore_state(saved_state)
            self._ephemeral = saved_ephemeral
            raise

    # ---------------------------------------------------------------- helpers

    def _section(self, section_id: str) -> Dict[str, Value]:
        try:
            return self._sections[section_id]
        except KeyError as exc:
            raise ScopeError(f"No section scope named '{section_id}'.") from exc

    @staticmethod
    def _require_global_name(name: str) -> None:
        if not isinstance(name, str) or not name:
            raise ScopeError("Global names must be non-empty strings.")
        if name in RESERVED_NAMES:
            raise ScopeError(f"'{name}' is reserved and not a global variable.")

    @staticmethod
    def _require_public_key(name: str) -> None:
        if not isinstance(name, str) or not name:
            raise ScopeError("Section variable names must be non-empty strings.")
        if _is_internal(name):
            raise ScopeError(f"'{name}' is an internal section key.")


def _unchanged(current: object, original: object) -> bool:
    return type(current) is type(original) and current == original


def _require_value(value: object, context: str) -> None:
    if value is None or isinstance(value, (bool, int, float, str)):
        return
    if isinstance(value, list):
        for item in value:
            _require_value(item, context)
        return
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise ScopeError(f"{context}: mapping keys must be strings.")
            _require_value(item, context)
        return
    raise ScopeError(f"{context}: unsupported value type {type(value).__name__}.")
