"""Story definition structures used by the runtime."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Tuple

from codex.core.types import OptionFlag, Value


@dataclass(frozen=True, slots=True)
class OptionDef:
    """A selectable choice, normalized from either the short or the long form.

    Instances are shared between every section a template is merged into, so
    they carry no runtime state; once-consumption lives in the section tier.
    """

    id: str
    text: str
    goto: str | None = None
    condition: str | None = None
    run: str | None = None
    notify: str | None = None
    confirm: str | None = None
    flags: FrozenSet[OptionFlag] = frozenset()
    hidden: bool = False

    @property
    def once(self) -> bool:
        return "once" in self.flags

    @property
    def first(self) -> bool:
        return "first" in self.flags

    @property
    def not_first(self) -> bool:
        return "not_first" in self.flags


@dataclass(frozen=True, slots=True)
class SectionDef:
    """A narrative node; `options` holds the section's own keys until templates are merged."""

    id: str
    title: str
    text: str
    run: str | None = None
    vars: Mapping[str, Value] = field(default_factory=dict)
    options: Mapping[str, OptionDef] = field(default_factory=dict)
    templates: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class EventDef:
    """Externally triggered handler."""

    id: str
    run: str
    params: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class HookDef:
    """Lifecycle callback run at a fixed point."""

    name: str
    run: str


@dataclass(frozen=True, slots=True)
class StoryDef:
    """Fully parsed story definition."""

    title: str
    system: str
    vars: Mapping[str, Value]
    init: str | None
    sections: Mapping[str, SectionDef]
    templates: Mapping[str, Mapping[str, OptionDef]] = field(default_factory=dict)
    events: Mapping[str, EventDef] = field(default_factory=dict)
    hooks: Mapping[str, HookDef] = field(default_factory=dict)
