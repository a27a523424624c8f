"""Builds typed story definitions from the parsed YAML tree."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, FrozenSet, List, Mapping, Tuple

from codex.core.text import niceify
from codex.core.types import (
    HOOK_NAMES,
    OPTION_FLAGS,
    RESERVED_NAMES,
    START_SECTION_ID,
    OptionFlag,
    Value,
)
from codex.data.errors import DefinitionError
from codex.data.yaml_loader import load_yaml, parse_yaml
from codex.domain.defs import EventDef, HookDef, OptionDef, SectionDef, StoryDef

_LONG_FORM_KEYS = frozenset({"text", "goto", "if", "run", "notify", "confirm", "hidden", "flags"})
_SECTION_KEYS = frozenset({"title", "text", "run", "vars", "templates", "options"})
_TOP_LEVEL_KEYS = frozenset({"title", "system", "vars", "init", "sections", "templates", "events", "hooks"})


def load_story_definition(path: Path | str) -> StoryDef:
    """Load and build a story definition from a YAML file."""
    return build_story_definition(load_yaml(Path(path)), source=str(path))


def parse_story_definition(text: str, *, source: str = "<string>") -> StoryDef:
    """Build a story definition from YAML text."""
    return build_story_definition(parse_yaml(text, source=source), source=source)


def build_story_definition(raw: object, *, source: str = "<string>") -> StoryDef:
    """Convert a raw document tree into a StoryDef or raise DefinitionError."""
    return _DefinitionBuilder(source).build(raw)


class _DefinitionBuilder:
    """Normalizes the loosely typed document tree into definition dataclasses."""

    def __init__(self, source: str) -> None:
        self._source = source

    def build(self, raw: object) -> StoryDef:
        data = self._require_mapping(raw, f"story '{self._source}'")
        unknown = sorted(str(key) for key in data if key not in _TOP_LEVEL_KEYS)
        if unknown:
            raise DefinitionError(f"story '{self._source}' has unknown keys: {', '.join(unknown)}")

        title = self._optional_str(data.get("title"), "title") or "Untitled Story"
        system = self._optional_str(data.get("system"), "system") or "default"
        variables = self._parse_vars(data.get("vars"), "vars", globals_tier=True)
        init = self._optional_code(data.get("init"), "init")
        templates = self._parse_templates(data.get("templates"))
        sections = self._parse_sections(data.get("sections"))
        events = self._parse_events(data.get("events"))
        hooks = self._parse_hooks(data.get("hooks"))

        return StoryDef(
            title=title,
            system=system,
            vars=variables,
            init=init,
            sections=sections,
            templates=templates,
            events=events,
            hooks=hooks,
        )

    def _parse_sections(self, raw_sections: object) -> Dict[str, SectionDef]:
        sections_data = self._require_mapping(raw_sections, "sections")
        if not sections_data:
            raise DefinitionError("sections must define at least one section.")
        sections: Dict[str, SectionDef] = {}
        for section_id, payload in sections_data.items():
            if not isinstance(section_id, str) or not section_id:
                raise DefinitionError("Section ids must be non-empty strings.")
            sections[section_id] = self._parse_section(section_id, payload)
        if START_SECTION_ID not in sections:
            raise DefinitionError(f"sections must include the entry section '{START_SECTION_ID}'.")
        return sections

    def _parse_section(self, section_id: str, payload: object) -> SectionDef:
        context = f"section '{section_id}'"
        section_data = self._require_mapping(payload, context)
        unknown = sorted(str(key) for key in section_data if key not in _SECTION_KEYS)
        if unknown:
            raise DefinitionError(f"{context} has unknown keys: {', '.join(unknown)}")
        text = section_data.get("text", "")
        if not isinstance(text, str):
            raise DefinitionError(f"{context} text must be a string.")
        title = self._optional_str(section_data.get("title"), f"{context} title") or niceify(section_id)
        return SectionDef(
            id=section_id,
            title=title,
            text=text,
            run=self._optional_code(section_data.get("run"), f"{context} run"),
            vars=self._parse_vars(section_data.get("vars"), f"{context} vars", globals_tier=False),
            options=self._parse_options(section_data.get("options"), context),
            templates=self._parse_template_refs(section_data.get("templates"), context),
        )

    def _parse_templates(self, raw_templates: object) -> Dict[str, Dict[str, OptionDef]]:
        if raw_templates is None:
            return {}
        templates_data = self._require_mapping(raw_templates, "templates")
        templates: Dict[str, Dict[str, OptionDef]] = {}
        for name, payload in templates_data.items():
            if not isinstance(name, str) or not name:
                raise DefinitionError("Template names must be non-empty strings.")
            templates[name] = self._parse_options(payload, f"template '{name}'")
        return templates

    def _parse_template_refs(self, raw_refs: object, context: str) -> Tuple[str, ...]:
        if raw_refs is None:
            return ()
        if isinstance(raw_refs, str):
            return (raw_refs,)
        if not isinstance(raw_refs, list) or not all(isinstance(ref, str) for ref in raw_refs):
            raise DefinitionError(f"{context} templates must be a template name or a list of names.")
        return tuple(raw_refs)

    def _parse_options(self, raw_options: object, context: str) -> Dict[str, OptionDef]:
        if raw_options is None:
            return {}
        options_data = self._require_mapping(raw_options, f"{context} options")
        options: Dict[str, OptionDef] = {}
        for option_id, payload in options_data.items():
            if not isinstance(option_id, str) or not option_id:
                raise DefinitionError(f"{context} option ids must be non-empty strings.")
            options[option_id] = self._parse_option(option_id, payload, f"{context} option '{option_id}'")
        return options

    def _parse_option(self, option_id: str, payload: object, context: str) -> OptionDef:
        if isinstance(payload, list):
            if len(payload) != 2 or not all(isinstance(part, str) for part in payload):
                raise DefinitionError(f"{context} short form must be [text, target].")
            text, target = payload
            return OptionDef(id=option_id, text=text, goto=target or None)

        option_data = self._require_mapping(payload, context)
        unknown = sorted(str(key) for key in option_data if key not in _LONG_FORM_KEYS)
        if unknown:
            raise DefinitionError(f"{context} has unknown keys: {', '.join(unknown)}")
        text = option_data.get("text")
        if not isinstance(text, str):
            raise DefinitionError(f"{context} text must be a string.")
        hidden = option_data.get("hidden", False)
        if not isinstance(hidden, bool):
            raise DefinitionError(f"{context} hidden must be true or false.")
        return OptionDef(
            id=option_id,
            text=text,
            goto=self._optional_str(option_data.get("goto"), f"{context} goto"),
            condition=self._parse_condition(option_data.get("if"), context),
            run=self._optional_code(option_data.get("run"), f"{context} run"),
            notify=self._optional_str(option_data.get("notify"), f"{context} notify"),
            confirm=self._optional_str(option_data.get("confirm"), f"{context} confirm"),
            flags=self._parse_flags(option_data.get("flags"), context),
            hidden=hidden,
        )

    def _parse_condition(self, raw: object, context: str) -> str | None:
        if raw is None:
            return None
        # YAML turns `if: false` into a boolean before we ever see it.
        if isinstance(raw, bool):
            return "True" if raw else "False"
        return self._optional_code(raw, f"{context} if")

    def _parse_flags(self, raw_flags: object, context: str) -> FrozenSet[OptionFlag]:
        if raw_flags is None:
            return frozenset()
        if isinstance(raw_flags, str):
            entries: List[object] = raw_flags.replace(",", " ").split()
        elif isinstance(raw_flags, list):
            entries = list(raw_flags)
        else:
            raise DefinitionError(f"{context} flags must be a list of flag names.")
        flags = set()
        for entry in entries:
            if entry not in OPTION_FLAGS:
                raise DefinitionError(
                    f"{context} has unknown flag {entry!r}; expected one of {', '.join(OPTION_FLAGS)}."
                )
            flags.add(entry)
        if "first" in flags and "not_first" in flags:
            raise DefinitionError(f"{context} cannot be flagged both 'first' and 'not_first'.")
        return frozenset(flags)

    def _parse_events(self, raw_events: object) -> Dict[str, EventDef]:
        if raw_events is None:
            return {}
        events_data = self._require_mapping(raw_events, "events")
        events: Dict[str, EventDef] = {}
        for event_id, payload in events_data.items():
            if not isinstance(event_id, str) or not event_id:
                raise DefinitionError("Event ids must be non-empty strings.")
            context = f"event '{event_id}'"
            if isinstance(payload, str):
                events[event_id] = EventDef(id=event_id, run=payload)
                continue
            event_data = self._require_mapping(payload, context)
            run = self._optional_code(event_data.get("run"), f"{context} run")
            if run is None:
                raise DefinitionError(f"{context} must define run code.")
            params = event_data.get("params") or []
            if not isinstance(params, list) or not all(
                isinstance(param, str) and param.isidentifier() for param in params
            ):
                raise DefinitionError(f"{context} params must be a list of identifiers.")
            events[event_id] = EventDef(id=event_id, run=run, params=tuple(params))
        return events

    def _parse_hooks(self, raw_hooks: object) -> Dict[str, HookDef]:
        if raw_hooks is None:
            return {}
        hooks_data = self._require_mapping(raw_hooks, "hooks")
        hooks: Dict[str, HookDef] = {}
        for name, payload in hooks_data.items():
            if name not in HOOK_NAMES:
                raise DefinitionError(f"Unknown hook {name!r}; expected one of {', '.join(HOOK_NAMES)}.")
            run = self._optional_code(payload, f"hook '{name}'")
            if run is not None:
                hooks[name] = HookDef(name=name, run=run)
        return hooks

    def _parse_vars(self, raw_vars: object, context: str, *, globals_tier: bool) -> Dict[str, Value]:
        if raw_vars is None:
            return {}
        vars_data = self._require_mapping(raw_vars, context)
        variables: Dict[str, Value] = {}
        for name, value in vars_data.items():
            if not isinstance(name, str) or not name.isidentifier():
                raise DefinitionError(f"{context} names must be identifiers, got {name!r}.")
            if globals_tier and name in RESERVED_NAMES:
                raise DefinitionError(f"{context} cannot declare reserved name '{name}'.")
            self._require_value(value, f"{context}.{name}")
            variables[name] = value
        return variables

    def _require_value(self, value: object, context: str) -> None:
        if value is None or isinstance(value, (bool, int, float, str)):
            return
        if isinstance(value, list):
            for index, item in enumerate(value):
                self._require_value(item, f"{context}[{index}]")
            return
        if isinstance(value, dict):
            for key, item in value.items():
                if not isinstance(key, str):
                    raise DefinitionError(f"{context} mapping keys must be strings.")
                self._require_value(item, f"{context}.{key}")
            return
        raise DefinitionError(f"{context} has unsupported value type {type(value).__name__}.")

    def _optional_code(self, value: object, context: str) -> str | None:
        code = self._optional_str(value, context)
        if code is None or not code.strip():
            return None
        return code

    @staticmethod
    def _optional_str(value: object, context: str) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str):
            raise DefinitionError(f"{context} must be a string.")
        return value

    @staticmethod
    def _require_mapping(value: object, context: str) -> Mapping[object, object]:
        if not isinstance(value, dict):
            raise DefinitionError(f"{context} must be a mapping.")
        return value
