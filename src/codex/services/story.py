"""Story orchestrator: the contract used by presentation layers."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping

from codex.core.rng import RNG
from codex.core.types import RESTART_TARGET, START_SECTION_ID, Value
from codex.data import DefinitionError, load_story_definition, parse_story_definition
from codex.domain.defs import OptionDef, SectionDef, StoryDef
from codex.scripting import ExpressionEngine, ParseMode, ScriptEngine, ScriptError
from codex.services.errors import MissingOptionError, MissingSectionError
from codex.services.event_dispatcher import EventDispatcher
from codex.services.interpolator import Interpolator
from codex.services.option_evaluator import OptionEvaluator, OptionResult, resolve_target
from codex.services.scope_manager import ScopeManager
from codex.services.section_controller import SectionController
from codex.services.template_merge import resolve_sections

logger = logging.getLogger(__name__)

_MAX_REDIRECTS = 32


@dataclass(slots=True)
class OptionView:
    """A selectable option with its text already interpolated."""

    option_id: str
    text: str


@dataclass(slots=True)
class SectionView:
    """Data returned to the presentation layer for rendering."""

    section_id: str
    title: str
    text: str
    visits: int
    options: List[OptionView] = field(default_factory=list)


@dataclass(slots=True)
class ChoiceResult:
    """Result returned after choosing an option and following its navigation."""

    result: OptionResult
    view: SectionView
    navigated: bool = False


class Story:
    """Owns one loaded story session and everything needed to play it."""

    def __init__(
        self,
        definition: StoryDef,
        *,
        engine: ScriptEngine | None = None,
        seed: int | None = None,
    ) -> None:
        self._definition = definition
        self._engine = engine or ExpressionEngine(rng=RNG(seed))
        self._sections = resolve_sections(definition.sections, definition.templates)
        self._check_scripts()

        self._scopes = ScopeManager(self._engine, self._sections)
        self._interpolator = Interpolator(self._scopes)
        self._dispatcher = EventDispatcher(self._scopes, definition.events, definition.hooks)
        self._evaluator = OptionEvaluator(self._scopes, self._interpolator)
        self._controller = SectionController(self._scopes, self._interpolator, self._dispatcher)
        self._current_section_id: str | None = None
        self._current_text = ""

        try:
            self._seed_globals()
        except ScriptError as exc:
            raise DefinitionError(f"init code failed: {exc}") from exc
        logger.info("Loaded story '%s' with %d sections", definition.title, len(self._sections))

    @classmethod
    def load(cls, path: Path | str, **kwargs: Any) -> "Story":
        """Load a story from a YAML file."""
        return cls(load_story_definition(path), **kwargs)

    @classmethod
    def from_yaml(cls, text: str, **kwargs: Any) -> "Story":
        """Build a story from YAML source text."""
        return cls(parse_story_definition(text), **kwargs)

    # ------------------------------------------------------------- properties

    @property
    def title(self) -> str:
        return self._definition.title

    @property
    def system(self) -> str:
        return self._definition.system

    @property
    def sections(self) -> Mapping[str, SectionDef]:
        return self._sections

    @property
    def event_ids(self) -> List[str]:
        return self._dispatcher.event_ids

    @property
    def scopes(self) -> ScopeManager:
        return self._scopes

    @property
    def current_section_id(self) -> str | None:
        return self._current_section_id

    # ------------------------------------------------------------- navigation

    def get_section(self, section_id: str) -> SectionDef:
        """Return a section by id."""
        try:
            return self._sections[section_id]
        except KeyError as exc:
            raise MissingSectionError(f"No section named '{section_id}'.") from exc

    def start(self, section_id: str = START_SECTION_ID) -> SectionView:
        """Enter the entry section, or `section_id` when resuming."""
        return self.goto(section_id)

    def goto(self, section_id: str) -> SectionView:
        """Visit a section and follow any redirect its run-code requests."""
        target = section_id
        for _ in range(_MAX_REDIRECTS):
            if target == RESTART_TARGET:
                self._reset()
                target = START_SECTION_ID
            section = self.get_section(target)
            visit = self._controller.visit(section)
            self._current_section_id = section.id
            self._current_text = visit.text
            if visit.redirect is None or visit.redirect == section.id:
                return self.current_view()
            logger.debug("Section '%s' redirected to '%s'", section.id, visit.redirect)
            target = visit.redirect
        raise ScriptError(f"Too many redirects while entering '{section_id}'.")

    def restart(self) -> SectionView:
        """Discard all state, re-run init and enter the entry section."""
        return self.goto(RESTART_TARGET)

    def current_view(self) -> SectionView:
        """Return the current section with its options re-evaluated."""
        section = self._require_current()
        options = [
            OptionView(option_id=option.id, text=self._interpolator.render(option.text, section.id))
            for option in self._evaluator.available_options(section)
        ]
        return SectionView(
            section_id=section.id,
            title=section.title,
            text=self._current_text,
            visits=self._scopes.visit_count(section.id),
            options=options,
        )

    def visible_options(self) -> List[OptionDef]:
        return self._evaluator.available_options(self._require_current())

    # ---------------------------------------------------------------- choices

    def execute_option(self, option_id: str) -> OptionResult:
        """Apply an option without navigating.

        The returned result names the section to go to next, resolved in the
        order: ``post_option`` hook override, run-code override, the option's
        ``goto``, and finally ``None`` for staying put.
        """
        section = self._require_current()
        try:
            option = section.options[option_id]
        except KeyError as exc:
            raise MissingOptionError(f"Section '{section.id}' has no option '{option_id}'.") from exc
        if not self._evaluator.is_available(option, section):
            raise MissingOptionError(f"Option '{option_id}' is not available in section '{section.id}'.")

        with self._scopes.transaction():
            result = self._evaluator.execute(option, section)
            hook_override = resolve_target(self._dispatcher.run_hook("post_option", section.id), section.id)
        override = hook_override or result.navigation_override
        result.navigation_override = override
        result.next_section_id = override or result.next_section_id
        return result

    def choose(self, option_id: str) -> ChoiceResult:
        """Apply an option and follow its navigation immediately."""
        result = self.execute_option(option_id)
        if result.next_section_id is None:
            return ChoiceResult(result=result, view=self.current_view(), navigated=False)
        return ChoiceResult(result=result, view=self.goto(result.next_section_id), navigated=True)

    def trigger(self, event_id: str, *args: Value) -> str:
        """Run a named event in the context of the current section."""
        return self._dispatcher.trigger(event_id, *args, section_id=self._current_section_id)

    def render(self, template: str) -> str:
        """Interpolate arbitrary text against the current section's scopes."""
        return self._interpolator.render(template, self._current_section_id)

    # ------------------------------------------------------------------ state

    def get_state(self) -> Dict[str, Any]:
        return self._scopes.snapshot_state()

    def set_state(self, blob: Mapping[str, Any]) -> None:
        self._scopes.restore_state(blob)

    # ---------------------------------------------------------------- helpers

    def _require_current(self) -> SectionDef:
        if self._current_section_id is None:
            raise MissingSectionError("The story has not entered a section yet.")
        return self._sections[self._current_section_id]

    def _reset(self) -> None:
        logger.info("Restarting story '%s'", self.title)
        self._scopes.reset()
        self._current_section_id = None
        self._current_text = ""
        self._seed_globals()

    def _seed_globals(self) -> None:
        for name, value in self._definition.vars.items():
            self._scopes.set_global(name, value)
        if self._definition.init:
            self._scopes.run(self._definition.init, None)

    def _check_scripts(self) -> None:
        """Reject definitions whose code does not parse, before anything runs."""
        checks: List[tuple[str, str | None, ParseMode]] = [("init", self._definition.init, "exec")]
        for section in self._sections.values():
            checks.append((f"section '{section.id}' run", section.run, "exec"))
            for option in section.options.values():
                context = f"section '{section.id}' option '{option.id}'"
                checks.append((f"{context} run", option.run, "exec"))
                checks.append((f"{context} if", option.condition, "eval"))
        for event in self._definition.events.values():
            checks.append((f"event '{event.id}'", event.run, "exec"))
        for hook in self._definition.hooks.values():
            checks.append((f"hook '{hook.name}'", hook.run, "exec"))

        for context, code, mode in checks:
            if code is None:
                continue
            try:
                self._engine.check(code, mode)
            except ScriptError as exc:
                raise DefinitionError(f"{context}: {exc}") from exc
