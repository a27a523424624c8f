"""Section entry lifecycle."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from codex.domain.defs import SectionDef
from codex.scripting import ScriptError
from codex.services.event_dispatcher import EventDispatcher
from codex.services.interpolator import Interpolator
from codex.services.option_evaluator import resolve_target
from codex.services.scope_manager import ScopeManager

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class VisitResult:
    """Materialized state of a section right after it was entered."""

    section_id: str
    text: str
    visits: int
    redirect: str | None = None


class SectionController:
    """Drives `visit()` for one section at a time."""

    def __init__(self, scopes: ScopeManager, interpolator: Interpolator, dispatcher: EventDispatcher) -> None:
        self._scopes = scopes
        self._interpolator = interpolator
        self._dispatcher = dispatcher

    def visit(self, section: SectionDef) -> VisitResult:
        """Enter `section`.

        Steps run in a fixed order: clear the ephemeral tier, bump the visit
        counter, apply variable defaults on the first visit, run the section
        code, render the text, then run the ``post_visit`` hook. If any step
        raises, every tier is rolled back and the counter is not bumped.
        """
        with self._scopes.transaction():
            self._scopes.clear_ephemeral()
            visits = self._scopes.increment_visits(section.id)
            if visits == 1:
                self._scopes.apply_defaults(section.id, section.vars)
            redirect = None
            if section.run:
                try:
                    redirect = self._scopes.run(section.run, section.id).navigation
                except ScriptError as exc:
                    raise ScriptError(f"Section '{section.id}': {exc}") from exc
            text = self._interpolator.render(section.text, section.id)
            self._dispatcher.run_hook("post_visit", section.id)
        logger.debug("Visited section '%s' (visit %d)", section.id, visits)
        return VisitResult(
            section_id=section.id,
            text=text,
            visits=visits,
            redirect=resolve_target(redirect, section.id),
        )
