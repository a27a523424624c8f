"""Decides which options are offered and applies the chosen one."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from codex.core.types import SELF_TARGET
from codex.domain.defs import OptionDef, SectionDef
from codex.scripting import ScriptError
from codex.services.interpolator import Interpolator
from codex.services.scope_manager import ScopeManager

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class OptionResult:
    """Outcome of executing an option.

    `confirm_message` is surfaced to the caller, which decides how to gate on
    it. `next_section_id` is ``None`` when the story stays where it is.
    """

    option_id: str
    section_id: str
    confirm_message: str | None = None
    next_section_id: str | None = None
    notify_message: str | None = None
    navigation_override: str | None = None


class OptionEvaluator:
    """Visibility checks and side effects for a single option."""

    def __init__(self, scopes: ScopeManager, interpolator: Interpolator) -> None:
        self._scopes = scopes
        self._interpolator = interpolator

    def is_available(self, option: OptionDef, section: SectionDef) -> bool:
        """Return True when the option should be offered in `section` right now.

        Checks short-circuit in a fixed order so hidden or spent options never
        run their condition code.
        """
        if option.hidden:
            return False
        if option.once and self._scopes.is_consumed(section.id, option.id):
            return False
        visits = self._scopes.visit_count(section.id)
        if option.first and visits != 1:
            return False
        if option.not_first and visits == 1:
            return False
        if option.condition is None:
            return True
        try:
            with self._scopes.transaction():
                return bool(self._scopes.evaluate(option.condition, section.id))
        except ScriptError as exc:
            logger.warning(
                "Condition of option '%s' in section '%s' failed, hiding it: %s",
                option.id,
                section.id,
                exc,
            )
            return False

    def available_options(self, section: SectionDef) -> List[OptionDef]:
        """Return the selectable options of `section` in display order."""
        return [option for option in section.options.values() if self.is_available(option, section)]

    def execute(self, option: OptionDef, section: SectionDef) -> OptionResult:
        """Run the option's code once and describe where the story goes next.

        Raises ScriptError when the run-code fails; scopes are left as they
        were before the call.
        """
        logger.debug("Executing option '%s' in section '%s'", option.id, section.id)
        override = None
        with self._scopes.transaction():
            if option.run:
                try:
                    override = self._scopes.run(option.run, section.id).navigation
                except ScriptError as exc:
                    raise ScriptError(f"Option '{option.id}' in section '{section.id}': {exc}") from exc
            if option.once:
                self._scopes.mark_consumed(section.id, option.id)
            notify = None
            if option.notify:
                notify = self._interpolator.render(option.notify, section.id)
        return OptionResult(
            option_id=option.id,
            section_id=section.id,
            confirm_message=option.confirm,
            next_section_id=resolve_target(option.goto, section.id),
            notify_message=notify,
            navigation_override=resolve_target(override, section.id),
        )


def resolve_target(target: str | None, section_id: str) -> str | None:
    """Map the ``self`` token onto the current section; other ids pass through."""
    if target == SELF_TARGET:
        return section_id
    return target
