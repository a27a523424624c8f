from __future__ import annotations

import textwrap

from codex.core.rng import RNG
from codex.scripting import ExpressionEngine
from codex.services import ScopeManager, Story
from codex.services.event_dispatcher import EventDispatcher
from codex.services.interpolator import Interpolator
from codex.services.option_evaluator import OptionEvaluator
from codex.services.section_controller import SectionController


def make_story(source: str, *, seed: int = 1) -> Story:
    """Build a Story from an indented YAML snippet."""
    return Story.from_yaml(textwrap.dedent(source), seed=seed)


def make_scopes(*section_ids: str) -> ScopeManager:
    return ScopeManager(ExpressionEngine(rng=RNG(7)), section_ids or ("start",))


def make_components(scopes: ScopeManager, *, events=None, hooks=None):
    """Return (interpolator, evaluator, dispatcher, controller) wired to `scopes`."""
    interpolator = Interpolator(scopes)
    evaluator = OptionEvaluator(scopes, interpolator)
    dispatcher = EventDispatcher(scopes, events or {}, hooks or {})
    controller = SectionController(scopes, interpolator, dispatcher)
    return interpolator, evaluator, dispatcher, controller
