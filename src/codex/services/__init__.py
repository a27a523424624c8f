"""Service layer exports."""

from .errors import (
    MissingOptionError,
    MissingSectionError,
    SaveLoadError,
    ScopeError,
    ScriptError,
    UnknownEventError,
)
from .option_evaluator import OptionResult
from .save_service import SaveService
from .scope_manager import ScopeManager
from .story import ChoiceResult, OptionView, SectionView, Story

__all__ = [
    "ChoiceResult",
    "MissingOptionError",
    "MissingSectionError",
    "OptionResult",
    "OptionView",
    "SaveLoadError",
    "SaveService",
    "ScopeError",
    "ScopeManager",
    "ScriptError",
    "SectionView",
    "Story",
    "UnknownEventError",
]
