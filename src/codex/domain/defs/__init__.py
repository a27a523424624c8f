"""Domain definition exports."""

from .story_def import EventDef, HookDef, OptionDef, SectionDef, StoryDef

__all__ = [
    "EventDef",
    "HookDef",
    "OptionDef",
    "SectionDef",
    "StoryDef",
]
