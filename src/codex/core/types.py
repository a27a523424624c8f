"""Shared type aliases and reserved vocabulary for the engine layers."""
from typing import Any, Dict, List, Literal, Union

# Values that may cross the script boundary and be persisted.
Value = Union[bool, int, float, str, None, List[Any], Dict[str, Any]]

OptionFlag = Literal["once", "first", "not_first"]
OPTION_FLAGS: tuple[OptionFlag, ...] = ("once", "first", "not_first")

HookName = Literal["post_option", "post_visit"]
HOOK_NAMES: tuple[HookName, ...] = ("post_option", "post_visit")

START_SECTION_ID = "start"
SELF_TARGET = "self"
RESTART_TARGET = "restart"

SECTION_SCOPE_NAME = "s"
EPHEMERAL_SCOPE_NAME = "t"
VISITS_NAME = "visits"
SECTION_ID_NAME = "section_id"
NAVIGATION_NAME = "goto_section"
SECTIONS_STATE_KEY = "_sections"

RESERVED_NAMES = frozenset(
    {
        SECTION_SCOPE_NAME,
        EPHEMERAL_SCOPE_NAME,
        VISITS_NAME,
        SECTION_ID_NAME,
        NAVIGATION_NAME,
        SECTIONS_STATE_KEY,
        "true",
        "false",
        "nil",
    }
)

__all__ = [
    "EPHEMERAL_SCOPE_NAME",
    "HOOK_NAMES",
    "HookName",
    "NAVIGATION_NAME",
    "OPTION_FLAGS",
    "OptionFlag",
    "RESERVED_NAMES",
    "RESTART_TARGET",
    "SECTIONS_STATE_KEY",
    "SECTION_ID_NAME",
    "SECTION_SCOPE_NAME",
    "SELF_TARGET",
    "START_SECTION_ID",
    "VISITS_NAME",
    "Value",
]
