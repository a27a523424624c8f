"""Scripting layer: the engine contract and the bundled interpreter."""

from .bridge import ParseMode, ScriptEngine
from .errors import ScriptError
from .evaluator import ExpressionEngine, ScriptFunction

__all__ = [
    "ExpressionEngine",
    "ParseMode",
    "ScriptEngine",
    "ScriptError",
    "ScriptFunction",
]
