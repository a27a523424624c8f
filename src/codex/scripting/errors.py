"""Exceptions raised by the scripting layer."""


class ScriptError(Exception):
    """Raised when story code fails to parse or fails while running."""
