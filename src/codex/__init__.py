"""Codex: a story engine for branching narratives with embedded scripting."""

__version__ = "0.4.0"
