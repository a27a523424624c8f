"""Data layer utilities for loading story definitions."""

from .definition_loader import build_story_definition, load_story_definition, parse_story_definition
from .errors import DataError, DefinitionError, DefinitionLoadError
from .paths import get_repo_root, get_stories_path, resolve_story_path

__all__ = [
    "DataError",
    "DefinitionError",
    "DefinitionLoadError",
    "build_story_definition",
    "get_repo_root",
    "get_stories_path",
    "load_story_definition",
    "parse_story_definition",
    "resolve_story_path",
]
