"""Helpers for resolving story file locations."""
from __future__ import annotations

from pathlib import Path

DEFAULT_STORY = "cave.yaml"


def get_repo_root() -> Path:
    """Return the repository root."""
    return Path(__file__).resolve().parents[3]


def get_stories_path(base_path: Path | str | None = None) -> Path:
    """Return the directory containing bundled story files."""
    if base_path is not None:
        return Path(base_path)
    return get_repo_root() / "stories"


def resolve_story_path(name: str | None, base_path: Path | str | None = None) -> Path:
    """Resolve a story argument to a file path.

    Existing paths are returned unchanged; bare names are looked up in the
    stories directory, with ``.yaml`` appended when no suffix is given.
    """
    if not name:
        return get_stories_path(base_path) / DEFAULT_STORY
    candidate = Path(name)
    if candidate.exists():
        return candidate
    if not candidate.suffix:
        candidate = candidate.with_suffix(".yaml")
    return get_stories_path(base_path) / candidate.name
