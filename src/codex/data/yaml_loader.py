"""Low-level YAML helpers for story definitions."""
from __future__ import annotations

from pathlib import Path

import yaml

from .errors import DefinitionLoadError


def load_yaml(path: Path) -> object:
    """Load YAML from disk and raise DefinitionLoadError on failure."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise DefinitionLoadError(f"Story file not found: {path}") from exc
    except OSError as exc:
        raise DefinitionLoadError(f"Unable to read story file: {path}") from exc
    return parse_yaml(text, source=str(path))


def parse_yaml(text: str, *, source: str = "<string>") -> object:
    """Parse YAML text; anchors and ``<<`` merge keys are resolved here."""
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise DefinitionLoadError(f"Invalid YAML in {source}: {exc}") from exc
