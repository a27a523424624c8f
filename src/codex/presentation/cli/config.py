"""CLI configuration helpers for options persistence."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict

_DEFAULT_SLOT_COUNT = 3
_MAX_SLOT_COUNT = 9


def get_user_data_dir() -> Path:
    """Return the per-user data directory."""
    if os.name == "nt":
        base = os.environ.get("APPDATA")
        if base:
            return Path(base) / "Codex"
        return Path.home() / "Codex"
    return Path.home() / ".config" / "codex"


def get_default_config_path() -> Path:
    """Return the default per-user config path."""
    return get_user_data_dir() / "config.json"


def get_save_dir() -> Path:
    """Return the per-user save directory."""
    return get_user_data_dir() / "saves"


def _defaults() -> Dict[str, Any]:
    return {"stories_dir": None, "slot_count": _DEFAULT_SLOT_COUNT}


def _normalize(raw: Dict[str, Any]) -> Dict[str, Any]:
    stories_dir = raw.get("stories_dir")
    slot_count = raw.get("slot_count")
    if not isinstance(slot_count, int) or isinstance(slot_count, bool) or not 1 <= slot_count <= _MAX_SLOT_COUNT:
        slot_count = _DEFAULT_SLOT_COUNT
    return {
        "stories_dir": stories_dir if isinstance(stories_dir, str) and stories_dir else None,
        "slot_count": slot_count,
    }


def load_config(path: Path | None = None) -> Dict[str, Any]:
    """Load config from disk or return defaults."""
    config_path = path or get_default_config_path()
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return _defaults()
    except (OSError, ValueError):
        return _defaults()
    if not isinstance(raw, dict):
        return _defaults()
    return _normalize(raw)


def save_config(config: Dict[str, Any], path: Path | None = None) -> None:
    """Persist config to disk."""
    config_path = path or get_default_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(_normalize(config), indent=2, sort_keys=True), encoding="utf-8")
