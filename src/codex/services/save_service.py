"""Serialization helpers for saving and resuming a story session."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Mapping

from codex.services.errors import SaveLoadError, ScopeError
from codex.services.story import Story

SavePayload = Dict[str, Any]


class SaveService:
    """Converts a Story's state to/from a validated, versioned payload."""

    SAVE_VERSION = 1

    def serialize(self, story: Story) -> SavePayload:
        """Return a JSON-serializable payload for disk persistence."""
        return {
            "save_version": self.SAVE_VERSION,
            "metadata": self._build_metadata(story),
            "state": story.get_state(),
        }

    def deserialize(self, story: Story, payload: Mapping[str, Any]) -> str | None:
        """Restore `payload` into `story` and return the section to resume at."""
        if not isinstance(payload, Mapping):
            raise SaveLoadError("Save data must be a JSON object.")
        if payload.get("save_version") != self.SAVE_VERSION:
            raise SaveLoadError("Save format is not supported by this version.")
        metadata = payload.get("metadata")
        state = payload.get("state")
        if not isinstance(metadata, Mapping) or not isinstance(state, Mapping):
            raise SaveLoadError("Save data is missing required sections.")
        if metadata.get("title") != story.title:
            raise SaveLoadError(f"Save belongs to '{metadata.get('title')}', not '{story.title}'.")

        section_id = metadata.get("section_id")
        if section_id is not None and (not isinstance(section_id, str) or section_id not in story.sections):
            raise SaveLoadError(f"Saved section {section_id!r} does not exist in this story.")
        try:
            story.set_state(state)
        except ScopeError as exc:
            raise SaveLoadError(f"Invalid saved state: {exc}") from exc
        return section_id

    def to_bytes(self, payload: SavePayload) -> bytes:
        return json.dumps(payload, indent=2, sort_keys=True).encode("utf-8")

    def from_bytes(self, blob: bytes) -> SavePayload:
        try:
            payload = json.loads(blob.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise SaveLoadError(f"Save data is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise SaveLoadError("Save data must be a JSON object.")
        return payload

    @staticmethod
    def _build_metadata(story: Story) -> Dict[str, Any]:
        return {
            "title": story.title,
            "section_id": story.current_section_id,
            "saved_at": datetime.now(timezone.utc).isoformat(),
        }
