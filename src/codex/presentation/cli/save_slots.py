"""File-system helpers for save slot storage."""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

from codex.presentation.cli import config


@dataclass(slots=True)
class SlotMetadata:
    """Describes the contents of a save slot for menu display."""

    slot: int
    exists: bool
    metadata: Dict[str, Any] | None = None
    is_corrupt: bool = False


class SaveSlotStore:
    """Handles slot-based persistence of save blobs on disk, one directory per story."""

    def __init__(self, story_key: str, base_dir: Path | str | None = None, slot_count: int = 3) -> None:
        root = Path(base_dir) if base_dir is not None else config.get_save_dir()
        self._base_dir = root / story_key
        self._slot_count = slot_count

    @property
    def slot_count(self) -> int:
        return self._slot_count

    def list_slots(self) -> List[SlotMetadata]:
        """Return metadata for each configured slot."""
        slots: List[SlotMetadata] = []
        for slot_index in range(1, self._slot_count + 1):
            path = self._slot_path(slot_index)
            if not path.exists():
                slots.append(SlotMetadata(slot=slot_index, exists=False))
                continue
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                slots.append(SlotMetadata(slot=slot_index, exists=True, metadata=None, is_corrupt=True))
                continue
            raw_metadata = payload.get("metadata") if isinstance(payload, dict) else None
            metadata = raw_metadata if isinstance(raw_metadata, dict) else None
            slots.append(SlotMetadata(slot=slot_index, exists=True, metadata=metadata))
        return slots

    def slot_exists(self, slot: int) -> bool:
        """Return True if the slot has data on disk."""
        self._validate_slot(slot)
        return self._slot_path(slot).exists()

    def read_slot(self, slot: int) -> bytes:
        """Return the blob stored in the requested slot."""
        self._validate_slot(slot)
        return self._slot_path(slot).read_bytes()

    def write_slot(self, slot: int, blob: bytes) -> None:
        """Persist the blob into the requested slot."""
        self._validate_slot(slot)
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._slot_path(slot).write_bytes(blob)

    def delete_slot(self, slot: int) -> None:
        """Delete the requested slot payload if it exists."""
        self._validate_slot(slot)
        path = self._slot_path(slot)
        try:
            path.unlink()
        except FileNotFoundError:
            return

    def _slot_path(self, slot: int) -> Path:
        return self._base_dir / f"slot_{slot}.json"

    def _validate_slot(self, slot: int) -> None:
        if not 1 <= slot <= self._slot_count:
            raise ValueError(f"Slot index must be between 1 and {self._slot_count}.")
