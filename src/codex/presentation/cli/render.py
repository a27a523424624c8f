"""Shared CLI rendering helpers."""
from __future__ import annotations

import os
import shutil
import textwrap
from typing import Iterable, Sequence

from codex.presentation.cli.save_slots import SlotMetadata
from codex.services import OptionView, SectionView

_MAX_WIDTH = 88


def debug_enabled() -> bool:
    """Return True only when CODEX_DEBUG is explicitly set to '1'."""
    return os.getenv("CODEX_DEBUG") == "1"


def text_width() -> int:
    """Return the wrap width for narrative text."""
    return min(_MAX_WIDTH, shutil.get_terminal_size((_MAX_WIDTH, 24)).columns - 2)


def wrap_text_for_box(text: str, width: int, *, indent_continuation: bool = True) -> list[str]:
    """
    Wrap text to fit within a fixed width, breaking on word boundaries.

    Args:
        text: The text to wrap
        width: Maximum width per line
        indent_continuation: If True, indent continuation lines with 2 spaces

    Returns:
        List of wrapped lines, each <= width characters
    """
    if not text or width <= 0:
        return [text] if text else [""]

    prefix = "- " if text.startswith("- ") else ""
    content = text[len(prefix):]
    subsequent_indent = "  " if indent_continuation else ""
    lines = textwrap.wrap(
        content,
        width=width - len(prefix),
        subsequent_indent="" if prefix else subsequent_indent,
        break_long_words=False,
        break_on_hyphens=False,
    ) or [""]
    if prefix:
        lines[0] = prefix + lines[0]
        if indent_continuation:
            lines[1:] = ["  " + line for line in lines[1:]]
    return lines


def wrap_paragraphs(text: str, width: int) -> list[str]:
    """Wrap multi-line story text, keeping blank lines between paragraphs."""
    lines: list[str] = []
    for paragraph in text.strip("\n").split("\n"):
        if not paragraph.strip():
            lines.append("")
            continue
        lines.extend(wrap_text_for_box(paragraph, width, indent_continuation=False))
    return lines


def render_heading(title: str) -> None:
    """Print a consistent section heading."""
    print(f"\n=== {title} ===")


def render_section(view: SectionView) -> None:
    """Render a section's title, text and numbered options."""
    heading = view.title
    if debug_enabled():
        heading = f"{view.title} [{view.section_id} #{view.visits}]"
    render_heading(heading)
    for line in wrap_paragraphs(view.text, text_width()):
        print(line)
    render_options(view.options)


def render_options(options: Sequence[OptionView]) -> None:
    """Display numbered options, or an ending marker when there are none."""
    if not options:
        print("\n~ The End ~")
        return
    print()
    for idx, option in enumerate(options, start=1):
        print(f"{idx}. {option.text}")


def render_notification(message: str) -> None:
    """Display a message produced by an option or event."""
    render_heading("Notice")
    for line in wrap_paragraphs(message, text_width()):
        print(line)


def render_slots(slots: Iterable[SlotMetadata]) -> None:
    """List save slots with their metadata."""
    render_heading("Save Slots")
    for slot in slots:
        if not slot.exists:
            print(f"{slot.slot}. <empty>")
        elif slot.is_corrupt or slot.metadata is None:
            print(f"{slot.slot}. <unreadable>")
        else:
            print(f"{slot.slot}. {slot.metadata.get('section_id')} ({slot.metadata.get('saved_at')})")


def render_bullet_lines(lines: Iterable[str]) -> None:
    """Print bullet-prefixed lines."""
    for line in lines:
        print(f"- {line}")
