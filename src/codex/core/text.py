"""Small text helpers shared by the loader and the presentation layer."""
from __future__ import annotations


def niceify(section_id: str) -> str:
    """Turn a section id such as ``dark_cave`` into a readable title."""
    return " ".join(word.capitalize() for word in section_id.split("_") if word)
