"""Expands ``{expression}`` placeholders in narrative text."""
from __future__ import annotations

import logging
from typing import Iterator, Tuple

from codex.scripting import ScriptError
from codex.services.scope_manager import ScopeManager

logger = logging.getLogger(__name__)

ERROR_MARKER = "[error: {expression}]"


class Interpolator:
    """Renders text templates against the scoped view of one section.

    ``{{`` and ``}}`` produce literal braces. Braces inside an expression are
    balanced, and quoted strings are skipped, so ``{ {"a": 1}["a"] }`` works.
    A ``{`` without a matching ``}`` is kept as a literal and scanning resumes
    right after it. A failing placeholder leaves every scope as it was.
    """

    def __init__(self, scopes: ScopeManager) -> None:
        self._scopes = scopes

    def render(self, template: str, section_id: str | None) -> str:
        parts = []
        for kind, chunk in _scan(template):
            if kind == "text":
                parts.append(chunk)
            else:
                parts.append(self._render_expression(chunk, section_id))
        return "".join(parts)

    def _render_expression(self, expression: str, section_id: str | None) -> str:
        try:
            with self._scopes.transaction():
                value = self._scopes.evaluate(expression, section_id)
        except ScriptError as exc:
            logger.warning("Placeholder {%s} in section '%s' failed: %s", expression, section_id, exc)
            return ERROR_MARKER.format(expression=expression.strip())
        return self._scopes.to_text(value)


def _scan(template: str) -> Iterator[Tuple[str, str]]:
    """Yield ("text", chunk) and ("expr", source) pieces of a template."""
    buffer = []
    index = 0
    length = len(template)
    while index < length:
        char = template[index]
        if char == "{" and template.startswith("{{", index):
            buffer.append("{")
            index += 2
            continue
        if char == "}" and template.startswith("}}", index):
            buffer.append("}")
            index += 2
            continue
        if char == "{":
            end = _find_closing(template, index)
            if end < 0:
                buffer.append(char)
                index += 1
                continue
            expression = template[index + 1 : end]
            if not expression.strip():
                buffer.append(template[index : end + 1])
            else:
                if buffer:
                    yield "text", "".join(buffer)
                    buffer = []
                yield "expr", expression
            index = end + 1
            continue
        buffer.append(char)
        index += 1
    if buffer:
        yield "text", "".join(buffer)


def _find_closing(template: str, start: int) -> int:
    depth = 0
    quote = ""
    index = start
    while index < len(template):
        char = template[index]
        if quote:
            if char == "\\":
                index += 2
                continue
            if char == quote:
                quote = ""
        elif char in "\"'":
            quote = char
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
        index += 1
    return -1
