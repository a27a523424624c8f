"""Resolves option-set templates into concrete per-section option maps."""
from __future__ import annotations

import dataclasses
from typing import Dict, Mapping, Sequence

from codex.data.errors import DefinitionError
from codex.domain.defs import OptionDef, SectionDef


def merge_options(
    own_options: Mapping[str, OptionDef],
    template_names: Sequence[str],
    templates: Mapping[str, Mapping[str, OptionDef]],
    *,
    context: str,
) -> Dict[str, OptionDef]:
    """Return the option map of a section after merging its templates.

    Templates apply in the listed order, a later template overriding an
    earlier one on the same key, and the section's own keys override all of
    them. A template listed twice is merged once. Overridden keys keep the
    display position of their first appearance.
    """
    merged: Dict[str, OptionDef] = {}
    seen: set[str] = set()
    for name in template_names:
        if name in seen:
            continue
        seen.add(name)
        try:
            template = templates[name]
        except KeyError as exc:
            raise DefinitionError(f"{context} references unknown template '{name}'.") from exc
        merged.update(template)
    merged.update(own_options)
    return merged


def resolve_sections(
    sections: Mapping[str, SectionDef],
    templates: Mapping[str, Mapping[str, OptionDef]],
) -> Dict[str, SectionDef]:
    """Return sections whose option maps have every template merged in."""
    resolved: Dict[str, SectionDef] = {}
    for section_id, section in sections.items():
        options = merge_options(section.options, section.templates, templates, context=f"section '{section_id}'")
        resolved[section_id] = dataclasses.replace(section, options=options, templates=())
    return resolved
