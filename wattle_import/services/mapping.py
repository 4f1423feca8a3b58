from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from ..models.import_type import FieldDescriptor
from .suggester import MappingSuggestion

"""Column mapping helpers.

A mapping is a plain dict of source header -> field key. Every helper returns
a new dict; callers never see a mapping where one field key is held by two
headers.
"""

__all__ = [
    "MappingError",
    "MappingIncomplete",
    "apply_mapping_change",
    "missing_required",
    "ensure_mapping_complete",
    "auto_mapping",
    "mapping_hints",
    "parse_mapping_overrides",
]


class MappingError(Exception):
    """Raised for a structurally invalid mapping (unknown header or field, key used twice)."""


class MappingIncomplete(MappingError):
    def __init__(self, missing: Sequence[FieldDescriptor]) -> None:
        labels = ", ".join(f.label for f in missing)
        super().__init__(f"required fields not mapped: {labels}")
        self.missing = tuple(missing)


def apply_mapping_change(mapping: Mapping[str, str], header: str, field_key: str) -> dict[str, str]:
    """Assign `field_key` to `header`; an empty key unassigns the header.

    Any other header already holding `field_key` loses it.
    """
    out = dict(mapping)
    out.pop(header, None)
    if not field_key:
        return out
    for h in [h for h, k in out.items() if k == field_key]:
        del out[h]
    out[header] = field_key
    return out


def missing_required(mapping: Mapping[str, str], fields: Sequence[FieldDescriptor]) -> list[FieldDescriptor]:
    mapped = set(mapping.values())
    return [f for f in fields if f.required and f.key not in mapped]


def ensure_mapping_complete(
    mapping: Mapping[str, str],
    fields: Sequence[FieldDescriptor],
    headers: Iterable[str],
) -> None:
    known_headers = set(headers)
    known_keys = {f.key for f in fields}
    seen: set[str] = set()
    for header, key in mapping.items():
        if header not in known_headers:
            raise MappingError(f"column '{header}' is not in the file")
        if key not in known_keys:
            raise MappingError(f"unknown field '{key}' for column '{header}'")
        if key in seen:
            raise MappingError(f"field '{key}' is mapped from more than one column")
        seen.add(key)
    missing = missing_required(mapping, fields)
    if missing:
        raise MappingIncomplete(missing)


def auto_mapping(suggestions: Iterable[MappingSuggestion], threshold: float = 0.7) -> dict[str, str]:
    return {s.source_header: s.field_key for s in suggestions if s.confidence >= threshold}


def mapping_hints(
    suggestions: Iterable[MappingSuggestion],
    hint: float = 0.6,
    auto: float = 0.7,
) -> list[MappingSuggestion]:
    """Suggestions worth showing to the operator but not applying."""
    return [s for s in suggestions if hint < s.confidence < auto]


def parse_mapping_overrides(items: Iterable[str]) -> list[tuple[str, str]]:
    """Parse CLI `Header=field_key` pairs; `Header=` unassigns the header."""
    out: list[tuple[str, str]] = []
    for item in items:
        header, sep, key = item.partition("=")
        if not sep or not header.strip():
            raise MappingError(f"invalid mapping override '{item}'; expected Header=field_key")
        out.append((header.strip(), key.strip()))
    return out
