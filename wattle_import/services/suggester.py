from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from difflib import SequenceMatcher

from ..models.import_type import FieldDescriptor

"""Column-mapping suggester.

Scores every (header, field) pair, then assigns greedily so that no header and
no field is used twice. Suggestions are advisory; the operator confirms or
overrides them before validation.

Scoring:
    exact normalized match on key or label   1.0
    exact normalized match on an alias       0.95
    fuzzy (difflib ratio or containment)     best * 0.85
"""

__all__ = [
    "MappingSuggestion",
    "normalize_header",
    "score_field",
    "suggest_column_mapping",
    "DEFAULT_FLOOR",
]

DEFAULT_FLOOR = 0.6
EXACT_SCORE = 1.0
ALIAS_SCORE = 0.95
FUZZY_WEIGHT = 0.85

_NON_ALNUM = re.compile(r"[^a-z0-9]")


@dataclass(frozen=True)
class MappingSuggestion:
    source_header: str
    field_key: str
    confidence: float


def normalize_header(text: str) -> str:
    """'Date of Birth' -> 'dateofbirth', 'first_name' -> 'firstname'."""
    return _NON_ALNUM.sub("", text.lower())


def _similarity(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    ratio = SequenceMatcher(None, a, b).ratio()
    if a in b or b in a:
        ratio = max(ratio, min(len(a), len(b)) / max(len(a), len(b)))
    return ratio


def score_field(header: str, field: FieldDescriptor) -> tuple[float, bool]:
    """Return (score, exact) for one header against one field."""
    norm = normalize_header(header)
    if not norm:
        return 0.0, False
    primary = {normalize_header(field.key), normalize_header(field.label)}
    if norm in primary:
        return EXACT_SCORE, True
    aliases = {normalize_header(a) for a in field.aliases}
    if norm in aliases:
        return ALIAS_SCORE, True
    best = max(_similarity(norm, candidate) for candidate in primary | aliases)
    return round(best * FUZZY_WEIGHT, 4), False


def suggest_column_mapping(
    headers: Sequence[str],
    fields: Sequence[FieldDescriptor],
    *,
    floor: float = DEFAULT_FLOOR,
) -> list[MappingSuggestion]:
    candidates: list[tuple[float, bool, int, int]] = []
    for hi, header in enumerate(headers):
        for fi, field in enumerate(fields):
            score, exact = score_field(header, field)
            if score > floor:
                candidates.append((score, exact, fi, hi))

    # Higher score first, exact before fuzzy, then registry and file order
    candidates.sort(key=lambda c: (-c[0], not c[1], c[2], c[3]))

    used_headers: set[int] = set()
    used_fields: set[int] = set()
    out: list[MappingSuggestion] = []
    for score, _exact, fi, hi in candidates:
        if hi in used_headers or fi in used_fields:
            continue
        used_headers.add(hi)
        used_fields.add(fi)
        out.append(MappingSuggestion(headers[hi], fields[fi].key, score))

    out.sort(key=lambda s: -s.confidence)
    return out
