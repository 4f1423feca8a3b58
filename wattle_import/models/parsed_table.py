from __future__ import annotations

from dataclasses import dataclass

"""ParsedTable model: a delimited upload after tokenising.

Created once per uploaded file and never mutated; re-uploading produces a new
instance.
"""

__all__ = [
    "ParsedTable",
]


@dataclass(frozen=True)
class ParsedTable:
    """Headers plus data rows of one uploaded file.

    Every row holds every header as a key; cells missing from short rows are
    stored as empty strings. Values are already trimmed.
    """
    headers: tuple[str, ...]
    rows: tuple[dict[str, str], ...]
    raw_row_count: int

    def column(self, header: str) -> list[str]:
        """All values of one column in row order."""
        if header not in self.headers:
            raise KeyError(header)
        return [row[header] for row in self.rows]

    def sample(self, n: int = 3) -> list[dict[str, str]]:
        return list(self.rows[:n])
