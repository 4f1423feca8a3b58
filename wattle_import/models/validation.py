from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Validation result models.

ValidatedRow instances are rebuilt on every validation pass and never
persisted. Row problems are carried as RowIssue values, not raised.
"""

__all__ = [
    "RowIssue",
    "ValidatedRow",
    "ValidationSummary",
    "ValidationResult",
]


@dataclass(frozen=True)
class RowIssue:
    row: int
    field: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "field": self.field, "message": self.message}


@dataclass(frozen=True)
class ValidatedRow:
    """Outcome of applying field rules to one source row.

    `row_number` is 1-based over the data rows of the file. `mapped_data`
    holds typed values keyed by field key; blank optional cells map to None.
    """
    row_number: int
    raw_data: dict[str, str]
    mapped_data: dict[str, Any]
    errors: tuple[RowIssue, ...] = ()
    warnings: tuple[RowIssue, ...] = ()
    is_duplicate: bool = False

    @property
    def is_valid(self) -> bool:
        # A row with zero errors is valid regardless of warnings
        return not self.errors


@dataclass(frozen=True)
class ValidationSummary:
    """Batch-level counts derived from a list of ValidatedRow.

    valid_rows + error_rows == total_rows always holds. duplicate_rows only
    counts duplicates that are also valid, so it never exceeds valid_rows.
    """
    total_rows: int
    valid_rows: int
    error_rows: int
    warning_rows: int
    duplicate_rows: int
    errors_by_field: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ValidationResult:
    rows: tuple[ValidatedRow, ...]
    summary: ValidationSummary

    @property
    def is_valid(self) -> bool:
        return self.summary.error_rows == 0

    def valid_rows(self) -> list[ValidatedRow]:
        return [r for r in self.rows if r.is_valid]
