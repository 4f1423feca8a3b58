from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .import_type import ImportType
from .validation import RowIssue

"""ImportJob domain model and its status lifecycle.

ImportJob is the only pipeline entity persisted to shared storage and is the
unit that rollback operates on. Status changes go through `transition_to` so
that illegal moves are rejected in one place.
"""

__all__ = [
    "ImportJobStatus",
    "ImportRecordStatus",
    "InvalidStatusTransition",
    "ImportJob",
    "ImportJobRecord",
    "ALLOWED_TRANSITIONS",
]


class InvalidStatusTransition(Exception):
    """Raised when a job is moved to a status its current status does not allow."""

    def __init__(self, current: ImportJobStatus, target: ImportJobStatus) -> None:
        super().__init__(f"cannot move import job from '{current.value}' to '{target.value}'")
        self.current = current
        self.target = target


class ImportJobStatus(Enum):
    """Lifecycle of one executor run.

    pending -> importing -> (completed | completed_with_errors | failed)
    completed | completed_with_errors -> rolled_back (terminal)
    """
    PENDING = "pending"
    IMPORTING = "importing"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


ALLOWED_TRANSITIONS: dict[ImportJobStatus, frozenset[ImportJobStatus]] = {
    ImportJobStatus.PENDING: frozenset({ImportJobStatus.IMPORTING}),
    ImportJobStatus.IMPORTING: frozenset({
        ImportJobStatus.COMPLETED,
        ImportJobStatus.COMPLETED_WITH_ERRORS,
        ImportJobStatus.FAILED,
    }),
    ImportJobStatus.COMPLETED: frozenset({ImportJobStatus.ROLLED_BACK}),
    ImportJobStatus.COMPLETED_WITH_ERRORS: frozenset({ImportJobStatus.ROLLED_BACK}),
    ImportJobStatus.FAILED: frozenset(),
    ImportJobStatus.ROLLED_BACK: frozenset(),
}


class ImportRecordStatus(Enum):
    IMPORTED = "imported"
    SKIPPED = "skipped"
    ERROR = "error"


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class ImportJob:
    """Persisted summary of one executor run."""
    id: str
    tenant_id: str
    created_by: str
    import_type: ImportType
    file_name: str
    status: ImportJobStatus = ImportJobStatus.PENDING
    column_mapping: dict[str, str] = field(default_factory=dict)
    total_rows: int = 0
    imported_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    errors: tuple[RowIssue, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    completed_at: datetime | None = None

    @property
    def is_rollback_eligible(self) -> bool:
        return ImportJobStatus.ROLLED_BACK in ALLOWED_TRANSITIONS[self.status]

    def transition_to(self, target: ImportJobStatus, **changes: Any) -> ImportJob:
        """Return a copy in `target` status, rejecting moves not in ALLOWED_TRANSITIONS."""
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStatusTransition(self.status, target)
        return replace(self, status=target, updated_at=_now(), **changes)


@dataclass(frozen=True)
class ImportJobRecord:
    """Per-row outcome of an executor run, kept for audit and troubleshooting."""
    job_id: str
    row_number: int
    status: ImportRecordStatus
    entity_type: str
    entity_id: str | None = None
    raw_data: dict[str, str] = field(default_factory=dict)
    mapped_data: dict[str, Any] = field(default_factory=dict)
    error_message: str | None = None
