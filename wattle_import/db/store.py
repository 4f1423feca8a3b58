from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

from ..models.import_job import ImportJob, ImportJobRecord
from ..models.import_type import ImportType

"""Tenant-scoped persistence interface used by the pipeline.

Two implementations exist: PostgresImportStore (psycopg2) and
InMemoryImportStore (mock mode and tests). Every domain row written by an
import carries the job id in an `import_job_id` column; rollback deletes by
that tag and nothing else.
"""

__all__ = [
    "PersistenceError",
    "ExistingData",
    "ImportStore",
    "TAGGED_TABLES",
    "GLOBAL_TABLES",
    "natural_key",
    "check_table",
    "ATTENDANCE_LOOKBACK_DAYS",
]

# Tables an import may write to. Anything else is rejected before SQL is built.
TAGGED_TABLES = frozenset({
    "students",
    "classes",
    "enrollments",
    "guardians",
    "parent_invitations",
    "tenant_users",
    "emergency_contacts",
    "medical_conditions",
    "users",
    "attendance_records",
})

# Tables without a tenant_id column; tagged rows are matched on job id alone
GLOBAL_TABLES = frozenset({"users"})

# Existing attendance older than this is not considered for duplicate checks
ATTENDANCE_LOOKBACK_DAYS = 3 * 365


class PersistenceError(Exception):
    """Raised by a store when a read or write against the backing data fails."""


def natural_key(*parts: Any) -> str:
    """Case-insensitive composite key, e.g. natural_key("Emma", "Lee") -> "emma|lee"."""
    out = []
    for p in parts:
        if p is None:
            out.append("")
        elif isinstance(p, date):
            out.append(p.isoformat())
        else:
            out.append(str(p).strip().lower())
    return "|".join(out)


def check_table(table: str) -> str:
    if table not in TAGGED_TABLES:
        raise PersistenceError(f"table not allowed for import writes: {table!r}")
    return table


@dataclass
class ExistingData:
    """Snapshot of tenant data consulted by the validator.

    Keys are built with `natural_key`. Only the parts needed by the import
    type being validated are filled in.
    """
    student_ids: dict[str, str] = field(default_factory=dict)  # first|last -> id
    student_keys: set[str] = field(default_factory=set)  # first|last|dob
    class_names: dict[str, str] = field(default_factory=dict)  # name -> id
    role_names: dict[str, str] = field(default_factory=dict)  # name -> id
    role_labels: list[str] = field(default_factory=list)  # display names
    guardian_emails: set[str] = field(default_factory=set)
    guardian_keys: set[str] = field(default_factory=set)  # first|last|email
    emergency_contact_keys: set[str] = field(default_factory=set)  # first|last|contact
    medical_condition_keys: set[str] = field(default_factory=set)  # first|last|condition
    staff_emails: set[str] = field(default_factory=set)
    attendance_keys: set[str] = field(default_factory=set)  # first|last|date

    def has_student(self, first: Any, last: Any) -> bool:
        return natural_key(first, last) in self.student_ids


class ImportStore(ABC):
    """Persistence operations needed by the executor, rollback and history."""

    # -- transactions -------------------------------------------------
    @abstractmethod
    def transaction(self) -> AbstractContextManager[Any]:
        """Atomic scope: everything inside commits together or not at all."""

    # -- lookups -------------------------------------------------------
    @abstractmethod
    def find_student(self, tenant_id: str, first_name: str, last_name: str) -> str | None: ...

    @abstractmethod
    def find_class(self, tenant_id: str, name: str) -> str | None: ...

    @abstractmethod
    def find_role(self, tenant_id: str, name: str) -> str | None: ...

    @abstractmethod
    def find_user_by_email(self, email: str) -> str | None: ...

    @abstractmethod
    def find_membership(self, tenant_id: str, user_id: str) -> str | None: ...

    @abstractmethod
    def find_guardian_link(self, tenant_id: str, user_id: str, student_id: str) -> str | None: ...

    # -- tagged writes -------------------------------------------------
    @abstractmethod
    def insert_row(self, table: str, values: dict[str, Any], *, tenant_id: str | None, job_id: str) -> str:
        """Insert one row tagged with `job_id`; returns the new row id."""

    @abstractmethod
    def upsert_attendance(self, values: dict[str, Any], *, tenant_id: str, job_id: str) -> tuple[str, bool]:
        """Insert or update on (tenant_id, student_id, date).

        Returns (id, created). Only a newly created record carries the job tag.
        """

    @abstractmethod
    def delete_tagged(self, table: str, tenant_id: str, job_id: str) -> int: ...

    @abstractmethod
    def count_tagged(self, table: str, tenant_id: str, job_id: str) -> int: ...

    # -- jobs ----------------------------------------------------------
    @abstractmethod
    def create_job(self, job: ImportJob) -> ImportJob: ...

    @abstractmethod
    def update_job(self, job: ImportJob) -> ImportJob: ...

    @abstractmethod
    def get_job(self, tenant_id: str, job_id: str) -> ImportJob | None: ...

    @abstractmethod
    def list_jobs(self, tenant_id: str, limit: int = 20) -> list[ImportJob]:
        """Most recent first."""

    @abstractmethod
    def add_job_record(self, tenant_id: str, record: ImportJobRecord) -> None: ...

    @abstractmethod
    def list_job_records(self, tenant_id: str, job_id: str) -> list[ImportJobRecord]: ...

    # -- audit ---------------------------------------------------------
    @abstractmethod
    def record_audit(
        self,
        *,
        tenant_id: str,
        user_id: str,
        action: str,
        entity_type: str,
        entity_id: str,
        metadata: dict[str, Any],
    ) -> None: ...

    # -- raw fetches for ExistingData ---------------------------------
    @abstractmethod
    def fetch_students(self, tenant_id: str) -> list[dict[str, Any]]:
        """Rows with id, first_name, last_name, dob."""

    @abstractmethod
    def fetch_classes(self, tenant_id: str) -> list[dict[str, Any]]:
        """Rows with id, name."""

    @abstractmethod
    def fetch_roles(self, tenant_id: str) -> list[dict[str, Any]]:
        """Rows with id, name."""

    @abstractmethod
    def fetch_guardian_links(self, tenant_id: str) -> list[dict[str, Any]]:
        """Rows with first_name, last_name (student) and email (guardian)."""

    @abstractmethod
    def fetch_emergency_contacts(self, tenant_id: str) -> list[dict[str, Any]]:
        """Rows with first_name, last_name (student) and name (contact)."""

    @abstractmethod
    def fetch_medical_conditions(self, tenant_id: str) -> list[dict[str, Any]]:
        """Rows with first_name, last_name (student) and condition_name."""

    @abstractmethod
    def fetch_staff_emails(self, tenant_id: str) -> list[str]: ...

    @abstractmethod
    def fetch_attendance(self, tenant_id: str, since: date) -> list[dict[str, Any]]:
        """Rows with first_name, last_name (student) and date."""

    def load_existing_data(
        self, tenant_id: str, import_type: ImportType, *, today: date | None = None
    ) -> ExistingData:
        """Fetch the slice of tenant data the validator needs for `import_type`."""
        data = ExistingData()

        # Every import type either creates students or references them
        for s in self.fetch_students(tenant_id):
            data.student_ids.setdefault(natural_key(s["first_name"], s["last_name"]), s["id"])
            data.student_keys.add(natural_key(s["first_name"], s["last_name"], s.get("dob")))

        if import_type in (ImportType.STUDENTS, ImportType.ATTENDANCE):
            for c in self.fetch_classes(tenant_id):
                data.class_names[natural_key(c["name"])] = c["id"]

        if import_type is ImportType.GUARDIANS:
            for g in self.fetch_guardian_links(tenant_id):
                data.guardian_emails.add(natural_key(g["email"]))
                data.guardian_keys.add(natural_key(g["first_name"], g["last_name"], g["email"]))

        if import_type is ImportType.EMERGENCY_CONTACTS:
            for e in self.fetch_emergency_contacts(tenant_id):
                data.emergency_contact_keys.add(natural_key(e["first_name"], e["last_name"], e["name"]))

        if import_type is ImportType.MEDICAL_CONDITIONS:
            for m in self.fetch_medical_conditions(tenant_id):
                data.medical_condition_keys.add(
                    natural_key(m["first_name"], m["last_name"], m["condition_name"])
                )

        if import_type is ImportType.STAFF:
            for r in self.fetch_roles(tenant_id):
                data.role_names[natural_key(r["name"])] = r["id"]
                data.role_labels.append(r["name"])
            data.staff_emails.update(natural_key(e) for e in self.fetch_staff_emails(tenant_id))

        if import_type is ImportType.ATTENDANCE:
            since = (today or date.today()) - timedelta(days=ATTENDANCE_LOOKBACK_DAYS)
            for a in self.fetch_attendance(tenant_id, since):
                data.attendance_keys.add(natural_key(a["first_name"], a["last_name"], a["date"]))

        return data
