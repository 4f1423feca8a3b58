from __future__ import annotations

import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import date
from typing import Any

from ..models.import_job import ImportJob, ImportJobRecord
from .store import GLOBAL_TABLES, TAGGED_TABLES, ImportStore, PersistenceError, check_table

"""In-memory ImportStore used in mock mode and by the test-suite.

Tables are plain lists of dicts. Inside `transaction()` every write records
its inverse; if the block raises the inverses run newest first, mirroring the
all-or-nothing behaviour of the PostgreSQL store. Nothing is copied up front,
so a per-row transaction costs the same on a large table as on an empty one.

Fault injection:
    insert_faults["students"] = lambda values: values["first_name"] == "Bad"
    delete_faults.add("enrollments")
"""

__all__ = [
    "InMemoryImportStore",
]

# Lookup-only tables the pipeline reads but never writes
_REFERENCE_TABLES = ("roles",)


def _new_id() -> str:
    return str(uuid.uuid4())


def _same(a: Any, b: Any) -> bool:
    return str(a or "").strip().lower() == str(b or "").strip().lower()


class InMemoryImportStore(ImportStore):
    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {t: [] for t in (*TAGGED_TABLES, *_REFERENCE_TABLES)}
        self.jobs: dict[str, ImportJob] = {}
        self.job_records: list[tuple[str, ImportJobRecord]] = []
        self.audit_log: list[dict[str, Any]] = []
        self.insert_faults: dict[str, Callable[[dict[str, Any]], bool]] = {}
        self.delete_faults: set[str] = set()
        self._undo: list[Callable[[], None]] | None = None

    # -- seeding (tests / mock mode) ----------------------------------
    def seed(self, table: str, **values: Any) -> str:
        """Insert an untagged row as if it pre-dated any import."""
        row = {"id": _new_id(), "import_job_id": None, **values}
        self.tables.setdefault(table, []).append(row)
        return row["id"]

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.get(table, [])

    def _by_id(self, table: str, row_id: str) -> dict[str, Any] | None:
        return next((r for r in self.rows(table) if r["id"] == row_id), None)

    # -- transactions --------------------------------------------------
    @contextmanager
    def transaction(self) -> Iterator[InMemoryImportStore]:
        if self._undo is not None:
            raise PersistenceError("nested transactions are not supported")
        self._undo = []
        try:
            yield self
        except Exception:
            for undo in reversed(self._undo):
                undo()
            raise
        finally:
            self._undo = None

    def _on_rollback(self, undo: Callable[[], None]) -> None:
        if self._undo is not None:
            self._undo.append(undo)

    # -- lookups -------------------------------------------------------
    def find_student(self, tenant_id: str, first_name: str, last_name: str) -> str | None:
        for r in self.rows("students"):
            if (
                r.get("tenant_id") == tenant_id
                and _same(r.get("first_name"), first_name)
                and _same(r.get("last_name"), last_name)
            ):
                return r["id"]
        return None

    def find_class(self, tenant_id: str, name: str) -> str | None:
        return next(
            (r["id"] for r in self.rows("classes") if r.get("tenant_id") == tenant_id and _same(r.get("name"), name)),
            None,
        )

    def find_role(self, tenant_id: str, name: str) -> str | None:
        return next(
            (r["id"] for r in self.rows("roles") if r.get("tenant_id") == tenant_id and _same(r.get("name"), name)),
            None,
        )

    def find_user_by_email(self, email: str) -> str | None:
        return next((r["id"] for r in self.rows("users") if _same(r.get("email"), email)), None)

    def find_membership(self, tenant_id: str, user_id: str) -> str | None:
        return next(
            (
                r["id"]
                for r in self.rows("tenant_users")
                if r.get("tenant_id") == tenant_id and r.get("user_id") == user_id
            ),
            None,
        )

    def find_guardian_link(self, tenant_id: str, user_id: str, student_id: str) -> str | None:
        return next(
            (
                r["id"]
                for r in self.rows("guardians")
                if r.get("tenant_id") == tenant_id and r.get("user_id") == user_id and r.get("student_id") == student_id
            ),
            None,
        )

    # -- tagged writes -------------------------------------------------
    def insert_row(self, table: str, values: dict[str, Any], *, tenant_id: str | None, job_id: str) -> str:
        check_table(table)
        fault = self.insert_faults.get(table)
        if fault is not None and fault(values):
            raise PersistenceError(f"insert into {table} failed")
        row = {"id": _new_id(), **values, "import_job_id": job_id}
        if table not in GLOBAL_TABLES:
            row["tenant_id"] = tenant_id
        self.tables[table].append(row)
        self._on_rollback(lambda: self.tables[table].remove(row))
        return row["id"]

    def upsert_attendance(self, values: dict[str, Any], *, tenant_id: str, job_id: str) -> tuple[str, bool]:
        fault = self.insert_faults.get("attendance_records")
        if fault is not None and fault(values):
            raise PersistenceError("insert into attendance_records failed")
        for r in self.rows("attendance_records"):
            if (
                r.get("tenant_id") == tenant_id
                and r.get("student_id") == values.get("student_id")
                and r.get("date") == values.get("date")
            ):
                before = dict(r)
                self._on_rollback(lambda: (r.clear(), r.update(before)))
                r.update({k: v for k, v in values.items() if k not in ("student_id", "date")})
                return r["id"], False
        row = {"id": _new_id(), **values, "tenant_id": tenant_id, "import_job_id": job_id}
        self.tables["attendance_records"].append(row)
        self._on_rollback(lambda: self.tables["attendance_records"].remove(row))
        return row["id"], True

    def _tagged(self, table: str, tenant_id: str, job_id: str, row: dict[str, Any]) -> bool:
        if row.get("import_job_id") != job_id:
            return False
        return table in GLOBAL_TABLES or row.get("tenant_id") == tenant_id

    def delete_tagged(self, table: str, tenant_id: str, job_id: str) -> int:
        check_table(table)
        if table in self.delete_faults:
            raise PersistenceError(f"delete from {table} failed")
        before = self.tables[table]
        kept = [r for r in before if not self._tagged(table, tenant_id, job_id, r)]
        self.tables[table] = kept
        self._on_rollback(lambda: self.tables.__setitem__(table, before))
        return len(before) - len(kept)

    def count_tagged(self, table: str, tenant_id: str, job_id: str) -> int:
        check_table(table)
        return sum(1 for r in self.tables[table] if self._tagged(table, tenant_id, job_id, r))

    # -- jobs ----------------------------------------------------------
    def create_job(self, job: ImportJob) -> ImportJob:
        if job.id in self.jobs:
            raise PersistenceError(f"import job {job.id} already exists")
        self.jobs[job.id] = job
        self._on_rollback(lambda: self.jobs.pop(job.id, None))
        return job

    def update_job(self, job: ImportJob) -> ImportJob:
        current = self.jobs.get(job.id)
        if current is None or current.tenant_id != job.tenant_id:
            raise PersistenceError(f"import job {job.id} not found for update")
        self.jobs[job.id] = job
        self._on_rollback(lambda: self.jobs.__setitem__(job.id, current))
        return job

    def get_job(self, tenant_id: str, job_id: str) -> ImportJob | None:
        job = self.jobs.get(job_id)
        if job is None or job.tenant_id != tenant_id:
            return None
        return job

    def list_jobs(self, tenant_id: str, limit: int = 20) -> list[ImportJob]:
        jobs = [j for j in self.jobs.values() if j.tenant_id == tenant_id]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    def add_job_record(self, tenant_id: str, record: ImportJobRecord) -> None:
        self.job_records.append((tenant_id, record))
        self._on_rollback(self.job_records.pop)

    def list_job_records(self, tenant_id: str, job_id: str) -> list[ImportJobRecord]:
        out = [r for t, r in self.job_records if t == tenant_id and r.job_id == job_id]
        return sorted(out, key=lambda r: r.row_number)

    # -- audit ---------------------------------------------------------
    def record_audit(
        self,
        *,
        tenant_id: str,
        user_id: str,
        action: str,
        entity_type: str,
        entity_id: str,
        metadata: dict[str, Any],
    ) -> None:
        self.audit_log.append({
            "tenant_id": tenant_id,
            "user_id": user_id,
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "metadata": dict(metadata),
        })
        self._on_rollback(self.audit_log.pop)

    # -- raw fetches ---------------------------------------------------
    def _tenant_rows(self, table: str, tenant_id: str) -> list[dict[str, Any]]:
        return [r for r in self.rows(table) if r.get("tenant_id") == tenant_id]

    def fetch_students(self, tenant_id: str) -> list[dict[str, Any]]:
        return [
            {"id": r["id"], "first_name": r.get("first_name"), "last_name": r.get("last_name"), "dob": r.get("dob")}
            for r in self._tenant_rows("students", tenant_id)
        ]

    def fetch_classes(self, tenant_id: str) -> list[dict[str, Any]]:
        return [{"id": r["id"], "name": r.get("name")} for r in self._tenant_rows("classes", tenant_id)]

    def fetch_roles(self, tenant_id: str) -> list[dict[str, Any]]:
        rows = [{"id": r["id"], "name": r.get("name")} for r in self._tenant_rows("roles", tenant_id)]
        return sorted(rows, key=lambda r: r["name"] or "")

    def _with_student(self, table: str, tenant_id: str, extra: Callable[[dict[str, Any]], dict[str, Any]]):
        out = []
        for r in self._tenant_rows(table, tenant_id):
            student = self._by_id("students", r.get("student_id"))
            if student is None:
                continue
            out.append({"first_name": student.get("first_name"), "last_name": student.get("last_name"), **extra(r)})
        return out

    def fetch_guardian_links(self, tenant_id: str) -> list[dict[str, Any]]:
        def email(r: dict[str, Any]) -> dict[str, Any]:
            user = self._by_id("users", r.get("user_id"))
            return {"email": user.get("email") if user else None}

        return [g for g in self._with_student("guardians", tenant_id, email) if g["email"]]

    def fetch_emergency_contacts(self, tenant_id: str) -> list[dict[str, Any]]:
        return self._with_student("emergency_contacts", tenant_id, lambda r: {"name": r.get("name")})

    def fetch_medical_conditions(self, tenant_id: str) -> list[dict[str, Any]]:
        return self._with_student(
            "medical_conditions", tenant_id, lambda r: {"condition_name": r.get("condition_name")}
        )

    def fetch_staff_emails(self, tenant_id: str) -> list[str]:
        out = []
        for m in self._tenant_rows("tenant_users", tenant_id):
            user = self._by_id("users", m.get("user_id"))
            if user is not None and user.get("email"):
                out.append(user["email"])
        return out

    def fetch_attendance(self, tenant_id: str, since: date) -> list[dict[str, Any]]:
        rows = self._with_student("attendance_records", tenant_id, lambda r: {"date": r.get("date")})
        return [r for r in rows if r["date"] is not None and r["date"] >= since]
