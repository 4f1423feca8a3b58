from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from functools import partial
from typing import Any

import psycopg2
from psycopg2.extras import Json

from ..models.import_job import ImportJob, ImportJobRecord, ImportJobStatus, ImportRecordStatus
from ..models.import_type import ImportType
from ..models.validation import RowIssue
from .store import GLOBAL_TABLES, ImportStore, PersistenceError, check_table

"""PostgreSQL implementation of ImportStore.

Expects a psycopg2 cursor created with RealDictCursor on a connection in
autocommit mode; `transaction()` issues explicit BEGIN / COMMIT / ROLLBACK so
per-row writes and rollback deletes are atomic. Table names are checked
against TAGGED_TABLES before being interpolated; values always go through
parameters.
"""

__all__ = [
    "PostgresImportStore",
]

_dumps = partial(json.dumps, default=str)

_JOB_COLUMNS = (
    "id, tenant_id, created_by, import_type, status, file_name, column_mapping, "
    "total_rows, imported_count, skipped_count, error_count, errors, metadata, "
    "created_at, updated_at, completed_at"
)


def _json(value: Any) -> Json:
    return Json(value, dumps=_dumps)


def _job_from_row(row: dict[str, Any]) -> ImportJob:
    return ImportJob(
        id=str(row["id"]),
        tenant_id=str(row["tenant_id"]),
        created_by=str(row["created_by"]),
        import_type=ImportType(row["import_type"]),
        file_name=row["file_name"],
        status=ImportJobStatus(row["status"]),
        column_mapping=dict(row.get("column_mapping") or {}),
        total_rows=row["total_rows"],
        imported_count=row["imported_count"],
        skipped_count=row["skipped_count"],
        error_count=row["error_count"],
        errors=tuple(RowIssue(e["row"], e["field"], e["message"]) for e in (row.get("errors") or [])),
        metadata=dict(row.get("metadata") or {}),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        completed_at=row.get("completed_at"),
    )


class PostgresImportStore(ImportStore):
    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor
        self._in_transaction = False

    # -- plumbing ------------------------------------------------------
    def _execute(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> None:
        try:
            self._cursor.execute(sql, params)
        except psycopg2.Error as e:
            raise PersistenceError(str(e).strip() or e.__class__.__name__) from e

    def _fetchone(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> dict[str, Any] | None:
        self._execute(sql, params)
        return self._cursor.fetchone()

    def _fetchall(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> list[dict[str, Any]]:
        self._execute(sql, params)
        return list(self._cursor.fetchall())

    def _scalar_id(self, sql: str, params: tuple[Any, ...]) -> str | None:
        row = self._fetchone(sql, params)
        return str(row["id"]) if row else None

    @contextmanager
    def transaction(self) -> Iterator[PostgresImportStore]:
        if self._in_transaction:
            raise PersistenceError("nested transactions are not supported")
        self._execute("BEGIN")
        self._in_transaction = True
        try:
            yield self
        except Exception:
            self._in_transaction = False
            self._cursor.execute("ROLLBACK")
            raise
        self._in_transaction = False
        self._execute("COMMIT")

    # -- lookups -------------------------------------------------------
    def find_student(self, tenant_id: str, first_name: str, last_name: str) -> str | None:
        return self._scalar_id(
            "SELECT id FROM students WHERE tenant_id = %s AND deleted_at IS NULL "
            "AND lower(first_name) = lower(%s) AND lower(last_name) = lower(%s) "
            "ORDER BY created_at LIMIT 1",
            (tenant_id, first_name.strip(), last_name.strip()),
        )

    def find_class(self, tenant_id: str, name: str) -> str | None:
        return self._scalar_id(
            "SELECT id FROM classes WHERE tenant_id = %s AND deleted_at IS NULL "
            "AND lower(name) = lower(%s) LIMIT 1",
            (tenant_id, name.strip()),
        )

    def find_role(self, tenant_id: str, name: str) -> str | None:
        return self._scalar_id(
            "SELECT id FROM roles WHERE tenant_id = %s AND lower(name) = lower(%s) LIMIT 1",
            (tenant_id, name.strip()),
        )

    def find_user_by_email(self, email: str) -> str | None:
        return self._scalar_id(
            "SELECT id FROM users WHERE lower(email) = lower(%s) LIMIT 1",
            (email.strip(),),
        )

    def find_membership(self, tenant_id: str, user_id: str) -> str | None:
        return self._scalar_id(
            "SELECT id FROM tenant_users WHERE tenant_id = %s AND user_id = %s LIMIT 1",
            (tenant_id, user_id),
        )

    def find_guardian_link(self, tenant_id: str, user_id: str, student_id: str) -> str | None:
        return self._scalar_id(
            "SELECT id FROM guardians WHERE tenant_id = %s AND user_id = %s AND student_id = %s "
            "AND deleted_at IS NULL LIMIT 1",
            (tenant_id, user_id, student_id),
        )

    # -- tagged writes -------------------------------------------------
    def insert_row(self, table: str, values: dict[str, Any], *, tenant_id: str | None, job_id: str) -> str:
        check_table(table)
        row = dict(values)
        if table not in GLOBAL_TABLES:
            row["tenant_id"] = tenant_id
        row["import_job_id"] = job_id
        cols = list(row)
        cols_sql = ",".join(f'"{c}"' for c in cols)
        placeholders = ",".join(["%s"] * len(cols))
        params = [_json(v) if isinstance(v, (dict, list)) else v for v in row.values()]
        result = self._fetchone(f'INSERT INTO "{table}" ({cols_sql}) VALUES ({placeholders}) RETURNING id', params)
        if result is None:
            raise PersistenceError(f"insert into {table} returned no id")
        return str(result["id"])

    def upsert_attendance(self, values: dict[str, Any], *, tenant_id: str, job_id: str) -> tuple[str, bool]:
        row = dict(values)
        row["tenant_id"] = tenant_id
        row["import_job_id"] = job_id
        cols = list(row)
        cols_sql = ",".join(f'"{c}"' for c in cols)
        placeholders = ",".join(["%s"] * len(cols))
        # import_job_id is left untouched on conflict so rollback never removes
        # a record this job only overwrote
        updates = ",".join(
            f'"{c}" = EXCLUDED."{c}"' for c in cols if c not in ("tenant_id", "student_id", "date", "import_job_id")
        )
        sql = (
            f'INSERT INTO "attendance_records" ({cols_sql}) VALUES ({placeholders}) '
            f"ON CONFLICT (tenant_id, student_id, date) DO UPDATE SET {updates} "
            "RETURNING id, (xmax = 0) AS inserted"
        )
        result = self._fetchone(sql, list(row.values()))
        if result is None:
            raise PersistenceError("attendance upsert returned no id")
        return str(result["id"]), bool(result["inserted"])

    def delete_tagged(self, table: str, tenant_id: str, job_id: str) -> int:
        check_table(table)
        if table in GLOBAL_TABLES:
            self._execute(f'DELETE FROM "{table}" WHERE import_job_id = %s', (job_id,))
        else:
            self._execute(f'DELETE FROM "{table}" WHERE tenant_id = %s AND import_job_id = %s', (tenant_id, job_id))
        return self._cursor.rowcount

    def count_tagged(self, table: str, tenant_id: str, job_id: str) -> int:
        check_table(table)
        if table in GLOBAL_TABLES:
            row = self._fetchone(f'SELECT count(*) AS n FROM "{table}" WHERE import_job_id = %s', (job_id,))
        else:
            row = self._fetchone(
                f'SELECT count(*) AS n FROM "{table}" WHERE tenant_id = %s AND import_job_id = %s',
                (tenant_id, job_id),
            )
        return int(row["n"]) if row else 0

    # -- jobs ----------------------------------------------------------
    def _job_params(self, job: ImportJob) -> tuple[Any, ...]:
        return (
            job.status.value,
            _json(job.column_mapping),
            job.total_rows,
            job.imported_count,
            job.skipped_count,
            job.error_count,
            _json([e.to_dict() for e in job.errors]),
            _json(job.metadata),
            job.updated_at,
            job.completed_at,
        )

    def create_job(self, job: ImportJob) -> ImportJob:
        self._execute(
            "INSERT INTO import_jobs (id, tenant_id, created_by, import_type, file_name, created_at, "
            "status, column_mapping, total_rows, imported_count, skipped_count, error_count, errors, "
            "metadata, updated_at, completed_at) "
            "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)",
            (job.id, job.tenant_id, job.created_by, job.import_type.value, job.file_name, job.created_at)
            + self._job_params(job),
        )
        return job

    def update_job(self, job: ImportJob) -> ImportJob:
        self._execute(
            "UPDATE import_jobs SET status = %s, column_mapping = %s, total_rows = %s, "
            "imported_count = %s, skipped_count = %s, error_count = %s, errors = %s, metadata = %s, "
            "updated_at = %s, completed_at = %s WHERE id = %s AND tenant_id = %s",
            self._job_params(job) + (job.id, job.tenant_id),
        )
        if self._cursor.rowcount == 0:
            raise PersistenceError(f"import job {job.id} not found for update")
        return job

    def get_job(self, tenant_id: str, job_id: str) -> ImportJob | None:
        row = self._fetchone(
            f"SELECT {_JOB_COLUMNS} FROM import_jobs WHERE id = %s AND tenant_id = %s",
            (job_id, tenant_id),
        )
        return _job_from_row(row) if row else None

    def list_jobs(self, tenant_id: str, limit: int = 20) -> list[ImportJob]:
        rows = self._fetchall(
            f"SELECT {_JOB_COLUMNS} FROM import_jobs WHERE tenant_id = %s ORDER BY created_at DESC LIMIT %s",
            (tenant_id, limit),
        )
        return [_job_from_row(r) for r in rows]

    def add_job_record(self, tenant_id: str, record: ImportJobRecord) -> None:
        self._execute(
            "INSERT INTO import_job_records (tenant_id, import_job_id, row_number, status, entity_type, "
            "entity_id, raw_data, mapped_data, error_message) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)",
            (
                tenant_id,
                record.job_id,
                record.row_number,
                record.status.value,
                record.entity_type,
                record.entity_id,
                _json(record.raw_data),
                _json(record.mapped_data),
                record.error_message,
            ),
        )

    def list_job_records(self, tenant_id: str, job_id: str) -> list[ImportJobRecord]:
        rows = self._fetchall(
            "SELECT import_job_id, row_number, status, entity_type, entity_id, raw_data, mapped_data, "
            "error_message FROM import_job_records WHERE tenant_id = %s AND import_job_id = %s "
            "ORDER BY row_number",
            (tenant_id, job_id),
        )
        return [
            ImportJobRecord(
                job_id=str(r["import_job_id"]),
                row_number=r["row_number"],
                status=ImportRecordStatus(r["status"]),
                entity_type=r["entity_type"],
                entity_id=str(r["entity_id"]) if r.get("entity_id") else None,
                raw_data=dict(r.get("raw_data") or {}),
                mapped_data=dict(r.get("mapped_data") or {}),
                error_message=r.get("error_message"),
            )
            for r in rows
        ]

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
        self._execute(
            "INSERT INTO audit_logs (tenant_id, user_id, action, entity_type, entity_id, metadata) "
            "VALUES (%s, %s, %s, %s, %s, %s)",
            (tenant_id, user_id, action, entity_type, entity_id, _json(metadata)),
        )

    # -- raw fetches ---------------------------------------------------
    def fetch_students(self, tenant_id: str) -> list[dict[str, Any]]:
        return self._fetchall(
            "SELECT id, first_name, last_name, dob FROM students WHERE tenant_id = %s AND deleted_at IS NULL",
            (tenant_id,),
        )

    def fetch_classes(self, tenant_id: str) -> list[dict[str, Any]]:
        return self._fetchall(
            "SELECT id, name FROM classes WHERE tenant_id = %s AND deleted_at IS NULL",
            (tenant_id,),
        )

    def fetch_roles(self, tenant_id: str) -> list[dict[str, Any]]:
        return self._fetchall("SELECT id, name FROM roles WHERE tenant_id = %s ORDER BY name", (tenant_id,))

    def fetch_guardian_links(self, tenant_id: str) -> list[dict[str, Any]]:
        return self._fetchall(
            "SELECT s.first_name, s.last_name, u.email FROM guardians g "
            "JOIN students s ON s.id = g.student_id JOIN users u ON u.id = g.user_id "
            "WHERE g.tenant_id = %s AND g.deleted_at IS NULL",
            (tenant_id,),
        )

    def fetch_emergency_contacts(self, tenant_id: str) -> list[dict[str, Any]]:
        return self._fetchall(
            "SELECT s.first_name, s.last_name, e.name FROM emergency_contacts e "
            "JOIN students s ON s.id = e.student_id WHERE e.tenant_id = %s",
            (tenant_id,),
        )

    def fetch_medical_conditions(self, tenant_id: str) -> list[dict[str, Any]]:
        return self._fetchall(
            "SELECT s.first_name, s.last_name, m.condition_name FROM medical_conditions m "
            "JOIN students s ON s.id = m.student_id WHERE m.tenant_id = %s",
            (tenant_id,),
        )

    def fetch_staff_emails(self, tenant_id: str) -> list[str]:
        rows = self._fetchall(
            "SELECT u.email FROM tenant_users tu JOIN users u ON u.id = tu.user_id WHERE tu.tenant_id = %s",
            (tenant_id,),
        )
        return [r["email"] for r in rows]

    def fetch_attendance(self, tenant_id: str, since: date) -> list[dict[str, Any]]:
        return self._fetchall(
            "SELECT s.first_name, s.last_name, a.date FROM attendance_records a "
            "JOIN students s ON s.id = a.student_id WHERE a.tenant_id = %s AND a.date >= %s",
            (tenant_id, since),
        )
