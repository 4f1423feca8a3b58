from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time
from typing import Any

from ..db.store import ImportStore, PersistenceError
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.context import OperatorContext
from ..models.import_job import ImportJob, ImportJobRecord, ImportJobStatus, ImportRecordStatus
from ..models.import_type import ImportType
from ..models.validation import RowIssue, ValidatedRow
from .permissions import require_capability
from .progress import RowProgress
from .writers import WRITERS, WriteContext, resolve_timezone

"""Import executor.

Turns validated rows into domain records and an ImportJob.

Flow:
    1. capability check
    2. job created as pending, moved to importing
    3. rows processed sequentially; each writer call runs in its own store
       transaction so a failed row leaves nothing behind
    4. final status from the counts, job persisted, audit entry written,
       row errors flushed to the JSON Lines error log

Row failures never abort the job. Only a failure to create or persist the job
itself propagates to the caller.
"""

__all__ = [
    "execute_import",
    "final_status",
    "ERROR_TYPE_VALIDATION",
    "ERROR_TYPE_PERSISTENCE",
    "ERROR_TYPE_JOB",
]

logger = logging.getLogger(__name__)

ERROR_TYPE_VALIDATION = "VALIDATION_ERROR"
ERROR_TYPE_PERSISTENCE = "PERSISTENCE_ERROR"
ERROR_TYPE_JOB = "JOB_ERROR"

# Per-row error messages kept on the job itself; the full list is in job records
MAX_JOB_ERRORS = 500


def final_status(imported: int, errors: int) -> ImportJobStatus:
    if errors and imported:
        return ImportJobStatus.COMPLETED_WITH_ERRORS
    if errors:
        return ImportJobStatus.FAILED
    return ImportJobStatus.COMPLETED


def _jsonable(data: Mapping[str, Any]) -> dict[str, Any]:
    return {k: (v.isoformat() if isinstance(v, (date, time)) else v) for k, v in data.items()}


@dataclass
class _Counters:
    imported: int = 0
    skipped: int = 0
    errors: int = 0
    issues: list[RowIssue] = field(default_factory=list)


def execute_import(
    store: ImportStore,
    context: OperatorContext,
    *,
    import_type: ImportType,
    file_name: str,
    column_mapping: Mapping[str, str],
    validated_rows: Sequence[ValidatedRow],
    metadata: Mapping[str, Any] | None = None,
    skip_duplicates: bool = True,
    timezone: str = "UTC",
    error_log: ErrorLogBuffer | None = None,
    show_progress: bool | None = None,
) -> ImportJob:
    require_capability(context)
    tz = resolve_timezone(timezone)
    writer = WRITERS[import_type]

    job = ImportJob(
        id=str(uuid.uuid4()),
        tenant_id=context.tenant_id,
        created_by=context.user_id,
        import_type=import_type,
        file_name=file_name,
        column_mapping=dict(column_mapping),
        total_rows=len(validated_rows),
        metadata=dict(metadata or {}),
    )
    store.create_job(job)
    job = store.update_job(job.transition_to(ImportJobStatus.IMPORTING))
    logger.info(f"import job {job.id} started: type={import_type.value} file={file_name} rows={job.total_rows}")

    ctx = WriteContext(store=store, tenant_id=context.tenant_id, user_id=context.user_id, job_id=job.id, tz=tz)
    counters = _Counters()

    def record(row: ValidatedRow, status: ImportRecordStatus, entity_id: str | None = None, error: str | None = None):
        store.add_job_record(context.tenant_id, ImportJobRecord(
            job_id=job.id,
            row_number=row.row_number,
            status=status,
            entity_type=import_type.value,
            entity_id=entity_id,
            raw_data=dict(row.raw_data),
            mapped_data=_jsonable(row.mapped_data),
            error_message=error,
        ))

    def fail(row: ValidatedRow, issues: Sequence[RowIssue], error_type: str) -> None:
        counters.errors += 1
        counters.issues.extend(issues)
        for issue in issues:
            if error_log is not None:
                error_log.append(ErrorRecord.create(
                    job.id, file_name, issue.row, issue.field, error_type, issue.message
                ))
        record(row, ImportRecordStatus.ERROR, error="; ".join(i.message for i in issues))

    # Attendance writes are idempotent upserts, so duplicates always go through
    skip_dupes = skip_duplicates and import_type is not ImportType.ATTENDANCE

    try:
        with RowProgress(len(validated_rows), description=import_type.value, enabled=show_progress) as progress:
            for row in validated_rows:
                if not row.is_valid:
                    fail(row, row.errors, ERROR_TYPE_VALIDATION)
                elif row.is_duplicate and skip_dupes:
                    counters.skipped += 1
                    record(row, ImportRecordStatus.SKIPPED)
                else:
                    try:
                        with store.transaction():
                            outcome = writer(ctx, row.mapped_data)
                    except PersistenceError as e:
                        logger.debug(f"row {row.row_number} failed: {e}")
                        fail(row, [RowIssue(row.row_number, "", str(e))], ERROR_TYPE_PERSISTENCE)
                    else:
                        counters.imported += 1
                        record(row, ImportRecordStatus.IMPORTED, entity_id=outcome.entity_id)
                progress.advance(imported=counters.imported, errors=counters.errors)
    except Exception as e:
        # Job-level failure: keep whatever rows committed, but never leave the job in importing
        logger.error(f"import job {job.id} aborted: {e}")
        store.update_job(job.transition_to(
            ImportJobStatus.FAILED,
            imported_count=counters.imported,
            skipped_count=counters.skipped,
            error_count=counters.errors,
            errors=tuple(counters.issues[:MAX_JOB_ERRORS]) + (RowIssue(-1, "", str(e)),),
            completed_at=datetime.now(UTC),
        ))
        if error_log is not None:
            error_log.append(ErrorRecord.create(job.id, file_name, -1, "", ERROR_TYPE_JOB, str(e)))
            error_log.flush()
        raise

    status = final_status(counters.imported, counters.errors)
    job = store.update_job(job.transition_to(
        status,
        imported_count=counters.imported,
        skipped_count=counters.skipped,
        error_count=counters.errors,
        errors=tuple(counters.issues[:MAX_JOB_ERRORS]),
        completed_at=datetime.now(UTC),
    ))

    store.record_audit(
        tenant_id=context.tenant_id,
        user_id=context.user_id,
        action="import.completed",
        entity_type="import_job",
        entity_id=job.id,
        metadata={
            "import_type": import_type.value,
            "file_name": file_name,
            "total_rows": job.total_rows,
            "imported": job.imported_count,
            "skipped": job.skipped_count,
            "errors": job.error_count,
            "final_status": job.status.value,
        },
    )

    if error_log is not None:
        path = error_log.flush()
        if path is not None and counters.errors:
            logger.warning(f"{counters.errors} row(s) failed; details in {path}")

    logger.info(
        f"import job {job.id} finished: status={job.status.value} imported={job.imported_count} "
        f"skipped={job.skipped_count} errors={job.error_count}"
    )
    return job
