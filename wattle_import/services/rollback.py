from __future__ import annotations

import logging
from dataclasses import dataclass

from ..db.store import ImportStore, PersistenceError
from ..models.context import OperatorContext
from ..models.import_job import ImportJob, ImportJobStatus, InvalidStatusTransition
from ..models.import_type import ImportType
from .permissions import require_capability

"""Job rollback.

Deletes every row tagged with the job id, children before parents, and moves
the job to rolled_back, all inside one store transaction. A failure part way
through restores everything and leaves the job in its previous status so the
operator can retry.

Attendance records that an import overwrote (rather than created) are not
tagged and therefore keep their imported values after rollback.
"""

__all__ = [
    "JobNotFound",
    "RollbackFailed",
    "RollbackResult",
    "ROLLBACK_TABLES",
    "rollback_import",
]

logger = logging.getLogger(__name__)

# Deletion order per import type; dependents first
ROLLBACK_TABLES: dict[ImportType, tuple[str, ...]] = {
    ImportType.STUDENTS: ("enrollments", "students", "classes"),
    ImportType.GUARDIANS: ("tenant_users", "guardians", "parent_invitations"),
    ImportType.EMERGENCY_CONTACTS: ("emergency_contacts",),
    ImportType.MEDICAL_CONDITIONS: ("medical_conditions",),
    ImportType.STAFF: ("tenant_users", "users"),
    ImportType.ATTENDANCE: ("attendance_records",),
}


class JobNotFound(Exception):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"import job not found: {job_id}")
        self.job_id = job_id


class RollbackFailed(Exception):
    """Raised when deletion fails; the job keeps its status and can be retried."""

    def __init__(self, job_id: str, cause: Exception) -> None:
        super().__init__(f"rollback of import job {job_id} failed: {cause}")
        self.job_id = job_id


@dataclass(frozen=True)
class RollbackResult:
    job: ImportJob
    rolled_back_count: int
    deleted_by_table: dict[str, int]


def rollback_import(store: ImportStore, context: OperatorContext, job_id: str) -> RollbackResult:
    require_capability(context)

    job = store.get_job(context.tenant_id, job_id)
    if job is None:
        raise JobNotFound(job_id)
    if not job.is_rollback_eligible:
        raise InvalidStatusTransition(job.status, ImportJobStatus.ROLLED_BACK)

    deleted: dict[str, int] = {}
    try:
        with store.transaction():
            for table in ROLLBACK_TABLES[job.import_type]:
                deleted[table] = store.delete_tagged(table, context.tenant_id, job.id)
            total = sum(deleted.values())
            job = store.update_job(job.transition_to(
                ImportJobStatus.ROLLED_BACK,
                metadata={**job.metadata, "rolled_back_count": total, "rolled_back_by": context.user_id},
            ))
            store.record_audit(
                tenant_id=context.tenant_id,
                user_id=context.user_id,
                action="import.rolled_back",
                entity_type="import_job",
                entity_id=job.id,
                metadata={
                    "import_type": job.import_type.value,
                    "file_name": job.file_name,
                    "rolled_back_count": total,
                    "deleted": dict(deleted),
                },
            )
    except PersistenceError as e:
        logger.error(f"rollback of import job {job_id} failed: {e}")
        raise RollbackFailed(job_id, e) from e

    logger.info(f"import job {job.id} rolled back: {total} record(s) removed")
    return RollbackResult(job=job, rolled_back_count=total, deleted_by_table=deleted)
