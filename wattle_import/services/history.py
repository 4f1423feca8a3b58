from __future__ import annotations

from collections.abc import Iterable

from ..db.store import ImportStore
from ..models.context import OperatorContext
from ..models.import_job import ImportJob
from .permissions import require_capability

__all__ = [
    "get_import_history",
    "rollback_eligible",
]


def get_import_history(store: ImportStore, context: OperatorContext, limit: int = 20) -> list[ImportJob]:
    """Most recent jobs of the operator's tenant, newest first."""
    require_capability(context)
    return store.list_jobs(context.tenant_id, limit=limit)


def rollback_eligible(jobs: Iterable[ImportJob]) -> list[str]:
    return [j.id for j in jobs if j.is_rollback_eligible]
