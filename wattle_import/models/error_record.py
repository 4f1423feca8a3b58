from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the per-job JSON Lines error log.

One record per row-level error raised during execution. `row = -1` marks a
job-level failure where no single row is at fault. The key set is fixed; a
consumer may rely on exactly these keys being present.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        job_id: Import job the error belongs to
        file: Uploaded file name
        row: 1-based data row number, or -1 when no row applies
        field: Target field key, empty when the error is not field specific
        error_type: Error classification in UPPER_SNAKE_CASE
        message: Human readable description
    """
    timestamp: str
    job_id: str
    file: str
    row: int
    field: str
    error_type: str
    message: str

    @staticmethod
    def create(job_id: str, file: str, row: int, field: str, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            job_id=job_id,
            file=file,
            row=row,
            field=field,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
