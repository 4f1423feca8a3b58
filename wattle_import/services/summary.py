from __future__ import annotations

from ..models.import_job import ImportJob
from ..models.validation import ValidationSummary

"""SUMMARY line rendering.

Format (one line, space separated key=value pairs):
    SUMMARY job=<id> type=<import type> status=<status> rows=<n>
            imported=<n> skipped=<n> errors=<n> elapsed_sec=<x>
    SUMMARY validate rows=<n> valid=<n> errors=<n> warnings=<n> duplicates=<n>
"""

__all__ = [
    "format_seconds",
    "render_summary_line",
    "render_validation_line",
]


def format_seconds(seconds: float) -> str:
    """Render elapsed time without scientific notation or trailing zeros.

    >>> format_seconds(2.0)
    '2'
    >>> format_seconds(0.0001234)
    '0.000123'
    """
    if seconds <= 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.3f}".rstrip("0").rstrip(".")


def render_summary_line(job: ImportJob, elapsed_seconds: float) -> str:
    return (
        f"SUMMARY job={job.id} "
        f"type={job.import_type.value} "
        f"status={job.status.value} "
        f"rows={job.total_rows} "
        f"imported={job.imported_count} "
        f"skipped={job.skipped_count} "
        f"errors={job.error_count} "
        f"elapsed_sec={format_seconds(elapsed_seconds)}"
    )


def render_validation_line(summary: ValidationSummary) -> str:
    return (
        f"SUMMARY validate rows={summary.total_rows} "
        f"valid={summary.valid_rows} "
        f"errors={summary.error_rows} "
        f"warnings={summary.warning_rows} "
        f"duplicates={summary.duplicate_rows}"
    )
