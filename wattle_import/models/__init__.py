"""Domain models for the CSV data-import pipeline.

Plain dataclasses and enums; no persistence logic lives here.
"""

from .context import MANAGE_DATA_IMPORT, OperatorContext
from .error_record import ErrorRecord
from .import_job import (
    ImportJob,
    ImportJobRecord,
    ImportJobStatus,
    ImportRecordStatus,
    InvalidStatusTransition,
)
from .import_type import FIELD_REGISTRY, FieldDescriptor, FieldType, ImportType, get_fields
from .parsed_table import ParsedTable
from .validation import RowIssue, ValidatedRow, ValidationResult, ValidationSummary

__all__ = [
    # Registry
    "FIELD_REGISTRY",
    "FieldDescriptor",
    "FieldType",
    "ImportType",
    "get_fields",
    # Pipeline values
    "ParsedTable",
    "RowIssue",
    "ValidatedRow",
    "ValidationResult",
    "ValidationSummary",
    # Jobs
    "ImportJob",
    "ImportJobRecord",
    "ImportJobStatus",
    "ImportRecordStatus",
    "InvalidStatusTransition",
    # Misc
    "ErrorRecord",
    "MANAGE_DATA_IMPORT",
    "OperatorContext",
]
