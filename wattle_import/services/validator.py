from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any

from ..db.store import ExistingData, natural_key
from ..models.import_type import FieldDescriptor, FieldType, ImportType, get_fields
from ..models.parsed_table import ParsedTable
from ..models.validation import RowIssue, ValidatedRow, ValidationResult, ValidationSummary
from . import normalizers

"""Row validator.

Every row is checked in full (no short-circuit) so the preview shows every
problem at once. Row problems are returned as RowIssue values; nothing here
raises for bad data.

Per row:
    1. apply the column mapping
    2. required fields
    3. typed normalization (date, email, phone, enum, boolean, integer, time)
    4. reference checks against ExistingData
    5. duplicate detection by natural key (earlier rows + existing records)
"""

__all__ = [
    "validate_import",
    "validate_row",
    "build_summary",
]

logger = logging.getLogger(__name__)

_STUDENT_REF_TYPES = (
    ImportType.GUARDIANS,
    ImportType.EMERGENCY_CONTACTS,
    ImportType.MEDICAL_CONDITIONS,
    ImportType.ATTENDANCE,
)

# Field keys forming the natural key of each import type
NATURAL_KEY_FIELDS: dict[ImportType, tuple[str, ...]] = {
    ImportType.STUDENTS: ("first_name", "last_name", "dob"),
    ImportType.GUARDIANS: ("student_first_name", "student_last_name", "guardian_email"),
    ImportType.EMERGENCY_CONTACTS: ("student_first_name", "student_last_name", "contact_name"),
    ImportType.MEDICAL_CONDITIONS: ("student_first_name", "student_last_name", "condition_name"),
    ImportType.STAFF: ("email",),
    ImportType.ATTENDANCE: ("student_first_name", "student_last_name", "date"),
}

# Key parts that may be blank and still identify a record
_OPTIONAL_KEY_PARTS = frozenset({"dob"})


def _coerce(import_type: ImportType, field: FieldDescriptor, value: str) -> tuple[Any, str | None]:
    """Return (typed value, error message). A message means the value is rejected."""
    ft = field.type
    if ft is FieldType.DATE:
        parsed = normalizers.parse_flexible_date(value)
        if parsed is None:
            return None, f'Invalid date format "{value}". Use DD/MM/YYYY, YYYY-MM-DD, or MM/DD/YYYY'
        return parsed, None
    if ft is FieldType.EMAIL:
        email = normalizers.normalize_email(value)
        if email is None:
            return None, f'Invalid email address "{value}"'
        return email, None
    if ft is FieldType.PHONE:
        phone = normalizers.normalize_phone(value)
        if phone is None:
            return None, f'Invalid phone number "{value}". Use 6 to 15 digits, optionally starting with +'
        return phone, None
    if ft is FieldType.ENUM:
        if import_type is ImportType.ATTENDANCE and field.key == "status":
            status = normalizers.normalize_attendance_status(value)
            if status is None:
                return None, (
                    f'Invalid attendance status "{value}". Must be one of: {", ".join(field.enum_values)}'
                )
            return status, None
        normalized = normalizers.normalize_enum(value, field.enum_values)
        if normalized is None:
            return None, f'Invalid value "{value}". Must be one of: {", ".join(field.enum_values)}'
        return normalized, None
    if ft is FieldType.BOOLEAN:
        flag = normalizers.parse_boolean(value)
        if flag is None:
            return None, f'Invalid boolean value "{value}". Use yes/no, true/false, or 1/0'
        return flag, None
    if ft is FieldType.INTEGER:
        number = normalizers.parse_positive_int(value)
        if number is None:
            return None, f'Invalid number "{value}". Use a whole number of 1 or more'
        return number, None
    return value, None


def _student_label(mapped: Mapping[str, Any]) -> str:
    return f'{mapped.get("student_first_name")} {mapped.get("student_last_name")}'


def _check_references(
    import_type: ImportType,
    row_number: int,
    mapped: dict[str, Any],
    existing: ExistingData,
    today: date,
    errors: list[RowIssue],
    warnings: list[RowIssue],
) -> None:
    if import_type in _STUDENT_REF_TYPES:
        first, last = mapped.get("student_first_name"), mapped.get("student_last_name")
        if first and last and not existing.has_student(first, last):
            errors.append(RowIssue(
                row_number,
                "student_first_name",
                f'Student "{_student_label(mapped)}" not found. Import students first.',
            ))

    if import_type is ImportType.STUDENTS:
        class_name = mapped.get("class_name")
        if class_name and natural_key(class_name) not in existing.class_names:
            warnings.append(RowIssue(
                row_number, "class_name", f'Class "{class_name}" doesn\'t exist and will be created'
            ))

    elif import_type is ImportType.GUARDIANS:
        email = mapped.get("guardian_email")
        if email and natural_key(email) in existing.guardian_emails:
            warnings.append(RowIssue(
                row_number,
                "guardian_email",
                f'Email "{email}" already exists. Will link existing account to this student.',
            ))

    elif import_type is ImportType.STAFF:
        role = mapped.get("role")
        if role and natural_key(role) not in existing.role_names:
            available = ", ".join(existing.role_labels) or "(none)"
            errors.append(RowIssue(
                row_number, "role", f'Role "{role}" doesn\'t exist. Available roles: {available}'
            ))

    elif import_type is ImportType.ATTENDANCE:
        day = mapped.get("date")
        if isinstance(day, date) and day > today:
            warnings.append(RowIssue(
                row_number, "date", f"Date {day.isoformat()} is in the future - intentional?"
            ))
        class_name = mapped.get("class_name")
        if class_name and natural_key(class_name) not in existing.class_names:
            warnings.append(RowIssue(
                row_number,
                "class_name",
                f'Class "{class_name}" doesn\'t exist. Attendance will be recorded without a class link.',
            ))


def _existing_keys(import_type: ImportType, existing: ExistingData) -> set[str]:
    return {
        ImportType.STUDENTS: existing.student_keys,
        ImportType.GUARDIANS: existing.guardian_keys,
        ImportType.EMERGENCY_CONTACTS: existing.emergency_contact_keys,
        ImportType.MEDICAL_CONDITIONS: existing.medical_condition_keys,
        ImportType.STAFF: existing.staff_emails,
        ImportType.ATTENDANCE: existing.attendance_keys,
    }[import_type]


def _row_key(import_type: ImportType, mapped: Mapping[str, Any]) -> str | None:
    parts = NATURAL_KEY_FIELDS[import_type]
    if any(mapped.get(p) in (None, "") for p in parts if p not in _OPTIONAL_KEY_PARTS):
        return None
    return natural_key(*(mapped.get(p) for p in parts))


def _duplicate_messages(import_type: ImportType, mapped: Mapping[str, Any]) -> tuple[str, str, str]:
    """(field, in-file message, existing-record message) for a duplicate row."""
    if import_type is ImportType.STUDENTS:
        name = f'{mapped.get("first_name")} {mapped.get("last_name")}'
        return (
            "first_name",
            f'Duplicate student "{name}" appears more than once in this file',
            f'Student "{name}" already exists in the system',
        )
    if import_type is ImportType.GUARDIANS:
        return (
            "guardian_email",
            f'Guardian "{mapped.get("guardian_email")}" is listed more than once for {_student_label(mapped)}',
            f'Guardian "{mapped.get("guardian_email")}" is already linked to {_student_label(mapped)}',
        )
    if import_type is ImportType.EMERGENCY_CONTACTS:
        return (
            "contact_name",
            f'Emergency contact "{mapped.get("contact_name")}" appears more than once for {_student_label(mapped)}',
            f'Emergency contact "{mapped.get("contact_name")}" already exists for {_student_label(mapped)}',
        )
    if import_type is ImportType.MEDICAL_CONDITIONS:
        return (
            "condition_name",
            f'Condition "{mapped.get("condition_name")}" appears more than once for {_student_label(mapped)}',
            f'Condition "{mapped.get("condition_name")}" already recorded for {_student_label(mapped)}',
        )
    if import_type is ImportType.STAFF:
        return (
            "email",
            f'Staff email "{mapped.get("email")}" appears more than once in this file',
            f'Staff member "{mapped.get("email")}" is already a member of this school',
        )
    day = mapped.get("date")
    day_text = day.isoformat() if isinstance(day, date) else str(day)
    return (
        "date",
        f"Duplicate attendance record for this student on {day_text}. Later row will overwrite.",
        f"Attendance record already exists for this student on {day_text}. Will be overwritten.",
    )


def validate_row(
    import_type: ImportType,
    row_number: int,
    raw: Mapping[str, str],
    mapping: Mapping[str, str],
    existing: ExistingData,
    seen: set[str],
    *,
    fields: Sequence[FieldDescriptor] | None = None,
    today: date | None = None,
) -> ValidatedRow:
    """Validate one row. `seen` collects natural keys of earlier valid rows and is updated in place."""
    fields = fields if fields is not None else get_fields(import_type)
    today = today or date.today()

    cells = {key: (raw.get(header) or "").strip() for header, key in mapping.items() if key}
    errors: list[RowIssue] = []
    warnings: list[RowIssue] = []
    mapped: dict[str, Any] = {}

    for field in fields:
        value = cells.get(field.key, "")
        if value == "":
            mapped[field.key] = None
            if field.required:
                errors.append(RowIssue(row_number, field.key, f"{field.label} is required"))
            continue
        if field.type is FieldType.TIME:
            parsed = normalizers.parse_time(value)
            if parsed is None:
                warnings.append(RowIssue(
                    row_number,
                    field.key,
                    f'Invalid time format "{value}". Use HH:MM or HH:MM AM/PM. Will be skipped.',
                ))
            mapped[field.key] = parsed
            continue
        typed, message = _coerce(import_type, field, value)
        if message is not None:
            errors.append(RowIssue(row_number, field.key, message))
        mapped[field.key] = typed

    _check_references(import_type, row_number, mapped, existing, today, errors, warnings)

    is_duplicate = False
    key = _row_key(import_type, mapped)
    if key is not None:
        field_key, in_file_msg, existing_msg = _duplicate_messages(import_type, mapped)
        if key in seen:
            is_duplicate = True
            warnings.append(RowIssue(row_number, field_key, in_file_msg))
        if key in _existing_keys(import_type, existing):
            is_duplicate = True
            warnings.append(RowIssue(row_number, field_key, existing_msg))
        if not errors:
            seen.add(key)

    return ValidatedRow(
        row_number=row_number,
        raw_data=dict(raw),
        mapped_data=mapped,
        errors=tuple(errors),
        warnings=tuple(warnings),
        is_duplicate=is_duplicate,
    )


def validate_import(
    import_type: ImportType,
    table: ParsedTable,
    mapping: Mapping[str, str],
    existing: ExistingData,
    *,
    today: date | None = None,
) -> ValidationResult:
    fields = get_fields(import_type)
    today = today or date.today()
    seen: set[str] = set()
    rows = [
        validate_row(import_type, i, raw, mapping, existing, seen, fields=fields, today=today)
        for i, raw in enumerate(table.rows, start=1)
    ]
    summary = build_summary(rows)
    logger.debug(
        f"validated {summary.total_rows} rows for {import_type.value}: valid={summary.valid_rows} "
        f"errors={summary.error_rows} duplicates={summary.duplicate_rows}"
    )
    return ValidationResult(rows=tuple(rows), summary=summary)


def build_summary(rows: Sequence[ValidatedRow]) -> ValidationSummary:
    errors_by_field: dict[str, int] = {}
    valid = error = warned = dupes = 0
    for row in rows:
        if row.is_valid:
            valid += 1
            if row.is_duplicate:
                dupes += 1
        else:
            error += 1
        if row.warnings:
            warned += 1
        for issue in row.errors:
            errors_by_field[issue.field] = errors_by_field.get(issue.field, 0) + 1
    return ValidationSummary(
        total_rows=len(rows),
        valid_rows=valid,
        error_rows=error,
        warning_rows=warned,
        duplicate_rows=dupes,
        errors_by_field=errors_by_field,
    )
