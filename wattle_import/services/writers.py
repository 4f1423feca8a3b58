from __future__ import annotations

import secrets
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..db.store import ImportStore, PersistenceError
from ..models.import_type import ImportType

"""Per-import-type row writers.

A writer receives one validated row (typed `mapped_data`) and creates the
domain records for it through the store. Every created row is tagged with the
job id so rollback can find it. References (student, class, role, user) are
resolved again here; anything that vanished since validation raises
PersistenceError and the executor records the row as failed.
"""

__all__ = [
    "WriteContext",
    "WriteOutcome",
    "WRITERS",
    "resolve_timezone",
    "INVITATION_TTL_DAYS",
    "PARENT_ROLE_NAME",
]

INVITATION_TTL_DAYS = 30
PARENT_ROLE_NAME = "Parent"


def resolve_timezone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError as e:
        raise ValueError(f"unknown timezone: {name}") from e


@dataclass(frozen=True)
class WriteContext:
    store: ImportStore
    tenant_id: str
    user_id: str
    job_id: str
    tz: tzinfo = UTC

    def insert(self, table: str, values: dict[str, Any]) -> str:
        return self.store.insert_row(table, values, tenant_id=self.tenant_id, job_id=self.job_id)

    def today(self) -> date:
        return datetime.now(self.tz).date()


@dataclass(frozen=True)
class WriteOutcome:
    entity_type: str
    entity_id: str | None


def _require_student(ctx: WriteContext, data: Mapping[str, Any]) -> str:
    first, last = data["student_first_name"], data["student_last_name"]
    student_id = ctx.store.find_student(ctx.tenant_id, first, last)
    if student_id is None:
        raise PersistenceError(f'Student "{first} {last}" not found')
    return student_id


def write_student(ctx: WriteContext, data: Mapping[str, Any]) -> WriteOutcome:
    student_id = ctx.insert("students", {
        "first_name": data["first_name"],
        "last_name": data["last_name"],
        "preferred_name": data.get("preferred_name"),
        "dob": data.get("dob"),
        "gender": data.get("gender"),
        "enrollment_status": data.get("enrollment_status") or "active",
        "notes": data.get("notes"),
    })
    class_name = data.get("class_name")
    if class_name:
        class_id = ctx.store.find_class(ctx.tenant_id, class_name)
        if class_id is None:
            class_id = ctx.insert("classes", {"name": class_name, "is_active": True})
        ctx.insert("enrollments", {
            "student_id": student_id,
            "class_id": class_id,
            "start_date": ctx.today(),
            "status": "active",
        })
    return WriteOutcome("student", student_id)


def write_guardian(ctx: WriteContext, data: Mapping[str, Any]) -> WriteOutcome:
    student_id = _require_student(ctx, data)
    email = data["guardian_email"]
    user_id = ctx.store.find_user_by_email(email)

    if user_id is None:
        # No account yet: the guardian link is created when the invitation is accepted
        invite_id = ctx.insert("parent_invitations", {
            "email": email,
            "student_id": student_id,
            "invited_by": ctx.user_id,
            "token": secrets.token_urlsafe(32),
            "status": "pending",
            "expires_at": datetime.now(UTC) + timedelta(days=INVITATION_TTL_DAYS),
        })
        return WriteOutcome("parent_invitation", invite_id)

    link_id = ctx.store.find_guardian_link(ctx.tenant_id, user_id, student_id)
    if link_id is None:
        link_id = ctx.insert("guardians", {
            "user_id": user_id,
            "student_id": student_id,
            "relationship": data.get("relationship") or "other",
            "is_primary": bool(data.get("is_primary")),
            "is_emergency_contact": bool(data.get("is_emergency_contact")),
            "pickup_authorized": data.get("pickup_authorized") is not False,
            "phone": data.get("phone"),
            "media_consent": False,
            "directory_consent": False,
        })

    parent_role = ctx.store.find_role(ctx.tenant_id, PARENT_ROLE_NAME)
    if parent_role is not None and ctx.store.find_membership(ctx.tenant_id, user_id) is None:
        ctx.insert("tenant_users", {"user_id": user_id, "role_id": parent_role})
    return WriteOutcome("guardian", link_id)


def write_emergency_contact(ctx: WriteContext, data: Mapping[str, Any]) -> WriteOutcome:
    student_id = _require_student(ctx, data)
    contact_id = ctx.insert("emergency_contacts", {
        "student_id": student_id,
        "name": data["contact_name"],
        "relationship": data["relationship"],
        "phone_primary": data["phone_primary"],
        "phone_secondary": data.get("phone_secondary"),
        "email": data.get("email"),
        "priority_order": data.get("priority_order") or 1,
        "notes": data.get("notes"),
    })
    return WriteOutcome("emergency_contact", contact_id)


def write_medical_condition(ctx: WriteContext, data: Mapping[str, Any]) -> WriteOutcome:
    student_id = _require_student(ctx, data)
    condition_id = ctx.insert("medical_conditions", {
        "student_id": student_id,
        "condition_type": data["condition_type"],
        "condition_name": data["condition_name"],
        "severity": data["severity"],
        "description": data.get("description"),
        "action_plan": data.get("action_plan"),
        "requires_medication": bool(data.get("requires_medication")),
        "medication_name": data.get("medication_name"),
        "medication_location": data.get("medication_location"),
    })
    return WriteOutcome("medical_condition", condition_id)


def write_staff(ctx: WriteContext, data: Mapping[str, Any]) -> WriteOutcome:
    role_id = ctx.store.find_role(ctx.tenant_id, data["role"])
    if role_id is None:
        raise PersistenceError(f'Role "{data["role"]}" not found')

    email = data["email"]
    user_id = ctx.store.find_user_by_email(email)
    if user_id is None:
        user_id = ctx.store.insert_row(
            "users",
            {"email": email, "first_name": data["first_name"], "last_name": data["last_name"]},
            tenant_id=None,
            job_id=ctx.job_id,
        )
    else:
        membership_id = ctx.store.find_membership(ctx.tenant_id, user_id)
        if membership_id is not None:
            # Already on staff; counts as imported but creates nothing
            return WriteOutcome("staff", membership_id)

    membership_id = ctx.insert("tenant_users", {"user_id": user_id, "role_id": role_id})
    return WriteOutcome("staff", membership_id)


def _at(day: date, moment: time | None, tz: tzinfo) -> datetime | None:
    if moment is None:
        return None
    return datetime.combine(day, moment, tzinfo=tz)


def write_attendance(ctx: WriteContext, data: Mapping[str, Any]) -> WriteOutcome:
    student_id = _require_student(ctx, data)
    class_id = None
    if data.get("class_name"):
        class_id = ctx.store.find_class(ctx.tenant_id, data["class_name"])
    day: date = data["date"]
    record_id, _created = ctx.store.upsert_attendance(
        {
            "student_id": student_id,
            "class_id": class_id,
            "date": day,
            "status": data["status"],
            "check_in_at": _at(day, data.get("check_in_time"), ctx.tz),
            "check_out_at": _at(day, data.get("check_out_time"), ctx.tz),
            "notes": data.get("notes"),
            "recorded_by": ctx.user_id,
        },
        tenant_id=ctx.tenant_id,
        job_id=ctx.job_id,
    )
    return WriteOutcome("attendance_record", record_id)


WRITERS: dict[ImportType, Callable[[WriteContext, Mapping[str, Any]], WriteOutcome]] = {
    ImportType.STUDENTS: write_student,
    ImportType.GUARDIANS: write_guardian,
    ImportType.EMERGENCY_CONTACTS: write_emergency_contact,
    ImportType.MEDICAL_CONDITIONS: write_medical_condition,
    ImportType.STAFF: write_staff,
    ImportType.ATTENDANCE: write_attendance,
}
