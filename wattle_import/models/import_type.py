from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

"""Import types and the static field registry.

Each import type accepts a fixed list of target fields. The registry below is
built once at import time and never mutated; adding an import type means
adding an entry here plus a writer in services/writers.py.
"""

__all__ = [
    "ImportType",
    "FieldType",
    "FieldDescriptor",
    "FIELD_REGISTRY",
    "get_fields",
    "required_keys",
]


class ImportType(Enum):
    """Domain categories an uploaded file can target."""
    STUDENTS = "students"
    GUARDIANS = "guardians"
    EMERGENCY_CONTACTS = "emergency_contacts"
    MEDICAL_CONDITIONS = "medical_conditions"
    STAFF = "staff"
    ATTENDANCE = "attendance"


class FieldType(Enum):
    TEXT = "text"
    DATE = "date"
    EMAIL = "email"
    PHONE = "phone"
    ENUM = "enum"
    BOOLEAN = "boolean"
    TIME = "time"
    INTEGER = "integer"


@dataclass(frozen=True)
class FieldDescriptor:
    """One target field of an import type.

    `aliases` are header spellings seen in exports from other platforms and
    are only consulted by the mapping suggester.
    """
    key: str
    label: str
    required: bool
    description: str
    example: str
    type: FieldType = FieldType.TEXT
    enum_values: tuple[str, ...] = ()
    aliases: tuple[str, ...] = ()


_STUDENT_FIRST = FieldDescriptor(
    key="student_first_name",
    label="Student First Name",
    required=True,
    description="First name of the student",
    example="Emma",
    aliases=("student first name", "child first name", "child_first_name"),
)
_STUDENT_LAST = FieldDescriptor(
    key="student_last_name",
    label="Student Last Name",
    required=True,
    description="Last name of the student",
    example="Thompson",
    aliases=("student last name", "child last name", "child_last_name"),
)

STUDENT_FIELDS: tuple[FieldDescriptor, ...] = (
    FieldDescriptor(
        key="first_name",
        label="First Name",
        required=True,
        description="Student's legal first name",
        example="Emma",
        aliases=("firstname", "given name", "child first name", "student first name", "forename", "fname"),
    ),
    FieldDescriptor(
        key="last_name",
        label="Last Name",
        required=True,
        description="Student's legal last name",
        example="Thompson",
        aliases=("lastname", "surname", "family name", "child last name", "student last name", "lname"),
    ),
    FieldDescriptor(
        key="preferred_name",
        label="Preferred Name",
        required=False,
        description="Name the student goes by (if different from first name)",
        example="Emmy",
        aliases=("nickname", "known as", "goes by", "display name"),
    ),
    FieldDescriptor(
        key="dob",
        label="Date of Birth",
        required=False,
        description="Accepted formats: DD/MM/YYYY, YYYY-MM-DD, MM/DD/YYYY",
        example="15/03/2019",
        type=FieldType.DATE,
        aliases=("birth date", "birthdate", "birthday", "d.o.b"),
    ),
    FieldDescriptor(
        key="gender",
        label="Gender",
        required=False,
        description="Male, Female, Non-binary, or Other",
        example="Female",
        type=FieldType.ENUM,
        enum_values=("male", "female", "non-binary", "other"),
        aliases=("sex", "child gender"),
    ),
    FieldDescriptor(
        key="enrollment_status",
        label="Enrollment Status",
        required=False,
        description="Defaults to 'active' if blank. Options: inquiry, applicant, active, withdrawn, graduated",
        example="active",
        type=FieldType.ENUM,
        enum_values=("inquiry", "applicant", "active", "withdrawn", "graduated"),
        aliases=("enrolment status", "status", "student status"),
    ),
    FieldDescriptor(
        key="class_name",
        label="Class / Room Name",
        required=False,
        description="Class/room the student belongs to. Created if it does not exist.",
        example="Wattle Room",
        aliases=("class", "classroom", "room", "room name", "environment", "level", "group"),
    ),
    FieldDescriptor(
        key="notes",
        label="Notes",
        required=False,
        description="Any additional notes about the student",
        example="Loves dinosaurs. Transitioning from nap to rest time.",
        aliases=("comments", "additional info", "memo"),
    ),
)

GUARDIAN_FIELDS: tuple[FieldDescriptor, ...] = (
    _STUDENT_FIRST,
    _STUDENT_LAST,
    FieldDescriptor(
        key="guardian_first_name",
        label="Guardian First Name",
        required=True,
        description="Guardian's first name",
        example="Sarah",
        aliases=("parent first name", "carer first name", "parent firstname", "family member first name"),
    ),
    FieldDescriptor(
        key="guardian_last_name",
        label="Guardian Last Name",
        required=True,
        description="Guardian's last name",
        example="Thompson",
        aliases=("parent last name", "carer last name", "parent lastname", "family member last name"),
    ),
    FieldDescriptor(
        key="guardian_email",
        label="Guardian Email",
        required=True,
        description="Email address. Used to link an existing account or send an invitation.",
        example="sarah.t@email.com",
        type=FieldType.EMAIL,
        aliases=("parent email", "carer email", "family email", "email", "email address"),
    ),
    FieldDescriptor(
        key="relationship",
        label="Relationship",
        required=True,
        description="Relationship to student: mother, father, grandparent, step-parent, foster-parent, other",
        example="mother",
        type=FieldType.ENUM,
        enum_values=("mother", "father", "grandparent", "step-parent", "foster-parent", "other"),
        aliases=("relation", "relationship to child", "relation to student", "contact type"),
    ),
    FieldDescriptor(
        key="phone",
        label="Phone Number",
        required=False,
        description="Contact phone number",
        example="0412 345 678",
        type=FieldType.PHONE,
        aliases=("phone", "mobile", "mobile number", "cell", "cell phone", "telephone", "contact number"),
    ),
    FieldDescriptor(
        key="is_primary",
        label="Primary Contact",
        required=False,
        description="Is this the primary guardian? yes/no/true/false",
        example="yes",
        type=FieldType.BOOLEAN,
        aliases=("primary", "is primary", "main contact"),
    ),
    FieldDescriptor(
        key="is_emergency_contact",
        label="Emergency Contact",
        required=False,
        description="Is this person an emergency contact? yes/no/true/false",
        example="yes",
        type=FieldType.BOOLEAN,
        aliases=("is emergency contact", "emergency"),
    ),
    FieldDescriptor(
        key="pickup_authorized",
        label="Pickup Authorized",
        required=False,
        description="Authorized for pickup? Defaults to yes.",
        example="yes",
        type=FieldType.BOOLEAN,
        aliases=("authorised pickup", "authorized pickup", "can pickup"),
    ),
)

EMERGENCY_CONTACT_FIELDS: tuple[FieldDescriptor, ...] = (
    _STUDENT_FIRST,
    _STUDENT_LAST,
    FieldDescriptor(
        key="contact_name",
        label="Contact Name",
        required=True,
        description="Full name of the emergency contact",
        example="Margaret Thompson",
        aliases=("name", "full name", "emergency contact name"),
    ),
    FieldDescriptor(
        key="relationship",
        label="Relationship",
        required=True,
        description="Relationship to the student",
        example="grandmother",
        aliases=("relation", "relationship to child"),
    ),
    FieldDescriptor(
        key="phone_primary",
        label="Primary Phone",
        required=True,
        description="Main contact phone number",
        example="0412 345 678",
        type=FieldType.PHONE,
        aliases=("phone 1", "main phone", "home phone", "phone", "mobile"),
    ),
    FieldDescriptor(
        key="phone_secondary",
        label="Secondary Phone",
        required=False,
        description="Backup phone number",
        example="02 9876 5432",
        type=FieldType.PHONE,
        aliases=("phone 2", "work phone", "alt phone", "alternate phone"),
    ),
    FieldDescriptor(
        key="email",
        label="Email",
        required=False,
        description="Email address",
        example="margaret@email.com",
        type=FieldType.EMAIL,
        aliases=("email address", "e-mail"),
    ),
    FieldDescriptor(
        key="priority_order",
        label="Priority Order",
        required=False,
        description="Call order priority. 1 = call first. Defaults to 1.",
        example="1",
        type=FieldType.INTEGER,
        aliases=("priority", "order", "call order", "rank"),
    ),
    FieldDescriptor(
        key="notes",
        label="Notes",
        required=False,
        description="Additional notes",
        example="Available after 3pm only",
        aliases=("comments", "memo"),
    ),
)

MEDICAL_CONDITION_FIELDS: tuple[FieldDescriptor, ...] = (
    _STUDENT_FIRST,
    _STUDENT_LAST,
    FieldDescriptor(
        key="condition_type",
        label="Condition Type",
        required=True,
        description="Type: allergy, asthma, epilepsy, diabetes, other",
        example="allergy",
        type=FieldType.ENUM,
        enum_values=("allergy", "asthma", "epilepsy", "diabetes", "other"),
        aliases=("type", "medical type", "category"),
    ),
    FieldDescriptor(
        key="condition_name",
        label="Condition Name",
        required=True,
        description="Specific condition name",
        example="Peanut allergy",
        aliases=("condition", "allergy", "medical condition", "diagnosis"),
    ),
    FieldDescriptor(
        key="severity",
        label="Severity",
        required=True,
        description="Severity level: mild, moderate, severe, life_threatening",
        example="severe",
        type=FieldType.ENUM,
        enum_values=("mild", "moderate", "severe", "life_threatening"),
        aliases=("severity level", "risk level"),
    ),
    FieldDescriptor(
        key="description",
        label="Description",
        required=False,
        description="Additional details about the condition",
        example="Anaphylactic reaction to all tree nuts",
        aliases=("details", "info", "information"),
    ),
    FieldDescriptor(
        key="action_plan",
        label="Action Plan",
        required=False,
        description="Written instructions for staff in an emergency",
        example="Administer EpiPen immediately, call 000",
        aliases=("management plan", "emergency plan", "treatment plan", "plan"),
    ),
    FieldDescriptor(
        key="requires_medication",
        label="Requires Medication",
        required=False,
        description="Does this condition require medication on-site? yes/no",
        example="yes",
        type=FieldType.BOOLEAN,
        aliases=("medication required", "needs medication", "medicated"),
    ),
    FieldDescriptor(
        key="medication_name",
        label="Medication Name",
        required=False,
        description="Name of medication if required",
        example="EpiPen",
        aliases=("medication", "medicine", "drug"),
    ),
    FieldDescriptor(
        key="medication_location",
        label="Medication Location",
        required=False,
        description="Where is the medication stored?",
        example="Office first aid kit",
        aliases=("storage location", "where stored", "location"),
    ),
)

STAFF_FIELDS: tuple[FieldDescriptor, ...] = (
    FieldDescriptor(
        key="first_name",
        label="First Name",
        required=True,
        description="Staff member's first name",
        example="Maria",
        aliases=("firstname", "given name", "forename", "fname"),
    ),
    FieldDescriptor(
        key="last_name",
        label="Last Name",
        required=True,
        description="Staff member's last name",
        example="Montessori",
        aliases=("lastname", "surname", "family name", "lname"),
    ),
    FieldDescriptor(
        key="email",
        label="Email",
        required=True,
        description="Email address of the staff member",
        example="maria@school.edu.au",
        type=FieldType.EMAIL,
        aliases=("email address", "e-mail"),
    ),
    FieldDescriptor(
        key="role",
        label="Role",
        required=True,
        description="Their role at the school. Must match an existing role name.",
        example="Guide",
        aliases=("job title", "position", "title", "staff role"),
    ),
)

ATTENDANCE_FIELDS: tuple[FieldDescriptor, ...] = (
    FieldDescriptor(
        key="student_first_name",
        label="Student First Name",
        required=True,
        description="First name of the student",
        example="Emma",
        aliases=("child first name", "first name", "firstname", "given name"),
    ),
    FieldDescriptor(
        key="student_last_name",
        label="Student Last Name",
        required=True,
        description="Last name of the student",
        example="Thompson",
        aliases=("child last name", "last name", "lastname", "surname", "family name"),
    ),
    FieldDescriptor(
        key="date",
        label="Date",
        required=True,
        description="Attendance date. Formats: DD/MM/YYYY, YYYY-MM-DD, MM/DD/YYYY",
        example="15/03/2024",
        type=FieldType.DATE,
        aliases=("attendance date", "day", "record date", "session date"),
    ),
    FieldDescriptor(
        key="status",
        label="Status",
        required=True,
        description="Attendance status: present, absent, late, excused, half_day",
        example="present",
        type=FieldType.ENUM,
        enum_values=("present", "absent", "late", "excused", "half_day"),
        aliases=("attendance status", "attendance", "mark", "code", "attendance code", "attendance type"),
    ),
    FieldDescriptor(
        key="class_name",
        label="Class / Room",
        required=False,
        description="Name of the class/room. Optional - links attendance to a class.",
        example="Wattle Room",
        aliases=("class", "class name", "classroom", "room", "room name", "group", "environment"),
    ),
    FieldDescriptor(
        key="check_in_time",
        label="Check-in Time",
        required=False,
        description="Time the student checked in. Format: HH:MM or HH:MM AM/PM",
        example="8:30",
        type=FieldType.TIME,
        aliases=("check in", "checkin", "arrival", "arrival time", "sign in", "time in"),
    ),
    FieldDescriptor(
        key="check_out_time",
        label="Check-out Time",
        required=False,
        description="Time the student checked out. Format: HH:MM or HH:MM AM/PM",
        example="15:30",
        type=FieldType.TIME,
        aliases=("check out", "checkout", "departure", "departure time", "sign out", "time out"),
    ),
    FieldDescriptor(
        key="notes",
        label="Notes",
        required=False,
        description="Any notes about this attendance record",
        example="Parent called to report illness",
        aliases=("comments", "reason", "absence reason", "explanation", "memo"),
    ),
)

FIELD_REGISTRY: dict[ImportType, tuple[FieldDescriptor, ...]] = {
    ImportType.STUDENTS: STUDENT_FIELDS,
    ImportType.GUARDIANS: GUARDIAN_FIELDS,
    ImportType.EMERGENCY_CONTACTS: EMERGENCY_CONTACT_FIELDS,
    ImportType.MEDICAL_CONDITIONS: MEDICAL_CONDITION_FIELDS,
    ImportType.STAFF: STAFF_FIELDS,
    ImportType.ATTENDANCE: ATTENDANCE_FIELDS,
}


def get_fields(import_type: ImportType) -> tuple[FieldDescriptor, ...]:
    return FIELD_REGISTRY[import_type]


def required_keys(import_type: ImportType) -> list[str]:
    """Required field keys in registry order."""
    return [f.key for f in FIELD_REGISTRY[import_type] if f.required]
