from __future__ import annotations

from datetime import date, time

from wattle_import.csvfile.reader import parse_csv
from wattle_import.models.import_type import ImportType
from wattle_import.services.validator import build_summary, validate_import

TODAY = date(2024, 6, 14)

STUDENT_MAP = {
    "First Name": "first_name",
    "Last Name": "last_name",
    "Date of Birth": "dob",
    "Gender": "gender",
    "Room": "class_name",
}
STUDENT_HEADER = "First Name,Last Name,Date of Birth,Gender,Room\n"


def _validate(store, import_type, text, mapping):
    table = parse_csv(text)
    existing = store.load_existing_data("tenant-1", import_type, today=TODAY)
    return validate_import(import_type, table, mapping, existing, today=TODAY)


def _messages(issues):
    return [i.message for i in issues]


def test_valid_student_row_has_typed_values(seeded_store):
    result = _validate(seeded_store, ImportType.STUDENTS, STUDENT_HEADER + "Ava,Smith,05/04/2019,F,wattle room\n", STUDENT_MAP)
    row = result.rows[0]
    assert row.row_number == 1
    assert row.is_valid and not row.warnings and not row.is_duplicate
    assert row.mapped_data["dob"] == date(2019, 4, 5)
    assert row.mapped_data["gender"] == "female"
    assert row.mapped_data["class_name"] == "wattle room"
    assert row.mapped_data["preferred_name"] is None
    assert row.raw_data["Gender"] == "F"


def test_every_problem_in_a_row_is_reported(seeded_store):
    result = _validate(seeded_store, ImportType.STUDENTS, STUDENT_HEADER + " , ,31/02/2019,Q,\n", STUDENT_MAP)
    row = result.rows[0]
    assert not row.is_valid
    assert [i.field for i in row.errors] == ["first_name", "last_name", "dob", "gender"]
    assert _messages(row.errors)[:2] == ["First Name is required", "Last Name is required"]
    assert _messages(row.errors)[2].startswith('Invalid date format "31/02/2019"')
    assert _messages(row.errors)[3] == 'Invalid value "Q". Must be one of: male, female, non-binary, other'


def test_unmapped_required_field_fails_every_row(seeded_store):
    mapping = {"First Name": "first_name"}
    result = _validate(seeded_store, ImportType.STUDENTS, STUDENT_HEADER + "Ava,Smith,,,\nNoah,Jones,,,\n", mapping)
    assert result.summary.error_rows == 2
    assert all(_messages(r.errors) == ["Last Name is required"] for r in result.rows)


def test_unknown_class_is_a_warning(seeded_store):
    result = _validate(seeded_store, ImportType.STUDENTS, STUDENT_HEADER + "Ava,Smith,,,Banksia Room\n", STUDENT_MAP)
    row = result.rows[0]
    assert row.is_valid
    assert _messages(row.warnings) == ['Class "Banksia Room" doesn\'t exist and will be created']


def test_student_duplicates_in_file_and_existing(seeded_store):
    text = STUDENT_HEADER + (
        "Ava,Smith,05/04/2019,,\n"
        "ava,SMITH,2019-04-05,,\n"
        "Liam,Nguyen,02/11/2018,,\n"
        "Emma,Thompson,,,\n"
    )
    result = _validate(seeded_store, ImportType.STUDENTS, text, STUDENT_MAP)
    first, second, liam, emma = result.rows
    assert not first.is_duplicate
    assert second.is_duplicate
    assert _messages(second.warnings) == ['Duplicate student "ava SMITH" appears more than once in this file']
    assert liam.is_duplicate
    assert _messages(liam.warnings) == ['Student "Liam Nguyen" already exists in the system']
    # Existing Emma has a birth date; a blank one is a different key
    assert not emma.is_duplicate
    assert result.summary.duplicate_rows == 2
    assert result.summary.valid_rows == 4


def test_invalid_duplicate_is_not_counted_and_does_not_seed_later_rows(seeded_store):
    text = STUDENT_HEADER + (
        "Ava,Smith,05/04/2019,F,\n"
        "Ava,Smith,05/04/2019,Q,\n"
        "Noah,Jones,,Q,\n"
        "Noah,Jones,,M,\n"
    )
    result = _validate(seeded_store, ImportType.STUDENTS, text, STUDENT_MAP)
    ava2, noah1, noah2 = result.rows[1:]
    assert ava2.is_duplicate and not ava2.is_valid
    assert not noah1.is_valid
    assert not noah2.is_duplicate
    summary = result.summary
    assert (summary.valid_rows, summary.error_rows, summary.duplicate_rows) == (2, 2, 0)
    assert summary.errors_by_field == {"gender": 2}


GUARDIAN_HEADER = "Student First Name,Student Last Name,Guardian First Name,Guardian Last Name,Guardian Email,Relationship,Phone Number\n"
GUARDIAN_MAP = {
    "Student First Name": "student_first_name",
    "Student Last Name": "student_last_name",
    "Guardian First Name": "guardian_first_name",
    "Guardian Last Name": "guardian_last_name",
    "Guardian Email": "guardian_email",
    "Relationship": "relationship",
    "Phone Number": "phone",
}


def test_guardian_rows(seeded_store):
    text = GUARDIAN_HEADER + (
        "Emma,Thompson,Sarah,Thompson,Sarah.T@Email.com,Mum,0412 345 678\n"
        "Olivia,Brown,Ben,Brown,ben@email.com,father,\n"
    )
    emma, olivia = _validate(seeded_store, ImportType.GUARDIANS, text, GUARDIAN_MAP).rows
    assert emma.is_valid and not emma.warnings
    assert emma.mapped_data["guardian_email"] == "sarah.t@email.com"
    assert emma.mapped_data["relationship"] == "mother"
    assert emma.mapped_data["phone"] == "0412345678"
    # Olivia belongs to another tenant
    assert [(i.field, i.message) for i in olivia.errors] == [
        ("student_first_name", 'Student "Olivia Brown" not found. Import students first.')
    ]


def test_guardian_already_linked(seeded_store):
    sarah = seeded_store.find_user_by_email("sarah.t@email.com")
    emma = seeded_store.find_student("tenant-1", "Emma", "Thompson")
    seeded_store.seed("guardians", tenant_id="tenant-1", user_id=sarah, student_id=emma)
    text = GUARDIAN_HEADER + "Emma,Thompson,Sarah,Thompson,sarah.t@email.com,mother,\n"
    row = _validate(seeded_store, ImportType.GUARDIANS, text, GUARDIAN_MAP).rows[0]
    assert row.is_valid and row.is_duplicate
    assert _messages(row.warnings) == [
        'Email "sarah.t@email.com" already exists. Will link existing account to this student.',
        'Guardian "sarah.t@email.com" is already linked to Emma Thompson',
    ]


def test_emergency_contact_and_medical_typing(seeded_store):
    contacts = _validate(
        seeded_store,
        ImportType.EMERGENCY_CONTACTS,
        "Student First Name,Student Last Name,Contact Name,Relationship,Primary Phone,Priority Order\n"
        "Emma,Thompson,Margaret Thompson,grandmother,0412 345 678,abc\n"
        "Emma,Thompson,Jim Thompson,grandfather,0412 345 679,2\n",
        {
            "Student First Name": "student_first_name",
            "Student Last Name": "student_last_name",
            "Contact Name": "contact_name",
            "Relationship": "relationship",
            "Primary Phone": "phone_primary",
            "Priority Order": "priority_order",
        },
    )
    bad, good = contacts.rows
    assert _messages(bad.errors) == ['Invalid number "abc". Use a whole number of 1 or more']
    assert good.mapped_data["priority_order"] == 2
    # free-text relationship is kept as written
    assert good.mapped_data["relationship"] == "grandfather"

    medical = _validate(
        seeded_store,
        ImportType.MEDICAL_CONDITIONS,
        "Student First Name,Student Last Name,Condition Type,Condition Name,Severity,Requires Medication\n"
        "Liam,Nguyen,Allergy,Peanut allergy,Anaphylactic,yes\n",
        {
            "Student First Name": "student_first_name",
            "Student Last Name": "student_last_name",
            "Condition Type": "condition_type",
            "Condition Name": "condition_name",
            "Severity": "severity",
            "Requires Medication": "requires_medication",
        },
    )
    row = medical.rows[0]
    assert row.is_valid
    assert row.mapped_data["condition_type"] == "allergy"
    assert row.mapped_data["severity"] == "life_threatening"
    assert row.mapped_data["requires_medication"] is True


STAFF_MAP = {"First Name": "first_name", "Last Name": "last_name", "Email": "email", "Role": "role"}


def test_staff_role_must_exist(seeded_store):
    text = "First Name,Last Name,Email,Role\nMaria,Montessori,maria@school.edu.au,guide\nJo,Bloggs,jo@school.edu.au,Principal\n"
    maria, jo = _validate(seeded_store, ImportType.STAFF, text, STAFF_MAP).rows
    assert maria.is_valid
    assert _messages(jo.errors) == ['Role "Principal" doesn\'t exist. Available roles: Admin, Guide, Parent']


def test_staff_existing_member_is_duplicate(seeded_store):
    sarah = seeded_store.find_user_by_email("sarah.t@email.com")
    seeded_store.seed("tenant_users", tenant_id="tenant-1", user_id=sarah, role_id=None)
    text = "First Name,Last Name,Email,Role\nSarah,Thompson,SARAH.T@email.com,Guide\n"
    row = _validate(seeded_store, ImportType.STAFF, text, STAFF_MAP).rows[0]
    assert row.is_valid and row.is_duplicate
    assert _messages(row.warnings) == ['Staff member "sarah.t@email.com" is already a member of this school']


ATTENDANCE_MAP = {
    "Student First Name": "student_first_name",
    "Student Last Name": "student_last_name",
    "Date": "date",
    "Status": "status",
    "Class / Room": "class_name",
    "Check-in Time": "check_in_time",
}
ATTENDANCE_HEADER = "Student First Name,Student Last Name,Date,Status,Class / Room,Check-in Time\n"


def test_attendance_rows(seeded_store):
    text = ATTENDANCE_HEADER + (
        "Emma,Thompson,14/06/2024,P,Wattle Room,8:30am\n"
        "Liam,Nguyen,20/06/2024,A,Banksia,25:00\n"
        "Emma,Thompson,2024-06-14,late,,\n"
        "Emma,Thompson,2024-06-12,maybe,,\n"
    )
    first, future, repeat, bad = _validate(seeded_store, ImportType.ATTENDANCE, text, ATTENDANCE_MAP).rows
    assert first.is_valid and not first.warnings
    assert first.mapped_data["status"] == "present"
    assert first.mapped_data["check_in_time"] == time(8, 30)

    assert future.is_valid
    assert future.mapped_data["check_in_time"] is None
    assert _messages(future.warnings) == [
        'Invalid time format "25:00". Use HH:MM or HH:MM AM/PM. Will be skipped.',
        "Date 2024-06-20 is in the future - intentional?",
        'Class "Banksia" doesn\'t exist. Attendance will be recorded without a class link.',
    ]

    assert repeat.is_valid and repeat.is_duplicate
    assert _messages(repeat.warnings) == [
        "Duplicate attendance record for this student on 2024-06-14. Later row will overwrite."
    ]

    assert not bad.is_valid
    assert _messages(bad.errors)[0].startswith('Invalid attendance status "maybe". Must be one of: present')


def test_attendance_existing_record_within_lookback(seeded_store):
    emma = seeded_store.find_student("tenant-1", "Emma", "Thompson")
    seeded_store.seed("attendance_records", tenant_id="tenant-1", student_id=emma, date=date(2024, 6, 13))
    seeded_store.seed("attendance_records", tenant_id="tenant-1", student_id=emma, date=date(2020, 1, 1))
    text = ATTENDANCE_HEADER + "Emma,Thompson,13/06/2024,P,,\nEmma,Thompson,01/01/2020,P,,\n"
    recent, old = _validate(seeded_store, ImportType.ATTENDANCE, text, ATTENDANCE_MAP).rows
    assert recent.is_duplicate
    assert _messages(recent.warnings) == [
        "Attendance record already exists for this student on 2024-06-13. Will be overwritten."
    ]
    assert not old.is_duplicate


def test_validation_is_deterministic(seeded_store):
    text = STUDENT_HEADER + "Ava,Smith,05/04/2019,F,Banksia\nAva,Smith,05/04/2019,F,Banksia\n,,x,y,\n"
    a = _validate(seeded_store, ImportType.STUDENTS, text, STUDENT_MAP)
    b = _validate(seeded_store, ImportType.STUDENTS, text, STUDENT_MAP)
    assert a == b


def test_build_summary_empty():
    summary = build_summary([])
    assert (summary.total_rows, summary.valid_rows, summary.error_rows) == (0, 0, 0)
