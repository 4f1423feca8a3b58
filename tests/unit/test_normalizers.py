from __future__ import annotations

from datetime import date, time

import pytest

from wattle_import.services.normalizers import (
    normalize_attendance_status,
    normalize_email,
    normalize_enum,
    normalize_phone,
    parse_boolean,
    parse_flexible_date,
    parse_positive_int,
    parse_time,
)

GENDERS = ("male", "female", "non-binary", "other")
RELATIONSHIPS = ("mother", "father", "grandparent", "step-parent", "foster-parent", "other")


@pytest.mark.parametrize(
    "text,expected",
    [
        ("2019-03-15", date(2019, 3, 15)),
        ("15/03/2019", date(2019, 3, 15)),
        ("5/4/2019", date(2019, 4, 5)),
        ("05/04/2019", date(2019, 4, 5)),  # ambiguous -> day first
        ("03/15/2019", date(2019, 3, 15)),  # day-first impossible -> month first
        ("15-03-2019", date(2019, 3, 15)),
        ("15.03.2019", date(2019, 3, 15)),
        (" 2019-03-15 ", date(2019, 3, 15)),
    ],
)
def test_parse_flexible_date_accepts(text, expected):
    assert parse_flexible_date(text) == expected


@pytest.mark.parametrize(
    "text",
    ["31/02/2019", "2019-02-30", "15/03/1899", "2101-01-01", "13/13/2019", "March 15 2019", "15/03/19", ""],
)
def test_parse_flexible_date_rejects(text):
    assert parse_flexible_date(text) is None


def test_normalize_email():
    assert normalize_email(" Sarah.T@Email.COM ") == "sarah.t@email.com"
    assert normalize_email("not-an-email") is None
    assert normalize_email("a@b") is None
    assert normalize_email("a b@c.com") is None


def test_normalize_phone():
    assert normalize_phone("0412 345 678") == "0412345678"
    assert normalize_phone("(02) 9876-5432") == "0298765432"
    assert normalize_phone("+61.412.345.678") == "+61412345678"
    assert normalize_phone("12345") is None
    assert normalize_phone("0412 ABC 678") is None
    assert normalize_phone("1234567890123456") is None


def test_normalize_enum_exact_case_and_synonyms():
    assert normalize_enum("female", GENDERS) == "female"
    assert normalize_enum("FEMALE", GENDERS) == "female"
    assert normalize_enum("F", GENDERS) == "female"
    assert normalize_enum("Mum", RELATIONSHIPS) == "mother"
    assert normalize_enum("Step Parent", RELATIONSHIPS) == "step-parent"


def test_normalize_enum_synonym_must_be_allowed_for_field():
    # "m" is a gender synonym; it means nothing for a relationship
    assert normalize_enum("m", RELATIONSHIPS) is None
    assert normalize_enum("cousin", RELATIONSHIPS) is None


@pytest.mark.parametrize(
    "text,expected",
    [
        ("present", "present"),
        ("P", "present"),
        ("✓", "present"),
        ("A", "absent"),
        ("x", "absent"),
        ("Late", "late"),
        ("sick", "excused"),
        ("Half Day", "half_day"),
        ("h", "half_day"),
        ("maybe", None),
    ],
)
def test_normalize_attendance_status(text, expected):
    assert normalize_attendance_status(text) == expected


def test_parse_boolean():
    assert parse_boolean("Yes") is True
    assert parse_boolean("1") is True
    assert parse_boolean("off") is False
    assert parse_boolean("N") is False
    assert parse_boolean("maybe") is None


@pytest.mark.parametrize(
    "text,expected",
    [
        ("08:30", time(8, 30)),
        ("8:30", time(8, 30)),
        ("15:45", time(15, 45)),
        ("3:30 PM", time(15, 30)),
        ("3pm", time(15, 0)),
        ("12:00 AM", time(0, 0)),
        ("12:15 pm", time(12, 15)),
        ("9", time(9, 0)),
    ],
)
def test_parse_time_accepts(text, expected):
    assert parse_time(text) == expected


@pytest.mark.parametrize("text", ["25:00", "10:60", "13 pm", "0 am", "noon", "8.30"])
def test_parse_time_rejects(text):
    assert parse_time(text) is None


def test_parse_positive_int():
    assert parse_positive_int("3") == 3
    assert parse_positive_int(" 12 ") == 12
    assert parse_positive_int("0") is None
    assert parse_positive_int("-1") is None
    assert parse_positive_int("1.5") is None
