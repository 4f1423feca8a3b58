from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path

import psycopg2
import pytest

import wattle_import.cli.__main__ as cli_mod
from wattle_import.cli import main as cli_main
from wattle_import.db.memory import InMemoryImportStore
from wattle_import.db.store import PersistenceError
from wattle_import.logging.init import reset_logging

STUDENTS = "First Name,Last Name,Date of Birth\nAva,Smith,05/04/2019\nNoah,Jones,2018-07-21\n"


@pytest.fixture()
def mock_mode(monkeypatch):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")


def _run(argv, capsys):
    reset_logging()
    code = cli_main(argv)
    return code, capsys.readouterr().out


def test_template_to_stdout(temp_workdir: Path, capsys):
    code, out = _run(["template", "staff"], capsys)
    assert code == 0
    assert out.splitlines()[0] == "First Name,Last Name,Email,Role"


def test_template_to_file_needs_no_config(temp_workdir: Path, capsys):
    code, out = _run(["template", "attendance", "-o", "att.csv"], capsys)
    assert code == 0
    assert (temp_workdir / "att.csv").read_text(encoding="utf-8").startswith("Student First Name,")
    assert "INFO template written: att.csv (suggested name wattleos_attendance_template.csv)" in out


def test_unknown_import_type_is_usage_error(temp_workdir: Path, capsys):
    reset_logging()
    with pytest.raises(SystemExit) as e:
        cli_main(["template", "parents"])
    assert e.value.code == 2
    assert "unknown import type 'parents'" in capsys.readouterr().err


def test_missing_config_is_fatal(temp_workdir: Path, capsys):
    code, out = _run(["history"], capsys)
    assert code == 1
    assert "ERROR config: config file not found: config/import.yml" in out


def test_unknown_timezone_is_fatal_before_any_stage(write_config, write_csv, mock_mode, capsys):
    write_config.write_text(
        write_config.read_text(encoding="utf-8").replace("timezone: UTC", "timezone: Mars/Olympus"), encoding="utf-8"
    )
    path = write_csv("students.csv", STUDENTS)
    code, out = _run(["import", str(path), "--type", "students"], capsys)
    assert code == 1
    assert "ERROR config: config validation failed: unknown timezone: Mars/Olympus" in out
    assert "SUMMARY" not in out


def test_inspect_shows_mapping_and_hints(write_config, write_csv, capsys):
    path = write_csv("kids.csv", "First Name,Surname,Preferred,Bus Route\nAva,Smith,Avie,12\n")
    code, out = _run(["inspect", str(path), "--type", "students"], capsys)
    assert code == 0
    assert "INFO map 'First Name' -> first_name" in out
    assert "INFO map 'Surname' -> last_name" in out
    assert "INFO hint: 'Preferred' might be preferred_name" in out
    assert "INFO unmapped columns (ignored): Preferred, Bus Route" in out
    assert "INFO headers: ['First Name', 'Surname', 'Preferred', 'Bus Route']" in out


def test_inspect_reports_missing_required(write_config, write_csv, capsys):
    path = write_csv("kids.csv", "First Name,Surname\nAva,Smith\n")
    code, out = _run(["inspect", str(path), "--type", "students", "--map", "Surname="], capsys)
    assert code == 2
    assert "WARN required fields not mapped: last_name" in out


def test_inspect_override_applies(write_config, write_csv, capsys):
    path = write_csv("kids.csv", "Kid,Family\nAva,Smith\n")
    code, out = _run(
        ["inspect", str(path), "--type", "students", "--map", "Kid=first_name", "--map", "Family=last_name"], capsys
    )
    assert code == 0
    assert "INFO map 'Kid' -> first_name" in out


def test_validate_in_mock_mode(write_config, write_csv, mock_mode, capsys):
    path = write_csv("kids.csv", STUDENTS)
    code, out = _run(["validate", str(path), "--type", "students"], capsys)
    assert code == 0
    assert "INFO mode=mock tenant=tenant-1" in out
    assert "SUMMARY validate rows=2 valid=2 errors=0 warnings=0 duplicates=0" in out


def test_validate_reports_row_errors(write_config, write_csv, mock_mode, capsys):
    path = write_csv("kids.csv", "First Name,Last Name,Date of Birth\nAva,Smith,31/02/2019\n")
    code, out = _run(["validate", str(path), "--type", "students"], capsys)
    assert code == 2
    assert 'ERROR row 1 dob: Invalid date format "31/02/2019"' in out
    assert "SUMMARY validate rows=1 valid=0 errors=1" in out


def test_import_success(write_config, write_csv, mock_mode, capsys):
    path = write_csv("kids.csv", STUDENTS)
    code, out = _run(["import", str(path), "--type", "students"], capsys)
    assert code == 0
    assert "status=completed rows=2 imported=2 skipped=0 errors=0" in out


def test_semicolon_delimiter_override(write_config, write_csv, mock_mode, capsys):
    path = write_csv("kids.csv", "First Name;Last Name\nAva;Smith\n")
    code, out = _run(["import", str(path), "--type", "students", "--delimiter", "semicolon"], capsys)
    assert code == 0
    assert "imported=1" in out


def test_parse_error_is_fatal(write_config, write_csv, mock_mode, capsys):
    path = write_csv("kids.xlsx", STUDENTS)
    code, out = _run(["validate", str(path), "--type", "students"], capsys)
    assert code == 1
    assert "ERROR parse: unsupported file type '.xlsx'" in out


def test_missing_file_is_fatal(write_config, mock_mode, capsys):
    code, out = _run(["validate", "data/nope.csv", "--type", "students"], capsys)
    assert code == 1
    assert "ERROR parse: file not found" in out


def test_bad_override_is_mapping_error(write_config, write_csv, mock_mode, capsys):
    path = write_csv("kids.csv", STUDENTS)
    code, out = _run(["validate", str(path), "--type", "students", "--map", "Ghost=first_name"], capsys)
    assert code == 1
    assert "ERROR mapping: column 'Ghost' is not in the file" in out


def test_operator_without_capability(write_config, write_csv, mock_mode, capsys):
    text = write_config.read_text(encoding="utf-8").replace("[manage_data_import]", "[]")
    write_config.write_text(text, encoding="utf-8")
    path = write_csv("kids.csv", STUDENTS)
    code, out = _run(["import", str(path), "--type", "students"], capsys)
    assert code == 1
    assert "ERROR permission: operator lacks the 'manage_data_import' capability" in out


def test_db_connection_failure_falls_back_to_mock(write_config, monkeypatch, capsys):
    monkeypatch.delenv("DISABLE_DB_CONNECT", raising=False)

    def broken(db_cfg):
        raise psycopg2.OperationalError("could not connect to server\n")

    monkeypatch.setattr(cli_mod, "db_connection", broken)
    code, out = _run(["history"], capsys)
    assert code == 0
    assert "INFO DB connection failed -> fallback to mock mode: could not connect to server" in out
    assert "INFO mode=mock" in out


def test_live_mode_uses_connection(write_config, monkeypatch, capsys):
    monkeypatch.delenv("DISABLE_DB_CONNECT", raising=False)
    seen = {}

    @contextmanager
    def fake_connection(db_cfg):
        seen["host"] = db_cfg.host
        yield InMemoryImportStore()

    monkeypatch.setattr(cli_mod, "db_connection", fake_connection)
    code, out = _run(["history"], capsys)
    assert code == 0
    assert seen == {"host": "localhost"}
    assert "INFO mode=live tenant=tenant-1" in out
    assert "INFO no import jobs yet" in out


def test_debug_flag_enables_debug_lines(write_config, mock_mode, capsys):
    code, out = _run(["--debug", "history"], capsys)
    assert code == 0
    assert "DEBUG debug mode enabled" in out
    assert "DEBUG DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode" in out


def test_without_debug_no_debug_lines(write_config, mock_mode, capsys):
    _, out = _run(["history"], capsys)
    assert "DEBUG" not in out


def test_rollback_unknown_job(write_config, mock_mode, capsys):
    code, out = _run(["rollback", "no-such-job"], capsys)
    assert code == 1
    assert "ERROR rollback: import job not found: no-such-job" in out


def test_store_failure_is_database_error(write_config, mock_mode, monkeypatch, capsys):
    class BrokenStore(InMemoryImportStore):
        def list_jobs(self, tenant_id, limit=20):
            raise PersistenceError("relation \"import_jobs\" does not exist")

    monkeypatch.setattr(cli_mod, "InMemoryImportStore", BrokenStore)
    code, out = _run(["history"], capsys)
    assert code == 1
    assert 'ERROR database: relation "import_jobs" does not exist' in out


def test_env_file_overrides_shell(write_config, temp_workdir: Path, monkeypatch, capsys):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "0")
    (temp_workdir / ".env").write_text("DISABLE_DB_CONNECT=1\n", encoding="utf-8")

    def unexpected(db_cfg):
        raise AssertionError("database must not be contacted")

    monkeypatch.setattr(cli_mod, "db_connection", unexpected)
    code, out = _run(["history"], capsys)
    assert code == 0
    assert "INFO mode=mock" in out
