# Shared pytest fixtures
from __future__ import annotations

import tempfile
from datetime import date
from pathlib import Path

import pytest

from wattle_import.db.memory import InMemoryImportStore
from wattle_import.models.context import MANAGE_DATA_IMPORT, OperatorContext

TENANT_ID = "tenant-1"
USER_ID = "user-admin"
TODAY = date(2024, 6, 14)


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return f"""operator:
  tenant_id: {TENANT_ID}
  user_id: {USER_ID}
  capabilities: [manage_data_import]
upload:
  max_file_size_bytes: 1048576
  allowed_extensions: [".csv", ".tsv"]
  max_rows: 500
skip_duplicates: true
history_limit: 10
timezone: UTC
error_log_dir: ./logs
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def operator() -> OperatorContext:
    return OperatorContext(tenant_id=TENANT_ID, user_id=USER_ID, capabilities=frozenset({MANAGE_DATA_IMPORT}))


@pytest.fixture()
def viewer() -> OperatorContext:
    return OperatorContext(tenant_id=TENANT_ID, user_id="user-viewer", capabilities=frozenset())


@pytest.fixture()
def store() -> InMemoryImportStore:
    return InMemoryImportStore()


@pytest.fixture()
def seeded_store() -> InMemoryImportStore:
    """Tenant with two students, one class, staff roles and an existing parent account."""
    s = InMemoryImportStore()
    wattle = s.seed("classes", tenant_id=TENANT_ID, name="Wattle Room")
    emma = s.seed("students", tenant_id=TENANT_ID, first_name="Emma", last_name="Thompson", dob=date(2019, 3, 15))
    s.seed("students", tenant_id=TENANT_ID, first_name="Liam", last_name="Nguyen", dob=date(2018, 11, 2))
    s.seed("enrollments", tenant_id=TENANT_ID, student_id=emma, class_id=wattle, status="active")
    s.seed("roles", tenant_id=TENANT_ID, name="Guide")
    s.seed("roles", tenant_id=TENANT_ID, name="Parent")
    s.seed("roles", tenant_id=TENANT_ID, name="Admin")
    s.seed("users", email="sarah.t@email.com", first_name="Sarah", last_name="Thompson")
    # Another tenant's data must never leak into lookups
    s.seed("students", tenant_id="tenant-2", first_name="Olivia", last_name="Brown", dob=date(2019, 1, 1))
    return s


@pytest.fixture()
def write_csv(temp_workdir: Path):
    def _write(name: str, text: str) -> Path:
        path = temp_workdir / "data" / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write
