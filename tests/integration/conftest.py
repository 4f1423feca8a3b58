from __future__ import annotations

import pytest

import wattle_import.cli.__main__ as cli_mod


@pytest.fixture()
def shared_store(seeded_store, monkeypatch):
    """Every CLI invocation in the test sees the same seeded in-memory store."""
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    monkeypatch.setattr(cli_mod, "InMemoryImportStore", lambda: seeded_store)
    return seeded_store
