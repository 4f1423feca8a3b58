"""Persistence layer: ImportStore interface plus PostgreSQL and in-memory backends."""

from .memory import InMemoryImportStore
from .store import ExistingData, ImportStore, PersistenceError, natural_key

__all__ = [
    "ExistingData",
    "ImportStore",
    "InMemoryImportStore",
    "PersistenceError",
    "natural_key",
]
