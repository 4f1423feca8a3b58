"""Pipeline stages: suggestion, mapping, validation, execution, rollback and history."""
