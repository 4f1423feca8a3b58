"""Logging setup and the JSON Lines row error log."""
