"""CSV data import pipeline for WattleOS schools.

Stages: parse -> suggest mapping -> validate -> execute, plus job history and
rollback. See `python -m wattle_import --help`.
"""

__version__ = "0.1.0"
