from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from ..config.loader import ImportConfig
from ..csvfile.reader import read_upload
from ..db.store import ImportStore
from ..models.context import OperatorContext
from ..models.import_type import ImportType, get_fields
from ..models.parsed_table import ParsedTable
from ..models.validation import ValidationResult
from .mapping import apply_mapping_change, auto_mapping, ensure_mapping_complete, mapping_hints
from .permissions import require_capability
from .suggester import MappingSuggestion, suggest_column_mapping
from .validator import validate_import

"""Stage wiring used by the CLI: upload -> mapping -> validation.

Execution and rollback are called directly (services.executor /
services.rollback); they need nothing beyond what these helpers return.
"""

__all__ = [
    "PreparedMapping",
    "load_table",
    "prepare_mapping",
    "validate_upload",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedMapping:
    mapping: dict[str, str]
    suggestions: tuple[MappingSuggestion, ...]
    hints: tuple[MappingSuggestion, ...]


def load_table(path: Path, config: ImportConfig, *, delimiter: str | None = None) -> ParsedTable:
    up = config.upload
    table = read_upload(
        path,
        max_bytes=up.max_file_size_bytes,
        allowed_extensions=up.allowed_extensions,
        max_rows=up.max_rows,
        delimiter=delimiter,
    )
    logger.info(f"parsed {path.name}: {len(table.headers)} columns, {table.raw_row_count} rows")
    return table


def prepare_mapping(
    table: ParsedTable,
    import_type: ImportType,
    config: ImportConfig,
    overrides: Iterable[tuple[str, str]] = (),
) -> PreparedMapping:
    """Suggest a mapping, auto-apply confident suggestions, then apply operator overrides."""
    sg = config.suggestions
    suggestions = suggest_column_mapping(table.headers, get_fields(import_type), floor=sg.hint_threshold)
    mapping = auto_mapping(suggestions, threshold=sg.auto_apply_threshold)
    for header, key in overrides:
        mapping = apply_mapping_change(mapping, header, key)
    hints = [h for h in mapping_hints(suggestions, hint=sg.hint_threshold, auto=sg.auto_apply_threshold)
             if h.source_header not in mapping]
    return PreparedMapping(mapping=mapping, suggestions=tuple(suggestions), hints=tuple(hints))


def validate_upload(
    store: ImportStore,
    context: OperatorContext,
    import_type: ImportType,
    table: ParsedTable,
    mapping: dict[str, str],
    *,
    today: date | None = None,
) -> ValidationResult:
    require_capability(context)
    ensure_mapping_complete(mapping, get_fields(import_type), table.headers)
    existing = store.load_existing_data(context.tenant_id, import_type, today=today)
    return validate_import(import_type, table, mapping, existing, today=today)
