from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.context import MANAGE_DATA_IMPORT, OperatorContext
from ..services.writers import resolve_timezone

"""Config loader.

Responsibilities:
- Load YAML config (default config/import.yml)
- Validate against config_schema.json (unknown keys are rejected)
- Apply defaults for every optional section
"""

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/import.yml")

DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024
DEFAULT_EXTENSIONS = (".csv", ".tsv", ".txt")
DEFAULT_MAX_ROWS = 10000


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class OperatorConfig:
    tenant_id: str
    user_id: str
    capabilities: tuple[str, ...] = (MANAGE_DATA_IMPORT,)

    def to_context(self) -> OperatorContext:
        return OperatorContext(
            tenant_id=self.tenant_id,
            user_id=self.user_id,
            capabilities=frozenset(self.capabilities),
        )


@dataclass(frozen=True)
class UploadConfig:
    max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE
    allowed_extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    max_rows: int = DEFAULT_MAX_ROWS


@dataclass(frozen=True)
class SuggestionConfig:
    auto_apply_threshold: float = 0.7
    hint_threshold: float = 0.6


@dataclass(frozen=True)
class ImportConfig:
    operator: OperatorConfig
    upload: UploadConfig = field(default_factory=UploadConfig)
    suggestions: SuggestionConfig = field(default_factory=SuggestionConfig)
    skip_duplicates: bool = True
    history_limit: int = 20
    timezone: str = "UTC"
    error_log_dir: str = "./logs"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigError: If the schema file is missing or unreadable, or the data
            fails validation (missing required keys, wrong types, unknown keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def parse_config(data: dict[str, Any]) -> ImportConfig:
    """Build ImportConfig from an already-loaded mapping."""
    _validate_config_schema(data)

    op_raw = data["operator"]
    operator = OperatorConfig(
        tenant_id=op_raw["tenant_id"],
        user_id=op_raw["user_id"],
        capabilities=tuple(op_raw.get("capabilities", (MANAGE_DATA_IMPORT,))),
    )
    up_raw = data.get("upload", {})
    upload = UploadConfig(
        max_file_size_bytes=up_raw.get("max_file_size_bytes", DEFAULT_MAX_FILE_SIZE),
        allowed_extensions=tuple(e.lower() for e in up_raw.get("allowed_extensions", DEFAULT_EXTENSIONS)),
        max_rows=up_raw.get("max_rows", DEFAULT_MAX_ROWS),
    )
    sg_raw = data.get("suggestions", {})
    suggestions = SuggestionConfig(
        auto_apply_threshold=float(sg_raw.get("auto_apply_threshold", 0.7)),
        hint_threshold=float(sg_raw.get("hint_threshold", 0.6)),
    )
    if suggestions.hint_threshold > suggestions.auto_apply_threshold:
        raise ConfigError("config validation failed: hint_threshold must not exceed auto_apply_threshold")
    timezone = data.get("timezone", "UTC")
    try:
        resolve_timezone(timezone)
    except ValueError as e:
        raise ConfigError(f"config validation failed: {e}") from e

    db_raw = data.get("database", {})
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    return ImportConfig(
        operator=operator,
        upload=upload,
        suggestions=suggestions,
        skip_duplicates=data.get("skip_duplicates", True),
        history_limit=data.get("history_limit", 20),
        timezone=timezone,
        error_log_dir=data.get("error_log_dir", "./logs"),
        database=db,
    )


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config validation failed: top level must be a mapping")
    return parse_config(data)
