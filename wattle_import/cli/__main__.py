from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from pathlib import Path

import psycopg2
from dotenv import load_dotenv

from ..config.loader import DEFAULT_CONFIG_PATH, ConfigError, ImportConfig, load_config
from ..csvfile.reader import ParseError
from ..csvfile.template import generate_template, template_file_name
from ..db.connection import db_connection
from ..db.memory import InMemoryImportStore
from ..db.store import ImportStore, PersistenceError
from ..logging.error_log import ErrorLogBuffer
from ..logging.init import log_summary, setup_logging
from ..models.import_job import ImportJobStatus, InvalidStatusTransition
from ..models.import_type import ImportType, get_fields
from ..models.validation import ValidationResult
from ..services.executor import execute_import
from ..services.history import get_import_history
from ..services.mapping import MappingError, missing_required, parse_mapping_overrides
from ..services.permissions import Unauthorized
from ..services.pipeline import load_table, prepare_mapping, validate_upload
from ..services.rollback import JobNotFound, RollbackFailed, rollback_import
from ..services.summary import render_summary_line, render_validation_line

"""CLI entrypoint.

Subcommands:
    template <type> [-o FILE]      write a blank CSV template
    inspect <file> --type T        headers, sample rows, mapping suggestions
    validate <file> --type T       full validation preview
    import <file> --type T         validate then execute
    history                        recent import jobs
    rollback <job_id>              undo an import job

The database is used when reachable; with DISABLE_DB_CONNECT=1 or when the
connection fails, an empty in-memory store is used instead (mock mode).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

DELIMITERS = {"comma": ",", "tab": "\t", "semicolon": ";"}
ISSUE_PREVIEW_LIMIT = 50

logger = logging.getLogger("wattle_import.cli")


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; override=True so .env wins over the shell."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


@contextmanager
def _open_store(cfg: ImportConfig) -> Iterator[tuple[ImportStore, str]]:
    """Yield (store, mode) where mode is 'live' or 'mock'."""
    if os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
        yield InMemoryImportStore(), "mock"
        return
    with ExitStack() as stack:
        try:
            store: ImportStore = stack.enter_context(db_connection(cfg.database))
            mode = "live"
        except psycopg2.Error as e:
            logger.info(f"DB connection failed -> fallback to mock mode: {str(e).strip()}")
            store, mode = InMemoryImportStore(), "mock"
        yield store, mode


def _import_type(value: str) -> ImportType:
    try:
        return ImportType(value)
    except ValueError as e:
        choices = ", ".join(t.value for t in ImportType)
        raise argparse.ArgumentTypeError(f"unknown import type '{value}' (choose from {choices})") from e


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="wattle_import", description="CSV data import for WattleOS schools")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to YAML config")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    t = sub.add_parser("template", help="Write a blank CSV template for an import type")
    t.add_argument("import_type", type=_import_type)
    t.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")

    def file_command(name: str, help_text: str) -> argparse.ArgumentParser:
        c = sub.add_parser(name, help=help_text)
        c.add_argument("file", type=Path)
        c.add_argument("--type", dest="import_type", type=_import_type, required=True)
        c.add_argument("--delimiter", choices=sorted(DELIMITERS), help="Override delimiter detection")
        c.add_argument(
            "--map",
            dest="overrides",
            action="append",
            default=[],
            metavar="HEADER=FIELD",
            help="Map a column to a field key (repeatable); HEADER= unmaps it",
        )
        return c

    file_command("inspect", "Show headers, sample rows and mapping suggestions")
    file_command("validate", "Validate a file without importing")
    imp = file_command("import", "Validate and import a file")
    dupes = imp.add_mutually_exclusive_group()
    dupes.add_argument("--skip-duplicates", dest="skip_duplicates", action="store_true", default=None)
    dupes.add_argument("--keep-duplicates", dest="skip_duplicates", action="store_false")

    sub.add_parser("history", help="List recent import jobs")
    rb = sub.add_parser("rollback", help="Undo an import job")
    rb.add_argument("job_id")
    return p.parse_args(argv)


def _cmd_template(args: argparse.Namespace) -> int:
    text = generate_template(args.import_type)
    if args.output is None:
        sys.stdout.write(text)
    else:
        args.output.write_text(text, encoding="utf-8")
        logger.info(f"template written: {args.output} (suggested name {template_file_name(args.import_type)})")
    return EXIT_SUCCESS_ALL


def _prepare(args: argparse.Namespace, cfg: ImportConfig):
    table = load_table(args.file, cfg, delimiter=DELIMITERS.get(args.delimiter) if args.delimiter else None)
    prepared = prepare_mapping(table, args.import_type, cfg, parse_mapping_overrides(args.overrides))
    for header, key in sorted(prepared.mapping.items()):
        logger.info(f"map '{header}' -> {key}")
    for h in prepared.hints:
        logger.info(f"hint: '{h.source_header}' might be {h.field_key} ({h.confidence:.2f}); use --map to apply")
    unmapped = [h for h in table.headers if h not in prepared.mapping]
    if unmapped:
        logger.info(f"unmapped columns (ignored): {', '.join(unmapped)}")
    return table, prepared


def _cmd_inspect(args: argparse.Namespace, cfg: ImportConfig) -> int:
    table, prepared = _prepare(args, cfg)
    logger.info(f"headers: {list(table.headers)}")
    for i, row in enumerate(table.sample(3), start=1):
        logger.info(f"row {i}: {row}")
    missing = missing_required(prepared.mapping, get_fields(args.import_type))
    if missing:
        logger.warning(f"required fields not mapped: {', '.join(f.key for f in missing)}")
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def _report_validation(result: ValidationResult) -> None:
    shown = 0
    for row in result.rows:
        for issue in row.errors:
            if shown < ISSUE_PREVIEW_LIMIT:
                logger.error(f"row {issue.row} {issue.field}: {issue.message}")
            shown += 1
        for issue in row.warnings:
            if shown < ISSUE_PREVIEW_LIMIT:
                logger.warning(f"row {issue.row} {issue.field}: {issue.message}")
            shown += 1
    if shown > ISSUE_PREVIEW_LIMIT:
        logger.info(f"... {shown - ISSUE_PREVIEW_LIMIT} more issue(s) not shown")
    log_summary(render_validation_line(result.summary)[len("SUMMARY "):])


def _cmd_validate(args: argparse.Namespace, cfg: ImportConfig, store: ImportStore) -> int:
    table, prepared = _prepare(args, cfg)
    context = cfg.operator.to_context()
    result = validate_upload(store, context, args.import_type, table, prepared.mapping)
    _report_validation(result)
    return EXIT_SUCCESS_ALL if result.is_valid else EXIT_PARTIAL_FAILURE


def _cmd_import(args: argparse.Namespace, cfg: ImportConfig, store: ImportStore) -> int:
    started = time.perf_counter()
    table, prepared = _prepare(args, cfg)
    context = cfg.operator.to_context()
    result = validate_upload(store, context, args.import_type, table, prepared.mapping)
    _report_validation(result)

    skip = cfg.skip_duplicates if args.skip_duplicates is None else args.skip_duplicates
    job = execute_import(
        store,
        context,
        import_type=args.import_type,
        file_name=args.file.name,
        column_mapping=prepared.mapping,
        validated_rows=result.rows,
        metadata={
            "validation": {
                "valid_rows": result.summary.valid_rows,
                "error_rows": result.summary.error_rows,
                "duplicate_rows": result.summary.duplicate_rows,
            },
            "skip_duplicates": skip,
        },
        skip_duplicates=skip,
        timezone=cfg.timezone,
        error_log=ErrorLogBuffer(cfg.error_log_dir),
    )
    log_summary(render_summary_line(job, time.perf_counter() - started)[len("SUMMARY "):])
    return EXIT_SUCCESS_ALL if job.status is ImportJobStatus.COMPLETED else EXIT_PARTIAL_FAILURE


def _cmd_history(cfg: ImportConfig, store: ImportStore) -> int:
    jobs = get_import_history(store, cfg.operator.to_context(), limit=cfg.history_limit)
    if not jobs:
        logger.info("no import jobs yet")
    for j in jobs:
        undo = " [undo available]" if j.is_rollback_eligible else ""
        logger.info(
            f"{j.id} {j.created_at.isoformat(timespec='seconds')} {j.import_type.value} {j.status.value} "
            f"rows={j.total_rows} imported={j.imported_count} skipped={j.skipped_count} "
            f"errors={j.error_count} file={j.file_name}{undo}"
        )
    return EXIT_SUCCESS_ALL


def _cmd_rollback(args: argparse.Namespace, cfg: ImportConfig, store: ImportStore) -> int:
    result = rollback_import(store, cfg.operator.to_context(), args.job_id)
    log_summary(f"rollback job={result.job.id} status={result.job.status.value} removed={result.rolled_back_count}")
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    # None means "read sys.argv"; an explicit [] must not pick up the test runner's arguments
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)

    logger_root = setup_logging()
    if args.debug:
        for h in logger_root.handlers:
            h.setLevel(logging.DEBUG)
        logger_root.setLevel(logging.DEBUG)
        logger.debug("debug mode enabled")

    if args.command == "template":
        return _cmd_template(args)

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    try:
        if args.command == "inspect":
            return _cmd_inspect(args, cfg)
        with _open_store(cfg) as (store, mode):
            logger.info(f"mode={mode} tenant={cfg.operator.tenant_id}")
            if args.command == "validate":
                return _cmd_validate(args, cfg, store)
            if args.command == "import":
                return _cmd_import(args, cfg, store)
            if args.command == "history":
                return _cmd_history(cfg, store)
            return _cmd_rollback(args, cfg, store)
    except ParseError as e:
        logger.error(f"parse: {e}")
    except MappingError as e:
        logger.error(f"mapping: {e}")
    except Unauthorized as e:
        logger.error(f"permission: {e}")
    except (JobNotFound, InvalidStatusTransition, RollbackFailed) as e:
        logger.error(f"rollback: {e}")
    except PersistenceError as e:
        logger.error(f"database: {e}")
    return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
