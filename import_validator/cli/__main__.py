from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from ..config.loader import build_rules, load_config
from ..db.batch_insert import TableWriter
from ..db.postgres import PostgresStore, PostgresTransaction
from ..errors import ImportValidationError
from ..excel.reader import RowSource, read_sheet_rows
from ..excel.writer import ErrorReportWriter
from ..logging.error_log import ErrorLogBuffer
from ..logging.init import log_summary, setup_logging
from ..models.config_models import DatabaseConfig, TaskConfig
from ..models.import_result import ImportResult, ImportState
from ..services.duplicates import DuplicateDetector
from ..services.formatter import FieldFormatter
from ..services.orchestrator import ImportOrchestrator
from ..services.progress import RowProgress
from ..services.summary import render_summary_line

"""CLI entrypoint.

    python -m import_validator.cli TASK.yml FILE.xlsx [--sheet S] [--dry-run | --offline]
                                   [--error-dir DIR] [--logs-dir DIR] [--debug]

Modes:
    live       validate against the database, persist accepted rows
    --dry-run  validate against the database, persist nothing
    --offline  no database: the store-backed rules are skipped, nothing persisted

Exit codes:
    0  every row accepted (and persisted in live mode)
    2  some rows rejected (accepted rows persisted)
    1  fatal error (config, column mismatch, max rows, database)
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    """Connection string; environment first, config ``database`` section as fallback.

    1. DATABASE_URL / PGDSN (whole DSN)
    2. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
    3. the config's database section, then libpq-style defaults
    """
    dsn_env = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn_env:
        return dsn_env
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def _db_connection(cfg: TaskConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """psycopg2 cursor on an autocommit connection.

    Autocommit lets PostgresTransaction own the BEGIN/COMMIT/ROLLBACK boundary.
    """
    conn = psycopg2.connect(resolve_dsn(cfg.database))
    try:
        conn.autocommit = True
        with conn.cursor() as cur:
            yield cur
    finally:
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv (its values win over the process environment)."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="import-validator", description="Validate and import a spreadsheet")
    p.add_argument("config", type=Path, help="Task config (YAML)")
    p.add_argument("file", type=Path, help="Workbook to import (.xlsx)")
    p.add_argument("--sheet", help="Sheet name or 0-based index (default: from config)")
    mode = p.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", action="store_true", help="Validate against the database, persist nothing")
    mode.add_argument("--offline", action="store_true", help="Validate without a database (skips database rules)")
    p.add_argument("--error-dir", type=Path, default=Path("errors"), help="Directory for the error workbook")
    p.add_argument("--logs-dir", type=Path, default=Path("logs"), help="Directory for the JSON Lines error log")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    return p.parse_args(argv)


def _sheet(value: str | None, cfg: TaskConfig) -> str | int:
    if value is None:
        return cfg.sheet
    return int(value) if value.isdigit() else value


def build_orchestrator(
    cfg: TaskConfig,
    store: Any,
    *,
    persist: Any = None,
    transaction: Any = None,
    error_dir: Path | None = None,
    error_log: ErrorLogBuffer | None = None,
    on_report: Any = None,
) -> ImportOrchestrator:
    """Wire an orchestrator for ``cfg`` on top of ``store``.

    With ``store=None`` the config's store-backed rules are left out.
    """
    return ImportOrchestrator(
        cfg.fields,
        formatter=FieldFormatter(cfg.fields, use_default=cfg.options.use_default),
        duplicate_detector=DuplicateDetector(cfg.unique_keys, cfg.display_names) if cfg.unique_keys else None,
        rules=build_rules(cfg, store) if store is not None else [],
        persist=persist,
        transaction=transaction,
        options=cfg.options,
        error_writer=ErrorReportWriter(cfg.fields, error_dir) if error_dir is not None else None,
        error_log=error_log,
        on_report=on_report,
    )


def _run(cfg: TaskConfig, args: argparse.Namespace, error_log: ErrorLogBuffer, cursor: Any = None) -> ImportResult:
    raw_rows = read_sheet_rows(args.file, _sheet(args.sheet, cfg))
    source = RowSource(raw_rows, cfg.fields, cfg.options.mode, cfg.options.header_row)
    with RowProgress(len(raw_rows)) as progress:
        if cursor is None:
            orchestrator = build_orchestrator(
                cfg, None, error_dir=args.error_dir, error_log=error_log, on_report=progress
            )
        else:
            live = not args.dry_run
            orchestrator = build_orchestrator(
                cfg,
                PostgresStore(cursor),
                persist=TableWriter(cursor, cfg.table) if live and cfg.table else None,
                transaction=PostgresTransaction(cursor) if live else None,
                error_dir=args.error_dir,
                error_log=error_log,
                on_report=progress,
            )
        return orchestrator.handle(source, input=args)


def _mode(args: argparse.Namespace) -> str:
    if args.offline:
        return "offline"
    return "dry-run" if args.dry_run else "live"


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    logger.debug("debug mode enabled")

    # .env first so it decides the database connection
    _load_env_file(Path(".env"), override=True)

    error_log = ErrorLogBuffer(args.logs_dir)
    try:
        cfg = load_config(args.config)
        if not args.file.exists():
            logger.error("file not found: %s", args.file)
            return EXIT_FATAL
        if args.offline:
            if cfg.rules:
                logger.info("offline: skipping %d database rule(s)", len(cfg.rules))
            result = _run(cfg, args, error_log)
        else:
            if args.dry_run:
                logger.info("dry run: nothing will be persisted")
            with _db_connection(cfg) as cur:
                result = _run(cfg, args, error_log, cursor=cur)
    except ImportValidationError as e:
        logger.error("%s: %s", type(e).__name__, e)
        error_log.flush()
        return EXIT_FATAL
    except psycopg2.Error as e:
        logger.error("database: %s", e)
        error_log.flush()
        return EXIT_FATAL

    log_path = error_log.flush()
    for record in result.rejected:
        logger.warning("line %s: %s", record.line, record.message)
    if result.error_report is not None:
        logger.info("error report: %s", result.error_report)
    if log_path is not None:
        logger.info("error log: %s", log_path)
    logger.info(
        "mode=%s persisted=%d queries=%d avg_query_sec=%.4f p95_query_sec=%.4f",
        _mode(args),
        result.persisted_rows,
        result.total_queries,
        result.avg_query_seconds,
        result.p95_query_seconds,
    )

    # log_summary adds the "SUMMARY " label itself
    log_summary(render_summary_line(result)[len("SUMMARY "):])

    if result.state is not ImportState.DONE:
        return EXIT_FATAL
    if result.rejected:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
