from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager

import psycopg2
from psycopg2.extras import RealDictCursor

from ..config.loader import DatabaseConfig
from .postgres import PostgresImportStore

"""PostgreSQL connection wiring.

DSN resolution order:
    1. DATABASE_URL / PGDSN from the environment (.env is loaded with
       override by the CLI before this runs)
    2. config `database.dsn`
    3. individual PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE, each
       falling back to the matching config `database` key
"""

__all__ = [
    "resolve_dsn",
    "db_connection",
]

logger = logging.getLogger(__name__)


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
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
def db_connection(db_cfg: DatabaseConfig) -> Iterator[PostgresImportStore]:  # pragma: no cover (needs a live server)
    """Yield a PostgresImportStore bound to a fresh connection.

    The connection runs in autocommit mode; multi-statement atomicity comes
    from the store's explicit transaction() blocks.
    """
    conn = psycopg2.connect(resolve_dsn(db_cfg))
    conn.autocommit = True
    cur = None
    try:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        yield PostgresImportStore(cur)
    finally:
        if cur is not None:
            cur.close()
        conn.close()
        logger.debug("database connection closed")
