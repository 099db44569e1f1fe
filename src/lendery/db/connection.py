# ABOUTME: SQLite connection management for the lendery store.
# ABOUTME: Opens or creates the database, applies schema, and provides the atomic unit.

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from lendery.config import DEFAULT_DB_PATH
from lendery.db.schema import MIGRATIONS, SCHEMA_V1


def _schema_exists(conn: sqlite3.Connection) -> bool:
    """Check if the schema has already been applied."""
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
    )
    return cursor.fetchone() is not None


def _get_schema_version(conn: sqlite3.Connection) -> int:
    """Read the current schema version from the database."""
    cursor = conn.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1")
    row = cursor.fetchone()
    return row[0] if row else 0


def _apply_migrations(conn: sqlite3.Connection) -> None:
    """Apply pending schema migrations sequentially.

    No-op if the database is already at the latest version.
    """
    current = _get_schema_version(conn)
    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)


def open_library(path: Path | None = None, *, busy_timeout: float = 10.0) -> sqlite3.Connection:
    """Open or create the lendery database.

    The connection runs in autocommit mode: single statements commit on their
    own, and multi-step transitions go through `transaction()`. WAL mode lets
    readers proceed while a writer holds the lock; `busy_timeout` bounds how
    long a writer waits for another writer.

    Args:
        path: Path to the database file. Defaults to ~/.lendery/library.db.
        busy_timeout: Seconds to wait on a locked database.

    Returns:
        A configured sqlite3.Connection.
    """
    db_path = path or DEFAULT_DB_PATH
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(
        str(db_path),
        timeout=busy_timeout,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")

    # Only a fresh database takes the write lock; re-check under it in case
    # another connection created the schema first.
    if not _schema_exists(conn):
        with transaction(conn):
            if not _schema_exists(conn):
                for statement in _split_script(SCHEMA_V1):
                    conn.execute(statement)

    _apply_migrations(conn)

    return conn


def _split_script(script: str) -> list[str]:
    """Split a DDL script into statements so it can run inside one transaction.

    executescript() commits implicitly, which would break the atomic unit.
    """
    statements: list[str] = []
    buffer = ""
    for line in script.splitlines(keepends=True):
        if line.lstrip().startswith("--"):
            continue
        buffer += line
        if sqlite3.complete_statement(buffer):
            statements.append(buffer.strip())
            buffer = ""
    return [s for s in statements if s]


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block as one atomic unit against the store.

    Takes the write lock up front (BEGIN IMMEDIATE) so concurrent writers
    serialize instead of failing at commit time. Any exception rolls back
    every statement issued inside the block and is re-raised.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")
