# ABOUTME: Unit tests for database schema creation and the atomic unit.
# ABOUTME: Verifies tables, pragmas, idempotent opening, partial unique indexes, and rollback.

import sqlite3
from pathlib import Path

import pytest

from lendery.db.connection import open_library, transaction


@pytest.fixture
def db(tmp_path: Path):
    conn = open_library(tmp_path / "schema.db")
    yield conn
    conn.close()


def _insert_book(conn: sqlite3.Connection, title: str = "Dune") -> int:
    cursor = conn.execute(
        "INSERT INTO books (title, author) VALUES (?, ?)", (title, "Frank Herbert")
    )
    return cursor.lastrowid


class TestSchemaCreation:
    """Tests for open_library schema setup."""

    def test_creates_tables(self, db: sqlite3.Connection) -> None:
        names = {
            row[0]
            for row in db.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        assert {"books", "loans", "borrow_requests", "audit_log", "schema_version"} <= names

    def test_pragmas(self, db: sqlite3.Connection) -> None:
        assert db.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        assert db.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_reopen_is_idempotent(self, tmp_path: Path) -> None:
        path = tmp_path / "twice.db"
        open_library(path).close()
        conn = open_library(path)
        try:
            assert conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0] == 1
        finally:
            conn.close()

    def test_opening_existing_database_skips_write_lock(self, tmp_path: Path) -> None:
        path = tmp_path / "busy.db"
        writer = open_library(path)
        writer.execute("BEGIN IMMEDIATE")
        try:
            reader = open_library(path, busy_timeout=0.05)
            assert reader.execute("SELECT COUNT(*) FROM books").fetchone()[0] == 0
            reader.close()
        finally:
            writer.execute("ROLLBACK")
            writer.close()

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "dir" / "library.db"
        open_library(path).close()
        assert path.exists()

    def test_new_book_defaults(self, db: sqlite3.Connection) -> None:
        book_id = _insert_book(db)
        row = db.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
        assert row["available"] == 1
        assert row["request_pending"] == 0
        assert row["synthetic"] == 0
        assert row["created_at"]


class TestAtMostOneIndexes:
    """Tests for the partial unique indexes backing lending invariants."""

    def test_one_active_loan_per_book(self, db: sqlite3.Connection) -> None:
        book_id = _insert_book(db)
        db.execute("INSERT INTO loans (book_id, borrower_id) VALUES (?, 'u1')", (book_id,))
        with pytest.raises(sqlite3.IntegrityError):
            db.execute("INSERT INTO loans (book_id, borrower_id) VALUES (?, 'u2')", (book_id,))

    def test_returned_loans_do_not_count(self, db: sqlite3.Connection) -> None:
        book_id = _insert_book(db)
        db.execute(
            "INSERT INTO loans (book_id, borrower_id, returned_at) VALUES (?, 'u1', ?)",
            (book_id, "2026-02-01T00:00:00+00:00"),
        )
        db.execute("INSERT INTO loans (book_id, borrower_id) VALUES (?, 'u2')", (book_id,))

    def test_one_pending_request_per_book(self, db: sqlite3.Connection) -> None:
        book_id = _insert_book(db)
        db.execute(
            "INSERT INTO borrow_requests (book_id, borrower_id) VALUES (?, 'u1')", (book_id,)
        )
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "INSERT INTO borrow_requests (book_id, borrower_id) VALUES (?, 'u2')",
                (book_id,),
            )

    def test_isbn_unique_but_nullable(self, db: sqlite3.Connection) -> None:
        db.execute("INSERT INTO books (title, author) VALUES ('A', 'X')")
        db.execute("INSERT INTO books (title, author) VALUES ('B', 'X')")
        db.execute("INSERT INTO books (title, author, isbn) VALUES ('C', 'X', '0441013597')")
        with pytest.raises(sqlite3.IntegrityError):
            db.execute("INSERT INTO books (title, author, isbn) VALUES ('D', 'X', '0441013597')")


class TestTransaction:
    """Tests for the transaction() atomic unit."""

    def test_commits_on_success(self, db: sqlite3.Connection) -> None:
        with transaction(db):
            _insert_book(db, "One")
            _insert_book(db, "Two")
        assert db.execute("SELECT COUNT(*) FROM books").fetchone()[0] == 2

    def test_rolls_back_everything_on_error(self, db: sqlite3.Connection) -> None:
        with pytest.raises(RuntimeError), transaction(db):
            _insert_book(db, "One")
            raise RuntimeError("dependent create failed")
        assert db.execute("SELECT COUNT(*) FROM books").fetchone()[0] == 0
        assert not db.in_transaction
