# ABOUTME: SQL DDL statements for the lendery database schema.
# ABOUTME: Defines books, loans, borrow requests, audit log, and the at-most-one indexes.

_NOW = "strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now')"

SCHEMA_V1 = f"""
-- One catalog record is one physical unit
CREATE TABLE books (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    title           TEXT NOT NULL,
    author          TEXT NOT NULL,
    isbn            TEXT,
    genre           TEXT,
    published_year  INTEGER,
    description     TEXT,
    cover_url       TEXT,
    average_rating  REAL CHECK (average_rating IS NULL OR (average_rating >= 0 AND average_rating <= 5)),
    ratings_count   INTEGER CHECK (ratings_count IS NULL OR ratings_count >= 0),
    synthetic       INTEGER NOT NULL DEFAULT 0,
    available       INTEGER NOT NULL DEFAULT 1,
    request_pending INTEGER NOT NULL DEFAULT 0,
    created_at      TEXT NOT NULL DEFAULT ({_NOW}),
    updated_at      TEXT NOT NULL DEFAULT ({_NOW})
);

CREATE UNIQUE INDEX idx_books_isbn ON books(isbn) WHERE isbn IS NOT NULL;
CREATE INDEX idx_books_updated_at ON books(updated_at);
CREATE INDEX idx_books_listing ON books(available, request_pending, id);

CREATE TABLE loans (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    book_id        INTEGER NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    borrower_id    TEXT NOT NULL,
    checked_out_at TEXT NOT NULL DEFAULT ({_NOW}),
    due_at         TEXT,
    returned_at    TEXT
);

-- At most one active loan per book
CREATE UNIQUE INDEX idx_loans_active_book ON loans(book_id) WHERE returned_at IS NULL;
CREATE INDEX idx_loans_borrower ON loans(borrower_id, checked_out_at);

CREATE TABLE borrow_requests (
    id                        INTEGER PRIMARY KEY AUTOINCREMENT,
    borrower_id               TEXT NOT NULL,
    book_id                   INTEGER NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    status                    TEXT NOT NULL DEFAULT 'PENDING'
                              CHECK (status IN ('PENDING', 'APPROVED', 'DECLINED')),
    reviewed_by_id            TEXT,
    reviewed_at               TEXT,
    borrower_acknowledged_at  TEXT,
    created_at                TEXT NOT NULL DEFAULT ({_NOW})
);

-- At most one pending request per book
CREATE UNIQUE INDEX idx_requests_pending_book ON borrow_requests(book_id)
    WHERE status = 'PENDING';
CREATE INDEX idx_requests_borrower ON borrow_requests(borrower_id, status);

CREATE TABLE audit_log (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    actor_id   TEXT,
    action     TEXT NOT NULL,
    entity     TEXT NOT NULL,
    entity_id  TEXT,
    metadata   TEXT,
    created_at TEXT NOT NULL DEFAULT ({_NOW})
);

-- Schema versioning for future migrations
CREATE TABLE schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT ({_NOW})
);

INSERT INTO schema_version (version) VALUES (1);
"""

# (version, sql) pairs applied in order after SCHEMA_V1.
MIGRATIONS: list[tuple[int, str]] = []
