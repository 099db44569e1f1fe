# ABOUTME: CRUD, listing, and monotonic patch writes for the lendery catalog.
# ABOUTME: Owns the books table; lending flags change only through claims.

import sqlite3
from dataclasses import dataclass
from typing import Any

from lendery.db.mapping import CATALOG_FIELDS, CatalogRecord, row_to_record
from lendery.errors import NotFoundError, ValidationError
from lendery.metadata.normalizer import PLACEHOLDER_AUTHORS

_NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now')"

_PLACEHOLDER_SQL = ", ".join(f"'{value}'" for value in sorted(PLACEHOLDER_AUTHORS))

# A row needs enrichment when any enrichable field is empty or the author is a placeholder.
_NEEDS_ENRICHMENT_SQL = f"""(
    cover_url IS NULL OR cover_url = ''
    OR description IS NULL OR description = ''
    OR genre IS NULL OR genre = ''
    OR published_year IS NULL
    OR isbn IS NULL
    OR average_rating IS NULL
    OR ratings_count IS NULL
    OR lower(trim(author)) IN ({_PLACEHOLDER_SQL})
)"""

# Text columns a patch may fill; numeric columns are filled only when NULL.
_TEXT_PATCH_FIELDS = frozenset({"isbn", "genre", "description", "cover_url"})
_NUMERIC_PATCH_FIELDS = frozenset({"published_year", "average_rating", "ratings_count"})


class DuplicateKeyError(Exception):
    """Raised when a write violates a unique constraint (e.g. a repeated ISBN)."""


def is_unique_violation(exc: sqlite3.IntegrityError) -> bool:
    return getattr(exc, "sqlite_errorcode", None) == sqlite3.SQLITE_CONSTRAINT_UNIQUE


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass
class BookQuery:
    """Filters and page window for a catalog listing."""

    q: str | None = None
    author: str | None = None
    genre: str | None = None
    available: bool | None = None
    cursor: int | None = None
    limit: int = 12

    def cache_key(self) -> tuple[Any, ...]:
        return (
            "books",
            self.q or "",
            self.author or "",
            self.genre or "",
            self.available,
            self.cursor,
            self.limit,
        )


@dataclass
class BookPage:
    """One page of a catalog listing."""

    records: list[CatalogRecord]
    has_next_page: bool
    next_cursor: int | None


@dataclass
class CatalogStats:
    """Headline counts for the catalog."""

    total_books: int
    available_books: int
    checked_out_books: int
    active_loans: int


class BookCatalog:
    """Wraps a sqlite3 connection and provides typed CRUD for the books table."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def add_book(self, fields: dict[str, Any], *, synthetic: bool = False) -> int:
        """Insert a catalog record in the default AVAILABLE state.

        Returns:
            The row ID of the inserted book.

        Raises:
            DuplicateKeyError: If another record already holds this ISBN.
        """
        row = {k: v for k, v in fields.items() if k in CATALOG_FIELDS}
        row["synthetic"] = int(synthetic)
        columns = ", ".join(row.keys())
        placeholders = ", ".join("?" for _ in row)

        try:
            cursor = self._conn.execute(
                f"INSERT INTO books ({columns}) VALUES ({placeholders})",
                list(row.values()),
            )
        except sqlite3.IntegrityError as exc:
            if is_unique_violation(exc):
                raise DuplicateKeyError(f"ISBN {row.get('isbn')} already cataloged") from exc
            raise

        return cursor.lastrowid  # type: ignore[return-value]

    def get_by_id(self, book_id: int) -> CatalogRecord | None:
        """Retrieve a book by its row ID."""
        cursor = self._conn.execute("SELECT * FROM books WHERE id = ?", (book_id,))
        row = cursor.fetchone()
        return row_to_record(row) if row else None

    def require(self, book_id: int) -> CatalogRecord:
        """Retrieve a book by ID or raise NotFoundError."""
        record = self.get_by_id(book_id)
        if record is None:
            raise NotFoundError("Book not found", {"bookId": book_id})
        return record

    def get_by_isbn(self, isbn: str) -> CatalogRecord | None:
        """Retrieve a book by its ISBN."""
        cursor = self._conn.execute("SELECT * FROM books WHERE isbn = ?", (isbn,))
        row = cursor.fetchone()
        return row_to_record(row) if row else None

    def find_by_title_author(self, title: str, author: str) -> CatalogRecord | None:
        """Case-insensitive exact match on title and author. Oldest record wins."""
        cursor = self._conn.execute(
            "SELECT * FROM books WHERE lower(title) = lower(?) AND lower(author) = lower(?) "
            "ORDER BY id LIMIT 1",
            (title.strip(), author.strip()),
        )
        row = cursor.fetchone()
        return row_to_record(row) if row else None

    def list_books(self, query: BookQuery) -> BookPage:
        """Cursor-paginated listing.

        Order: available first, then not request-pending, then newest. The
        cursor is the id of the last record of the previous page.
        """
        conditions: list[str] = []
        params: list[Any] = []

        if query.q:
            pattern = f"%{_escape_like(query.q.strip())}%"
            conditions.append(
                "(title LIKE ? ESCAPE '\\' OR author LIKE ? ESCAPE '\\' "
                "OR genre LIKE ? ESCAPE '\\' OR isbn LIKE ? ESCAPE '\\')"
            )
            params.extend([pattern] * 4)
        if query.author:
            conditions.append("author LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(query.author.strip())}%")
        if query.genre:
            conditions.append("genre LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(query.genre.strip())}%")
        if query.available is not None:
            conditions.append("available = ?")
            params.append(int(query.available))

        if query.cursor is not None:
            anchor = self._conn.execute(
                "SELECT id, available, request_pending FROM books WHERE id = ?",
                (query.cursor,),
            ).fetchone()
            if anchor is None:
                raise ValidationError("Unknown cursor", {"cursor": query.cursor})
            conditions.append("(1 - available, request_pending, -id) > (?, ?, ?)")
            params.extend([1 - anchor["available"], anchor["request_pending"], -anchor["id"]])

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        cursor = self._conn.execute(
            f"SELECT * FROM books {where} "
            "ORDER BY available DESC, request_pending ASC, id DESC LIMIT ?",
            [*params, query.limit + 1],
        )
        records = [row_to_record(row) for row in cursor.fetchall()]

        has_next_page = len(records) > query.limit
        records = records[: query.limit]
        next_cursor = records[-1].id if has_next_page and records else None
        return BookPage(records=records, has_next_page=has_next_page, next_cursor=next_cursor)

    def search(self, text: str, limit: int) -> list[CatalogRecord]:
        """Records whose title, author, genre or ISBN contain `text`, available first."""
        pattern = f"%{_escape_like(text.strip())}%"
        cursor = self._conn.execute(
            "SELECT * FROM books WHERE title LIKE ? ESCAPE '\\' OR author LIKE ? ESCAPE '\\' "
            "OR genre LIKE ? ESCAPE '\\' OR isbn LIKE ? ESCAPE '\\' "
            "ORDER BY available DESC, lower(title) ASC, id ASC LIMIT ?",
            [pattern, pattern, pattern, pattern, limit],
        )
        return [row_to_record(row) for row in cursor.fetchall()]

    def list_related(self, record: CatalogRecord, limit: int) -> list[CatalogRecord]:
        """Other records sharing the author or genre, padded out to `limit`.

        Three passes, each excluding what earlier passes found: exact author or
        genre, then genre substring or the author's surname, then anything.
        Within a pass: available first, then by rating and popularity.
        """
        strict = ["lower(author) = lower(?)"]
        strict_params: list[Any] = [record.author]
        relaxed: list[str] = []
        relaxed_params: list[Any] = []
        if record.genre:
            strict.append("lower(genre) = lower(?)")
            strict_params.append(record.genre)
            relaxed.append("genre LIKE ? ESCAPE '\\'")
            relaxed_params.append(f"%{_escape_like(record.genre)}%")
        surname = _author_token(record.author)
        if surname:
            relaxed.append("author LIKE ? ESCAPE '\\'")
            relaxed_params.append(f"%{_escape_like(surname)}%")

        passes = [(strict, strict_params), (relaxed, relaxed_params), (["1 = 1"], [])]
        found: list[CatalogRecord] = []
        for clauses, params in passes:
            if len(found) >= limit or not clauses:
                continue
            excluded = [record.id, *(item.id for item in found)]
            marks = ", ".join("?" for _ in excluded)
            cursor = self._conn.execute(
                f"SELECT * FROM books WHERE id NOT IN ({marks}) AND ({' OR '.join(clauses)}) "
                "ORDER BY available DESC, average_rating DESC, ratings_count DESC, "
                "created_at DESC, id DESC LIMIT ?",
                [*excluded, *params, limit - len(found)],
            )
            found.extend(row_to_record(row) for row in cursor.fetchall())
        return found

    def stats(self) -> CatalogStats:
        """Count books, available books, and active loans."""
        total = self._conn.execute("SELECT COUNT(*) FROM books").fetchone()[0]
        available = self._conn.execute(
            "SELECT COUNT(*) FROM books WHERE available = 1 AND request_pending = 0"
        ).fetchone()[0]
        active_loans = self._conn.execute(
            "SELECT COUNT(*) FROM loans WHERE returned_at IS NULL"
        ).fetchone()[0]
        return CatalogStats(
            total_books=total,
            available_books=available,
            checked_out_books=max(0, total - available),
            active_loans=active_loans,
        )

    def update_book(self, book_id: int, **fields: Any) -> None:
        """Update one or more catalog fields on a record.

        Raises:
            NotFoundError: If the book_id does not exist.
            DuplicateKeyError: If the new ISBN belongs to another record.
            ValueError: If a field is not a writable catalog column.
        """
        if not fields:
            return
        unknown = set(fields) - set(CATALOG_FIELDS)
        if unknown:
            raise ValueError(f"Not writable catalog fields: {sorted(unknown)}")

        set_clause = ", ".join(f"{k} = ?" for k in fields)
        set_clause += f", updated_at = {_NOW_SQL}"
        values = [*fields.values(), book_id]

        try:
            cursor = self._conn.execute(f"UPDATE books SET {set_clause} WHERE id = ?", values)
        except sqlite3.IntegrityError as exc:
            if is_unique_violation(exc):
                raise DuplicateKeyError(f"ISBN {fields.get('isbn')} already cataloged") from exc
            raise

        if cursor.rowcount == 0:
            raise NotFoundError("Book not found", {"bookId": book_id})

    def delete_book(self, book_id: int) -> None:
        """Delete a book (and, by cascade, its loans and requests).

        Raises:
            NotFoundError: If the book_id does not exist.
        """
        cursor = self._conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
        if cursor.rowcount == 0:
            raise NotFoundError("Book not found", {"bookId": book_id})

    # --- Enrichment support ---

    def list_for_enrichment(self, limit: int, *, only_missing: bool = True) -> list[CatalogRecord]:
        """Select records for a sweep, least recently updated first."""
        where = f"WHERE {_NEEDS_ENRICHMENT_SQL}" if only_missing else ""
        cursor = self._conn.execute(
            f"SELECT * FROM books {where} ORDER BY updated_at ASC, id ASC LIMIT ?",
            (limit,),
        )
        return [row_to_record(row) for row in cursor.fetchall()]

    def apply_patch(self, book_id: int, patch: dict[str, Any]) -> bool:
        """Write a fill-missing-only patch and mark the record synthetic.

        The SQL re-checks emptiness per column, so a value written by someone
        else between read and write is never overwritten.

        Returns:
            True if the record exists and the patch was written.

        Raises:
            DuplicateKeyError: If the patch's ISBN belongs to another record.
        """
        if not patch:
            return False

        assignments: list[str] = []
        params: list[Any] = []
        for column, value in patch.items():
            if column in _TEXT_PATCH_FIELDS:
                assignments.append(
                    f"{column} = CASE WHEN {column} IS NULL OR {column} = '' "
                    f"THEN ? ELSE {column} END"
                )
            elif column in _NUMERIC_PATCH_FIELDS:
                assignments.append(f"{column} = COALESCE({column}, ?)")
            elif column == "author":
                assignments.append(
                    f"author = CASE WHEN lower(trim(author)) IN ({_PLACEHOLDER_SQL}) "
                    "THEN ? ELSE author END"
                )
            else:
                raise ValueError(f"Not a patchable field: {column}")
            params.append(value)

        assignments.append("synthetic = 1")
        assignments.append(f"updated_at = {_NOW_SQL}")

        try:
            cursor = self._conn.execute(
                f"UPDATE books SET {', '.join(assignments)} WHERE id = ?",
                [*params, book_id],
            )
        except sqlite3.IntegrityError as exc:
            if is_unique_violation(exc):
                raise DuplicateKeyError(f"ISBN {patch.get('isbn')} already cataloged") from exc
            raise
        return cursor.rowcount == 1

    def touch(self, book_id: int) -> None:
        """Bump updated_at so a scanned-but-unchanged record rotates to the back."""
        self._conn.execute(f"UPDATE books SET updated_at = {_NOW_SQL} WHERE id = ?", (book_id,))

    # --- Recommendation support ---

    def list_recommendable(self, exclude_ids: set[int], limit: int) -> list[CatalogRecord]:
        """Available, not request-pending records outside `exclude_ids`."""
        params: list[Any] = []
        exclusion = ""
        if exclude_ids:
            exclusion = f"AND id NOT IN ({', '.join('?' for _ in exclude_ids)})"
            params.extend(sorted(exclude_ids))
        cursor = self._conn.execute(
            "SELECT * FROM books WHERE available = 1 AND request_pending = 0 "
            f"{exclusion} "
            "ORDER BY average_rating IS NULL, average_rating DESC, ratings_count DESC, id ASC "
            "LIMIT ?",
            [*params, limit],
        )
        return [row_to_record(row) for row in cursor.fetchall()]


def _author_token(author: str) -> str | None:
    """The last word of an author name with at least three letters, usually the surname."""
    tokens = [part for part in author.split() if len(part) >= 3]
    return tokens[-1] if tokens else None
