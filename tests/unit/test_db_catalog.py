# ABOUTME: Unit tests for BookCatalog CRUD, listing, and monotonic patch writes.
# ABOUTME: Runs against a real temp SQLite database.

import sqlite3

import pytest

from lendery.db.catalog import BookCatalog, BookQuery, DuplicateKeyError
from lendery.db.claims import conditional_update
from lendery.db.mapping import BookState
from lendery.errors import NotFoundError, ValidationError

COMPLETE = {
    "isbn": "0441013597",
    "genre": "Science Fiction",
    "published_year": 1965,
    "description": "Desert planet.",
    "cover_url": "https://covers.example/dune.jpg",
    "average_rating": 4.3,
    "ratings_count": 1800,
}


def _set_flags(conn: sqlite3.Connection, book_id: int, **changes: bool) -> None:
    assert conditional_update(conn, "books", book_id, expected={}, changes=changes)


class TestAddAndGet:
    """Tests for add_book and lookups."""

    def test_add_returns_id_and_defaults(self, catalog: BookCatalog) -> None:
        book_id = catalog.add_book({"title": "Dune", "author": "Frank Herbert"})
        record = catalog.require(book_id)

        assert record.title == "Dune"
        assert record.state == BookState.AVAILABLE
        assert record.synthetic is False
        assert record.created_at is not None

    def test_synthetic_flag(self, catalog: BookCatalog) -> None:
        book_id = catalog.add_book({"title": "Dune", "author": "Unknown"}, synthetic=True)
        assert catalog.require(book_id).synthetic is True

    def test_lending_flags_are_not_writable_on_insert(self, catalog: BookCatalog) -> None:
        book_id = catalog.add_book({"title": "Dune", "author": "F", "available": False})
        assert catalog.require(book_id).available is True

    def test_duplicate_isbn(self, catalog: BookCatalog) -> None:
        catalog.add_book({"title": "Dune", "author": "F", "isbn": "0441013597"})
        with pytest.raises(DuplicateKeyError):
            catalog.add_book({"title": "Dune (again)", "author": "F", "isbn": "0441013597"})

    def test_require_missing(self, catalog: BookCatalog) -> None:
        with pytest.raises(NotFoundError):
            catalog.require(999)

    def test_get_by_isbn(self, add_book, catalog: BookCatalog) -> None:
        record = add_book(isbn="0441013597")
        assert catalog.get_by_isbn("0441013597").id == record.id
        assert catalog.get_by_isbn("0000000000") is None

    def test_find_by_title_author_is_case_insensitive(self, add_book, catalog) -> None:
        record = add_book("Dune", "Frank Herbert")
        found = catalog.find_by_title_author(" dune ", "FRANK HERBERT")
        assert found is not None and found.id == record.id


class TestListBooks:
    """Tests for cursor-paginated listing."""

    def test_order_available_then_pending_then_newest(self, add_book, catalog, conn) -> None:
        on_loan = add_book("On Loan")
        pending = add_book("Pending")
        older = add_book("Older")
        newer = add_book("Newer")
        _set_flags(conn, on_loan.id, available=False)
        _set_flags(conn, pending.id, request_pending=True)

        page = catalog.list_books(BookQuery())

        assert [r.id for r in page.records] == [newer.id, older.id, pending.id, on_loan.id]
        assert page.has_next_page is False
        assert page.next_cursor is None

    def test_cursor_pagination_visits_every_record_once(self, add_book, catalog, conn) -> None:
        books = [add_book(f"Book {i}") for i in range(7)]
        _set_flags(conn, books[2].id, available=False)
        _set_flags(conn, books[5].id, request_pending=True)

        seen: list[int] = []
        cursor = None
        while True:
            page = catalog.list_books(BookQuery(cursor=cursor, limit=3))
            seen.extend(r.id for r in page.records)
            if not page.has_next_page:
                break
            cursor = page.next_cursor

        assert sorted(seen) == sorted(b.id for b in books)
        assert len(seen) == len(set(seen))

    def test_filters(self, add_book, catalog, conn) -> None:
        add_book("Dune", genre="Science Fiction")
        emma = add_book("Emma", "Jane Austen", genre="Romance")
        add_book("Persuasion", "Jane Austen", genre="Romance", isbn="0141439688")
        _set_flags(conn, emma.id, available=False)

        assert [r.title for r in catalog.list_books(BookQuery(q="austen")).records] == [
            "Persuasion",
            "Emma",
        ]
        assert len(catalog.list_books(BookQuery(q="0141439688")).records) == 1
        assert len(catalog.list_books(BookQuery(genre="romance")).records) == 2
        assert [r.title for r in catalog.list_books(BookQuery(available=False)).records] == [
            "Emma"
        ]

    def test_like_wildcards_are_literal(self, add_book, catalog) -> None:
        add_book("100% Happy")
        add_book("Plain Title")
        assert [r.title for r in catalog.list_books(BookQuery(q="%")).records] == ["100% Happy"]

    def test_unknown_cursor(self, catalog: BookCatalog) -> None:
        with pytest.raises(ValidationError):
            catalog.list_books(BookQuery(cursor=42))


class TestStats:
    """Tests for catalog stats."""

    def test_counts(self, add_book, catalog, conn) -> None:
        add_book("A")
        pending = add_book("B")
        loaned = add_book("C")
        _set_flags(conn, pending.id, request_pending=True)
        _set_flags(conn, loaned.id, available=False)
        conn.execute("INSERT INTO loans (book_id, borrower_id) VALUES (?, 'u1')", (loaned.id,))

        stats = catalog.stats()

        assert stats.total_books == 3
        assert stats.available_books == 1
        assert stats.checked_out_books == 2
        assert stats.active_loans == 1


class TestUpdateAndDelete:
    """Tests for update_book and delete_book."""

    def test_update_fields(self, add_book, catalog) -> None:
        record = add_book()
        catalog.update_book(record.id, genre="Classic", published_year=1965)
        updated = catalog.require(record.id)
        assert updated.genre == "Classic"
        assert updated.published_year == 1965

    def test_update_missing_book(self, catalog: BookCatalog) -> None:
        with pytest.raises(NotFoundError):
            catalog.update_book(999, genre="X")

    def test_update_rejects_lending_flags(self, add_book, catalog) -> None:
        record = add_book()
        with pytest.raises(ValueError):
            catalog.update_book(record.id, available=False)

    def test_update_duplicate_isbn(self, add_book, catalog) -> None:
        add_book("A", isbn="0441013597")
        other = add_book("B")
        with pytest.raises(DuplicateKeyError):
            catalog.update_book(other.id, isbn="0441013597")

    def test_delete_cascades(self, add_book, catalog, conn) -> None:
        record = add_book()
        conn.execute(
            "INSERT INTO loans (book_id, borrower_id, returned_at) VALUES (?, 'u1', ?)",
            (record.id, "2026-02-01T00:00:00+00:00"),
        )
        catalog.delete_book(record.id)
        assert catalog.get_by_id(record.id) is None
        assert conn.execute("SELECT COUNT(*) FROM loans").fetchone()[0] == 0

    def test_delete_missing(self, catalog: BookCatalog) -> None:
        with pytest.raises(NotFoundError):
            catalog.delete_book(999)


class TestEnrichmentSupport:
    """Tests for list_for_enrichment, apply_patch, and touch."""

    def test_only_missing_skips_complete_records(self, add_book, catalog) -> None:
        add_book("Complete", **COMPLETE)
        sparse = add_book("Sparse")
        placeholder = add_book("Anon", "Unknown", **{**COMPLETE, "isbn": "0141439688"})

        selected = catalog.list_for_enrichment(10)

        assert [r.id for r in selected] == [sparse.id, placeholder.id]
        assert len(catalog.list_for_enrichment(10, only_missing=False)) == 3

    def test_patch_fills_only_empty_fields(self, add_book, catalog) -> None:
        record = add_book(genre="Classic")

        written = catalog.apply_patch(
            record.id, {"genre": "Fiction", "published_year": 1965, "isbn": "0441013597"}
        )

        patched = catalog.require(record.id)
        assert written is True
        assert patched.genre == "Classic"
        assert patched.published_year == 1965
        assert patched.isbn == "0441013597"
        assert patched.synthetic is True

    def test_patch_is_idempotent(self, add_book, catalog) -> None:
        record = add_book()
        patch = {"genre": "Fiction", "average_rating": 4.1, "ratings_count": 10}

        catalog.apply_patch(record.id, patch)
        first = catalog.require(record.id)
        catalog.apply_patch(record.id, patch)
        second = catalog.require(record.id)

        assert (first.genre, first.average_rating, first.ratings_count) == (
            second.genre,
            second.average_rating,
            second.ratings_count,
        )

    def test_patch_never_overwrites_real_author(self, add_book, catalog) -> None:
        real = add_book("Dune", "Frank Herbert")
        anon = add_book("Emma", "unknown")

        catalog.apply_patch(real.id, {"author": "Someone Else"})
        catalog.apply_patch(anon.id, {"author": "Jane Austen"})

        assert catalog.require(real.id).author == "Frank Herbert"
        assert catalog.require(anon.id).author == "Jane Austen"

    def test_patch_rejects_unknown_columns(self, add_book, catalog) -> None:
        record = add_book()
        with pytest.raises(ValueError):
            catalog.apply_patch(record.id, {"available": 0})

    def test_patch_missing_record(self, catalog: BookCatalog) -> None:
        assert catalog.apply_patch(999, {"genre": "X"}) is False

    def test_empty_patch(self, add_book, catalog) -> None:
        assert catalog.apply_patch(add_book().id, {}) is False

    def test_touch_moves_record_to_back(self, add_book, catalog, conn) -> None:
        first = add_book("First")
        second = add_book("Second")
        conn.execute(
            "UPDATE books SET updated_at = '2000-01-01T00:00:00+00:00' WHERE id IN (?, ?)",
            (first.id, second.id),
        )

        catalog.touch(first.id)

        assert [r.id for r in catalog.list_for_enrichment(10)] == [second.id, first.id]


class TestListRecommendable:
    """Tests for list_recommendable."""

    def test_excludes_unavailable_pending_and_excluded(self, add_book, catalog, conn) -> None:
        keep = add_book("Keep", average_rating=4.0)
        loaned = add_book("Loaned")
        pending = add_book("Pending")
        excluded = add_book("Excluded")
        _set_flags(conn, loaned.id, available=False)
        _set_flags(conn, pending.id, request_pending=True)

        pool = catalog.list_recommendable({excluded.id}, 10)

        assert [r.id for r in pool] == [keep.id]


class TestSearch:
    """Tests for the substring search behind /search/books."""

    def test_matches_any_text_field_available_first(self, add_book, catalog, conn) -> None:
        dune = add_book("Dune")
        messiah = add_book("Dune Messiah")
        by_isbn = add_book("Emma", "Jane Austen", isbn="9780141439587")
        add_book("Foundation", "Isaac Asimov")
        _set_flags(conn, dune.id, available=False)

        assert [r.id for r in catalog.search("dune", 10)] == [messiah.id, dune.id]
        assert [r.id for r in catalog.search("14143958", 10)] == [by_isbn.id]
        assert catalog.search("herbert", 1) == [messiah]

    def test_like_wildcards_are_literal(self, add_book, catalog) -> None:
        add_book("Dune")
        assert catalog.search("%", 10) == []


class TestListRelated:
    """Tests for list_related."""

    @pytest.fixture
    def shelf(self, add_book, conn) -> dict:
        books = {
            "dune": add_book("Dune", genre="Science fiction"),
            "messiah": add_book("Dune Messiah", average_rating=3.0),
            "children": add_book("Children of Dune", average_rating=4.5),
            "foundation": add_book(
                "Foundation", "Isaac Asimov", genre="science fiction", average_rating=4.9
            ),
            "brian": add_book("Dreamer of Dune", "Brian Herbert"),
            "emma": add_book("Emma", "Jane Austen", genre="Classic"),
        }
        _set_flags(conn, books["foundation"].id, available=False)
        return books

    def test_same_author_or_genre_first(self, shelf, catalog) -> None:
        related = catalog.list_related(shelf["dune"], 3)
        assert [r.title for r in related] == ["Children of Dune", "Dune Messiah", "Foundation"]

    def test_padded_with_surname_then_anything(self, shelf, catalog) -> None:
        related = catalog.list_related(shelf["dune"], 10)

        assert [r.title for r in related][3:] == ["Dreamer of Dune", "Emma"]
        assert shelf["dune"].id not in {r.id for r in related}

    def test_without_genre(self, add_book, catalog) -> None:
        lone = add_book("Emma", "Jane Austen")
        other = add_book("Persuasion", "Jane Austen")
        assert catalog.list_related(lone, 5) == [other]
