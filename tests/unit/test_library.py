# ABOUTME: Unit tests for LibraryService listing cache, admin CRUD, and enrichment entry points.
# ABOUTME: Background sweeps run inline through the runtime fixture.

import pytest

from lendery.core.lending import LendingService
from lendery.core.library import LibraryService
from lendery.core.viewer import Viewer
from lendery.db.catalog import BookQuery
from lendery.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from tests.fixtures.providers import make_candidate

ADMIN = Viewer.admin("admin")
ALICE = Viewer.member("alice")


@pytest.fixture
def service(conn, runtime) -> LibraryService:
    return LibraryService(conn, runtime)


class TestListBooks:
    """Tests for LibraryService.list_books."""

    def test_anonymous_listing_is_cached(self, service, runtime, add_book) -> None:
        add_book("Dune")
        first = service.list_books(Viewer.anonymous(), BookQuery())
        add_book("Emma", "Jane Austen")

        second = service.list_books(Viewer.anonymous(), BookQuery())

        assert second is first
        assert len(runtime.books_cache) == 1

    def test_signed_in_listing_is_fresh(self, service, add_book) -> None:
        add_book("Dune")
        service.list_books(Viewer.anonymous(), BookQuery())
        add_book("Emma", "Jane Austen")

        page = service.list_books(ALICE, BookQuery())

        assert len(page.records) == 2

    def test_anonymous_listing_triggers_sweep(
        self, service, add_book, catalog, googlebooks
    ) -> None:
        book = add_book("Dune")
        googlebooks.default = [make_candidate("Dune", source="googlebooks", isbn="0441013597")]

        service.list_books(Viewer.anonymous(), BookQuery())

        assert googlebooks.queries
        assert catalog.require(book.id).isbn == "0441013597"

    def test_signed_in_listing_does_not_sweep(self, service, add_book, googlebooks) -> None:
        add_book("Dune")
        service.list_books(ALICE, BookQuery())
        assert googlebooks.queries == []

    @pytest.mark.parametrize("limit", [0, 51])
    def test_limit_is_validated(self, service, limit) -> None:
        with pytest.raises(ValidationError):
            service.list_books(ALICE, BookQuery(limit=limit))


class TestAdminWrites:
    """Tests for create, update, and delete."""

    def test_create_book(self, service) -> None:
        record = service.create_book(ADMIN, {"title": "Dune", "author": "Frank Herbert"})
        assert record.available is True
        assert record.synthetic is False

    def test_create_requires_admin(self, service) -> None:
        with pytest.raises(ForbiddenError):
            service.create_book(ALICE, {"title": "Dune", "author": "Frank Herbert"})

    def test_create_requires_title_and_author(self, service) -> None:
        with pytest.raises(ValidationError):
            service.create_book(ADMIN, {"title": "Dune", "author": "  "})

    def test_duplicate_isbn_conflicts(self, service) -> None:
        service.create_book(ADMIN, {"title": "Dune", "author": "F", "isbn": "0441013597"})
        with pytest.raises(ConflictError):
            service.create_book(ADMIN, {"title": "Dune 2", "author": "F", "isbn": "0441013597"})

    def test_isbn_is_stored_digits_only(self, service) -> None:
        record = service.create_book(
            ADMIN, {"title": "Dune", "author": "F", "isbn": "978-0-441-01359-3"}
        )
        assert record.isbn == "9780441013593"

    def test_hyphenated_isbn_collides_with_plain_one(self, service) -> None:
        service.create_book(ADMIN, {"title": "Dune", "author": "F", "isbn": "0441013597"})
        with pytest.raises(ConflictError):
            service.create_book(ADMIN, {"title": "Dune 2", "author": "F", "isbn": "0-441-01359-7"})

    @pytest.mark.parametrize("isbn", ["12345", "not an isbn", "978044101359"])
    def test_malformed_isbn_is_rejected(self, service, isbn) -> None:
        with pytest.raises(ValidationError):
            service.create_book(ADMIN, {"title": "Dune", "author": "F", "isbn": isbn})

    def test_update_normalizes_isbn(self, service, add_book) -> None:
        book = add_book()
        record = service.update_book(ADMIN, book.id, {"isbn": "0-441-01359-7"})
        assert record.isbn == "0441013597"

    def test_update_book(self, service, add_book) -> None:
        book = add_book()
        record = service.update_book(ADMIN, book.id, {"genre": "Science fiction"})
        assert record.genre == "Science fiction"

    def test_update_rejects_lending_flags(self, service, add_book) -> None:
        book = add_book()
        with pytest.raises(ValidationError):
            service.update_book(ADMIN, book.id, {"available": False})

    def test_update_duplicate_isbn_conflicts(self, service, add_book) -> None:
        add_book("Dune", isbn="0441013597")
        other = add_book("Emma", "Jane Austen")
        with pytest.raises(ConflictError):
            service.update_book(ADMIN, other.id, {"isbn": "0441013597"})

    def test_update_missing_book(self, service) -> None:
        with pytest.raises(NotFoundError):
            service.update_book(ADMIN, 99, {"genre": "X"})

    def test_delete_book(self, service, add_book, catalog) -> None:
        book = add_book()
        service.delete_book(ADMIN, book.id)
        assert catalog.get_by_id(book.id) is None

    def test_delete_with_active_loan_conflicts(self, service, conn, runtime, add_book) -> None:
        book = add_book()
        LendingService(conn, runtime).checkout(ALICE, book.id)
        with pytest.raises(ConflictError):
            service.delete_book(ADMIN, book.id)

    def test_writes_invalidate_listing_cache(self, service, runtime, add_book) -> None:
        add_book("Dune")
        service.list_books(Viewer.anonymous(), BookQuery())
        service.create_book(ADMIN, {"title": "Emma", "author": "Jane Austen"})
        assert len(runtime.books_cache) == 0


class TestImportAndEnrich:
    """Tests for the admin enrichment entry points."""

    def test_import_external(self, service, openlibrary) -> None:
        openlibrary.default = [make_candidate("Dune", isbn="0441013597")]

        result = service.import_external(ADMIN, "dune", limit=5)

        assert result.created == 1
        assert result.source_used == "openlibrary"

    def test_import_reuses_hyphenated_isbn_record(self, service, openlibrary, catalog) -> None:
        existing = service.create_book(
            ADMIN, {"title": "Dune", "author": "Frank Herbert", "isbn": "978-0-441-01359-3"}
        )
        openlibrary.default = [make_candidate("Dune (Deluxe Edition)", isbn="9780441013593")]

        result = service.import_external(ADMIN, "dune", limit=5)

        assert (result.created, result.reused) == (0, 1)
        assert catalog.stats().total_books == 1
        assert catalog.require(existing.id).title == "Dune"

    def test_sweep_matches_on_hand_typed_isbn(self, service, openlibrary, catalog) -> None:
        record = service.create_book(
            ADMIN, {"title": "Dune", "author": "Frank Herbert", "isbn": "0-441-01359-7"}
        )
        openlibrary.default = [
            make_candidate(
                "Dune: Deluxe", author="Herbert", isbn="0441013597", genre="Science fiction"
            )
        ]

        result = service.enrich_metadata(ADMIN, limit=10, provider="openlibrary")

        assert result.matched == 1
        assert catalog.require(record.id).genre == "Science fiction"

    def test_import_validates_input(self, service) -> None:
        with pytest.raises(ValidationError):
            service.import_external(ADMIN, "   ")
        with pytest.raises(ValidationError):
            service.import_external(ADMIN, "dune", limit=41)
        with pytest.raises(ForbiddenError):
            service.import_external(ALICE, "dune")

    def test_enrich_metadata(self, service, add_book) -> None:
        add_book("Dragon Road", "F. Writer")
        result = service.enrich_metadata(ADMIN, limit=10)
        assert result.synthesized == 1

    def test_enrich_validates_limit(self, service) -> None:
        with pytest.raises(ValidationError):
            service.enrich_metadata(ADMIN, limit=1001)


class TestSearch:
    """Tests for LibraryService.search."""

    def test_local_hits_skip_providers(self, service, add_book, openlibrary) -> None:
        add_book("Dune")
        result = service.search(ALICE, "dune", with_fallback=True)

        assert [r.title for r in result.records] == ["Dune"]
        assert result.meta() == {"source": "local", "fallbackUsed": False}
        assert openlibrary.queries == []

    def test_miss_without_fallback_stays_local(self, service, openlibrary) -> None:
        openlibrary.default = [make_candidate("Dune", isbn="0441013597")]
        result = service.search(ALICE, "dune")
        assert result.records == []
        assert openlibrary.queries == []

    def test_anonymous_miss_never_imports(self, service, openlibrary) -> None:
        openlibrary.default = [make_candidate("Dune", isbn="0441013597")]
        result = service.search(Viewer.anonymous(), "dune", with_fallback=True)
        assert result.source == "local"
        assert result.records == []

    def test_signed_in_miss_imports_from_providers(
        self, service, runtime, openlibrary, googlebooks, catalog
    ) -> None:
        googlebooks.default = [make_candidate("Dune", source="googlebooks", isbn="0441013597")]
        runtime.books_cache.set("stale", "page")

        result = service.search(ALICE, "dune", limit=5, with_fallback=True)

        assert result.meta() == {
            "source": "googlebooks",
            "fallbackUsed": True,
            "importedCount": 1,
            "existingCount": 0,
        }
        assert catalog.get_by_isbn("0441013597") is not None
        assert len(runtime.books_cache) == 0
        assert service.search(ALICE, "dune").source == "local"

    def test_nothing_found_anywhere(self, service) -> None:
        result = service.search(ALICE, "zzz", with_fallback=True)
        assert result.records == []
        assert result.source == "none"

    def test_validates_input(self, service) -> None:
        with pytest.raises(ValidationError):
            service.search(ALICE, "  ")
        with pytest.raises(ValidationError):
            service.search(ALICE, "dune", limit=31)


class TestRelatedBooks:
    """Tests for LibraryService.related_books."""

    def test_returns_record_and_related(self, service, add_book) -> None:
        dune = add_book("Dune")
        messiah = add_book("Dune Messiah")

        record, related = service.related_books(dune.id)

        assert record.id == dune.id
        assert [r.id for r in related] == [messiah.id]

    def test_missing_book(self, service) -> None:
        with pytest.raises(NotFoundError):
            service.related_books(99)

    def test_limit_is_validated(self, service, add_book) -> None:
        with pytest.raises(ValidationError):
            service.related_books(add_book().id, limit=13)


class TestRecommend:
    """Tests for LibraryService.recommend."""

    def test_recommendations_are_cached(self, service, runtime, add_book) -> None:
        add_book("Dune", average_rating=4.5, ratings_count=100)

        first, history = service.recommend(ALICE, limit=3)
        second, _ = service.recommend(ALICE, limit=3)

        assert history == 0
        assert second is first
        assert len(runtime.recommendations_cache) == 1

    def test_limit_is_validated(self, service) -> None:
        with pytest.raises(ValidationError):
            service.recommend(ALICE, limit=21)
