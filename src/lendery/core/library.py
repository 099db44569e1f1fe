# ABOUTME: Catalog service: cached listing, record CRUD, stats, and enrichment entry points.
# ABOUTME: Anonymous listings are cached and opportunistically start a background sweep.

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any

from lendery.core.enrichment import AUTO_PROVIDER, ImportResult, SweepResult
from lendery.core.recommendations import Recommendation, RecommendationScorer
from lendery.core.runtime import Runtime
from lendery.core.viewer import Viewer
from lendery.db.catalog import BookCatalog, BookPage, BookQuery, CatalogStats, DuplicateKeyError
from lendery.db.circulation import CirculationStore
from lendery.db.connection import transaction
from lendery.db.mapping import CATALOG_FIELDS, CatalogRecord
from lendery.errors import ConflictError, ValidationError
from lendery.metadata.normalizer import normalize_isbn

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50
MAX_IMPORT_LIMIT = 40
MAX_SWEEP_LIMIT = 1000
MAX_RECOMMENDATIONS = 20
MAX_SEARCH_RESULTS = 30
MAX_RELATED = 12

DUPLICATE_ISBN = "A book with this ISBN already exists"


@dataclass
class SearchResult:
    """Local search hits, or records imported from providers when the catalog had none."""

    records: list[CatalogRecord]
    source: str
    fallback_used: bool = False
    imported: ImportResult | None = None

    def meta(self) -> dict[str, Any]:
        meta: dict[str, Any] = {"source": self.source, "fallbackUsed": self.fallback_used}
        if self.imported is not None and self.imported.records:
            meta["importedCount"] = self.imported.created
            meta["existingCount"] = self.imported.reused
        return meta


class LibraryService:
    """Catalog reads and writes for one connection, sharing the runtime's caches."""

    def __init__(self, conn: sqlite3.Connection, runtime: Runtime) -> None:
        self._conn = conn
        self._runtime = runtime
        self._catalog = BookCatalog(conn)
        self._circulation = CirculationStore(conn)

    # --- Reads ---

    def list_books(self, viewer: Viewer, query: BookQuery) -> BookPage:
        """One page of the catalog.

        For anonymous callers the page is served from the read cache when
        fresh, and the call may start a background enrichment sweep. The
        sweep never delays or changes this response.
        """
        _check_limit(query.limit, MAX_PAGE_SIZE)

        if not viewer.is_anonymous:
            return self._catalog.list_books(query)

        self._runtime.sweeper.maybe_trigger()
        key = query.cache_key()
        cached = self._runtime.books_cache.get(key)
        if cached is not None:
            return cached
        page = self._catalog.list_books(query)
        self._runtime.books_cache.set(key, page)
        return page

    def get_book(self, book_id: int) -> CatalogRecord:
        return self._catalog.require(book_id)

    def stats(self) -> CatalogStats:
        return self._catalog.stats()

    def search(
        self, viewer: Viewer, text: str, limit: int = 10, *, with_fallback: bool = False
    ) -> SearchResult:
        """Search the local catalog, optionally importing from providers on a miss.

        The provider fallback runs only for signed-in callers, and only when
        the local catalog has no hit. Imported records are persisted through
        the same path as an admin import, so the next search finds them locally.
        """
        if not text.strip():
            raise ValidationError("q must not be empty")
        _check_limit(limit, MAX_SEARCH_RESULTS)

        records = self._catalog.search(text, limit)
        if records or not with_fallback or viewer.is_anonymous:
            return SearchResult(records=records, source="local")

        imported = self._runtime.engine(self._conn).import_by_query(
            text, limit, AUTO_PROVIDER, actor_id=viewer.user_id
        )
        if not imported.records:
            return SearchResult(records=[], source="none", fallback_used=imported.fallback_used)
        if imported.created:
            self._runtime.invalidate_caches()
        return SearchResult(
            records=imported.records,
            source=imported.source_used or "none",
            fallback_used=imported.fallback_used,
            imported=imported,
        )

    def related_books(
        self, book_id: int, limit: int = 8
    ) -> tuple[CatalogRecord, list[CatalogRecord]]:
        """A record and up to `limit` others by the same author or in the same genre."""
        _check_limit(limit, MAX_RELATED)
        record = self._catalog.require(book_id)
        return record, self._catalog.list_related(record, limit)

    def recommend(self, viewer: Viewer, limit: int = 5) -> tuple[list[Recommendation], int]:
        """Ranked recommendations and the number of history loans behind them."""
        _check_limit(limit, MAX_RECOMMENDATIONS)
        lending = self._runtime.settings.lending
        scorer = RecommendationScorer(
            self._catalog,
            self._circulation,
            history_limit=lending.recommendation_history,
            pool_limit=lending.recommendation_pool,
        )
        history = scorer.history(viewer.user_id)
        key = ("recommendations", viewer.user_id, len(history), limit)
        cached = self._runtime.recommendations_cache.get(key)
        if cached is not None:
            return cached, len(history)

        ranked = scorer.recommend(viewer.user_id, limit, history=history)
        self._runtime.recommendations_cache.set(key, ranked)
        return ranked, len(history)

    # --- Writes (admin) ---

    def create_book(self, viewer: Viewer, fields: dict[str, Any]) -> CatalogRecord:
        """Insert a record in the AVAILABLE state.

        Raises:
            ConflictError: Another record already holds the ISBN.
        """
        actor_id = viewer.require_admin()
        _check_fields(fields, required=("title", "author"))
        fields = _normalize_isbn_field(fields)
        try:
            with transaction(self._conn):
                book_id = self._catalog.add_book(fields)
                self._circulation.record_audit(
                    "BOOK_CREATED",
                    "BOOK",
                    actor_id=actor_id,
                    entity_id=book_id,
                    metadata={"title": fields["title"], "author": fields["author"]},
                )
        except DuplicateKeyError as exc:
            raise ConflictError(DUPLICATE_ISBN, {"isbn": fields.get("isbn")}) from exc

        self._runtime.invalidate_caches()
        return self._catalog.require(book_id)

    def update_book(self, viewer: Viewer, book_id: int, fields: dict[str, Any]) -> CatalogRecord:
        """Overwrite catalog fields on a record. Lending flags are not writable here."""
        actor_id = viewer.require_admin()
        _check_fields(fields)
        fields = _normalize_isbn_field(fields)
        self._catalog.require(book_id)
        try:
            with transaction(self._conn):
                self._catalog.update_book(book_id, **fields)
                self._circulation.record_audit(
                    "BOOK_UPDATED",
                    "BOOK",
                    actor_id=actor_id,
                    entity_id=book_id,
                    metadata={"fields": sorted(fields)},
                )
        except DuplicateKeyError as exc:
            raise ConflictError(DUPLICATE_ISBN, {"isbn": fields.get("isbn")}) from exc

        self._runtime.invalidate_caches()
        return self._catalog.require(book_id)

    def delete_book(self, viewer: Viewer, book_id: int) -> None:
        """Delete a record and its history.

        Raises:
            ConflictError: The record has an active loan.
        """
        actor_id = viewer.require_admin()
        record = self._catalog.require(book_id)
        with transaction(self._conn):
            if self._circulation.active_loan_for_book(book_id) is not None:
                raise ConflictError(
                    "Cannot delete a book with an active loan", {"bookId": book_id}
                )
            self._catalog.delete_book(book_id)
            self._circulation.record_audit(
                "BOOK_DELETED",
                "BOOK",
                actor_id=actor_id,
                entity_id=book_id,
                metadata={"title": record.title, "author": record.author},
            )
        self._runtime.invalidate_caches()

    def import_external(
        self, viewer: Viewer, query: str, limit: int = 10, provider: str = AUTO_PROVIDER
    ) -> ImportResult:
        actor_id = viewer.require_admin()
        if not query.strip():
            raise ValidationError("query must not be empty")
        _check_limit(limit, MAX_IMPORT_LIMIT)
        result = self._runtime.engine(self._conn).import_by_query(
            query, limit, provider, actor_id=actor_id
        )
        self._runtime.invalidate_caches()
        return result

    def enrich_metadata(
        self,
        viewer: Viewer,
        limit: int = 50,
        provider: str = AUTO_PROVIDER,
        *,
        only_missing: bool = True,
    ) -> SweepResult:
        """Run an enrichment sweep synchronously on this connection."""
        actor_id = viewer.require_admin()
        _check_limit(limit, MAX_SWEEP_LIMIT)
        result = self._runtime.engine(self._conn).sweep(
            limit, provider, only_missing=only_missing, actor_id=actor_id
        )
        if result.updated:
            self._runtime.invalidate_caches()
        return result


def _check_limit(limit: int, upper: int) -> None:
    if not 1 <= limit <= upper:
        raise ValidationError(f"limit must be between 1 and {upper}", {"limit": limit})


def _check_fields(fields: dict[str, Any], *, required: tuple[str, ...] = ()) -> None:
    unknown = sorted(set(fields) - set(CATALOG_FIELDS))
    if unknown:
        raise ValidationError("Unknown catalog fields", {"fields": unknown})
    for name in required:
        value = fields.get(name)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{name} is required", {"field": name})
    for name in ("title", "author"):
        if name in fields and (not isinstance(fields[name], str) or not fields[name].strip()):
            raise ValidationError(f"{name} must not be empty", {"field": name})


def _normalize_isbn_field(fields: dict[str, Any]) -> dict[str, Any]:
    """Store ISBNs in the same digits-only form providers produce."""
    raw = fields.get("isbn")
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return {**fields, "isbn": None} if "isbn" in fields else fields
    isbn = normalize_isbn(raw)
    if isbn is None:
        raise ValidationError("isbn must have 10 or 13 digits", {"isbn": raw})
    return {**fields, "isbn": isbn}
