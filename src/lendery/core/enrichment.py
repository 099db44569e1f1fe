# ABOUTME: The metadata enrichment engine: import-by-query and the enrichment sweep.
# ABOUTME: Looks up providers outside any transaction, then writes fill-missing-only patches.

import logging
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from lendery.config import EnrichmentConfig
from lendery.db.catalog import BookCatalog, DuplicateKeyError
from lendery.db.circulation import CirculationStore
from lendery.db.connection import transaction
from lendery.db.mapping import CatalogRecord
from lendery.errors import ConflictError, UpstreamUnavailableError, ValidationError
from lendery.metadata.normalizer import (
    PLACEHOLDER_AUTHOR_LABEL,
    dedupe_candidates,
    is_placeholder_author,
    split_concatenated,
)
from lendery.metadata.provider import MetadataProvider
from lendery.metadata.scoring import fillable_fields, missing_fields, score_candidate
from lendery.metadata.synthetic import infer_genre, render_cover, synthetic_rating
from lendery.metadata.types import ENRICHABLE_FIELDS, ExternalCandidate

logger = logging.getLogger(__name__)

AUTO_PROVIDER = "auto"

MATCHED = "matched"
SYNTHESIZED = "synthesized"
UNCHANGED = "unchanged"


@dataclass
class SearchOutcome:
    """Deduped candidates from the first provider that had any."""

    candidates: list[ExternalCandidate]
    source_used: str | None
    fallback_used: bool
    failed_providers: list[str] = field(default_factory=list)


@dataclass
class ImportResult:
    """Records produced by an import-by-query run, new and reused."""

    records: list[CatalogRecord]
    created: int
    reused: int
    source_used: str | None
    fallback_used: bool
    failed_providers: list[str] = field(default_factory=list)

    def meta(self) -> dict[str, Any]:
        return {
            "sourceUsed": self.source_used,
            "fallbackUsed": self.fallback_used,
            "importedCount": self.created,
            "existingCount": self.reused,
            "upstreamUnavailable": self.failed_providers,
        }


@dataclass
class SweepResult:
    """Per-record tallies of one enrichment sweep."""

    scanned: int = 0
    updated: int = 0
    matched: int = 0
    synthesized: int = 0
    unchanged: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "scanned": self.scanned,
            "updatedCount": self.updated,
            "matchedCount": self.matched,
            "synthesizedCount": self.synthesized,
            "unchangedCount": self.unchanged,
            "failedCount": self.failed,
        }


@dataclass
class ScoredCandidate:
    candidate: ExternalCandidate
    score: int


def build_query_attempts(record: CatalogRecord) -> list[str]:
    """Queries to try for a record, most precise first: ISBN, title + author, title."""
    title = split_concatenated(record.title)
    attempts: list[str] = []
    if record.isbn:
        attempts.append(f"isbn:{record.isbn}")
    if not is_placeholder_author(record.author):
        attempts.append(f"{title} {record.author.strip()}")
    attempts.append(title)

    unique: list[str] = []
    for attempt in attempts:
        attempt = attempt.strip()
        if attempt and attempt not in unique:
            unique.append(attempt)
    return unique


def build_patch(record: CatalogRecord, candidate: ExternalCandidate) -> dict[str, Any]:
    """Fields the candidate can fill on the record; populated fields are left out."""
    fillable = fillable_fields(record, candidate)
    return {name: getattr(candidate, name) for name in ENRICHABLE_FIELDS if name in fillable}


def synthesize_patch(record: CatalogRecord, patch: dict[str, Any] | None = None) -> dict[str, Any]:
    """Deterministic placeholder values for gaps left after `patch` is applied.

    Fills genre, cover, rating, ratings count, and a blank author. ISBN,
    year, and description are never invented.
    """
    view = replace(record, **(patch or {}))
    missing = missing_fields(view)
    synthesized: dict[str, Any] = {}

    author = view.author
    if not (author or "").strip():
        author = PLACEHOLDER_AUTHOR_LABEL
        synthesized["author"] = author
    if "genre" in missing:
        synthesized["genre"] = infer_genre(view.title, view.description)
    if "cover_url" in missing:
        synthesized["cover_url"] = render_cover(view.title, author)
    if "average_rating" in missing or "ratings_count" in missing:
        rating, count = synthetic_rating(view.title, author)
        if "average_rating" in missing:
            synthesized["average_rating"] = rating
        if "ratings_count" in missing:
            synthesized["ratings_count"] = count
    return synthesized


class EnrichmentEngine:
    """Reconciles catalog records with external metadata providers.

    `providers` are given in import priority order; the sweep walks them in
    reverse, since match precision matters more there than coverage. The
    engine never holds a transaction across a provider call.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        providers: Sequence[MetadataProvider],
        settings: EnrichmentConfig | None = None,
    ) -> None:
        self._conn = conn
        self._catalog = BookCatalog(conn)
        self._circulation = CirculationStore(conn)
        self._providers = list(providers)
        self._settings = settings or EnrichmentConfig()

    @property
    def provider_names(self) -> list[str]:
        return [p.name for p in self._providers]

    def _select(self, provider: str | None) -> list[MetadataProvider]:
        if provider is None or provider == AUTO_PROVIDER:
            return list(self._providers)
        for candidate in self._providers:
            if candidate.name == provider:
                return [candidate]
        raise ValidationError(
            f"Unknown provider: {provider}",
            {"provider": provider, "allowed": [AUTO_PROVIDER, *self.provider_names]},
        )

    # --- Import-by-query ---

    def search_external(
        self, query: str, limit: int, provider: str | None = AUTO_PROVIDER
    ) -> SearchOutcome:
        """Query providers in priority order and return the first non-empty result."""
        chain = self._select(provider)
        query = query.strip()
        if not query:
            return SearchOutcome(candidates=[], source_used=None, fallback_used=False)

        failed: list[str] = []
        for position, source in enumerate(chain):
            try:
                found = dedupe_candidates(source.search(query, limit))
            except UpstreamUnavailableError:
                failed.append(source.name)
                continue
            if found:
                return SearchOutcome(
                    candidates=found[:limit],
                    source_used=source.name,
                    fallback_used=position > 0,
                    failed_providers=failed,
                )
        return SearchOutcome(
            candidates=[],
            source_used=None,
            fallback_used=len(chain) > 1,
            failed_providers=failed,
        )

    def import_by_query(
        self,
        query: str,
        limit: int,
        provider: str | None = AUTO_PROVIDER,
        *,
        actor_id: str | None = None,
    ) -> ImportResult:
        """Search providers and persist each candidate, reusing matching rows.

        A candidate matching an existing record (ISBN first, then
        case-insensitive title + author) fills that record's gaps and counts
        as reused. An ISBN race on insert also resolves to reuse.
        """
        outcome = self.search_external(query, limit, provider)
        result = ImportResult(
            records=[],
            created=0,
            reused=0,
            source_used=outcome.source_used,
            fallback_used=outcome.fallback_used,
            failed_providers=outcome.failed_providers,
        )

        for candidate in outcome.candidates:
            record, created = self._persist_candidate(candidate, actor_id=actor_id)
            result.records.append(record)
            if created:
                result.created += 1
            else:
                result.reused += 1

        self._circulation.record_audit(
            "BOOK_IMPORT_EXTERNAL",
            "BOOK",
            actor_id=actor_id,
            metadata={"query": query, "provider": provider, **result.meta()},
        )
        logger.info(
            "Imported %d new and %d existing records for %r via %s",
            result.created,
            result.reused,
            query,
            result.source_used,
        )
        return result

    def _persist_candidate(
        self, candidate: ExternalCandidate, *, actor_id: str | None
    ) -> tuple[CatalogRecord, bool]:
        author = candidate.author or PLACEHOLDER_AUTHOR_LABEL

        existing = self._catalog.get_by_isbn(candidate.isbn) if candidate.isbn else None
        if existing is None:
            existing = self._catalog.find_by_title_author(candidate.title, author)
        if existing is not None:
            patch = build_patch(existing, candidate)
            if patch:
                self.write_patch(existing, patch, actor_id=actor_id, source=candidate.source)
            return self._catalog.require(existing.id), False

        fields = {name: getattr(candidate, name) for name in ENRICHABLE_FIELDS}
        fields["title"] = candidate.title
        fields["author"] = author
        try:
            book_id = self._catalog.add_book(fields, synthetic=candidate.author is None)
        except DuplicateKeyError as exc:
            raced = self._catalog.get_by_isbn(candidate.isbn) if candidate.isbn else None
            if raced is None:
                raise ConflictError(
                    "Duplicate ISBN could not be resolved", {"isbn": candidate.isbn}
                ) from exc
            logger.info("ISBN %s was inserted concurrently; reusing #%d", candidate.isbn, raced.id)
            return raced, False
        return self._catalog.require(book_id), True

    # --- Sweep ---

    def sweep(
        self,
        limit: int,
        provider: str | None = AUTO_PROVIDER,
        *,
        only_missing: bool = True,
        actor_id: str | None = None,
    ) -> SweepResult:
        """Enrich up to `limit` records, least recently updated first.

        A failure on one record is logged, counted, and skipped.
        """
        chain = self._select(provider)
        if provider is None or provider == AUTO_PROVIDER:
            chain.reverse()

        result = SweepResult()
        for record in self._catalog.list_for_enrichment(limit, only_missing=only_missing):
            result.scanned += 1
            try:
                outcome = self.enrich_record(record, chain, actor_id=actor_id)
            except Exception:
                logger.exception("Enrichment failed for book #%d", record.id)
                result.failed += 1
                continue
            if outcome == MATCHED:
                result.matched += 1
                result.updated += 1
            elif outcome == SYNTHESIZED:
                result.synthesized += 1
                result.updated += 1
            else:
                result.unchanged += 1

        logger.info(
            "Sweep scanned %d records: %d updated, %d failed",
            result.scanned,
            result.updated,
            result.failed,
        )
        return result

    def enrich_record(
        self,
        record: CatalogRecord,
        chain: Sequence[MetadataProvider] | None = None,
        *,
        actor_id: str | None = None,
    ) -> str:
        """Enrich one record. Returns MATCHED, SYNTHESIZED, or UNCHANGED."""
        match = self.find_best_match(record, chain if chain is not None else self._providers)
        real_patch = build_patch(record, match.candidate) if match else {}
        patch = {**real_patch, **synthesize_patch(record, real_patch)}

        if not patch:
            self._catalog.touch(record.id)
            return UNCHANGED

        source = match.candidate.source if match and real_patch else "synthetic"
        if not self.write_patch(record, patch, actor_id=actor_id, source=source):
            return UNCHANGED
        return MATCHED if real_patch else SYNTHESIZED

    def find_best_match(
        self, record: CatalogRecord, chain: Sequence[MetadataProvider]
    ) -> ScoredCandidate | None:
        """Best candidate across query attempts, or None if nothing scores high enough.

        Stops as soon as a candidate reaches the early-accept score; ties keep
        the first candidate seen.
        """
        best: ScoredCandidate | None = None
        for query in build_query_attempts(record):
            for source in chain:
                try:
                    candidates = source.search(query, self._settings.results_per_query)
                except UpstreamUnavailableError:
                    continue
                for candidate in candidates:
                    score = score_candidate(record, candidate)
                    if best is None or score > best.score:
                        best = ScoredCandidate(candidate=candidate, score=score)
                if best is not None and best.score >= self._settings.early_accept_score:
                    return best

        if best is not None and best.score >= self._settings.min_accept_score:
            return best
        return None

    def write_patch(
        self,
        record: CatalogRecord,
        patch: dict[str, Any],
        *,
        actor_id: str | None = None,
        source: str | None = None,
    ) -> bool:
        """Apply a fill-missing-only patch with its audit entry as one unit.

        If the patch's ISBN already belongs to another record, the ISBN is
        dropped and the rest is written.

        Returns:
            True if the record still exists and was written.
        """
        for _ in range(2):
            try:
                with transaction(self._conn):
                    written = self._catalog.apply_patch(record.id, patch)
                    if written:
                        self._circulation.record_audit(
                            "BOOK_METADATA_ENRICH",
                            "BOOK",
                            actor_id=actor_id,
                            entity_id=record.id,
                            metadata={"fields": sorted(patch), "source": source},
                        )
                return written
            except DuplicateKeyError:
                if "isbn" not in patch:
                    raise
                logger.info("ISBN %s belongs to another record; dropping it", patch["isbn"])
                patch = {k: v for k, v in patch.items() if k != "isbn"}
                if not patch:
                    return False
        return False
