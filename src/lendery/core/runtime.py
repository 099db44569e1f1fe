# ABOUTME: Process-level state shared by requests: settings, providers, caches, sweep coordinator.
# ABOUTME: Constructed once per app (or per test) so no state lives in module globals.

import logging
import sqlite3
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from lendery.config import Settings
from lendery.core.cache import ReadCache
from lendery.core.due_dates import DueDateEstimator
from lendery.core.enrichment import EnrichmentEngine, SweepResult
from lendery.core.sweep import SweepCoordinator
from lendery.db.connection import open_library
from lendery.metadata.googlebooks import GoogleBooksProvider
from lendery.metadata.http import LenderyHttpClient
from lendery.metadata.openlibrary import OpenLibraryProvider
from lendery.metadata.provider import MetadataProvider

logger = logging.getLogger(__name__)


def build_providers(settings: Settings) -> tuple[list[MetadataProvider], LenderyHttpClient]:
    """Open Library then Google Books, sharing one rate-limited HTTP client."""
    config = settings.providers
    http = LenderyHttpClient(
        timeout=config.timeout_seconds,
        min_request_interval=config.min_request_interval,
        max_retries=config.max_retries,
        retry_delay=config.retry_delay_seconds,
        user_agent=config.user_agent,
    )
    providers: list[MetadataProvider] = [
        OpenLibraryProvider(http),
        GoogleBooksProvider(http, api_key=config.get_google_books_api_key()),
    ]
    return providers, http


class Runtime:
    """Everything a service needs besides its per-request connection.

    Args:
        settings: Resolved configuration.
        providers: Metadata providers in import priority order. Built from
            settings when omitted.
        spawn: Override for how the background sweep is started (tests pass
            a synchronous runner).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        providers: Sequence[MetadataProvider] | None = None,
        spawn: Any = None,
    ) -> None:
        self.settings = settings or Settings()
        self._http: LenderyHttpClient | None = None
        if providers is None:
            built, self._http = build_providers(self.settings)
            providers = built
        self.providers = list(providers)

        self.books_cache = ReadCache(
            self.settings.cache.books_ttl_seconds, max_entries=self.settings.cache.max_entries
        )
        self.recommendations_cache = ReadCache(
            self.settings.cache.recommendations_ttl_seconds,
            max_entries=self.settings.cache.max_entries,
        )
        self.executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="lendery-estimate")
        self.estimator = DueDateEstimator(
            self.providers, fallback_days=self.settings.lending.fallback_loan_days
        )

        sweep_kwargs: dict[str, Any] = {}
        if spawn is not None:
            sweep_kwargs["spawn"] = spawn
        self.sweeper = SweepCoordinator(
            self._background_sweep,
            cooldown_seconds=self.settings.enrichment.cooldown_seconds,
            on_complete=self._sweep_finished,
            **sweep_kwargs,
        )

    def connect(self) -> sqlite3.Connection:
        return open_library(
            self.settings.database.path,
            busy_timeout=self.settings.database.busy_timeout_seconds,
        )

    def engine(self, conn: sqlite3.Connection) -> EnrichmentEngine:
        return EnrichmentEngine(conn, self.providers, self.settings.enrichment)

    def invalidate_caches(self) -> None:
        self.books_cache.invalidate()
        self.recommendations_cache.invalidate()

    def _background_sweep(self) -> SweepResult:
        conn = self.connect()
        try:
            return self.engine(conn).sweep(self.settings.enrichment.background_batch_size)
        finally:
            conn.close()

    def _sweep_finished(self, result: SweepResult) -> None:
        if result.updated > 0:
            logger.info("Background sweep updated %d records", result.updated)
            self.invalidate_caches()

    def close(self) -> None:
        self.sweeper.wait(timeout=5.0)
        self.executor.shutdown(wait=False, cancel_futures=True)
        if self._http is not None:
            self._http.close()
