# ABOUTME: Estimates a loan due date from a book's page count and reading-speed bucket.
# ABOUTME: Queries Open Library then Google Books; falls back to a fixed loan length.

import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from lendery.db.mapping import format_timestamp, utcnow
from lendery.errors import UpstreamUnavailableError
from lendery.metadata.normalizer import normalize_for_match
from lendery.metadata.provider import MetadataProvider
from lendery.metadata.scoring import score_volume

logger = logging.getLogger(__name__)

MIN_DAYS = 14
MAX_DAYS = 45
FALLBACK_DAYS = 30
DEFAULT_PAGES_PER_DAY = 35
# Page counts below this are treated as noise (pamphlets, bad data).
MIN_PAGE_COUNT = 30
FALLBACK_SOURCE = "fallback"
# Estimate tags on the wire, keyed by provider name.
ESTIMATE_SOURCE_TAGS = {"openlibrary": "openlibrary", "googlebooks": "google_books"}

_LOOKUP_LIMIT = 10

# Ordered (keywords, pages per day); first bucket with a matching keyword wins.
_READING_SPEED_BUCKETS: tuple[tuple[tuple[str, ...], int], ...] = (
    (("children", "juvenile", "young adult"), 50),
    (("science", "engineering", "technology", "computer"), 25),
    (("fantasy", "historical", "classic"), 30),
)


def pages_per_day(category: str | None) -> int:
    """Reading speed for a category, in pages per day."""
    value = normalize_for_match(category)
    if not value:
        return DEFAULT_PAGES_PER_DAY
    for keywords, speed in _READING_SPEED_BUCKETS:
        if any(keyword in value for keyword in keywords):
            return speed
    return DEFAULT_PAGES_PER_DAY


def clamp_days(raw_days: float) -> int:
    """Round half up to whole days and clamp to [MIN_DAYS, MAX_DAYS]."""
    return max(MIN_DAYS, min(MAX_DAYS, math.floor(raw_days + 0.5)))


@dataclass
class DueDateEstimate:
    """A loan length with the provider it came from, for auditability."""

    due_at: datetime
    days: int
    source: str
    page_count: int | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "dueAt": format_timestamp(self.due_at),
            "days": self.days,
            "source": self.source,
            "pageCount": self.page_count,
        }


class DueDateEstimator:
    """Sizes a loan from the page count of the best-matching external volume.

    Providers are tried in order. The first provider's category (its first
    subject) picks the reading-speed bucket; later providers contribute a
    page count only and use the default speed. Performs no writes, so an
    abandoned estimate has no side effects.
    """

    def __init__(
        self,
        providers: Sequence[MetadataProvider],
        *,
        fallback_days: int = FALLBACK_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._providers = list(providers)
        self._fallback_days = fallback_days
        self._clock = clock

    def fallback(self) -> DueDateEstimate:
        """The fixed-length estimate used when no page count is known."""
        return DueDateEstimate(
            due_at=self._clock() + timedelta(days=self._fallback_days),
            days=self._fallback_days,
            source=FALLBACK_SOURCE,
            page_count=None,
        )

    def estimate(self, title: str, author: str, isbn: str | None = None) -> DueDateEstimate:
        for position, provider in enumerate(self._providers):
            found = self._best_volume(provider, title, author, isbn)
            if found is None:
                continue
            page_count, category = found
            speed = pages_per_day(category) if position == 0 else DEFAULT_PAGES_PER_DAY
            days = clamp_days(page_count / speed)
            logger.debug(
                "Estimated %d days for %r from %s (%d pages at %d/day)",
                days,
                title,
                provider.name,
                page_count,
                speed,
            )
            return DueDateEstimate(
                due_at=self._clock() + timedelta(days=days),
                days=days,
                source=ESTIMATE_SOURCE_TAGS.get(provider.name, provider.name),
                page_count=page_count,
            )
        return self.fallback()

    def _best_volume(
        self, provider: MetadataProvider, title: str, author: str, isbn: str | None
    ) -> tuple[int, str | None] | None:
        """Highest-scoring (page_count, category) from one provider, or None."""
        queries = [f"isbn:{isbn}"] if isbn else []
        queries.append(f"{title} {author}".strip())

        for query in queries:
            try:
                candidates = provider.search(query, _LOOKUP_LIMIT)
            except UpstreamUnavailableError:
                logger.warning("%s unavailable for due-date estimate of %r", provider.name, title)
                return None

            best: tuple[int, int, str | None] | None = None
            for candidate in candidates:
                if candidate.page_count is None or candidate.page_count < MIN_PAGE_COUNT:
                    continue
                score = score_volume(title, author, candidate)
                if best is None or score > best[0]:
                    best = (score, candidate.page_count, candidate.genre)
            if best is not None:
                return best[1], best[2]
        return None
