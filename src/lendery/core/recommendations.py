# ABOUTME: History-weighted recommendation scorer over the available catalog.
# ABOUTME: Recent loans weigh more; genre and author affinity plus rating drive the ranking.

import math
from dataclasses import dataclass
from typing import Any

from lendery.db.catalog import BookCatalog
from lendery.db.circulation import CirculationStore
from lendery.db.mapping import CatalogRecord

GENRE_FACTOR = 1.2
AUTHOR_FACTOR = 1.4
NOVELTY_BONUS = 2.0
RATING_FACTOR = 1.5
POPULARITY_CAP = 2.0
AVAILABILITY_BOOST = 1.0


def recency_weight(position: int) -> int:
    """Weight of the history entry at `position` (0 = newest): 5, 4, ... floored at 1."""
    return max(1, 5 - position // 8)


def _key(value: str | None) -> str:
    return (value or "").strip().casefold()


@dataclass
class Affinity:
    """Accumulated genre and author weights from a borrower's history."""

    genres: dict[str, int]
    authors: dict[str, int]
    history_length: int

    @classmethod
    def from_history(cls, history: list[CatalogRecord]) -> "Affinity":
        """Build affinity from records borrowed, newest first."""
        genres: dict[str, int] = {}
        authors: dict[str, int] = {}
        for position, record in enumerate(history):
            weight = recency_weight(position)
            if record.genre:
                genres[_key(record.genre)] = genres.get(_key(record.genre), 0) + weight
            authors[_key(record.author)] = authors.get(_key(record.author), 0) + weight
        return cls(genres=genres, authors=authors, history_length=len(history))


@dataclass
class Recommendation:
    record: CatalogRecord
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {**self.record.to_dict(), "recommendationScore": self.score}


def score_record(record: CatalogRecord, affinity: Affinity) -> float:
    """Recommendation score of one candidate, rounded to two places."""
    genre_weight = affinity.genres.get(_key(record.genre), 0) if record.genre else 0
    author_weight = affinity.authors.get(_key(record.author), 0)
    novelty = NOVELTY_BONUS if affinity.history_length == 0 else 0.0
    rating = (record.average_rating or 0.0) * RATING_FACTOR
    popularity = min(POPULARITY_CAP, math.log10((record.ratings_count or 0) + 1))
    availability = AVAILABILITY_BOOST if record.available else 0.0

    score = (
        genre_weight * GENRE_FACTOR
        + author_weight * AUTHOR_FACTOR
        + novelty
        + rating
        + popularity
        + availability
    )
    return round(score, 2)


class RecommendationScorer:
    """Ranks available records for a borrower from their recent loans.

    Anonymous callers (borrower_id None) get the same formula with empty
    history, which reduces to a rating-and-availability ranking.
    """

    def __init__(
        self,
        catalog: BookCatalog,
        circulation: CirculationStore,
        *,
        history_limit: int = 40,
        pool_limit: int = 200,
    ) -> None:
        self._catalog = catalog
        self._circulation = circulation
        self._history_limit = history_limit
        self._pool_limit = pool_limit

    def history(self, borrower_id: str | None) -> list[CatalogRecord]:
        """Records from the borrower's most recent loans, newest first."""
        if borrower_id is None:
            return []
        records = []
        for loan in self._circulation.borrowing_history(borrower_id, self._history_limit):
            record = self._catalog.get_by_id(loan.book_id)
            if record is not None:
                records.append(record)
        return records

    def recommend(
        self,
        borrower_id: str | None,
        limit: int,
        *,
        history: list[CatalogRecord] | None = None,
    ) -> list[Recommendation]:
        if history is None:
            history = self.history(borrower_id)
        affinity = Affinity.from_history(history)
        exclude = self._circulation.borrowed_book_ids(borrower_id) if borrower_id else set()

        pool = self._catalog.list_recommendable(exclude, self._pool_limit)
        ranked = [Recommendation(record=r, score=score_record(r, affinity)) for r in pool]
        ranked.sort(key=lambda rec: rec.score, reverse=True)
        return ranked[:limit]
