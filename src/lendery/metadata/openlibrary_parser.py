# ABOUTME: Response schema and parsing for the Open Library search API.
# ABOUTME: Validates each doc on its own and converts usable ones into ExternalCandidates.

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

from lendery.metadata.normalizer import clean_text, normalize_isbn, parse_published_year
from lendery.metadata.types import ExternalCandidate

logger = logging.getLogger(__name__)

SOURCE_NAME = "openlibrary"

_COVERS_BASE_URL = "https://covers.openlibrary.org/b/id"


class OpenLibraryDoc(BaseModel):
    """One entry of the `docs` array returned by /search.json."""

    model_config = ConfigDict(extra="ignore")

    key: str | None = None
    title: str | None = None
    author_name: list[str] = Field(default_factory=list)
    isbn: list[str] = Field(default_factory=list)
    subject: list[str] = Field(default_factory=list)
    first_publish_year: int | None = None
    cover_i: int | None = None
    ratings_average: float | None = None
    ratings_count: int | None = None
    number_of_pages_median: int | None = None


def build_cover_url(cover_id: int, size: str = "L") -> str:
    """Build an Open Library cover image URL from a cover ID.

    Args:
        cover_id: The numeric `cover_i` value of a search doc.
        size: Image size: "S" (small), "M" (medium), or "L" (large).
    """
    return f"{_COVERS_BASE_URL}/{cover_id}-{size}.jpg"


def doc_to_candidate(doc: OpenLibraryDoc) -> ExternalCandidate | None:
    """Convert a validated doc, or None when it has no usable title."""
    title = clean_text(doc.title)
    if not title:
        return None

    author = clean_text(doc.author_name[0]) if doc.author_name else None
    isbn = next((v for v in (normalize_isbn(raw) for raw in doc.isbn) if v), None)
    genre = clean_text(doc.subject[0]) if doc.subject else None

    rating = doc.ratings_average
    if rating is not None:
        rating = round(min(5.0, max(0.0, rating)), 2)
    count = doc.ratings_count
    if count is not None and count < 0:
        count = None

    return ExternalCandidate(
        title=title,
        author=author,
        isbn=isbn,
        genre=genre,
        published_year=parse_published_year(doc.first_publish_year),
        cover_url=build_cover_url(doc.cover_i) if doc.cover_i is not None else None,
        average_rating=rating,
        ratings_count=count,
        page_count=doc.number_of_pages_median,
        source=SOURCE_NAME,
        source_id=doc.key,
    )


def parse_search_response(data: Any) -> list[ExternalCandidate]:
    """Parse a /search.json body into candidates.

    Malformed docs are dropped one by one; a body that is not an object or
    has no `docs` list yields an empty result.
    """
    if not isinstance(data, dict):
        return []
    docs = data.get("docs")
    if not isinstance(docs, list):
        return []

    candidates: list[ExternalCandidate] = []
    for raw in docs:
        try:
            doc = OpenLibraryDoc.model_validate(raw)
        except SchemaError as exc:
            logger.debug("Dropping malformed Open Library doc: %s", exc.errors()[:1])
            continue
        candidate = doc_to_candidate(doc)
        if candidate is not None:
            candidates.append(candidate)
    return candidates
