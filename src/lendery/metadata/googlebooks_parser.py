# ABOUTME: Response schema and parsing for the Google Books volumes API.
# ABOUTME: Validates each volume on its own and converts usable ones into ExternalCandidates.

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

from lendery.metadata.normalizer import clean_text, normalize_isbn, parse_published_year
from lendery.metadata.types import ExternalCandidate

logger = logging.getLogger(__name__)

SOURCE_NAME = "googlebooks"


class IndustryIdentifier(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    identifier: str | None = None


class ImageLinks(BaseModel):
    model_config = ConfigDict(extra="ignore")

    thumbnail: str | None = None
    small_thumbnail: str | None = Field(default=None, alias="smallThumbnail")


class VolumeInfo(BaseModel):
    """The `volumeInfo` object of a volume."""

    model_config = ConfigDict(extra="ignore")

    title: str | None = None
    authors: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    description: str | None = None
    published_date: str | None = Field(default=None, alias="publishedDate")
    industry_identifiers: list[IndustryIdentifier] = Field(
        default_factory=list, alias="industryIdentifiers"
    )
    image_links: ImageLinks | None = Field(default=None, alias="imageLinks")
    page_count: int | None = Field(default=None, alias="pageCount")
    average_rating: float | None = Field(default=None, alias="averageRating")
    ratings_count: int | None = Field(default=None, alias="ratingsCount")


class Volume(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    volume_info: VolumeInfo | None = Field(default=None, alias="volumeInfo")


def _preferred_isbn(identifiers: list[IndustryIdentifier]) -> str | None:
    """ISBN_13 first, then ISBN_10, then any identifier with ISBN shape."""
    by_type: dict[str, str] = {}
    for identifier in identifiers:
        isbn = normalize_isbn(identifier.identifier)
        if isbn and identifier.type and identifier.type not in by_type:
            by_type[identifier.type] = isbn
    for preferred in ("ISBN_13", "ISBN_10"):
        if preferred in by_type:
            return by_type[preferred]
    return next(iter(by_type.values()), None)


def _secure(url: str | None) -> str | None:
    if url and url.startswith("http://"):
        return "https://" + url[len("http://") :]
    return url


def volume_to_candidate(volume: Volume) -> ExternalCandidate | None:
    """Convert a validated volume, or None when it has no usable title."""
    info = volume.volume_info
    if info is None:
        return None
    title = clean_text(info.title)
    if not title:
        return None

    cover_url = None
    if info.image_links is not None:
        cover_url = clean_text(info.image_links.thumbnail) or clean_text(
            info.image_links.small_thumbnail
        )

    rating = info.average_rating
    if rating is not None:
        rating = round(min(5.0, max(0.0, rating)), 2)
    count = info.ratings_count
    if count is not None and count < 0:
        count = None

    return ExternalCandidate(
        title=title,
        author=clean_text(info.authors[0]) if info.authors else None,
        isbn=_preferred_isbn(info.industry_identifiers),
        genre=clean_text(info.categories[0]) if info.categories else None,
        published_year=parse_published_year(info.published_date),
        description=clean_text(info.description),
        cover_url=_secure(cover_url),
        average_rating=rating,
        ratings_count=count,
        page_count=info.page_count,
        source=SOURCE_NAME,
        source_id=volume.id,
    )


def parse_volumes_response(data: Any) -> list[ExternalCandidate]:
    """Parse a /volumes body into candidates, dropping malformed items."""
    if not isinstance(data, dict):
        return []
    items = data.get("items")
    if not isinstance(items, list):
        return []

    candidates: list[ExternalCandidate] = []
    for raw in items:
        try:
            volume = Volume.model_validate(raw)
        except SchemaError as exc:
            logger.debug("Dropping malformed Google Books volume: %s", exc.errors()[:1])
            continue
        candidate = volume_to_candidate(volume)
        if candidate is not None:
            candidates.append(candidate)
    return candidates
