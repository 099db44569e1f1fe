# ABOUTME: Pydantic request bodies for the HTTP surface.
# ABOUTME: Field names are snake_case in Python and camelCase on the wire.

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from lendery.metadata.normalizer import normalize_isbn

ProviderName = Literal["auto", "openlibrary", "googlebooks"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class _CatalogFields(CamelModel):
    isbn: str | None = Field(default=None, max_length=32)
    genre: str | None = Field(default=None, max_length=100)
    published_year: int | None = Field(default=None, ge=0, le=2100)
    description: str | None = Field(default=None, max_length=1500)
    cover_url: str | None = Field(default=None, max_length=4096)
    average_rating: float | None = Field(default=None, ge=0, le=5)
    ratings_count: int | None = Field(default=None, ge=0)

    @field_validator("isbn", "genre", "description", "cover_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("isbn")
    @classmethod
    def _isbn_shape(cls, value: str | None) -> str | None:
        if value is None:
            return None
        isbn = normalize_isbn(value)
        if isbn is None:
            raise ValueError("isbn must have 10 or 13 digits")
        return isbn

    def catalog_fields(self) -> dict[str, Any]:
        """Only the fields the client sent, keyed by column name."""
        return self.model_dump(exclude_unset=True)


class BookCreatePayload(_CatalogFields):
    title: str = Field(min_length=1, max_length=200)
    author: str = Field(min_length=1, max_length=200)


class BookUpdatePayload(_CatalogFields):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    author: str | None = Field(default=None, min_length=1, max_length=200)


class ImportExternalPayload(CamelModel):
    query: str = Field(min_length=1, max_length=200)
    limit: int = Field(default=10, ge=1, le=40)
    provider: ProviderName = "auto"


class EnrichMetadataPayload(CamelModel):
    limit: int = Field(default=50, ge=1, le=1000)
    provider: ProviderName = "auto"
    only_missing: bool = True


class CheckoutPayload(CamelModel):
    book_id: int
    due_at: datetime | None = None


class CheckinPayload(CamelModel):
    book_id: int


class DueDatePayload(CamelModel):
    due_at: datetime


class BorrowRequestPayload(CamelModel):
    book_id: int


class DueDateEstimatePayload(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    author: str = Field(min_length=1, max_length=200)
    isbn: str | None = Field(default=None, max_length=32)


class RecommendationsPayload(CamelModel):
    limit: int = Field(default=5, ge=1, le=20)
