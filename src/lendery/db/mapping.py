# ABOUTME: Record dataclasses for catalog, loan, and borrow-request rows.
# ABOUTME: Converts SQLite rows to records and datetimes to the stored ISO-8601 text form.

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class RequestStatus(StrEnum):
    """Lifecycle states of a borrow request. APPROVED and DECLINED are terminal."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"


class BookState(StrEnum):
    """Lending state derived from a record's available/request_pending flags."""

    AVAILABLE = "AVAILABLE"
    REQUEST_PENDING = "REQUEST_PENDING"
    ON_LOAN = "ON_LOAN"


# Columns a caller may write directly; available/request_pending belong to lending.
CATALOG_FIELDS = (
    "title",
    "author",
    "isbn",
    "genre",
    "published_year",
    "description",
    "cover_url",
    "average_rating",
    "ratings_count",
)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def format_timestamp(value: datetime | None) -> str | None:
    """Render a datetime in the stored text form (UTC, ISO-8601)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a stored timestamp back into an aware datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class CatalogRecord:
    """A cataloged book. One record is one physical unit."""

    id: int
    title: str
    author: str
    isbn: str | None = None
    genre: str | None = None
    published_year: int | None = None
    description: str | None = None
    cover_url: str | None = None
    average_rating: float | None = None
    ratings_count: int | None = None
    synthetic: bool = False
    available: bool = True
    request_pending: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def state(self) -> BookState:
        if not self.available:
            return BookState.ON_LOAN
        if self.request_pending:
            return BookState.REQUEST_PENDING
        return BookState.AVAILABLE

    def to_dict(self) -> dict[str, Any]:
        """Wire shape used by the API and audit metadata."""
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "genre": self.genre,
            "publishedYear": self.published_year,
            "description": self.description,
            "coverUrl": self.cover_url,
            "averageRating": self.average_rating,
            "ratingsCount": self.ratings_count,
            "synthetic": self.synthetic,
            "available": self.available,
            "requestPending": self.request_pending,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }


@dataclass
class Loan:
    """A checkout of one catalog record. returned_at is None while active."""

    id: int
    book_id: int
    borrower_id: str
    checked_out_at: datetime
    due_at: datetime | None = None
    returned_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.returned_at is None

    def is_overdue(self, now: datetime) -> bool:
        return self.is_active and self.due_at is not None and self.due_at < now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "bookId": self.book_id,
            "borrowerId": self.borrower_id,
            "checkedOutAt": format_timestamp(self.checked_out_at),
            "dueAt": format_timestamp(self.due_at),
            "returnedAt": format_timestamp(self.returned_at),
        }


@dataclass
class BorrowRequest:
    """A borrower's request for a catalog record, reviewed by an administrator."""

    id: int
    borrower_id: str
    book_id: int
    status: RequestStatus
    reviewed_by_id: str | None = None
    reviewed_at: datetime | None = None
    borrower_acknowledged_at: datetime | None = None
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "borrowerId": self.borrower_id,
            "bookId": self.book_id,
            "status": self.status.value,
            "reviewedById": self.reviewed_by_id,
            "reviewedAt": format_timestamp(self.reviewed_at),
            "borrowerAcknowledgedAt": format_timestamp(self.borrower_acknowledged_at),
            "createdAt": format_timestamp(self.created_at),
        }


def row_to_record(row: Any) -> CatalogRecord:
    """Convert a books row to a CatalogRecord."""
    return CatalogRecord(
        id=row["id"],
        title=row["title"],
        author=row["author"],
        isbn=row["isbn"],
        genre=row["genre"],
        published_year=row["published_year"],
        description=row["description"],
        cover_url=row["cover_url"],
        average_rating=row["average_rating"],
        ratings_count=row["ratings_count"],
        synthetic=bool(row["synthetic"]),
        available=bool(row["available"]),
        request_pending=bool(row["request_pending"]),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


def row_to_loan(row: Any) -> Loan:
    """Convert a loans row to a Loan."""
    return Loan(
        id=row["id"],
        book_id=row["book_id"],
        borrower_id=row["borrower_id"],
        checked_out_at=parse_timestamp(row["checked_out_at"]),  # type: ignore[arg-type]
        due_at=parse_timestamp(row["due_at"]),
        returned_at=parse_timestamp(row["returned_at"]),
    )


def row_to_request(row: Any) -> BorrowRequest:
    """Convert a borrow_requests row to a BorrowRequest."""
    return BorrowRequest(
        id=row["id"],
        borrower_id=row["borrower_id"],
        book_id=row["book_id"],
        status=RequestStatus(row["status"]),
        reviewed_by_id=row["reviewed_by_id"],
        reviewed_at=parse_timestamp(row["reviewed_at"]),
        borrower_acknowledged_at=parse_timestamp(row["borrower_acknowledged_at"]),
        created_at=parse_timestamp(row["created_at"]),
    )
