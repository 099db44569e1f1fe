# ABOUTME: The normalized candidate shape every metadata provider produces.
# ABOUTME: ExternalCandidate is ephemeral; it is scored, then merged or discarded.

from dataclasses import dataclass

# Fields a candidate can contribute to a catalog record, in patch order.
ENRICHABLE_FIELDS = (
    "author",
    "isbn",
    "genre",
    "published_year",
    "description",
    "cover_url",
    "average_rating",
    "ratings_count",
)


@dataclass
class ExternalCandidate:
    """Metadata for one book as reported by an external provider.

    Every field except title may be missing. page_count is not persisted; the
    due-date estimator reads it to size a loan.
    """

    title: str
    source: str
    author: str | None = None
    isbn: str | None = None
    genre: str | None = None
    published_year: int | None = None
    description: str | None = None
    cover_url: str | None = None
    average_rating: float | None = None
    ratings_count: int | None = None
    page_count: int | None = None
    source_id: str | None = None

    def dedupe_key(self) -> str:
        """ISBN when known, otherwise case-folded title|author."""
        if self.isbn:
            return self.isbn
        return f"{self.title.casefold()}|{(self.author or '').casefold()}"
