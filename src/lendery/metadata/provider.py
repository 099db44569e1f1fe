# ABOUTME: MetadataProvider protocol defining the contract for external bibliographic sources.
# ABOUTME: Open Library and Google Books implement it; the engine and estimator depend only on it.

from typing import Protocol, runtime_checkable

from lendery.metadata.types import ExternalCandidate


@runtime_checkable
class MetadataProvider(Protocol):
    """Protocol for external bibliographic lookups.

    `search` accepts free text or an `isbn:<isbn>` query and returns parsed
    candidates in provider relevance order. It raises
    lendery.errors.UpstreamUnavailableError when the provider could not be
    reached; an empty list means the provider answered with no matches.
    """

    @property
    def name(self) -> str: ...

    def search(self, query: str, limit: int) -> list[ExternalCandidate]: ...
