# ABOUTME: Open Library metadata provider implementation.
# ABOUTME: Queries openlibrary.org/search.json and returns parsed candidates in relevance order.

import logging

from lendery.errors import UpstreamUnavailableError
from lendery.metadata.http import HttpClient, MetadataFetchError
from lendery.metadata.openlibrary_parser import SOURCE_NAME, parse_search_response
from lendery.metadata.types import ExternalCandidate

logger = logging.getLogger(__name__)

_OL_BASE = "https://openlibrary.org"
_MAX_LIMIT = 100


class OpenLibraryProvider:
    """Metadata provider backed by the Open Library search API.

    Free text and `isbn:<isbn>` queries both go through /search.json, which
    understands the field prefix natively. Uses a dependency-injected
    HttpClient for testability.
    """

    def __init__(self, http_client: HttpClient, *, base_url: str = _OL_BASE) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")

    @property
    def name(self) -> str:
        return SOURCE_NAME

    def search(self, query: str, limit: int) -> list[ExternalCandidate]:
        """Search Open Library.

        Raises:
            UpstreamUnavailableError: If the request failed or timed out.
        """
        query = query.strip()
        if not query:
            return []
        params = {"q": query, "limit": str(max(1, min(limit, _MAX_LIMIT)))}
        try:
            data = self._http.get(f"{self._base_url}/search.json", params=params)
        except MetadataFetchError as exc:
            logger.warning("Open Library search failed for %r: %s", query, exc)
            raise UpstreamUnavailableError(
                "Open Library is unavailable", {"provider": self.name}
            ) from exc
        return parse_search_response(data)[:limit]
