# ABOUTME: Google Books metadata provider implementation.
# ABOUTME: Queries the volumes API, with an optional API key, and returns parsed candidates.

import logging

from lendery.errors import UpstreamUnavailableError
from lendery.metadata.googlebooks_parser import SOURCE_NAME, parse_volumes_response
from lendery.metadata.http import HttpClient, MetadataFetchError
from lendery.metadata.types import ExternalCandidate

logger = logging.getLogger(__name__)

_GOOGLE_BASE = "https://www.googleapis.com/books/v1"
_MAX_LIMIT = 40


class GoogleBooksProvider:
    """Metadata provider backed by the Google Books volumes API."""

    def __init__(
        self,
        http_client: HttpClient,
        *,
        api_key: str | None = None,
        base_url: str = _GOOGLE_BASE,
    ) -> None:
        self._http = http_client
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    @property
    def name(self) -> str:
        return SOURCE_NAME

    def search(self, query: str, limit: int) -> list[ExternalCandidate]:
        """Search Google Books.

        Raises:
            UpstreamUnavailableError: If the request failed or timed out.
        """
        query = query.strip()
        if not query:
            return []
        params = {
            "q": query,
            "maxResults": str(max(1, min(limit, _MAX_LIMIT))),
            "printType": "books",
            "orderBy": "relevance",
        }
        if self._api_key:
            params["key"] = self._api_key
        try:
            data = self._http.get(f"{self._base_url}/volumes", params=params)
        except MetadataFetchError as exc:
            logger.warning("Google Books search failed for %r: %s", query, exc)
            raise UpstreamUnavailableError(
                "Google Books is unavailable", {"provider": self.name}
            ) from exc
        return parse_volumes_response(data)[:limit]
