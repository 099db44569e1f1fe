# ABOUTME: Metadata package: provider clients, response parsing, normalization, scoring, synthesis.
# ABOUTME: Exports the candidate type, provider protocol, and the two concrete providers.

from lendery.metadata.googlebooks import GoogleBooksProvider
from lendery.metadata.http import HttpClient, LenderyHttpClient, MetadataFetchError
from lendery.metadata.openlibrary import OpenLibraryProvider
from lendery.metadata.provider import MetadataProvider
from lendery.metadata.types import ExternalCandidate

__all__ = [
    "ExternalCandidate",
    "GoogleBooksProvider",
    "HttpClient",
    "LenderyHttpClient",
    "MetadataFetchError",
    "MetadataProvider",
    "OpenLibraryProvider",
]
