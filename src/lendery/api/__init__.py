# ABOUTME: HTTP surface for lendery, built on FastAPI.
# ABOUTME: Exports the app factory used by `lendery serve` and the API tests.

from lendery.api.app import create_app

__all__ = ["create_app"]
