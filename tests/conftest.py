# ABOUTME: Shared pytest fixtures for lendery tests.
# ABOUTME: Provides a temp database, a runtime wired to fake providers, and an API client.

import sqlite3
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from lendery.api.app import create_app
from lendery.config import Settings
from lendery.core.runtime import Runtime
from lendery.db.catalog import BookCatalog
from lendery.db.mapping import CatalogRecord
from tests.fixtures.providers import FakeProvider, run_inline


@pytest.fixture
def fixtures_dir() -> Path:
    """Path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "library.db"


@pytest.fixture
def settings(db_path: Path) -> Settings:
    """Default settings pointed at a temp database."""
    settings = Settings()
    settings.database.path = db_path
    return settings


@pytest.fixture
def openlibrary() -> FakeProvider:
    return FakeProvider("openlibrary")


@pytest.fixture
def googlebooks() -> FakeProvider:
    return FakeProvider("googlebooks")


@pytest.fixture
def runtime(
    settings: Settings, openlibrary: FakeProvider, googlebooks: FakeProvider
) -> Iterator[Runtime]:
    """A runtime using the fake providers; background sweeps run inline."""
    rt = Runtime(settings, providers=[openlibrary, googlebooks], spawn=run_inline)
    yield rt
    rt.close()


@pytest.fixture
def conn(runtime: Runtime) -> Iterator[sqlite3.Connection]:
    connection = runtime.connect()
    yield connection
    connection.close()


@pytest.fixture
def catalog(conn: sqlite3.Connection) -> BookCatalog:
    return BookCatalog(conn)


@pytest.fixture
def add_book(catalog: BookCatalog) -> Callable[..., CatalogRecord]:
    """Insert a book and return its record."""

    def _add(title: str = "Dune", author: str = "Frank Herbert", **fields) -> CatalogRecord:
        book_id = catalog.add_book({"title": title, "author": author, **fields})
        return catalog.require(book_id)

    return _add


@pytest.fixture
def client(runtime: Runtime) -> Iterator[TestClient]:
    with TestClient(create_app(runtime=runtime)) as test_client:
        yield test_client
