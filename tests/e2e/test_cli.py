# ABOUTME: End-to-end tests for the lendery CLI.
# ABOUTME: Runs commands via Click's CliRunner against a temp database and fake providers.

from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from lendery.cli import cli
from lendery.core.runtime import Runtime
from lendery.db.catalog import BookCatalog
from lendery.db.connection import open_library
from tests.fixtures.providers import FakeProvider, make_candidate

DUNE = make_candidate("Dune", isbn="0441013597", published_year=1965, page_count=612)


def _fake_runtime(*providers: FakeProvider):
    """Replacement for a command's _create_runtime that wires in fake providers."""

    def factory(settings) -> Runtime:
        return Runtime(settings, providers=list(providers))

    return factory


@pytest.fixture
def seeded_db(db_path: Path) -> Path:
    conn = open_library(db_path)
    catalog = BookCatalog(conn)
    catalog.add_book({"title": "Dune", "author": "Frank Herbert", "genre": "Science fiction"})
    catalog.add_book({"title": "Emma", "author": "Jane Austen", "genre": "Romance"})
    conn.close()
    return db_path


class TestCliBasics:
    """E2e tests for the top-level group."""

    def test_help_lists_commands(self) -> None:
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("serve", "import-external", "enrich", "estimate", "ls"):
            assert command in result.output

    def test_version(self) -> None:
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "version" in result.output


class TestCliImport:
    """E2e tests for `lendery import-external`."""

    def test_imports_results(self, db_path: Path) -> None:
        openlibrary = FakeProvider("openlibrary", default=[DUNE])
        with patch(
            "lendery.cli.commands.import_cmd._create_runtime",
            side_effect=_fake_runtime(openlibrary, FakeProvider("googlebooks")),
        ):
            result = CliRunner().invoke(cli, ["import-external", "dune", "--db", str(db_path)])

        assert result.exit_code == 0, result.output
        assert "Dune" in result.output
        assert "1 imported, 0 already cataloged via openlibrary" in result.output

        conn = open_library(db_path)
        assert BookCatalog(conn).get_by_isbn("0441013597") is not None
        conn.close()

    def test_reports_fallback_and_outage(self, db_path: Path) -> None:
        google = make_candidate("Dune", source="googlebooks", isbn="9780441013593")
        with patch(
            "lendery.cli.commands.import_cmd._create_runtime",
            side_effect=_fake_runtime(
                FakeProvider("openlibrary", fail=True),
                FakeProvider("googlebooks", default=[google]),
            ),
        ):
            result = CliRunner().invoke(cli, ["import-external", "dune", "--db", str(db_path)])

        assert result.exit_code == 0, result.output
        assert "openlibrary was unavailable." in result.output
        assert "via googlebooks (fallback)" in result.output

    def test_no_results(self, db_path: Path) -> None:
        with patch(
            "lendery.cli.commands.import_cmd._create_runtime",
            side_effect=_fake_runtime(FakeProvider("openlibrary"), FakeProvider("googlebooks")),
        ):
            result = CliRunner().invoke(cli, ["import-external", "zzz", "--db", str(db_path)])

        assert result.exit_code == 0
        assert "No results found." in result.output

    def test_blank_query_fails(self, db_path: Path) -> None:
        with patch(
            "lendery.cli.commands.import_cmd._create_runtime",
            side_effect=_fake_runtime(FakeProvider("openlibrary")),
        ):
            result = CliRunner().invoke(cli, ["import-external", "  ", "--db", str(db_path)])

        assert result.exit_code == 1
        assert "query must not be empty" in result.output

    def test_limit_is_bounded(self, db_path: Path) -> None:
        result = CliRunner().invoke(
            cli, ["import-external", "dune", "-n", "41", "--db", str(db_path)]
        )
        assert result.exit_code == 2


class TestCliEnrich:
    """E2e tests for `lendery enrich`."""

    def test_enriches_records(self, seeded_db: Path) -> None:
        with patch(
            "lendery.cli.commands.enrich_cmd._create_runtime",
            side_effect=_fake_runtime(
                FakeProvider("openlibrary", default=[DUNE]), FakeProvider("googlebooks")
            ),
        ):
            result = CliRunner().invoke(cli, ["enrich", "--db", str(seeded_db)])

        assert result.exit_code == 0, result.output
        assert "Scanned:     2" in result.output
        assert "Matched:     1" in result.output
        assert "Synthesized: 1" in result.output

    def test_nothing_to_enrich(self, db_path: Path) -> None:
        with patch(
            "lendery.cli.commands.enrich_cmd._create_runtime",
            side_effect=_fake_runtime(FakeProvider("openlibrary")),
        ):
            result = CliRunner().invoke(cli, ["enrich", "--db", str(db_path)])

        assert result.exit_code == 0
        assert "Nothing to enrich." in result.output


class TestCliEstimate:
    """E2e tests for `lendery estimate`."""

    def test_estimate_from_page_count(self) -> None:
        candidate = make_candidate("Dune", page_count=612, genre="Science fiction")
        with patch(
            "lendery.cli.commands.estimate_cmd._create_runtime",
            side_effect=_fake_runtime(FakeProvider("openlibrary", default=[candidate])),
        ):
            result = CliRunner().invoke(cli, ["estimate", "Dune", "Frank Herbert"])

        assert result.exit_code == 0, result.output
        assert "612 (from openlibrary)" in result.output
        assert "Days:   24" in result.output

    def test_estimate_fallback(self) -> None:
        with patch(
            "lendery.cli.commands.estimate_cmd._create_runtime",
            side_effect=_fake_runtime(FakeProvider("openlibrary")),
        ):
            result = CliRunner().invoke(cli, ["estimate", "Unknown Book", "Nobody"])

        assert result.exit_code == 0
        assert "using the default loan length" in result.output
        assert "Days:   30" in result.output


class TestCliLs:
    """E2e tests for `lendery ls`."""

    def test_lists_books(self, seeded_db: Path) -> None:
        result = CliRunner().invoke(cli, ["ls", "--db", str(seeded_db)])
        assert result.exit_code == 0, result.output
        assert "Dune" in result.output
        assert "Emma" in result.output
        assert "2 book(s)" in result.output

    def test_filters_by_genre(self, seeded_db: Path) -> None:
        result = CliRunner().invoke(cli, ["ls", "--genre", "romance", "--db", str(seeded_db)])
        assert "Emma" in result.output
        assert "Dune" not in result.output

    def test_pagination_hint(self, seeded_db: Path) -> None:
        result = CliRunner().invoke(cli, ["ls", "-n", "1", "--db", str(seeded_db)])
        assert "More results: --cursor" in result.output

    def test_empty_library(self, db_path: Path) -> None:
        result = CliRunner().invoke(cli, ["ls", "--db", str(db_path)])
        assert "No books in the library." in result.output
