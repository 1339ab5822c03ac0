import json
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

from shelfpulse import main
from shelfpulse.config import settings
from shelfpulse.errors import CatalogError
from shelfpulse.main import app
from shelfpulse.models import BookSummary
from shelfpulse.services.google_books_service import GoogleBooksService
from shelfpulse.ui_helpers import OUTPUT_MODE_ENV

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_env(db_file, monkeypatch):
    monkeypatch.setattr(settings, "database_file", db_file)
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")


@pytest.fixture
def shelf(ledger, user, make_payload):
    book_id = ledger.add_or_update_book(user.id, make_payload("g1", "Dune"), "finished")
    ledger.add_or_update_book(user.id, make_payload("g2", "Hyperion", author="Dan Simmons"))
    ledger.create_collection(user.id, "Favourites", [book_id])
    return user


def test_init_db(db_file):
    result = runner.invoke(app, ["init-db"])
    assert result.exit_code == 0
    assert f"Database initialized at {db_file}" in result.stdout


def test_library_plain(shelf):
    result = runner.invoke(app, ["library", shelf.email])
    assert result.exit_code == 0
    lines = result.stdout.strip().splitlines()
    assert lines[0].startswith("finished")
    assert "Dune by Frank Herbert [Favourites]" in lines[0]
    assert "Hyperion by Dan Simmons" in lines[1]


def test_library_json(shelf):
    result = runner.invoke(app, ["--output", "json", "library", shelf.email])
    assert result.exit_code == 0
    rows = json.loads(result.stdout)
    assert [r["external_id"] for r in rows] == ["g1", "g2"]
    assert rows[0]["collections"] == ["Favourites"]


def test_library_empty(store, user):
    result = runner.invoke(app, ["library", user.email])
    assert result.exit_code == 0
    assert "No books in library." in result.stdout


def test_unknown_user(store):
    result = runner.invoke(app, ["library", "ghost@example.com"])
    assert result.exit_code == 1
    assert "Error: user not found" in result.stdout


def test_collections(shelf):
    result = runner.invoke(app, ["collections", shelf.email])
    assert result.exit_code == 0
    assert "Favourites (1)" in result.stdout


def test_stats(shelf):
    result = runner.invoke(app, ["stats", shelf.email])
    assert result.exit_code == 0
    assert "By status:" in result.stdout
    assert "finished: 1" in result.stdout
    assert "planned: 1" in result.stdout


def test_search(monkeypatch):
    async def fake_search(self, query, max_results=12):
        return [BookSummary(external_id="g1", title="Dune", authors=["Frank Herbert"])]

    monkeypatch.setattr(GoogleBooksService, "search", fake_search)

    result = runner.invoke(app, ["search", "dune"])
    assert result.exit_code == 0
    assert "g1 - Dune by Frank Herbert" in result.stdout


def test_search_catalog_failure(monkeypatch):
    async def failing_search(self, query, max_results=12):
        raise CatalogError("google books unreachable")

    monkeypatch.setattr(GoogleBooksService, "search", failing_search)

    result = runner.invoke(app, ["search", "dune"])
    assert result.exit_code == 1
    assert "Error: google books unreachable" in result.stdout


def test_serve_runs_uvicorn_factory(monkeypatch):
    run_mock = MagicMock()
    monkeypatch.setattr(main.subprocess, "run", run_mock)

    result = runner.invoke(app, ["serve", "--port", "9999"])

    assert result.exit_code == 0
    assert "Starting API on" in result.stdout
    args = run_mock.call_args[0][0]
    assert "--factory" in args
    assert "shelfpulse.api:create_app" in args
    assert args[args.index("--port") + 1] == "9999"
