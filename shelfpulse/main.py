import asyncio
import subprocess
import sys
from typing import Optional

import typer
from rich.console import Console

from shelfpulse.config import configure_logging, settings
from shelfpulse.database import Store
from shelfpulse.errors import ShelfError
from shelfpulse.identity import IdentityStore
from shelfpulse.ledger import Ledger
from shelfpulse.services.google_books_service import GoogleBooksService
from shelfpulse.services.http_client import HTTPClient
from shelfpulse.stats import StatsReporter
from shelfpulse.ui_helpers import (
    print_collections_result,
    print_library_result,
    print_search_result,
    print_stats_result,
    set_output_mode,
)

console = Console()

app = typer.Typer(help="shelfpulse reading tracker CLI")


def _store() -> Store:
    return Store.from_settings(settings)


def _fail(exc: ShelfError) -> None:
    print(f"Error: {exc.message}")
    raise typer.Exit(code=1)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database file (default: DATABASE_FILE)"),
):
    """Global options for the CLI (output mode, database file)."""
    configure_logging(settings)
    if output:
        set_output_mode(output)
    if db:
        settings.database_file = db


@app.command("init-db")
def cli_init_db():
    """Create the database schema if it does not exist."""
    store = _store()
    try:
        store.initialize_database()
    except ShelfError as exc:
        _fail(exc)
    print(f"Database initialized at {store.db_file}")


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default: API_HOST)"),
    port: Optional[int] = typer.Option(None, "--port", help="Port (default: API_PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
):
    """Run the HTTP API with uvicorn."""
    host = host or settings.api_host
    port = port or settings.api_port
    print(f"Starting API on http://{host}:{port}/api")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "--factory", "shelfpulse.api:create_app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    try:
        subprocess.run(args, check=False)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] could not start uvicorn. Make sure it is installed.")
        raise typer.Exit(code=1)


@app.command("library")
def cli_library(email: str = typer.Argument(..., help="Account email")):
    """List a user's library with statuses and collections."""
    store = _store()
    identity = IdentityStore(store)
    try:
        user = identity.find_by_email(email)
        entries = Ledger(store, identity).list_library(user.id)
    except ShelfError as exc:
        _fail(exc)
    print_library_result(entries)


@app.command("collections")
def cli_collections(email: str = typer.Argument(..., help="Account email")):
    """List a user's collections with book counts."""
    store = _store()
    identity = IdentityStore(store)
    try:
        user = identity.find_by_email(email)
        collections = Ledger(store, identity).list_collections(user.id)
    except ShelfError as exc:
        _fail(exc)
    print_collections_result(collections)


@app.command("stats")
def cli_stats(email: str = typer.Argument(..., help="Account email")):
    """Show reading statistics for a user."""
    store = _store()
    try:
        user = IdentityStore(store).find_by_email(email)
        report = StatsReporter(store).report(user.id)
    except ShelfError as exc:
        _fail(exc)
    print_stats_result(report)


async def _search(query: str, max_results: int):
    async with HTTPClient(timeout=settings.google_books_timeout) as client:
        service = GoogleBooksService(client, api_key=settings.google_books_api_key)
        return await service.search(query, max_results)


@app.command("search")
def cli_search(
    query: str = typer.Argument(..., help="Search query"),
    limit: int = typer.Option(settings.google_books_max_results, "--max", "-n", help="Maximum results"),
):
    """Search the external book catalog."""
    try:
        books = asyncio.run(_search(query, limit))
    except ShelfError as exc:
        _fail(exc)
    print_search_result(books)


if __name__ == "__main__":
    app()
