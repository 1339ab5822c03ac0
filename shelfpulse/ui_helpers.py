import json
import os
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from shelfpulse.models import BookSummary, CollectionView, LibraryView

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "SHELFPULSE_CLI_OUTPUT"
OUTPUT_MODES = {"plain", "json", "rich"}

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    # Unknown values keep the current mode
    if mode in OUTPUT_MODES:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False))


def print_library_result(entries: List[LibraryView]) -> None:
    """Print a user's library in the current output mode.
    - plain: 'status  Title by Author [collections]' lines, or 'No books in library.'
    - json: JSON array of library rows
    - rich: Rich table
    """
    mode = get_output_mode()

    if not entries:
        print("No books in library.")
        return

    if mode == "json":
        _print_json([e.to_dict() for e in entries])
    elif mode == "rich":
        table = Table(title="📚 Library", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Status", style="green")
        table.add_column("Collections", style="yellow")
        for e in entries:
            table.add_row(str(e.book_id), e.title, e.author, e.status.value, ", ".join(e.collections))
        _console.print(table)
    else:
        for e in entries:
            line = f"{e.status.value:<9} {e.title} by {e.author or 'unknown'}"
            if e.collections:
                line += f" [{', '.join(e.collections)}]"
            print(line)


def print_collections_result(collections: List[CollectionView]) -> None:
    mode = get_output_mode()

    if not collections:
        print("No collections.")
        return

    if mode == "json":
        _print_json([c.to_dict() for c in collections])
    elif mode == "rich":
        table = Table(title="🗂️ Collections", header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Name", style="white")
        table.add_column("Books", justify="right")
        for c in collections:
            table.add_row(str(c.id), c.name, str(c.count))
        _console.print(table)
    else:
        for c in collections:
            print(f"{c.id} - {c.name} ({c.count})")


def print_stats_result(report: Dict[str, List[Dict[str, Any]]]) -> None:
    """Print reading statistics.
    - plain: one section per grouping
    - json: the report object
    - rich: Panel with the three groupings
    """
    mode = get_output_mode()

    if not report or not any(report.values()):
        print("No statistics available.")
        return

    if mode == "json":
        _print_json(report)
        return

    sections = [
        ("Genres (finished)", "genre", report.get("genres", [])),
        ("Added per month", "month", report.get("months", [])),
        ("By status", "status", report.get("statuses", [])),
    ]
    if mode == "rich":
        lines = []
        for title, key, rows in sections:
            lines.append(f"[bold]{title}:[/]")
            lines.extend(f"  {row[key]}: {row['cnt']}" for row in rows)
        _console.print(Panel.fit("\n".join(lines), title="📊 Stats", border_style="blue"))
    else:
        for title, key, rows in sections:
            print(f"{title}:")
            for row in rows:
                print(f"  {row[key]}: {row['cnt']}")


def print_search_result(books: List[BookSummary]) -> None:
    mode = get_output_mode()

    if not books:
        print("No books found.")
        return

    if mode == "json":
        _print_json([b.to_dict() for b in books])
    elif mode == "rich":
        table = Table(title="🔎 Catalog", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Year", justify="right")
        for b in books:
            table.add_row(b.external_id, b.title, b.author, str(b.published_year or ""))
        _console.print(table)
    else:
        for b in books:
            print(f"{b.external_id} - {b.title} by {b.author or 'unknown'}")
