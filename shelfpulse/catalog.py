"""Maps external catalog records onto the internal book / genre schema."""

import logging
import sqlite3
from typing import Iterable, List, Optional

from shelfpulse.errors import ValidationError
from shelfpulse.models import AgeRating, CatalogPayload

logger = logging.getLogger(__name__)

# Category paths look like "Fiction/Science Fiction/Space Opera"
CATEGORY_SEPARATOR = "/"
MAX_GENRE_DEPTH = 2
UNINFORMATIVE_GENRE = "General"


def genre_names(categories: Iterable[str]) -> List[str]:
    """Genre names carried by a list of category paths, in first-seen order."""
    names: List[str] = []
    for raw in categories or []:
        if not raw:
            continue
        for segment in raw.split(CATEGORY_SEPARATOR)[:MAX_GENRE_DEPTH]:
            name = segment.strip()
            if not name or name == UNINFORMATIVE_GENRE:
                continue
            if name not in names:
                names.append(name)
    return names


def known_or_none(value: Optional[int]) -> Optional[int]:
    """Zero or missing counts are stored as unknown."""
    if not value:
        return None
    return int(value)


class CatalogNormalizer:
    """Ingests a catalog record into ``books``, ``genres`` and ``book_genres``.

    The normalizer never opens its own transaction: callers pass the connection
    of the unit of work the ingest belongs to, so the book and its genre links
    commit or roll back together with whatever the caller does next.
    """

    def ingest(self, conn: sqlite3.Connection, payload: CatalogPayload) -> int:
        external_id = (payload.external_id or "").strip()
        title = (payload.title or "").strip()
        if not external_id or not title:
            raise ValidationError("id and title required", reason="id_and_title_required")

        book_id = self._upsert_book(conn, external_id, title, payload)
        for name in genre_names(payload.categories):
            genre_id = self._upsert_genre(conn, name)
            conn.execute(
                "INSERT INTO book_genres (book_id, genre_id) VALUES (?, ?) ON CONFLICT DO NOTHING",
                (book_id, genre_id),
            )
        logger.debug("Ingested external id %s as book %s", external_id, book_id)
        return book_id

    def _upsert_book(self, conn: sqlite3.Connection, external_id: str, title: str, payload: CatalogPayload) -> int:
        conn.execute(
            """
            INSERT INTO books (external_id, title, author, cover_url, description,
                               published_year, page_count, age_rating)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (external_id) DO UPDATE SET
                title = excluded.title,
                author = excluded.author,
                cover_url = excluded.cover_url,
                description = excluded.description,
                published_year = excluded.published_year,
                page_count = excluded.page_count,
                age_rating = excluded.age_rating
            """,
            (
                external_id,
                title,
                payload.author or "",
                payload.cover_url or "",
                payload.description or "",
                known_or_none(payload.published_year),
                known_or_none(payload.page_count),
                AgeRating.from_maturity(payload.maturity).value,
            ),
        )
        row = conn.execute("SELECT id FROM books WHERE external_id = ?", (external_id,)).fetchone()
        return row["id"]

    def _upsert_genre(self, conn: sqlite3.Connection, name: str) -> int:
        conn.execute("INSERT INTO genres (name) VALUES (?) ON CONFLICT (name) DO NOTHING", (name,))
        row = conn.execute("SELECT id FROM genres WHERE name = ?", (name,)).fetchone()
        return row["id"]
