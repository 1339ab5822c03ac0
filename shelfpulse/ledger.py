import logging
import sqlite3
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from shelfpulse.catalog import CatalogNormalizer
from shelfpulse.database import Store
from shelfpulse.errors import ConflictError, NotFoundError, StorageError, ValidationError
from shelfpulse.identity import IdentityStore
from shelfpulse.models import (
    CatalogPayload,
    CollectionView,
    LibraryView,
    ReadingStatus,
    ReviewView,
)

logger = logging.getLogger(__name__)

REVIEW_TIME_FORMAT = "%Y-%m-%d %H:%M"
MIN_RATING = 1
MAX_RATING = 5


def format_timestamp(value: str) -> str:
    """Render an SQLite CURRENT_TIMESTAMP value as ``YYYY-MM-DD HH:MM``."""
    try:
        return datetime.fromisoformat(value).strftime(REVIEW_TIME_FORMAT)
    except (TypeError, ValueError):
        return value or ""


class Ledger:
    """Owns every per-user mutation: library entries, collections and reviews.

    Each mutating method is one ``Store.transaction()``. A failure at any step
    rolls back everything the call wrote, so a later read never observes a book
    without its genres, or a collection with only some of the requested books.
    """

    def __init__(self, store: Store, identity: IdentityStore, normalizer: Optional[CatalogNormalizer] = None) -> None:
        self.store = store
        self.identity = identity
        self.normalizer = normalizer or CatalogNormalizer()

    # ------------------------- Library ------------------------- #
    def add_or_update_book(self, user_id: int, payload: CatalogPayload, status: Optional[str] = None) -> int:
        """Ingest a catalog record and link it into the user's library.

        Without ``status`` a new entry starts as ``planned`` and an existing entry
        keeps its current status. An explicit status always overwrites.
        """
        parsed = ReadingStatus.parse(status) if status is not None else None

        with self.store.transaction() as conn:
            book_id = self.normalizer.ingest(conn, payload)
            if parsed is None:
                conn.execute(
                    """
                    INSERT INTO user_books (user_id, book_id, status) VALUES (?, ?, ?)
                    ON CONFLICT (user_id, book_id) DO NOTHING
                    """,
                    (user_id, book_id, ReadingStatus.PLANNED.value),
                )
            else:
                conn.execute(
                    """
                    INSERT INTO user_books (user_id, book_id, status) VALUES (?, ?, ?)
                    ON CONFLICT (user_id, book_id) DO UPDATE SET status = excluded.status
                    """,
                    (user_id, book_id, parsed.value),
                )

        logger.info("User %s library: book %s (%s)", user_id, book_id, parsed.value if parsed else "default")
        return book_id

    def set_status(
        self,
        user_id: int,
        status: str,
        book_id: Optional[int] = None,
        external_id: Optional[str] = None,
    ) -> None:
        """Change the status of a book already in the user's library."""
        parsed = ReadingStatus.parse(status)
        if not book_id and not external_id:
            raise ValidationError("googleId or bookId required", reason="book_reference_required")

        with self.store.transaction() as conn:
            if book_id:
                row = conn.execute("SELECT id FROM books WHERE id = ?", (book_id,)).fetchone()
            else:
                row = conn.execute("SELECT id FROM books WHERE external_id = ?", (external_id,)).fetchone()
            if row is None:
                raise NotFoundError("book not found", reason="book_not_found")

            cursor = conn.execute(
                "UPDATE user_books SET status = ? WHERE user_id = ? AND book_id = ?",
                (parsed.value, user_id, row["id"]),
            )
            if cursor.rowcount == 0:
                raise ConflictError("book not in user's library", reason="book_not_in_library")

    def list_library(self, user_id: int) -> List[LibraryView]:
        with self.store.read() as conn:
            rows = conn.execute(
                """
                SELECT b.id, b.external_id, b.title, b.author, b.cover_url, ub.status, c.name AS collection
                FROM user_books ub
                JOIN books b ON b.id = ub.book_id
                LEFT JOIN collection_books cb
                  ON cb.user_id = ub.user_id AND cb.book_id = ub.book_id
                LEFT JOIN collections c
                  ON c.id = cb.collection_id AND c.user_id = cb.user_id
                WHERE ub.user_id = ?
                ORDER BY b.title, b.id, c.name
                """,
                (user_id,),
            ).fetchall()

        views: List[LibraryView] = []
        by_book = {}
        for row in rows:
            view = by_book.get(row["id"])
            if view is None:
                view = LibraryView(
                    book_id=row["id"],
                    external_id=row["external_id"],
                    title=row["title"],
                    author=row["author"],
                    cover_url=row["cover_url"],
                    status=ReadingStatus(row["status"]),
                )
                by_book[row["id"]] = view
                views.append(view)
            name = row["collection"]
            if name is not None and name not in view.collections:
                view.collections.append(name)
        return views

    # ------------------------- Collections ------------------------- #
    def create_collection(self, user_id: int, name: str, book_ids: Sequence[int]) -> int:
        """Create (or reuse) a named collection and link books from the library.

        Every id is checked before anything is written; one id outside the
        user's library rejects the whole call.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("name required", reason="name_required")
        if not book_ids:
            raise ValidationError("bookIds required", reason="book_ids_required")
        wanted = _unique(bid for bid in book_ids if bid)

        with self.store.transaction() as conn:
            for book_id in wanted:
                self._require_in_library(conn, user_id, book_id)

            conn.execute(
                "INSERT INTO collections (user_id, name) VALUES (?, ?) ON CONFLICT (user_id, name) DO NOTHING",
                (user_id, name),
            )
            collection_id = conn.execute(
                "SELECT id FROM collections WHERE user_id = ? AND name = ?", (user_id, name)
            ).fetchone()["id"]

            for book_id in wanted:
                self._link(conn, user_id, collection_id, book_id)

        logger.info("User %s collection %s (%r): %d book(s)", user_id, collection_id, name, len(wanted))
        return collection_id

    def add_books_to_collection(self, user_id: int, collection_id: int, external_ids: Sequence[str]) -> None:
        if not collection_id or not external_ids:
            raise ValidationError("collectionId and googleIds required", reason="collection_and_ids_required")

        with self.store.transaction() as conn:
            owned = conn.execute(
                "SELECT 1 FROM collections WHERE id = ? AND user_id = ?", (collection_id, user_id)
            ).fetchone()
            if owned is None:
                raise ConflictError("collection not found", reason="collection_not_found")

            for external_id in _unique(gid for gid in external_ids if gid):
                row = conn.execute("SELECT id FROM books WHERE external_id = ?", (external_id,)).fetchone()
                if row is None:
                    raise NotFoundError(f"book not found: {external_id}", reason="book_not_found")
                self._require_in_library(conn, user_id, row["id"])
                self._link(conn, user_id, collection_id, row["id"])

    def list_collections(self, user_id: int) -> List[CollectionView]:
        with self.store.read() as conn:
            rows = conn.execute(
                """
                SELECT c.id, c.name, COUNT(cb.book_id) AS cnt
                FROM collections c
                LEFT JOIN collection_books cb
                  ON cb.user_id = c.user_id AND cb.collection_id = c.id
                WHERE c.user_id = ?
                GROUP BY c.id, c.name
                ORDER BY c.name
                """,
                (user_id,),
            ).fetchall()
        return [CollectionView(id=r["id"], name=r["name"], count=r["cnt"]) for r in rows]

    # ------------------------- Reviews ------------------------- #
    def resolve_book_id(self, external_id: str) -> int:
        with self.store.read() as conn:
            row = conn.execute("SELECT id FROM books WHERE external_id = ?", (external_id,)).fetchone()
        if row is None:
            raise NotFoundError("book not found", reason="book_not_found")
        return row["id"]

    def upsert_review(self, user_id: int, book_id: int, rating: int, text: str) -> ReviewView:
        """Create or replace the user's review of a book.

        Resubmitting replaces rating and text and refreshes ``created_at``, so the
        displayed time is the time of the last edit. ``updated_seq`` orders reviews by
        last write, since ``created_at`` only has second resolution.
        """
        if not isinstance(rating, int) or isinstance(rating, bool) or not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationError("rating must be 1..5", reason="invalid_rating")
        text = (text or "").strip()
        if not text:
            raise ValidationError("text is required", reason="text_required")

        with self.store.transaction() as conn:
            if conn.execute("SELECT 1 FROM books WHERE id = ?", (book_id,)).fetchone() is None:
                raise NotFoundError("book not found", reason="book_not_found")
            conn.execute(
                """
                INSERT INTO reviews (user_id, book_id, rating, text, created_at, updated_seq)
                VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP,
                        (SELECT COALESCE(MAX(updated_seq), 0) + 1 FROM reviews))
                ON CONFLICT (user_id, book_id) DO UPDATE SET
                    rating = excluded.rating,
                    text = excluded.text,
                    created_at = CURRENT_TIMESTAMP,
                    updated_seq = excluded.updated_seq
                """,
                (user_id, book_id, rating, text),
            )
            row = conn.execute(
                "SELECT id, created_at FROM reviews WHERE user_id = ? AND book_id = ?",
                (user_id, book_id),
            ).fetchone()

        # The review is committed at this point; the name is decoration only
        try:
            user_name = self.identity.display_name(user_id)
        except StorageError as exc:
            logger.warning("Display name lookup failed for user %s: %s", user_id, exc)
            user_name = ""

        return ReviewView(
            id=row["id"],
            user_name=user_name,
            created_at=format_timestamp(row["created_at"]),
            rating=rating,
            text=text,
        )

    def list_reviews(self, book_id: int) -> List[ReviewView]:
        with self.store.read() as conn:
            rows = conn.execute(
                """
                SELECT r.id,
                       COALESCE(NULLIF(u.name, ''), u.email, 'User') AS user_name,
                       r.created_at, r.rating, r.text
                FROM reviews r
                JOIN users u ON u.id = r.user_id
                WHERE r.book_id = ?
                ORDER BY r.updated_seq DESC, r.id DESC
                """,
                (book_id,),
            ).fetchall()
        return [
            ReviewView(
                id=r["id"],
                user_name=r["user_name"],
                created_at=format_timestamp(r["created_at"]),
                rating=r["rating"],
                text=r["text"],
            )
            for r in rows
        ]

    # ------------------------- Helpers ------------------------- #
    @staticmethod
    def _require_in_library(conn: sqlite3.Connection, user_id: int, book_id: int) -> None:
        row = conn.execute(
            "SELECT 1 FROM user_books WHERE user_id = ? AND book_id = ?", (user_id, book_id)
        ).fetchone()
        if row is None:
            raise ConflictError("book not in user's library", reason="book_not_in_library")

    @staticmethod
    def _link(conn: sqlite3.Connection, user_id: int, collection_id: int, book_id: int) -> None:
        conn.execute(
            """
            INSERT INTO collection_books (user_id, collection_id, book_id)
            VALUES (?, ?, ?)
            ON CONFLICT DO NOTHING
            """,
            (user_id, collection_id, book_id),
        )


def _unique(values: Iterable) -> list:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen
