import logging
import os
import sqlite3
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from shelfpulse.errors import StorageError

logger = logging.getLogger(__name__)

# How many SQLite VM instructions run between deadline checks
_PROGRESS_STEPS = 1000

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    name TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS books (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    author TEXT NOT NULL DEFAULT '',
    cover_url TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    published_year INTEGER,
    page_count INTEGER,
    age_rating TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS genres (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS book_genres (
    book_id INTEGER NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    genre_id INTEGER NOT NULL REFERENCES genres(id) ON DELETE CASCADE,
    PRIMARY KEY (book_id, genre_id)
);

CREATE TABLE IF NOT EXISTS user_books (
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    book_id INTEGER NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    status TEXT NOT NULL DEFAULT 'planned'
        CHECK (status IN ('planned', 'reading', 'finished', 'dropped')),
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (user_id, book_id)
);

CREATE TABLE IF NOT EXISTS collections (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    UNIQUE (user_id, name)
);

CREATE TABLE IF NOT EXISTS collection_books (
    user_id INTEGER NOT NULL,
    collection_id INTEGER NOT NULL REFERENCES collections(id) ON DELETE CASCADE,
    book_id INTEGER NOT NULL,
    PRIMARY KEY (user_id, collection_id, book_id),
    FOREIGN KEY (user_id, book_id) REFERENCES user_books(user_id, book_id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS reviews (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    book_id INTEGER NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    rating INTEGER NOT NULL CHECK (rating >= 1 AND rating <= 5),
    text TEXT NOT NULL,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    -- Table-wide write order; bumped on every edit
    updated_seq INTEGER NOT NULL DEFAULT 0,
    UNIQUE (user_id, book_id)
);

CREATE INDEX IF NOT EXISTS idx_user_books_user_status ON user_books(user_id, status);
CREATE INDEX IF NOT EXISTS idx_user_books_created_at ON user_books(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_collection_books_book ON collection_books(user_id, book_id);
CREATE INDEX IF NOT EXISTS idx_reviews_book_seq ON reviews(book_id, updated_seq DESC);
CREATE INDEX IF NOT EXISTS idx_books_title ON books(title);
"""


class Store:
    """Handle on the SQLite database shared by every component.

    A Store holds no open connection. Each unit of work opens its own connection
    through :meth:`transaction` or :meth:`read`, which also bound the work with a
    deadline and translate driver errors into :class:`StorageError`.
    """

    def __init__(self, db_file: str, busy_timeout: float = 5.0, storage_timeout: Optional[float] = 5.0) -> None:
        self.db_file = db_file
        self.busy_timeout = busy_timeout
        self.storage_timeout = storage_timeout

    @classmethod
    def from_settings(cls, config) -> "Store":
        return cls(
            config.database_file,
            busy_timeout=config.sqlite_busy_timeout,
            storage_timeout=config.storage_timeout,
        )

    def get_db_connection(self) -> sqlite3.Connection:
        """Open a new connection in autocommit mode; transactions are explicit."""
        conn = sqlite3.connect(
            self.db_file,
            timeout=self.busy_timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    @contextmanager
    def transaction(self, immediate: bool = True, timeout: Optional[float] = None) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements as one atomic unit.

        ``BEGIN IMMEDIATE`` takes the write lock up front so two writers never
        interleave their read-then-write steps. Any exception rolls the whole
        unit back; driver errors are re-raised as StorageError.
        """
        conn = self._connect(timeout)
        try:
            conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as exc:
            self._rollback(conn)
            raise self._storage_error(exc) from exc
        except BaseException:
            self._rollback(conn)
            raise
        finally:
            conn.close()

    def read(self, timeout: Optional[float] = None):
        """Consistent read-only snapshot for multi-query reads."""
        return self.transaction(immediate=False, timeout=timeout)

    def ping(self) -> bool:
        try:
            with self.read() as conn:
                conn.execute("SELECT 1")
            return True
        except StorageError:
            return False

    # ------------------------- Schema ------------------------- #
    def create_tables(self) -> None:
        """Create the schema if it does not exist yet."""
        conn = self._connect(None)
        try:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.executescript(SCHEMA)
        except sqlite3.Error as exc:
            raise self._storage_error(exc) from exc
        finally:
            conn.close()

    def initialize_database(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.db_file))
        os.makedirs(directory, exist_ok=True)
        self.create_tables()
        logger.info("Database ready at %s", self.db_file)

    # ------------------------- Helpers ------------------------- #
    def _connect(self, timeout: Optional[float]) -> sqlite3.Connection:
        try:
            conn = self.get_db_connection()
        except sqlite3.Error as exc:
            raise self._storage_error(exc) from exc
        limit = self.storage_timeout if timeout is None else timeout
        if limit:
            deadline = time.monotonic() + limit
            # A non-zero return aborts the running statement with "interrupted"
            conn.set_progress_handler(lambda: 1 if time.monotonic() > deadline else 0, _PROGRESS_STEPS)
        return conn

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            try:
                conn.execute("ROLLBACK")
            except sqlite3.Error as exc:
                logger.warning("Rollback failed: %s", exc)

    @staticmethod
    def _storage_error(exc: sqlite3.Error) -> StorageError:
        text = str(exc)
        if "interrupted" in text:
            logger.error("Storage deadline exceeded: %s", text)
            return StorageError("storage deadline exceeded", reason="storage_timeout")
        if "locked" in text or "busy" in text:
            logger.error("Storage busy: %s", text)
            return StorageError("storage busy", reason="storage_busy")
        logger.error("Storage error: %s", text)
        return StorageError("storage error")
