import logging
import sqlite3
from typing import Optional

from werkzeug.security import check_password_hash, generate_password_hash

from shelfpulse.database import Store
from shelfpulse.errors import ConflictError, NotFoundError, Unauthenticated, ValidationError
from shelfpulse.models import UserView

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "User"


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(digest: str, password: str) -> bool:
    if not digest:
        return False
    return check_password_hash(digest, password)


def display_name_for(name: Optional[str], email: Optional[str]) -> str:
    """Name if set, else email, else the generic label."""
    if name:
        return name
    if email:
        return email
    return DEFAULT_DISPLAY_NAME


class IdentityStore:
    """Persists user credentials and profile."""

    def __init__(self, store: Store, min_password_length: int = 6) -> None:
        self.store = store
        self.min_password_length = min_password_length

    # ------------------------- Registration / login ------------------------- #
    def register(self, email: str, password: str, name: str = "") -> UserView:
        email = (email or "").strip()
        if not email:
            raise ValidationError("email is required", reason="email_required")
        self._check_password(password or "")
        name = (name or "").strip() or DEFAULT_DISPLAY_NAME
        digest = hash_password(password)

        with self.store.transaction() as conn:
            try:
                cursor = conn.execute(
                    "INSERT INTO users (email, password_hash, name) VALUES (?, ?, ?)",
                    (email, digest, name),
                )
            except sqlite3.IntegrityError:
                raise ConflictError("email already exists", reason="email_exists") from None
            user_id = cursor.lastrowid

        logger.info("Registered user id=%s", user_id)
        return UserView(id=user_id, email=email, name=name)

    def authenticate(self, email: str, password: str) -> UserView:
        with self.store.read() as conn:
            row = conn.execute(
                "SELECT id, email, name, password_hash FROM users WHERE email = ?",
                ((email or "").strip(),),
            ).fetchone()
        if row is None:
            logger.info("Login failed: unknown email")
            raise Unauthenticated("invalid credentials", reason="invalid_credentials")
        if not verify_password(row["password_hash"], password or ""):
            logger.info("Login failed: bad password for user id=%s", row["id"])
            raise Unauthenticated("invalid credentials", reason="invalid_credentials")
        return UserView(id=row["id"], email=row["email"], name=row["name"])

    # ------------------------- Profile ------------------------- #
    def get_user(self, user_id: int) -> UserView:
        with self.store.read() as conn:
            row = conn.execute("SELECT id, email, name FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            raise NotFoundError("user not found", reason="user_not_found")
        return UserView(id=row["id"], email=row["email"], name=row["name"])

    def find_by_email(self, email: str) -> UserView:
        with self.store.read() as conn:
            row = conn.execute(
                "SELECT id, email, name FROM users WHERE email = ?", ((email or "").strip(),)
            ).fetchone()
        if row is None:
            raise NotFoundError("user not found", reason="user_not_found")
        return UserView(id=row["id"], email=row["email"], name=row["name"])

    def display_name(self, user_id: int) -> str:
        with self.store.read() as conn:
            row = conn.execute("SELECT name, email FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return DEFAULT_DISPLAY_NAME
        return display_name_for(row["name"], row["email"])

    def update_name(self, user_id: int, name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("name is required", reason="name_required")
        with self.store.transaction() as conn:
            cursor = conn.execute("UPDATE users SET name = ? WHERE id = ?", (name, user_id))
            if cursor.rowcount == 0:
                raise NotFoundError("user not found", reason="user_not_found")
        return name

    def update_password(self, user_id: int, password: str) -> None:
        password = (password or "").strip()
        self._check_password(password)
        digest = hash_password(password)
        with self.store.transaction() as conn:
            cursor = conn.execute("UPDATE users SET password_hash = ? WHERE id = ?", (digest, user_id))
            if cursor.rowcount == 0:
                raise NotFoundError("user not found", reason="user_not_found")
        logger.info("Password updated for user id=%s", user_id)

    def _check_password(self, password: str) -> None:
        if len(password) < self.min_password_length:
            raise ValidationError(
                f"password must be at least {self.min_password_length} chars",
                reason="password_too_short",
            )
