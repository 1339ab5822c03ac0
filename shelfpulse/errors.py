from typing import Optional


class ShelfError(Exception):
    """Base class for errors surfaced to API clients.

    Every subclass maps to one HTTP status and carries a short, stable ``reason``
    string that clients can switch on. ``message`` is safe to show to users.
    """

    status_code = 500
    reason = "internal_error"

    def __init__(self, message: str, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if reason:
            self.reason = reason

    def to_dict(self) -> dict:
        return {"detail": self.message, "reason": self.reason}


class ValidationError(ShelfError):
    """Malformed or out-of-range input."""

    status_code = 400
    reason = "validation_error"


class Unauthenticated(ShelfError):
    """Missing, malformed or expired session."""

    status_code = 401
    reason = "unauthenticated"

    def __init__(self, message: str = "unauthorized", reason: Optional[str] = None) -> None:
        super().__init__(message, reason)


class NotFoundError(ShelfError):
    """Referenced entity does not exist."""

    status_code = 404
    reason = "not_found"


class ConflictError(ShelfError):
    """Operation violates a business invariant."""

    status_code = 409
    reason = "conflict"


class StorageError(ShelfError):
    """Backing store unavailable, interrupted, or rejected the write."""

    status_code = 500
    reason = "storage_error"


class CatalogError(ShelfError):
    """External book catalog failed or returned an unusable response."""

    status_code = 502
    reason = "catalog_error"


class RateLimitExceeded(CatalogError):
    """Catalog answered with 429."""

    reason = "catalog_rate_limited"
