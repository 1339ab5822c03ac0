from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from shelfpulse.errors import ValidationError


class ReadingStatus(str, Enum):
    """Reading status of a book in a user's library."""

    PLANNED = "planned"
    READING = "reading"
    FINISHED = "finished"
    DROPPED = "dropped"

    @classmethod
    def parse(cls, value: Any) -> "ReadingStatus":
        if isinstance(value, cls):
            return value
        if not isinstance(value, str) or not value:
            raise ValidationError("status required", reason="status_required")
        try:
            return cls(value)
        except ValueError:
            raise ValidationError("invalid status", reason="invalid_status") from None


class AgeRating(str, Enum):
    """Age rating stored on a book. The empty value means unrestricted."""

    UNRESTRICTED = ""
    ADULT = "18+"

    @classmethod
    def from_maturity(cls, tag: Optional[str]) -> "AgeRating":
        # Catalog maturity tags are compared verbatim
        if tag == "MATURE":
            return cls.ADULT
        return cls.UNRESTRICTED


@dataclass
class BookSummary:
    """A book as described by the external catalog."""

    external_id: str
    title: str
    authors: List[str] = field(default_factory=list)
    cover_url: str = ""
    description: str = ""
    categories: List[str] = field(default_factory=list)
    published_year: Optional[int] = None
    page_count: Optional[int] = None
    maturity: str = ""

    @property
    def author(self) -> str:
        return ", ".join(self.authors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.external_id,
            "title": self.title,
            "authors": self.authors,
            "author": self.author,
            "cover_url": self.cover_url,
            "description": self.description,
            "categories": self.categories,
            "published_year": self.published_year,
            "page_count": self.page_count,
            "maturity": self.maturity,
        }


@dataclass
class CatalogPayload:
    """Book record handed to the catalog normalizer for ingestion."""

    external_id: str
    title: str
    author: str = ""
    cover_url: str = ""
    description: str = ""
    published_year: Optional[int] = None
    page_count: Optional[int] = None
    maturity: str = ""
    categories: List[str] = field(default_factory=list)

    @classmethod
    def from_summary(cls, summary: BookSummary) -> "CatalogPayload":
        return cls(
            external_id=summary.external_id,
            title=summary.title,
            author=summary.author,
            cover_url=summary.cover_url,
            description=summary.description,
            published_year=summary.published_year,
            page_count=summary.page_count,
            maturity=summary.maturity,
            categories=list(summary.categories),
        )


@dataclass
class UserView:
    id: int
    email: str
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email, "name": self.name}


@dataclass
class LibraryView:
    """One row of a user's library listing."""

    book_id: int
    external_id: str
    title: str
    author: str
    cover_url: str
    status: ReadingStatus
    collections: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "book_id": self.book_id,
            "external_id": self.external_id,
            "title": self.title,
            "author": self.author,
            "cover_url": self.cover_url,
            "status": self.status.value,
            "collections": list(self.collections),
        }


@dataclass
class CollectionView:
    id: int
    name: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "count": self.count}


@dataclass
class ReviewView:
    id: int
    user_name: str
    created_at: str
    rating: int
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_name": self.user_name,
            "created_at": self.created_at,
            "rating": self.rating,
            "text": self.text,
        }
