import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from shelfpulse.errors import CatalogError, NotFoundError, RateLimitExceeded, ValidationError
from shelfpulse.models import BookSummary
from shelfpulse.services.http_client import HTTPClient

logger = logging.getLogger(__name__)

GOOGLE_BOOKS_BASE_URL = "https://www.googleapis.com/books/v1"
# Google Books refuses larger pages
MAX_PAGE_SIZE = 40


def parse_year(published_date: Optional[str]) -> Optional[int]:
    """Year from the first four characters of a catalog date, None if unusable."""
    if not published_date or len(published_date) < 4:
        return None
    try:
        year = int(published_date[:4])
    except ValueError:
        return None
    return year or None


def secure_url(url: Optional[str]) -> str:
    if not url:
        return ""
    return url.replace("http://", "https://")


class GoogleBooksService:
    """Catalog client for the Google Books volumes API."""

    def __init__(self, http_client: HTTPClient, api_key: Optional[str] = None, base_url: str = GOOGLE_BOOKS_BASE_URL):
        self.http_client = http_client
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    async def _make_api_request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Make an API request to Google Books"""
        url = f"{self.base_url}/{endpoint}"
        params = dict(params or {})
        if self.api_key:
            params["key"] = self.api_key

        start_time = time.time()
        try:
            response = await self.http_client.get_with_retry(url, params=params)
        except httpx.TimeoutException as exc:
            logger.error("Google Books request to %s timed out: %s", endpoint, exc)
            raise CatalogError("google books timeout") from exc
        except httpx.RequestError as exc:
            logger.error("Google Books request to %s failed: %s", endpoint, exc)
            raise CatalogError("google books unreachable") from exc

        response_time_ms = int((time.time() - start_time) * 1000)
        logger.info("Google Books %s -> %s in %dms", endpoint, response.status_code, response_time_ms)

        if response.status_code == 404:
            raise NotFoundError("book not found", reason="book_not_found")
        if response.status_code == 429:
            logger.warning("Rate limit exceeded for Google Books API")
            raise RateLimitExceeded("google books rate limit exceeded")
        if response.status_code >= 400:
            logger.error("Google Books request failed: %s - %s", response.status_code, response.text[:200])
            raise CatalogError(f"google books error: status {response.status_code}")

        try:
            return response.json()
        except ValueError as exc:
            raise CatalogError("google books returned invalid json") from exc

    def _parse_volume(self, item: Dict[str, Any]) -> BookSummary:
        """Map a volume resource onto a BookSummary"""
        volume_info = item.get("volumeInfo") or {}
        image_links = volume_info.get("imageLinks") or {}

        cover = image_links.get("thumbnail") or image_links.get("smallThumbnail")

        return BookSummary(
            external_id=item.get("id", ""),
            title=volume_info.get("title", ""),
            authors=list(volume_info.get("authors") or []),
            cover_url=secure_url(cover),
            description=volume_info.get("description", ""),
            categories=list(volume_info.get("categories") or []),
            published_year=parse_year(volume_info.get("publishedDate")),
            page_count=volume_info.get("pageCount") or None,
            maturity=volume_info.get("maturityRating", ""),
        )

    async def search(self, query: str, max_results: int = 12) -> List[BookSummary]:
        """
        Search for books using a text query

        Args:
            query: Search query (title, author, etc.)
            max_results: Maximum number of results to return

        Returns:
            List of BookSummary objects
        """
        query = (query or "").strip()
        if not query:
            raise ValidationError("missing query param: q", reason="query_required")

        params = {
            "q": query,
            "maxResults": max(1, min(max_results, MAX_PAGE_SIZE)),
        }
        data = await self._make_api_request("volumes", params)
        books = [self._parse_volume(item) for item in data.get("items") or []]
        logger.info("Found %d books for query: %s", len(books), query)
        return books

    async def fetch_by_id(self, external_id: str) -> BookSummary:
        """
        Fetch a single volume by its catalog id

        Raises:
            NotFoundError: the catalog has no such volume
            CatalogError: the catalog could not be reached or answered badly
        """
        external_id = (external_id or "").strip()
        if not external_id:
            raise ValidationError("missing id", reason="id_required")

        data = await self._make_api_request(f"volumes/{quote(external_id, safe='')}")
        book = self._parse_volume(data)
        if not book.external_id:
            book.external_id = external_id
        return book
