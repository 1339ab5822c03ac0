import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shelfpulse.catalog import CatalogNormalizer
from shelfpulse.config import Settings, configure_logging, settings
from shelfpulse.database import Store
from shelfpulse.errors import ShelfError
from shelfpulse.identity import IdentityStore
from shelfpulse.ledger import Ledger
from shelfpulse.models import CatalogPayload, UserView
from shelfpulse.services.google_books_service import GoogleBooksService
from shelfpulse.services.http_client import HTTPClient
from shelfpulse.session import SessionGuard
from shelfpulse.stats import StatsReporter
from shelfpulse.tokens import TokenService

logger = logging.getLogger(__name__)


# --- Models ---
class CamelModel(BaseModel):
    """JSON bodies use camelCase keys; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserModel(CamelModel):
    id: int
    email: str
    name: str


class AuthResponse(CamelModel):
    token: str
    user: UserModel


class RegisterRequest(CamelModel):
    email: str = ""
    password: str = ""
    name: str = ""


class LoginRequest(CamelModel):
    email: str = ""
    password: str = ""


class UpdateProfileRequest(CamelModel):
    name: str = ""


class UpdatePasswordRequest(CamelModel):
    password: str = ""


class AddMyBookRequest(CamelModel):
    google_id: str = ""
    id: str = ""
    title: str = ""
    author: str = ""
    cover_url: str = ""
    description: str = ""
    categories: List[str] = Field(default_factory=list)
    published_year: Optional[int] = None
    page_count: Optional[int] = None
    maturity: str = ""
    status: Optional[str] = Field(default=None, description="planned | reading | finished | dropped")

    def external_id(self) -> str:
        return self.google_id or self.id

    def to_payload(self) -> CatalogPayload:
        return CatalogPayload(
            external_id=self.external_id(),
            title=self.title,
            author=self.author,
            cover_url=self.cover_url,
            description=self.description,
            published_year=self.published_year,
            page_count=self.page_count,
            maturity=self.maturity,
            categories=self.categories,
        )


class AddMyBookResponse(CamelModel):
    ok: bool = True
    book_id: int
    google_id: str


class LibraryBookModel(CamelModel):
    book_id: int
    google_id: str
    title: str
    author: str
    cover_url: str
    status: str
    collections: List[str]


class UpdateStatusRequest(CamelModel):
    google_id: str = ""
    book_id: int = 0
    status: str = ""


class CollectionModel(CamelModel):
    id: int
    name: str
    count: int


class CreateCollectionRequest(CamelModel):
    name: str = ""
    book_ids: List[int] = Field(default_factory=list)


class CreateCollectionResponse(CamelModel):
    ok: bool = True
    collection_id: int


class AddBooksToCollectionRequest(CamelModel):
    collection_id: int = 0
    google_ids: List[str] = Field(default_factory=list)


class ReviewModel(CamelModel):
    id: int
    user_name: str
    created_at: str
    rating: int
    text: str


class CreateReviewRequest(CamelModel):
    rating: int = 0
    text: str = ""


class GenreStat(CamelModel):
    genre: str
    cnt: int


class MonthStat(CamelModel):
    month: str
    cnt: int


class StatusStat(CamelModel):
    status: str
    cnt: int


class StatsResponse(CamelModel):
    genres: List[GenreStat]
    months: List[MonthStat]
    statuses: List[StatusStat]


class CatalogBookModel(CamelModel):
    id: str
    title: str
    authors: List[str]
    author: str
    cover_url: str
    description: str
    categories: List[str]
    published_year: Optional[int] = None
    page_count: Optional[int] = None
    maturity: str


class OkResponse(CamelModel):
    ok: bool = True


class ProfileResponse(CamelModel):
    ok: bool = True
    name: str


# --- Dependencies ---
def get_ledger(request: Request) -> Ledger:
    return request.app.state.ledger


def get_identity(request: Request) -> IdentityStore:
    return request.app.state.identity


def get_catalog(request: Request) -> GoogleBooksService:
    catalog = request.app.state.catalog
    if catalog is None:
        raise HTTPException(status_code=503, detail="catalog disabled")
    return catalog


def current_user(request: Request, authorization: Optional[str] = Header(default=None)) -> int:
    """Resolve the bearer token to a user id or reject the request with 401."""
    return request.app.state.guard.resolve(authorization)


def _auth_response(request: Request, user: UserView) -> AuthResponse:
    token = request.app.state.tokens.issue(user.id)
    return AuthResponse(token=token, user=UserModel(**user.to_dict()))


router = APIRouter(prefix="/api")


# --- Health ---
@router.get("/health")
def health(request: Request):
    return {
        "status": "ok",
        "db": request.app.state.store.ping(),
        "time": datetime.now(timezone.utc).isoformat(),
    }


# --- Auth / profile ---
@router.post("/auth/register", response_model=AuthResponse)
def register(body: RegisterRequest, request: Request, identity: IdentityStore = Depends(get_identity)):
    user = identity.register(body.email, body.password, body.name)
    return _auth_response(request, user)


@router.post("/auth/login", response_model=AuthResponse)
def login(body: LoginRequest, request: Request, identity: IdentityStore = Depends(get_identity)):
    user = identity.authenticate(body.email, body.password)
    return _auth_response(request, user)


@router.get("/auth/me", response_model=UserModel)
def me(user_id: int = Depends(current_user), identity: IdentityStore = Depends(get_identity)):
    return UserModel(**identity.get_user(user_id).to_dict())


@router.patch("/me/profile", response_model=ProfileResponse)
def update_profile(
    body: UpdateProfileRequest,
    user_id: int = Depends(current_user),
    identity: IdentityStore = Depends(get_identity),
):
    return ProfileResponse(name=identity.update_name(user_id, body.name))


@router.patch("/me/password", response_model=OkResponse)
def update_password(
    body: UpdatePasswordRequest,
    user_id: int = Depends(current_user),
    identity: IdentityStore = Depends(get_identity),
):
    identity.update_password(user_id, body.password)
    return OkResponse()


# --- Library ---
@router.get("/me/books", response_model=List[LibraryBookModel])
def list_my_books(user_id: int = Depends(current_user), ledger: Ledger = Depends(get_ledger)):
    return [
        LibraryBookModel(
            book_id=v.book_id,
            google_id=v.external_id,
            title=v.title,
            author=v.author,
            cover_url=v.cover_url,
            status=v.status.value,
            collections=v.collections,
        )
        for v in ledger.list_library(user_id)
    ]


@router.post("/me/books", response_model=AddMyBookResponse)
async def add_my_book(
    body: AddMyBookRequest,
    request: Request,
    user_id: int = Depends(current_user),
    ledger: Ledger = Depends(get_ledger),
):
    """Add a book to the library, or update it and its status if already there.

    A body carrying only the catalog id is completed from the catalog first.
    """
    payload = body.to_payload()
    catalog = request.app.state.catalog
    if not payload.title and payload.external_id and catalog is not None:
        summary = await catalog.fetch_by_id(payload.external_id)
        payload = CatalogPayload.from_summary(summary)

    book_id = await run_in_threadpool(ledger.add_or_update_book, user_id, payload, body.status or None)
    return AddMyBookResponse(book_id=book_id, google_id=payload.external_id)


@router.patch("/me/books/status", response_model=OkResponse)
def set_book_status(
    body: UpdateStatusRequest,
    user_id: int = Depends(current_user),
    ledger: Ledger = Depends(get_ledger),
):
    ledger.set_status(user_id, body.status, book_id=body.book_id or None, external_id=body.google_id or None)
    return OkResponse()


# --- Collections ---
@router.get("/me/collections", response_model=List[CollectionModel])
def list_my_collections(user_id: int = Depends(current_user), ledger: Ledger = Depends(get_ledger)):
    return [CollectionModel(**c.to_dict()) for c in ledger.list_collections(user_id)]


@router.post("/me/collections", response_model=CreateCollectionResponse)
def create_collection(
    body: CreateCollectionRequest,
    user_id: int = Depends(current_user),
    ledger: Ledger = Depends(get_ledger),
):
    collection_id = ledger.create_collection(user_id, body.name, body.book_ids)
    return CreateCollectionResponse(collection_id=collection_id)


@router.post("/me/collections/add-books", response_model=OkResponse)
def add_books_to_collection(
    body: AddBooksToCollectionRequest,
    user_id: int = Depends(current_user),
    ledger: Ledger = Depends(get_ledger),
):
    ledger.add_books_to_collection(user_id, body.collection_id, body.google_ids)
    return OkResponse()


# --- Stats ---
@router.get("/me/stats", response_model=StatsResponse)
def my_stats(request: Request, user_id: int = Depends(current_user)):
    return StatsResponse(**request.app.state.stats.report(user_id))


# --- Reviews ---
@router.get("/books/reviews/{google_id}", response_model=List[ReviewModel])
def list_book_reviews(google_id: str, ledger: Ledger = Depends(get_ledger)):
    book_id = ledger.resolve_book_id(google_id)
    return [ReviewModel(**r.to_dict()) for r in ledger.list_reviews(book_id)]


@router.post("/books/reviews/{google_id}", response_model=ReviewModel, status_code=201)
def create_book_review(
    google_id: str,
    body: CreateReviewRequest,
    user_id: int = Depends(current_user),
    ledger: Ledger = Depends(get_ledger),
):
    book_id = ledger.resolve_book_id(google_id)
    return ReviewModel(**ledger.upsert_review(user_id, book_id, body.rating, body.text).to_dict())


# --- Catalog ---
@router.get("/google/search", response_model=List[CatalogBookModel])
async def search_catalog(
    q: str = Query(""),
    max_results: int = Query(12, alias="max", ge=1, le=40),
    catalog: GoogleBooksService = Depends(get_catalog),
):
    books = await catalog.search(q, max_results)
    return [CatalogBookModel(**b.to_dict()) for b in books]


@router.get("/books/google/{google_id}", response_model=CatalogBookModel)
async def get_catalog_book(google_id: str, catalog: GoogleBooksService = Depends(get_catalog)):
    book = await catalog.fetch_by_id(google_id)
    return CatalogBookModel(**book.to_dict())


async def handle_shelf_error(request: Request, exc: ShelfError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.reason)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(config: Optional[Settings] = None, catalog_transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    """Build the application and wire every component to one Store."""
    config = config or settings
    configure_logging(config)

    store = Store.from_settings(config)
    store.initialize_database()
    identity = IdentityStore(store, min_password_length=config.min_password_length)
    tokens = TokenService(config.jwt_secret_key, config.jwt_algorithm, config.jwt_expiration_days)

    http_client = HTTPClient(timeout=config.google_books_timeout, transport=catalog_transport)
    catalog = None
    if config.enable_google_books:
        catalog = GoogleBooksService(http_client, api_key=config.google_books_api_key)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            await http_client.close()

    app = FastAPI(title=config.app_name, version=config.app_version, debug=config.debug, lifespan=lifespan)
    app.state.settings = config
    app.state.store = store
    app.state.identity = identity
    app.state.tokens = tokens
    app.state.guard = SessionGuard(tokens)
    app.state.ledger = Ledger(store, identity, CatalogNormalizer())
    app.state.stats = StatsReporter(store)
    app.state.catalog = catalog

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_exception_handler(ShelfError, handle_shelf_error)
    app.include_router(router)
    return app
