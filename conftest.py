import pytest
from fastapi.testclient import TestClient

from shelfpulse.api import create_app
from shelfpulse.catalog import CatalogNormalizer
from shelfpulse.config import Settings
from shelfpulse.database import Store
from shelfpulse.identity import IdentityStore
from shelfpulse.ledger import Ledger
from shelfpulse.models import CatalogPayload
from shelfpulse.stats import StatsReporter
from shelfpulse.tokens import TokenService

TEST_SECRET = "test-secret-key-for-shelfpulse-tests"


@pytest.fixture
def db_file(tmp_path, request):
    # Every test gets its own database file
    return str(tmp_path / f"test_{request.node.name}.db")


@pytest.fixture
def store(db_file):
    store = Store(db_file, busy_timeout=1.0, storage_timeout=5.0)
    store.initialize_database()
    return store


@pytest.fixture
def identity(store):
    return IdentityStore(store)


@pytest.fixture
def ledger(store, identity):
    return Ledger(store, identity, CatalogNormalizer())


@pytest.fixture
def stats(store):
    return StatsReporter(store)


@pytest.fixture
def tokens():
    return TokenService(TEST_SECRET)


@pytest.fixture
def user(identity):
    return identity.register("reader@example.com", "secret1", "Reader")


@pytest.fixture
def make_payload():
    def _make(external_id="g1", title="Dune", **kwargs):
        kwargs.setdefault("author", "Frank Herbert")
        return CatalogPayload(external_id=external_id, title=title, **kwargs)

    return _make


@pytest.fixture
def app_settings(db_file):
    return Settings(
        database_file=db_file,
        jwt_secret_key=TEST_SECRET,
        enable_google_books=False,
        cors_origins=["*"],
        log_level="WARNING",
    )


@pytest.fixture
def client(app_settings):
    with TestClient(create_app(app_settings)) as test_client:
        yield test_client
