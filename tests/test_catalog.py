import pytest

from shelfpulse.catalog import CatalogNormalizer, genre_names, known_or_none
from shelfpulse.errors import ValidationError
from shelfpulse.models import AgeRating, CatalogPayload


def test_genre_names_truncates_to_two_levels():
    assert genre_names(["Fiction/Science Fiction/Space Opera"]) == ["Fiction", "Science Fiction"]


def test_genre_names_skips_general_and_empty_segments():
    assert genre_names(["Fiction/General", "", "/Poetry", "General"]) == ["Fiction", "Poetry"]


def test_genre_names_deduplicates_in_first_seen_order():
    assert genre_names(["History/Europe", "Fiction/History", "History"]) == ["History", "Europe", "Fiction"]


def test_known_or_none():
    assert known_or_none(0) is None
    assert known_or_none(None) is None
    assert known_or_none(412) == 412


def test_maturity_mapping():
    assert AgeRating.from_maturity("MATURE") is AgeRating.ADULT
    assert AgeRating.from_maturity("NOT_MATURE") is AgeRating.UNRESTRICTED
    assert AgeRating.from_maturity("mature") is AgeRating.UNRESTRICTED
    assert AgeRating.from_maturity(None).value == ""


def _genres_of(conn, book_id):
    rows = conn.execute(
        """
        SELECT g.name FROM book_genres bg JOIN genres g ON g.id = bg.genre_id
        WHERE bg.book_id = ? ORDER BY g.name
        """,
        (book_id,),
    ).fetchall()
    return [r["name"] for r in rows]


def test_ingest_is_idempotent(store):
    normalizer = CatalogNormalizer()
    payload = CatalogPayload(
        external_id="g1",
        title="Dune",
        author="Frank Herbert",
        categories=["Fiction/Science Fiction/Space Opera", "Fiction/General"],
        maturity="MATURE",
        page_count=0,
        published_year=1965,
    )

    with store.transaction() as conn:
        first = normalizer.ingest(conn, payload)
    with store.transaction() as conn:
        second = normalizer.ingest(conn, payload)

    assert first == second
    with store.read() as conn:
        assert conn.execute("SELECT COUNT(*) FROM books").fetchone()[0] == 1
        assert conn.execute("SELECT COUNT(*) FROM book_genres").fetchone()[0] == 2
        assert _genres_of(conn, first) == ["Fiction", "Science Fiction"]
        row = conn.execute("SELECT * FROM books WHERE id = ?", (first,)).fetchone()
    assert row["age_rating"] == "18+"
    assert row["page_count"] is None
    assert row["published_year"] == 1965


def test_ingest_refreshes_metadata(store):
    normalizer = CatalogNormalizer()
    with store.transaction() as conn:
        book_id = normalizer.ingest(conn, CatalogPayload(external_id="g1", title="Old title"))
    with store.transaction() as conn:
        normalizer.ingest(conn, CatalogPayload(external_id="g1", title="New title", author="Someone"))

    with store.read() as conn:
        row = conn.execute("SELECT title, author FROM books WHERE id = ?", (book_id,)).fetchone()
    assert (row["title"], row["author"]) == ("New title", "Someone")


@pytest.mark.parametrize("external_id,title", [("", "Dune"), ("g1", ""), ("  ", "Dune")])
def test_ingest_requires_id_and_title(store, external_id, title):
    with pytest.raises(ValidationError, match="id and title required"):
        with store.transaction() as conn:
            CatalogNormalizer().ingest(conn, CatalogPayload(external_id=external_id, title=title))

    with store.read() as conn:
        assert conn.execute("SELECT COUNT(*) FROM books").fetchone()[0] == 0
