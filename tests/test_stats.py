from datetime import datetime, timezone


def test_empty_report(stats, user):
    assert stats.report(user.id) == {"genres": [], "months": [], "statuses": []}


def test_genres_count_only_finished_books(stats, ledger, user, make_payload):
    ledger.add_or_update_book(user.id, make_payload("g1", "Dune", categories=["Fiction/Science Fiction"]), "finished")
    ledger.add_or_update_book(user.id, make_payload("g2", "Emma", categories=["Fiction/Romance"]), "finished")
    ledger.add_or_update_book(user.id, make_payload("g3", "SPQR", categories=["History"]), "reading")

    genres = stats.report(user.id)["genres"]

    assert genres[0] == {"genre": "Fiction", "cnt": 2}
    assert sorted(g["genre"] for g in genres[1:]) == ["Romance", "Science Fiction"]
    assert "History" not in {g["genre"] for g in genres}


def test_months_cover_recent_additions_only(stats, ledger, store, user, make_payload):
    ledger.add_or_update_book(user.id, make_payload("g1", "Dune"))
    ledger.add_or_update_book(user.id, make_payload("g2", "Emma"))
    old = ledger.add_or_update_book(user.id, make_payload("g3", "SPQR"))
    with store.transaction() as conn:
        conn.execute(
            "UPDATE user_books SET created_at = datetime('now', '-2 years') WHERE book_id = ?", (old,)
        )

    this_month = datetime.now(timezone.utc).strftime("%Y-%m")
    assert stats.report(user.id)["months"] == [{"month": this_month, "cnt": 2}]


def test_status_counts(stats, ledger, identity, user, make_payload):
    ledger.add_or_update_book(user.id, make_payload("g1", "Dune"), "finished")
    ledger.add_or_update_book(user.id, make_payload("g2", "Emma"))
    ledger.add_or_update_book(user.id, make_payload("g3", "SPQR"))
    other = identity.register("other@example.com", "secret2")
    ledger.add_or_update_book(other.id, make_payload("g1", "Dune"), "dropped")

    assert stats.report(user.id)["statuses"] == [
        {"status": "finished", "cnt": 1},
        {"status": "planned", "cnt": 2},
    ]
