import pytest

from shelfpulse.errors import ConflictError, NotFoundError, Unauthenticated, ValidationError
from shelfpulse.identity import display_name_for


def test_register_and_authenticate(identity):
    created = identity.register("  reader@example.com ", "secret1", " Reader ")
    assert created.email == "reader@example.com"
    assert created.name == "Reader"

    logged_in = identity.authenticate("reader@example.com", "secret1")
    assert logged_in == created


def test_register_defaults_name(identity):
    assert identity.register("x@example.com", "secret1").name == "User"


def test_register_duplicate_email(identity, user):
    with pytest.raises(ConflictError, match="email already exists"):
        identity.register(user.email, "another1")


@pytest.mark.parametrize("email,password", [("", "secret1"), ("a@example.com", "short")])
def test_register_validation(identity, email, password):
    with pytest.raises(ValidationError):
        identity.register(email, password)


def test_password_is_not_stored_in_clear(identity, store, user):
    with store.read() as conn:
        digest = conn.execute("SELECT password_hash FROM users WHERE id = ?", (user.id,)).fetchone()[0]
    assert digest and digest != "secret1"


@pytest.mark.parametrize("email,password", [("reader@example.com", "wrong-pass"), ("nobody@example.com", "secret1")])
def test_authenticate_failure_is_uniform(identity, user, email, password):
    with pytest.raises(Unauthenticated) as excinfo:
        identity.authenticate(email, password)
    assert excinfo.value.message == "invalid credentials"
    assert excinfo.value.reason == "invalid_credentials"


def test_update_name(identity, user):
    assert identity.update_name(user.id, "  New Name ") == "New Name"
    assert identity.get_user(user.id).name == "New Name"
    with pytest.raises(ValidationError):
        identity.update_name(user.id, "  ")


def test_update_password(identity, user):
    identity.update_password(user.id, "  longer-secret  ")
    assert identity.authenticate(user.email, "longer-secret").id == user.id
    with pytest.raises(Unauthenticated):
        identity.authenticate(user.email, "secret1")


def test_update_password_too_short(identity, user):
    with pytest.raises(ValidationError, match="at least 6"):
        identity.update_password(user.id, "  abc   ")


def test_unknown_user(identity):
    with pytest.raises(NotFoundError):
        identity.get_user(42)
    with pytest.raises(NotFoundError):
        identity.find_by_email("ghost@example.com")
    assert identity.display_name(42) == "User"


def test_display_name_for():
    assert display_name_for("Ann", "ann@example.com") == "Ann"
    assert display_name_for("", "ann@example.com") == "ann@example.com"
    assert display_name_for(None, None) == "User"
