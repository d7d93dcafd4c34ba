# tests/test_identity.py
"""
Pruebas del IdentityProvider: registro, login y resolución de tokens.
"""

from datetime import timedelta

import pytest

from contractflow.errors import AuthenticationError, ValidationError
from contractflow.models import UserTable
from sqlmodel import Session, select


def test_register_then_login_resolves_actor(identity):
    actor = identity.register("Ada", "Ada@Example.com", "analytical")
    assert actor.id.startswith("usr_")
    assert actor.name == "Ada"

    token, logged_in = identity.login("ada@example.com", "analytical")
    assert logged_in == actor
    assert identity.resolve(token) == actor


def test_password_is_not_stored_in_clear(identity, db_engine):
    identity.register("Ada", "ada@example.com", "analytical")
    with Session(db_engine) as session:
        user = session.exec(select(UserTable)).one()
    assert user.password_hash != "analytical"
    assert user.password_hash.startswith("$2")


def test_duplicate_email_is_rejected(identity):
    identity.register("Ada", "ada@example.com", "analytical")
    with pytest.raises(ValidationError):
        identity.register("Other Ada", "ADA@example.com", "different")


@pytest.mark.parametrize(
    "name,email,password",
    [("", "a@x.io", "pw"), ("A", "", "pw"), ("A", "a@x.io", ""), ("A", "a@x.io", "x" * 73)],
)
def test_register_validates_input(identity, name, email, password):
    with pytest.raises(ValidationError):
        identity.register(name, email, password)


def test_login_with_wrong_password(identity):
    identity.register("Ada", "ada@example.com", "analytical")
    with pytest.raises(AuthenticationError):
        identity.login("ada@example.com", "engine")
    with pytest.raises(AuthenticationError):
        identity.login("nobody@example.com", "analytical")


@pytest.mark.parametrize("token", [None, "", "not-a-token"])
def test_resolve_rejects_unknown_tokens(identity, token):
    with pytest.raises(AuthenticationError):
        identity.resolve(token)


def test_sessions_expire(identity, clock):
    identity.register("Ada", "ada@example.com", "analytical")
    token, _ = identity.login("ada@example.com", "analytical")
    clock.advance(timedelta(hours=2))
    with pytest.raises(AuthenticationError):
        identity.resolve(token)
    # El token expirado se elimina
    with pytest.raises(AuthenticationError) as exc:
        identity.resolve(token)
    assert exc.value.message == "Unauthorized"


def test_logout_revokes_token(identity):
    identity.register("Ada", "ada@example.com", "analytical")
    token, _ = identity.login("ada@example.com", "analytical")
    identity.logout(token)
    with pytest.raises(AuthenticationError):
        identity.resolve(token)
