"""Tests for resolving the caller from an Authorization header."""

import asyncio
from types import SimpleNamespace

import pytest
from supabase import AuthApiError, AuthSessionMissingError

from farm_monitor import auth
from farm_monitor.auth import _bearer_token, get_current_user_id, resolve_user_id


class FakeAuth:
    def __init__(self, user_id=None, error=None):
        self.user_id = user_id
        self.error = error
        self.tokens = []

    def get_user(self, token):
        self.tokens.append(token)
        if self.error is not None:
            raise self.error
        user = SimpleNamespace(id=self.user_id) if self.user_id else None
        return SimpleNamespace(user=user)


@pytest.fixture
def fake_auth(monkeypatch):
    fake = FakeAuth(user_id="user-1")
    monkeypatch.setattr(auth, "init_supabase", lambda: SimpleNamespace(auth=fake))
    return fake


@pytest.mark.parametrize("header", [None, "", "Basic abc123", "Bearer", "Bearer ", "Bearer    "])
def test_bearer_token_missing_or_malformed(header) -> None:
    assert _bearer_token(header) is None


def test_bearer_token_scheme_is_case_insensitive() -> None:
    assert _bearer_token("Bearer tok-1") == "tok-1"
    assert _bearer_token("bearer tok-1") == "tok-1"
    assert _bearer_token("BEARER  tok-1 ") == "tok-1"


def test_resolve_user_id(fake_auth) -> None:
    assert resolve_user_id("tok-1") == "user-1"
    assert fake_auth.tokens == ["tok-1"]


def test_resolve_user_id_without_user(fake_auth) -> None:
    fake_auth.user_id = None
    assert resolve_user_id("tok-1") is None


@pytest.mark.parametrize("error", [
    AuthApiError("invalid JWT", 401, None),
    AuthSessionMissingError(),
])
def test_rejected_token_is_anonymous(fake_auth, error) -> None:
    fake_auth.error = error
    assert resolve_user_id("expired") is None


def test_auth_outage_propagates(fake_auth) -> None:
    """An unreachable auth server is an error, not an anonymous caller."""
    fake_auth.error = ConnectionError("auth server unreachable")
    with pytest.raises(ConnectionError):
        resolve_user_id("tok-1")


def test_dependency_skips_lookup_without_token(fake_auth) -> None:
    assert asyncio.run(get_current_user_id(None)) is None
    assert asyncio.run(get_current_user_id("Basic abc")) is None
    assert fake_auth.tokens == []


def test_dependency_resolves_bearer_token(fake_auth) -> None:
    assert asyncio.run(get_current_user_id("Bearer tok-2")) == "user-1"
    assert fake_auth.tokens == ["tok-2"]
