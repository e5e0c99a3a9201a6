"""Tests for auth_tokens_repo helpers using in-memory SQLite."""
from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from electivepro.db import app_session
from electivepro.db.models import AuthToken
from electivepro.db.repositories import auth_tokens_repo


def _count_tokens() -> int:
    with app_session() as session:
        return session.query(AuthToken).count()


def test_upsert_and_fetch_token_updates_existing_record():
    first = auth_tokens_repo.upsert_token(
        email="student@example.com",
        token_type="invite",
        password_hash="hash-1",
    )
    assert first.password_hash == "hash-1"

    second = auth_tokens_repo.upsert_token(
        email="student@example.com",
        token_type="invite",
        password_hash="hash-2",
    )
    assert second.id == first.id
    assert second.password_hash == "hash-2"

    fetched = auth_tokens_repo.get_token(email="student@example.com", token_type="invite")
    assert fetched is not None
    assert fetched.id == first.id
    assert _count_tokens() == 1


def test_invite_and_reset_tokens_are_separate_rows():
    auth_tokens_repo.upsert_token(email="a@example.com", token_type="invite", password_hash="x")
    auth_tokens_repo.upsert_token(email="a@example.com", token_type="reset", password_hash="y")

    assert _count_tokens() == 2


def test_delete_token_returns_boolean_result():
    auth_tokens_repo.upsert_token(email="student@example.com", token_type="reset", password_hash="h")
    assert _count_tokens() == 1

    assert auth_tokens_repo.delete_token(email="student@example.com", token_type="reset") is True
    assert _count_tokens() == 0
    assert auth_tokens_repo.delete_token(email="student@example.com", token_type="reset") is False


def test_unknown_token_type_rejected():
    with pytest.raises(ValueError):
        auth_tokens_repo.get_token(email="a@example.com", token_type="initial")


def test_purge_expired_tokens_removes_old_rows():
    auth_tokens_repo.upsert_token(email="old@example.com", token_type="reset", password_hash="h")
    auth_tokens_repo.upsert_token(email="fresh@example.com", token_type="reset", password_hash="h")
    cutoff = datetime.utcnow() - timedelta(days=31)
    with app_session() as session:
        old_token = session.query(AuthToken).filter(AuthToken.email == "old@example.com").one()
        old_token.created_at = cutoff

    deleted = auth_tokens_repo.purge_expired_tokens()
    assert deleted == 1
    assert auth_tokens_repo.get_token(email="fresh@example.com", token_type="reset") is not None
    assert auth_tokens_repo.get_token(email="old@example.com", token_type="reset") is None
