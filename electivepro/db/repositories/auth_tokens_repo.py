"""Repository helpers for pending invitation / reset tokens."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from electivepro.db import app_session
from electivepro.db.models import AuthToken
from electivepro.utils.logging import get_logger

LOG = get_logger("auth_tokens_repo")
TOKEN_INVITE = "invite"
TOKEN_RESET = "reset"
_VALID_TOKEN_TYPES = {TOKEN_INVITE, TOKEN_RESET}
_RETENTION_DAYS = 30


def _validate_token_type(token_type: str) -> None:
    if token_type not in _VALID_TOKEN_TYPES:
        raise ValueError("invalid_token_type")


def _prune(session: Session, *, older_than_days: int = _RETENTION_DAYS) -> None:
    cutoff = datetime.utcnow() - timedelta(days=older_than_days)
    session.query(AuthToken).filter(AuthToken.created_at < cutoff).delete(synchronize_session=False)


def _find(session: Session, email: str, token_type: str) -> Optional[AuthToken]:
    return (
        session.query(AuthToken)
        .filter(AuthToken.email == email, AuthToken.token_type == token_type)
        .one_or_none()
    )


def upsert_token(*, email: str, token_type: str, password_hash: str) -> AuthToken:
    """Create or refresh the token row for the email/type pair."""
    _validate_token_type(token_type)
    now = datetime.utcnow()
    with app_session() as session:
        _prune(session)
        record = _find(session, email, token_type)
        if record:
            record.password_hash = password_hash
            record.created_at = now
            record.last_sent_at = now
            return record
        record = AuthToken(
            email=email,
            token_type=token_type,
            password_hash=password_hash,
            created_at=now,
            last_sent_at=now,
        )
        session.add(record)
        return record


def get_token(*, email: str, token_type: str) -> Optional[AuthToken]:
    _validate_token_type(token_type)
    with app_session() as session:
        return _find(session, email, token_type)


def delete_token(*, email: str, token_type: str) -> bool:
    _validate_token_type(token_type)
    with app_session() as session:
        record = _find(session, email, token_type)
        if not record:
            return False
        session.delete(record)
        return True


def purge_expired_tokens(*, older_than_days: int = _RETENTION_DAYS) -> int:
    """Delete token rows older than the retention window, returning the count."""
    if older_than_days <= 0:
        raise ValueError("older_than_days_positive")
    cutoff = datetime.utcnow() - timedelta(days=older_than_days)
    with app_session() as session:
        deleted = (
            session.query(AuthToken)
            .filter(AuthToken.created_at < cutoff)
            .delete(synchronize_session=False)
        )
        LOG.debug("purged auth tokens count=%s", deleted)
        return int(deleted or 0)


__all__ = [
    "TOKEN_INVITE",
    "TOKEN_RESET",
    "upsert_token",
    "get_token",
    "delete_token",
    "purge_expired_tokens",
]
