"""Invitation / password reset helpers coordinating auth links and profiles."""
from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Optional

from werkzeug.security import check_password_hash, generate_password_hash

from electivepro.db.repositories import auth_tokens_repo, profiles_repo
from electivepro.services.auth_link_service import (
    PURPOSE_INVITE,
    PURPOSE_RESET,
    PayloadValidationError,
    TokenDecodeError,
    TokenExpiredError,
    decode_payload,
    encode_payload,
)
from electivepro.utils.identity import normalize_email
from electivepro.utils.logging import get_logger

LOG = get_logger("password_service")
MIN_PASSWORD_LENGTH = 8


class PasswordError(RuntimeError):
    """Base error for invitation/reset workflows."""


class PendingTokenNotFoundError(PasswordError):
    """Raised when no pending invitation/reset exists for the email."""


class WeakPasswordError(PasswordError, ValueError):
    """Raised when a new password does not satisfy the policy."""


@dataclass(frozen=True)
class PendingLink:
    email: str
    purpose: str
    issued_at: str
    profile_id: int
    role: str
    full_name: Optional[str]


def _require_email(email: str) -> str:
    normalized = normalize_email(email)
    if not normalized:
        raise PasswordError("email_required")
    return normalized


def validate_password(password: Optional[str]) -> str:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise WeakPasswordError("password_too_short")
    return password


def hash_password(password: str) -> str:
    return generate_password_hash(validate_password(password))


def _issue(email: str, purpose: str) -> str:
    normalized = _require_email(email)
    profile = profiles_repo.get_by_email(normalized)
    if profile is None:
        raise PendingTokenNotFoundError("user_not_found")
    nonce = secrets.token_urlsafe(24)
    auth_tokens_repo.upsert_token(
        email=normalized,
        token_type=purpose,
        password_hash=generate_password_hash(nonce),
    )
    try:
        token = encode_payload({"email": normalized, "purpose": purpose, "nonce": nonce})
    except PayloadValidationError as exc:  # pragma: no cover - inputs validated above
        raise PasswordError(str(exc)) from exc
    LOG.info("Issued %s token email=%s", purpose, normalized)
    return token


def issue_invite_token(*, email: str) -> str:
    """Persist a pending invitation and return its link token."""
    return _issue(email, PURPOSE_INVITE)


def issue_reset_token(*, email: str) -> str:
    """Persist a pending reset and return its link token (valid 24h)."""
    return _issue(email, PURPOSE_RESET)


def resolve_pending_link(token: str) -> PendingLink:
    """Validate a link token against the persisted pending record."""
    if not token:
        raise PasswordError("token_required")
    try:
        payload = decode_payload(token)
    except (TokenDecodeError, TokenExpiredError) as exc:
        raise PasswordError(str(exc)) from exc

    email = payload["email"]
    purpose = payload["purpose"]
    record = auth_tokens_repo.get_token(email=email, token_type=purpose)
    if record is None:
        raise PendingTokenNotFoundError("pending_token_missing")
    if not check_password_hash(record.password_hash, payload["nonce"]):
        raise PasswordError("token_superseded")
    profile = profiles_repo.get_by_email(email)
    if profile is None:
        raise PendingTokenNotFoundError("user_not_found")
    return PendingLink(
        email=email,
        purpose=purpose,
        issued_at=payload["issued_at"],
        profile_id=int(profile.id),
        role=profile.role,
        full_name=profile.full_name,
    )


def complete_password_change(*, token: str, new_password: str) -> PendingLink:
    """Set the new password for a valid link, then consume pending records."""
    pending = resolve_pending_link(token)
    password_hash = hash_password(new_password)
    profiles_repo.set_password_hash(pending.email, password_hash)
    for purpose in (PURPOSE_INVITE, PURPOSE_RESET):
        if auth_tokens_repo.delete_token(email=pending.email, token_type=purpose):
            LOG.info("Cleared %s token email=%s", purpose, pending.email)
    return pending


def has_pending_token(*, email: str, purpose: str = PURPOSE_INVITE) -> bool:
    normalized = _require_email(email)
    return auth_tokens_repo.get_token(email=normalized, token_type=purpose) is not None


def purge_expired_records(*, older_than_days: int = 30) -> int:
    return auth_tokens_repo.purge_expired_tokens(older_than_days=older_than_days)


__all__ = [
    "MIN_PASSWORD_LENGTH",
    "PasswordError",
    "PendingTokenNotFoundError",
    "WeakPasswordError",
    "PendingLink",
    "validate_password",
    "hash_password",
    "issue_invite_token",
    "issue_reset_token",
    "resolve_pending_link",
    "complete_password_change",
    "has_pending_token",
    "purge_expired_records",
]
