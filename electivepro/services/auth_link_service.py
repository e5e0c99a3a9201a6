"""Encryption helpers for invitation and password-reset links."""
from __future__ import annotations

import base64
import hashlib
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from cryptography.fernet import Fernet, InvalidToken
from flask import current_app

from electivepro.utils.identity import normalize_email
from electivepro.utils.logging import get_logger

LOG = get_logger("auth_link_service")
PURPOSE_INVITE = "invite"
PURPOSE_RESET = "reset"
_PURPOSES = (PURPOSE_INVITE, PURPOSE_RESET)
_RESET_TOKEN_TTL = timedelta(hours=24)


class AuthLinkError(RuntimeError):
    """Base error for auth link failures."""


class SecretKeyUnavailableError(AuthLinkError):
    """Raised when the Flask SECRET_KEY is missing."""


class TokenDecodeError(AuthLinkError):
    """Raised when a provided auth token cannot be decoded."""


class TokenExpiredError(AuthLinkError):
    """Raised when a reset token exceeded its allowed lifetime."""


class PayloadValidationError(AuthLinkError):
    """Raised when callers attempt to encode malformed payloads."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def _parse_timestamp(raw: str) -> datetime:
    candidate = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise TokenDecodeError("invalid_timestamp") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _derive_fernet_key(secret_value: Any) -> bytes:
    if not secret_value:
        raise SecretKeyUnavailableError("secret_key_missing")
    secret_bytes = secret_value if isinstance(secret_value, bytes) else str(secret_value).encode("utf-8")
    return base64.urlsafe_b64encode(hashlib.sha256(secret_bytes).digest())


def _fernet() -> Fernet:
    return Fernet(_derive_fernet_key(current_app.config.get("SECRET_KEY")))


def encode_payload(payload: Dict[str, Any]) -> str:
    """Encrypt `{email, purpose, nonce[, issued_at]}` into a Fernet token."""
    normalized_email = normalize_email(payload.get("email"))
    if not normalized_email:
        raise PayloadValidationError("email_required")
    purpose = payload.get("purpose")
    if purpose not in _PURPOSES:
        raise PayloadValidationError("purpose_invalid")
    nonce = payload.get("nonce")
    if not isinstance(nonce, str) or not nonce:
        raise PayloadValidationError("nonce_required")
    issued_at = payload.get("issued_at")
    if issued_at is None:
        issued_at = _format_timestamp(_utcnow())
    elif not isinstance(issued_at, str):
        raise PayloadValidationError("issued_at_invalid")
    else:
        _parse_timestamp(issued_at)

    document = {
        "email": normalized_email,
        "purpose": purpose,
        "nonce": nonce,
        "issued_at": issued_at,
    }
    encoded = _fernet().encrypt(
        json.dumps(document, sort_keys=True, separators=(",", ":")).encode("utf-8")
    )
    return encoded.decode("utf-8")


def decode_payload(token: str) -> Dict[str, Any]:
    """Return the decrypted payload, enforcing the reset link lifetime.

    Invitation links do not expire on their own; they stop working once the
    pending invitation record is consumed.
    """
    if not token or not isinstance(token, str):
        raise TokenDecodeError("token_required")
    try:
        decrypted = _fernet().decrypt(token.encode("utf-8"))
    except InvalidToken as exc:
        LOG.warning("Rejected invalid auth link token")
        raise TokenDecodeError("invalid_token") from exc
    try:
        payload = json.loads(decrypted.decode("utf-8"))
    except json.JSONDecodeError as exc:
        raise TokenDecodeError("invalid_payload") from exc

    normalized_email = normalize_email(payload.get("email"))
    if not normalized_email:
        raise TokenDecodeError("email_missing")
    purpose = payload.get("purpose")
    if purpose not in _PURPOSES:
        raise TokenDecodeError("purpose_invalid")
    nonce = payload.get("nonce")
    if not isinstance(nonce, str) or not nonce:
        raise TokenDecodeError("nonce_missing")
    issued_at_raw = payload.get("issued_at")
    if not isinstance(issued_at_raw, str):
        raise TokenDecodeError("issued_at_missing")
    issued_at = _parse_timestamp(issued_at_raw)

    if purpose == PURPOSE_RESET and _utcnow() - issued_at > _RESET_TOKEN_TTL:
        raise TokenExpiredError("reset_token_expired")

    return {
        "email": normalized_email,
        "purpose": purpose,
        "nonce": nonce,
        "issued_at": issued_at_raw,
    }


__all__ = [
    "PURPOSE_INVITE",
    "PURPOSE_RESET",
    "encode_payload",
    "decode_payload",
    "AuthLinkError",
    "SecretKeyUnavailableError",
    "TokenDecodeError",
    "TokenExpiredError",
    "PayloadValidationError",
]
