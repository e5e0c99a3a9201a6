"""Identity & permission helpers backed by the Flask session."""
from __future__ import annotations

from typing import Any, Iterable, Optional

from flask import session

from electivepro.utils import constants

SESSION_USER_ID = "user_id"
SESSION_EMAIL = "email"
SESSION_ROLE = "role"
SESSION_INSTITUTION_ID = "institution_id"
_IDENTITY_KEYS = (SESSION_USER_ID, SESSION_EMAIL, SESSION_ROLE, SESSION_INSTITUTION_ID)


def normalize_email(raw: Any) -> Optional[str]:
    if not isinstance(raw, str):
        return None
    cleaned = raw.strip().lower()
    return cleaned or None


def _as_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def get_current_user_id() -> Optional[int]:
    return _as_int(session.get(SESSION_USER_ID))


def get_current_user_email() -> Optional[str]:
    return normalize_email(session.get(SESSION_EMAIL))


def get_current_role() -> Optional[str]:
    role = session.get(SESSION_ROLE)
    if role in constants.ROLES:
        return role
    return None


def get_current_institution_id() -> Optional[int]:
    return _as_int(session.get(SESSION_INSTITUTION_ID))


def set_identity_session(
    *,
    user_id: int,
    email: str,
    role: str,
    institution_id: Optional[int],
) -> None:
    for key in _IDENTITY_KEYS:
        session.pop(key, None)
    session[SESSION_USER_ID] = int(user_id)
    session[SESSION_EMAIL] = normalize_email(email)
    session[SESSION_ROLE] = role
    session[SESSION_INSTITUTION_ID] = institution_id
    session.permanent = True


def clear_identity_session() -> None:
    for key in _IDENTITY_KEYS:
        session.pop(key, None)
    session.modified = True


def is_authenticated() -> bool:
    return get_current_user_id() is not None and get_current_role() is not None


class PermissionError(Exception):
    pass


class AuthenticationRequired(PermissionError):
    pass


def ensure_role(roles: Iterable[str]) -> str:
    """Return the session role when it is one of `roles`.

    Raises AuthenticationRequired for anonymous sessions and PermissionError
    for authenticated users holding another role.
    """
    if not is_authenticated():
        raise AuthenticationRequired("authentication_required")
    role = get_current_role()
    if role not in tuple(roles):
        raise PermissionError("forbidden")
    return role  # type: ignore[return-value]


def is_super_admin() -> bool:
    return get_current_role() == constants.ROLE_SUPER_ADMIN


__all__ = [
    "SESSION_USER_ID",
    "SESSION_EMAIL",
    "SESSION_ROLE",
    "SESSION_INSTITUTION_ID",
    "normalize_email",
    "get_current_user_id",
    "get_current_user_email",
    "get_current_role",
    "get_current_institution_id",
    "set_identity_session",
    "clear_identity_session",
    "is_authenticated",
    "is_super_admin",
    "ensure_role",
    "PermissionError",
    "AuthenticationRequired",
]
