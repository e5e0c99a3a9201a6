"""Utility helpers shared by routes and services."""
from .identity import (
    normalize_email,
    get_current_user_id,
    get_current_user_email,
    get_current_role,
    get_current_institution_id,
    ensure_role,
    PermissionError,
    AuthenticationRequired,
)
from . import constants

__all__ = [
    "normalize_email",
    "get_current_user_id",
    "get_current_user_email",
    "get_current_role",
    "get_current_institution_id",
    "ensure_role",
    "PermissionError",
    "AuthenticationRequired",
    "constants",
]
