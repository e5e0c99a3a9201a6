"""Institution user management: listing, invitations and updates."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from electivepro.db.models import Group, Program
from electivepro.db.repositories import catalogue_repo, profiles_repo
from electivepro.db.repositories.profiles_repo import ProfileExistsError
from electivepro.services import password_service, plans_service
from electivepro.utils import constants
from electivepro.utils.forms import clean_text, parse_bool, parse_int
from electivepro.utils.identity import normalize_email
from electivepro.utils.logging import get_logger

LOG = get_logger("users_service")


class UserValidationError(ValueError):
    """Invalid user payload."""


class UserNotFoundError(RuntimeError):
    """Profile missing or outside the institution."""


class UserConflictError(RuntimeError):
    """Email already registered."""


def _email(raw: Any) -> str:
    email = normalize_email(raw)
    if not email or "@" not in email or email.startswith("@") or email.endswith("@"):
        raise UserValidationError("email_invalid")
    return email


def _group_id(institution_id: int, raw: Any, *, required: bool) -> Optional[int]:
    group_id = parse_int(raw, "group_invalid", UserValidationError, minimum=1, allow_none=not required)
    if group_id is None:
        return None
    if catalogue_repo.get_row(Group, institution_id, group_id) is None:
        raise UserValidationError("group_invalid")
    return group_id


def _program_id(institution_id: int, raw: Any, *, required: bool) -> Optional[int]:
    program_id = parse_int(raw, "program_invalid", UserValidationError, minimum=1, allow_none=not required)
    if program_id is None:
        return None
    if catalogue_repo.get_row(Program, institution_id, program_id) is None:
        raise UserValidationError("program_invalid")
    return program_id


def _institution_profile(institution_id: int, user_id: int):
    profile = profiles_repo.get_profile(user_id)
    if profile is None or profile.institution_id != institution_id:
        raise UserNotFoundError("user_not_found")
    return profile


def list_users(institution_id: int, role: Optional[str] = None) -> List[dict]:
    if role is not None and role not in constants.ROLES:
        raise UserValidationError("role_invalid")
    return profiles_repo.list_institution_users(institution_id, role)


def get_user(institution_id: int, user_id: int) -> dict:
    _institution_profile(institution_id, user_id)
    for row in profiles_repo.list_institution_users(institution_id):
        if row["id"] == user_id:
            return row
    raise UserNotFoundError("user_not_found")  # pragma: no cover - profile vanished


def _invite(
    institution_id: int,
    *,
    role: str,
    payload: Mapping[str, Any],
    extra: Dict[str, Any],
) -> Dict[str, Any]:
    email = _email(payload.get("email"))
    full_name = clean_text(payload.get("full_name") or payload.get("name"))
    plans_service.ensure_user_capacity(institution_id)
    try:
        profile = profiles_repo.create_profile(
            email=email,
            role=role,
            institution_id=institution_id,
            full_name=full_name,
            **extra,
        )
    except ProfileExistsError as exc:
        raise UserConflictError("email_taken") from exc
    token = password_service.issue_invite_token(email=email)
    LOG.info("User invited user_id=%s role=%s institution_id=%s", profile.id, role, institution_id)
    return {"user": profile.as_dict(), "token": token}


def invite_manager(institution_id: int, payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Create a program manager profile and its invitation token."""
    program_id = _program_id(institution_id, payload.get("program_id"), required=False)
    return _invite(
        institution_id,
        role=constants.ROLE_PROGRAM_MANAGER,
        payload=payload,
        extra={"program_id": program_id},
    )


def invite_student(institution_id: int, payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Create a student profile (group + enrollment year) and its invitation token."""
    group_id = _group_id(institution_id, payload.get("group_id"), required=True)
    year = parse_int(
        payload.get("enrollment_year"), "enrollment_year_invalid", UserValidationError,
        minimum=1900, maximum=2100, allow_none=True,
    )
    if year is None:
        group = catalogue_repo.get_row(Group, institution_id, group_id)
        year = group.enrollment_year if group else None
    return _invite(
        institution_id,
        role=constants.ROLE_STUDENT,
        payload=payload,
        extra={"group_id": group_id, "enrollment_year": year},
    )


def update_user(institution_id: int, user_id: int, payload: Mapping[str, Any]) -> dict:
    profile = _institution_profile(institution_id, user_id)
    fields: Dict[str, Any] = {}
    if "full_name" in payload:
        fields["full_name"] = clean_text(payload.get("full_name"))
    if "is_active" in payload:
        fields["is_active"] = parse_bool(payload.get("is_active"), default=True)
    if fields:
        profiles_repo.update_profile(user_id, **fields)
    if profile.role == constants.ROLE_STUDENT and ("group_id" in payload or "enrollment_year" in payload):
        student_fields: Dict[str, Any] = {}
        if "group_id" in payload:
            student_fields["group_id"] = _group_id(institution_id, payload.get("group_id"), required=True)
        if "enrollment_year" in payload:
            student_fields["enrollment_year"] = parse_int(
                payload.get("enrollment_year"), "enrollment_year_invalid", UserValidationError,
                minimum=1900, maximum=2100, allow_none=True,
            )
        profiles_repo.upsert_student_profile(user_id, **student_fields)
    if profile.role == constants.ROLE_PROGRAM_MANAGER and "program_id" in payload:
        profiles_repo.upsert_manager_profile(
            user_id, _program_id(institution_id, payload.get("program_id"), required=False)
        )
    LOG.info("User updated user_id=%s institution_id=%s", user_id, institution_id)
    return get_user(institution_id, user_id)


def issue_reset_link(institution_id: Optional[int], user_id: int) -> Dict[str, Any]:
    """Reset token for a user; `institution_id=None` is the cross-tenant super-admin scope."""
    profile = profiles_repo.get_profile(user_id)
    if profile is None or (institution_id is not None and profile.institution_id != institution_id):
        raise UserNotFoundError("user_not_found")
    token = password_service.issue_reset_token(email=profile.email)
    return {"user": profile.as_dict(), "token": token}


def list_all_users(role: Optional[str] = None) -> List[dict]:
    """Cross-tenant overview for the super-admin portal."""
    if role is not None and role not in constants.ROLES:
        raise UserValidationError("role_invalid")
    return [profile.as_dict() for profile in profiles_repo.list_profiles(role=role)]


def get_profile_summary(user_id: int) -> Optional[dict]:
    profile = profiles_repo.get_profile(user_id)
    if profile is None:
        return None
    data = profile.as_dict()
    if profile.role == constants.ROLE_STUDENT:
        student = profiles_repo.get_student_profile(user_id)
        data["student"] = student.as_dict() if student else None
    elif profile.role == constants.ROLE_PROGRAM_MANAGER:
        manager = profiles_repo.get_manager_profile(user_id)
        data["manager"] = manager.as_dict() if manager else None
    return data


def update_locale(user_id: int, locale: str) -> None:
    profiles_repo.update_profile(user_id, locale=locale)


def ensure_super_admin(email: Any, password: str, *, full_name: Optional[str] = None) -> Dict[str, Any]:
    """Create the platform super-admin, or reset its password when it exists."""
    normalized = _email(email)
    password_hash = password_service.hash_password(password)
    existing = profiles_repo.get_by_email(normalized)
    if existing is not None:
        if existing.role != constants.ROLE_SUPER_ADMIN:
            raise UserConflictError("email_taken")
        profiles_repo.set_password_hash(normalized, password_hash)
        LOG.info("Super-admin password updated user_id=%s", existing.id)
        return {"user": existing.as_dict(), "created": False}
    profile = profiles_repo.create_profile(
        email=normalized,
        role=constants.ROLE_SUPER_ADMIN,
        institution_id=None,
        full_name=clean_text(full_name) or "Super Admin",
        password_hash=password_hash,
    )
    LOG.info("Super-admin created user_id=%s", profile.id)
    return {"user": profile.as_dict(), "created": True}


__all__ = [
    "UserValidationError",
    "UserNotFoundError",
    "UserConflictError",
    "list_users",
    "get_user",
    "invite_manager",
    "invite_student",
    "update_user",
    "issue_reset_link",
    "list_all_users",
    "get_profile_summary",
    "update_locale",
    "ensure_super_admin",
]
