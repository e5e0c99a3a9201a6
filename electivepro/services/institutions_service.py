"""Tenant management for the super-admin portal."""
from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional

from electivepro.db.repositories import institutions_repo, plans_repo, profiles_repo
from electivepro.db.repositories.institutions_repo import InstitutionExistsError
from electivepro.db.repositories.profiles_repo import ProfileExistsError
from electivepro.services import password_service, storage_service, tenancy_service
from electivepro.utils import constants
from electivepro.utils.forms import clean_text, parse_bool, parse_datetime, parse_int, require_text
from electivepro.utils.identity import normalize_email
from electivepro.utils.logging import get_logger

LOG = get_logger("institutions_service")

SUBDOMAIN_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")
COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")
RESERVED_SUBDOMAINS = frozenset({"www", "app", "api", "admin", "super-admin", "static", "mail"})


class InstitutionValidationError(ValueError):
    """Invalid institution payload."""


class InstitutionNotFoundError(RuntimeError):
    """Institution id does not exist."""


class InstitutionConflictError(RuntimeError):
    """Subdomain or admin email already taken."""


def validate_subdomain(raw: Any) -> str:
    subdomain = require_text(raw, "subdomain_required", InstitutionValidationError, max_length=63).lower()
    if not SUBDOMAIN_RE.match(subdomain):
        raise InstitutionValidationError("subdomain_invalid")
    if subdomain in RESERVED_SUBDOMAINS:
        raise InstitutionValidationError("subdomain_reserved")
    return subdomain


def validate_color(raw: Any) -> Optional[str]:
    color = clean_text(raw, max_length=16)
    if color is None:
        return None
    if not COLOR_RE.match(color):
        raise InstitutionValidationError("primary_color_invalid")
    return color.lower()


def _plan_id(raw: Any) -> Optional[int]:
    plan_id = parse_int(raw, "plan_invalid", InstitutionValidationError, minimum=1, allow_none=True)
    if plan_id is not None and plans_repo.get_plan(plan_id) is None:
        raise InstitutionValidationError("plan_invalid")
    return plan_id


def _optional_date(payload: Mapping[str, Any], key: str):
    raw = payload.get(key)
    if raw in (None, ""):
        return None
    return parse_datetime(raw, f"{key}_invalid", InstitutionValidationError, end_of_day=False)


def _fields_from_payload(payload: Mapping[str, Any], *, partial: bool) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    if not partial or "name" in payload:
        fields["name"] = require_text(payload.get("name"), "name_required", InstitutionValidationError)
    if not partial or "subdomain" in payload:
        fields["subdomain"] = validate_subdomain(payload.get("subdomain"))
    if "domain" in payload:
        fields["domain"] = clean_text(payload.get("domain"))
    if "plan_id" in payload:
        fields["plan_id"] = _plan_id(payload.get("plan_id"))
    for key in ("subscription_start", "subscription_end"):
        if key in payload:
            fields[key] = _optional_date(payload, key)
    if "primary_color" in payload:
        fields["primary_color"] = validate_color(payload.get("primary_color"))
    for key in ("logo_url", "favicon_url"):
        if key in payload:
            fields[key] = clean_text(payload.get(key), max_length=500)
    if "is_active" in payload:
        fields["is_active"] = parse_bool(payload.get("is_active"), default=True)
    start, end = fields.get("subscription_start"), fields.get("subscription_end")
    if start and end and end < start:
        raise InstitutionValidationError("subscription_range_invalid")
    return fields


def _view(institution, user_counts: Optional[Dict[int, int]] = None, plans: Optional[Dict[int, Any]] = None) -> dict:
    data = institution.as_dict()
    if user_counts is not None:
        data["user_count"] = user_counts.get(institution.id, 0)
    plan = (plans or {}).get(institution.plan_id) if institution.plan_id else None
    if plans is None and institution.plan_id:
        plan = plans_repo.get_plan(institution.plan_id)
    data["plan"] = {"id": plan.id, "code": plan.code, "name": plan.name} if plan else None
    return data


def list_institutions() -> List[dict]:
    counts = profiles_repo.user_counts_by_institution()
    plans = {plan.id: plan for plan in plans_repo.list_plans()}
    return [_view(inst, counts, plans) for inst in institutions_repo.list_institutions()]


def get_institution(institution_id: int) -> dict:
    institution = institutions_repo.get_institution(institution_id)
    if institution is None:
        raise InstitutionNotFoundError("institution_not_found")
    data = _view(institution)
    data["user_count"] = profiles_repo.count_profiles(institution_id=institution_id)
    return data


def create_institution(payload: Mapping[str, Any]) -> dict:
    fields = _fields_from_payload(payload, partial=False)
    fields.setdefault("is_active", True)
    try:
        institution = institutions_repo.create_institution(**fields)
    except InstitutionExistsError as exc:
        raise InstitutionConflictError("subdomain_taken") from exc
    tenancy_service.invalidate(institution.subdomain)
    LOG.info("Institution created id=%s subdomain=%s", institution.id, institution.subdomain)
    return _view(institution)


def update_institution(institution_id: int, payload: Mapping[str, Any]) -> dict:
    existing = institutions_repo.get_institution(institution_id)
    if existing is None:
        raise InstitutionNotFoundError("institution_not_found")
    fields = _fields_from_payload(payload, partial=True)
    start = fields.get("subscription_start", existing.subscription_start)
    end = fields.get("subscription_end", existing.subscription_end)
    if start and end and end < start:
        raise InstitutionValidationError("subscription_range_invalid")
    try:
        institution = institutions_repo.update_institution(institution_id, **fields)
    except InstitutionExistsError as exc:
        raise InstitutionConflictError("subdomain_taken") from exc
    if institution is None:  # pragma: no cover - deleted concurrently
        raise InstitutionNotFoundError("institution_not_found")
    tenancy_service.invalidate(existing.subdomain)
    tenancy_service.invalidate(institution.subdomain)
    LOG.info("Institution updated id=%s fields=%s", institution_id, sorted(fields))
    return _view(institution)


def deactivate_institution(institution_id: int) -> dict:
    return update_institution(institution_id, {"is_active": False})


def create_institution_admin(institution_id: int, payload: Mapping[str, Any]) -> dict:
    """Create an admin account for a tenant, with a password or an invitation."""
    if institutions_repo.get_institution(institution_id) is None:
        raise InstitutionNotFoundError("institution_not_found")
    email = normalize_email(payload.get("email"))
    if not email or "@" not in email:
        raise InstitutionValidationError("email_invalid")
    full_name = clean_text(payload.get("full_name") or payload.get("name"))
    password = payload.get("password")
    password_hash = None
    if password:
        try:
            password_hash = password_service.hash_password(password)
        except password_service.WeakPasswordError as exc:
            raise InstitutionValidationError(str(exc)) from exc
    try:
        profile = profiles_repo.create_profile(
            email=email,
            role=constants.ROLE_ADMIN,
            institution_id=institution_id,
            full_name=full_name,
            password_hash=password_hash,
        )
    except ProfileExistsError as exc:
        raise InstitutionConflictError("email_taken") from exc
    data = profile.as_dict()
    if password_hash is None:
        data["invite_token"] = password_service.issue_invite_token(email=email)
    LOG.info("Institution admin created institution_id=%s user_id=%s", institution_id, profile.id)
    return data


SELF_SIGNUP_PLAN_CODE = "basic"


def _signup_value(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


def signup_institution(payload: Mapping[str, Any]) -> dict:
    """Self-service registration: a new tenant plus its first admin account.

    Every field is checked before anything is written. The tenant joins the
    ``basic`` plan when one exists.
    """
    name = require_text(
        _signup_value(payload, "institution_name", "institutionName", "name"),
        "institution_name_required",
        InstitutionValidationError,
    )
    subdomain = validate_subdomain(payload.get("subdomain"))
    full_name = require_text(
        _signup_value(payload, "full_name", "fullName", "admin_name", "adminName"),
        "full_name_required",
        InstitutionValidationError,
    )
    email = normalize_email(_signup_value(payload, "email", "admin_email", "adminEmail"))
    if not email or "@" not in email:
        raise InstitutionValidationError("email_invalid")
    try:
        password_hash = password_service.hash_password(
            _signup_value(payload, "password", "admin_password", "adminPassword")
        )
    except password_service.WeakPasswordError as exc:
        raise InstitutionValidationError(str(exc)) from exc
    if institutions_repo.get_by_subdomain(subdomain) is not None:
        raise InstitutionConflictError("subdomain_taken")
    if profiles_repo.get_by_email(email) is not None:
        raise InstitutionConflictError("email_taken")

    plan = plans_repo.get_plan_by_code(SELF_SIGNUP_PLAN_CODE)
    try:
        institution = institutions_repo.create_institution(
            name=name,
            subdomain=subdomain,
            plan_id=plan.id if plan else None,
            is_active=True,
        )
    except InstitutionExistsError as exc:
        raise InstitutionConflictError("subdomain_taken") from exc
    tenancy_service.invalidate(subdomain)
    try:
        profile = profiles_repo.create_profile(
            email=email,
            role=constants.ROLE_ADMIN,
            institution_id=institution.id,
            full_name=full_name,
            password_hash=password_hash,
        )
    except ProfileExistsError as exc:
        institutions_repo.delete_institution(institution.id)
        tenancy_service.invalidate(subdomain)
        raise InstitutionConflictError("email_taken") from exc
    LOG.info("Institution signed up id=%s subdomain=%s admin_id=%s", institution.id, subdomain, profile.id)
    return {"institution": _view(institution), "admin": profile.as_dict()}


_BRANDING_KEYS = ("primary_color", "logo_url", "favicon_url")


def validate_branding(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Parse the branding subset of ``payload`` without touching the database."""
    allowed = {key: payload[key] for key in _BRANDING_KEYS if key in payload}
    return _fields_from_payload(allowed, partial=True)


def update_branding(institution_id: int, payload: Mapping[str, Any]) -> dict:
    """Restricted update used by institution admins (branding keys only).

    Replaced logo/favicon files stored for the institution are deleted.
    """
    existing = institutions_repo.get_institution(institution_id)
    if existing is None:
        raise InstitutionNotFoundError("institution_not_found")
    allowed = {key: payload[key] for key in _BRANDING_KEYS if key in payload}
    updated = update_institution(institution_id, allowed)
    for key in ("logo_url", "favicon_url"):
        if key in allowed:
            storage_service.discard_url(
                getattr(existing, key),
                bucket=storage_service.BUCKET_BRANDING,
                institution_id=institution_id,
                keep=updated.get(key),
            )
    return updated


__all__ = [
    "SUBDOMAIN_RE",
    "RESERVED_SUBDOMAINS",
    "InstitutionValidationError",
    "InstitutionNotFoundError",
    "InstitutionConflictError",
    "validate_subdomain",
    "validate_color",
    "list_institutions",
    "get_institution",
    "create_institution",
    "update_institution",
    "deactivate_institution",
    "create_institution_admin",
    "signup_institution",
    "validate_branding",
    "update_branding",
]
