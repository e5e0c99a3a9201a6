"""Sign-in, role redirects and student self-registration."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from werkzeug.security import check_password_hash

from electivepro.db.models import Group
from electivepro.db.repositories import catalogue_repo, institutions_repo, profiles_repo
from electivepro.db.repositories.profiles_repo import ProfileExistsError
from electivepro.services import email_delivery, password_service, plans_service
from electivepro.services.tenancy_service import TenantContext
from electivepro.utils import constants
from electivepro.utils.forms import clean_text, parse_int, require_text
from electivepro.utils.identity import normalize_email
from electivepro.utils.logging import get_logger

LOG = get_logger("auth_service")


class AuthError(RuntimeError):
    """Sign-in refused; message is the error code."""


class SignupError(ValueError):
    """Self-registration input rejected."""


@dataclass(frozen=True)
class AuthenticatedUser:
    id: int
    email: str
    role: str
    institution_id: Optional[int]
    full_name: Optional[str]
    locale: Optional[str]

    @property
    def redirect_path(self) -> str:
        return redirect_for_role(self.role)


def redirect_for_role(role: Optional[str]) -> str:
    """Dashboard path for a role; unknown roles go back to the site root."""
    return constants.DASHBOARD_PATHS.get(role or "", "/")


def _check_tenant_rules(profile, tenant: Optional[TenantContext]) -> None:
    role = profile.role
    if role in constants.TENANT_ROLES:
        if tenant is None:
            raise AuthError("institution_subdomain_required")
        if profile.institution_id != tenant.institution_id:
            raise AuthError("wrong_institution")
        return
    if role in constants.MAIN_DOMAIN_ROLES:
        if tenant is not None:
            raise AuthError("main_domain_required")
        if role == constants.ROLE_ADMIN:
            institution = (
                institutions_repo.get_institution(profile.institution_id)
                if profile.institution_id
                else None
            )
            if institution is None or not institution.is_active:
                raise AuthError("institution_inactive")
        return
    raise AuthError("unknown_role")


def authenticate(
    email: str,
    password: str,
    tenant: Optional[TenantContext] = None,
    *,
    portal_role: Optional[str] = None,
) -> AuthenticatedUser:
    """Verify credentials and the tenant/portal the user signs in through."""
    normalized = normalize_email(email)
    if not normalized or not password:
        raise AuthError("credentials_required")
    profile = profiles_repo.get_by_email(normalized)
    if profile is None or not profile.password_hash:
        LOG.info("Login rejected email=%s reason=unknown_or_no_password", normalized)
        raise AuthError("invalid_credentials")
    if not check_password_hash(profile.password_hash, password):
        LOG.info("Login rejected email=%s reason=bad_password", normalized)
        raise AuthError("invalid_credentials")
    if not profile.is_active:
        raise AuthError("account_inactive")
    if portal_role is not None and profile.role != portal_role:
        LOG.info("Login rejected email=%s role=%s portal=%s", normalized, profile.role, portal_role)
        raise AuthError("wrong_portal")
    _check_tenant_rules(profile, tenant)
    LOG.info("Login ok user_id=%s role=%s", profile.id, profile.role)
    return AuthenticatedUser(
        id=int(profile.id),
        email=profile.email,
        role=profile.role,
        institution_id=profile.institution_id,
        full_name=profile.full_name,
        locale=profile.locale,
    )


def signup_student(
    tenant: TenantContext,
    *,
    full_name: str,
    email: str,
    password: str,
    group_id,
    enrollment_year=None,
) -> AuthenticatedUser:
    """Self-register a student on the institution's subdomain."""
    name = require_text(full_name, "name_required", SignupError)
    normalized = normalize_email(email)
    if not normalized or "@" not in normalized:
        raise SignupError("email_invalid")
    try:
        password_hash = password_service.hash_password(password)
    except password_service.WeakPasswordError as exc:
        raise SignupError(str(exc)) from exc
    group_pk = parse_int(group_id, "group_required", SignupError, minimum=1)
    group = catalogue_repo.get_row(Group, tenant.institution_id, group_pk)
    if group is None or group.status != constants.STATUS_ACTIVE:
        raise SignupError("group_invalid")
    year = parse_int(enrollment_year, "enrollment_year_invalid", SignupError, minimum=1900, maximum=2100, allow_none=True)
    if year is None:
        year = group.enrollment_year
    try:
        plans_service.ensure_user_capacity(tenant.institution_id)
    except plans_service.PlanLimitReachedError as exc:
        raise SignupError(str(exc)) from exc
    try:
        profile = profiles_repo.create_profile(
            email=normalized,
            role=constants.ROLE_STUDENT,
            institution_id=tenant.institution_id,
            full_name=name,
            password_hash=password_hash,
            group_id=group.id,
            enrollment_year=year,
        )
    except ProfileExistsError as exc:
        raise SignupError("email_taken") from exc
    LOG.info("Student signed up user_id=%s institution_id=%s", profile.id, tenant.institution_id)
    return AuthenticatedUser(
        id=int(profile.id),
        email=profile.email,
        role=profile.role,
        institution_id=profile.institution_id,
        full_name=clean_text(profile.full_name),
        locale=profile.locale,
    )


def request_password_reset(
    email: str,
    tenant: Optional[TenantContext],
    *,
    portal_role: Optional[str] = None,
    link_for: Callable[[str], str],
) -> bool:
    """Email a reset link when the address belongs to this portal and tenant.

    Unknown, inactive or mismatched accounts return False without sending so
    the response never reveals which addresses exist.
    """
    normalized = normalize_email(email)
    if not normalized or "@" not in normalized:
        raise AuthError("email_required")
    email_delivery.ensure_mail_configured()
    profile = profiles_repo.get_by_email(normalized)
    if profile is None or not profile.is_active:
        LOG.info("Password reset skipped email=%s reason=unknown", normalized)
        return False
    if portal_role and profile.role != portal_role:
        LOG.info("Password reset skipped email=%s reason=wrong_portal", normalized)
        return False
    try:
        _check_tenant_rules(profile, tenant)
    except AuthError as exc:
        LOG.info("Password reset skipped email=%s reason=%s", normalized, exc)
        return False
    institution_name = tenant.name if tenant else None
    if institution_name is None and profile.institution_id:
        institution = institutions_repo.get_institution(profile.institution_id)
        institution_name = institution.name if institution else None
    token = password_service.issue_reset_token(email=normalized)
    email_delivery.send_password_reset_email(
        recipient_email=normalized,
        user_name=profile.full_name,
        reset_url=link_for(token),
        institution_name=institution_name,
        preferred_language=profile.locale,
    )
    return True


def load_session_user(user_id: Optional[int]):
    """Return the active profile behind a session, or None."""
    if not user_id:
        return None
    profile = profiles_repo.get_profile(user_id)
    if profile is None or not profile.is_active:
        return None
    return profile


__all__ = [
    "AuthError",
    "SignupError",
    "AuthenticatedUser",
    "redirect_for_role",
    "authenticate",
    "signup_student",
    "request_password_reset",
    "load_session_user",
]
