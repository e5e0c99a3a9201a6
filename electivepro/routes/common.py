"""Helpers shared by the JSON API blueprints: error payloads, auth guards
and request accessors."""
from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from flask import g, jsonify, redirect, request
from flask_babel import get_locale, lazy_gettext as _l

from electivepro.services import auth_service, tenancy_service
from electivepro.services.catalogue_service import CatalogueConflictError, CatalogueNotFoundError
from electivepro.services.institutions_service import InstitutionConflictError, InstitutionNotFoundError
from electivepro.services.offerings_service import OfferingNotFoundError, OfferingStateError
from electivepro.services.password_service import PasswordError, PendingTokenNotFoundError
from electivepro.services.plans_service import PlanConflictError, PlanLimitReachedError, PlanNotFoundError
from electivepro.services.selection_rules import SelectionRuleError
from electivepro.services.storage_service import StorageNotFoundError
from electivepro.services.users_service import UserConflictError, UserNotFoundError
from electivepro.utils import constants
from electivepro.utils.identity import (
    AuthenticationRequired,
    PermissionError,
    clear_identity_session,
    ensure_role,
    get_current_institution_id,
    get_current_user_id,
)
from electivepro.utils.logging import get_logger

LOG = get_logger("routes")

ERROR_MESSAGES = {
    "authentication_required": _l("Please sign in to continue."),
    "forbidden": _l("You do not have access to this page."),
    "wrong_institution": _l("This account belongs to another institution."),
    "institution_required": _l("Open your institution's address to continue."),
    "invalid_json": _l("Request body must be a JSON object."),
    "invalid_credentials": _l("Invalid email or password."),
    "account_inactive": _l("This account is disabled."),
    "institution_inactive": _l("This institution is not active."),
    "name_required": _l("Name is required."),
    "code_required": _l("Code is required."),
    "email_invalid": _l("Enter a valid email address."),
    "email_taken": _l("A user with this email already exists."),
    "subdomain_invalid": _l("Subdomain may contain lowercase letters, digits and hyphens."),
    "subdomain_reserved": _l("This subdomain is reserved."),
    "subdomain_taken": _l("This subdomain is already in use."),
    "plan_in_use": _l("The plan is assigned to institutions."),
    "user_limit_reached": _l("The subscription plan user limit has been reached."),
    "deadline_passed": _l("The selection deadline has passed."),
    "offering_not_open": _l("Selections are not open."),
    "selection_empty": _l("Select at least one option."),
    "selection_limit_exceeded": _l("Too many options selected."),
    "selection_duplicate": _l("An option was selected twice."),
    "option_not_in_offering": _l("The selected option is not part of this offering."),
    "option_full": _l("One of the selected options has no places left."),
    "selection_locked": _l("An approved selection can no longer be changed."),
    "offering_has_selections": _l("Offerings with selections cannot be deleted."),
    "password_too_short": _l("Password must be at least 8 characters long."),
    "reset_token_expired": _l("This link expired. Request a new one."),
    "invalid_token": _l("This link is invalid."),
    "file_type_not_allowed": _l("This file type is not allowed."),
    "file_too_large": _l("The file is too large."),
    "mail_not_configured": _l("Email delivery is not available. Contact your administrator."),
    "mail_send_failed": _l("The email could not be sent. Try again later."),
}

_NOT_FOUND = (
    CatalogueNotFoundError,
    InstitutionNotFoundError,
    OfferingNotFoundError,
    PlanNotFoundError,
    StorageNotFoundError,
    UserNotFoundError,
    PendingTokenNotFoundError,
)
_CONFLICT = (
    CatalogueConflictError,
    InstitutionConflictError,
    OfferingStateError,
    PlanConflictError,
    PlanLimitReachedError,
    SelectionRuleError,
    UserConflictError,
)


def error_message_for(code: str) -> Optional[str]:
    message = ERROR_MESSAGES.get(code)
    return str(message) if message is not None else None


def json_error(
    code: str,
    status: int = 400,
    *,
    message: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
):
    payload: Dict[str, Any] = {"error": code}
    final_message = message or error_message_for(code)
    if final_message:
        payload["message"] = final_message
    if details is not None:
        payload["details"] = details
    return jsonify(payload), status


def service_error(exc: Exception):
    """Map a domain exception to a JSON error response."""
    code = str(exc) or exc.__class__.__name__
    if isinstance(exc, _NOT_FOUND):
        return json_error(code, 404)
    if isinstance(exc, _CONFLICT):
        return json_error(code, 409)
    if isinstance(exc, (ValueError, PasswordError)):
        return json_error(code, 400)
    raise exc


def json_body() -> Optional[Dict[str, Any]]:
    """JSON object body, falling back to form fields; None when malformed."""
    if request.is_json:
        payload = request.get_json(silent=True)
        return payload if isinstance(payload, dict) else None
    return request.form.to_dict()


def current_locale() -> str:
    locale = get_locale()
    return str(locale) if locale else "en"


def current_tenant() -> Optional[tenancy_service.TenantContext]:
    return getattr(g, "tenant", None)


def tenant_url(path: str) -> str:
    """Path on the current tenant, keeping the development subdomain parameter."""
    tenant = current_tenant()
    if tenant is None:
        return path
    return tenancy_service.tenant_path(path, request.host, tenant.subdomain)


def _login_redirect(roles: Iterable[str]):
    role = next(iter(roles), constants.ROLE_ADMIN)
    return redirect(tenant_url(constants.LOGIN_PATHS.get(role, "/")))


def ensure_portal(roles: Iterable[str], *, prefer_redirect: bool = False):
    """Return True when the session may use a portal restricted to `roles`.

    Tenant roles must be on the subdomain of their own institution. Anything
    else yields a redirect to the portal login (pages) or a 401/403 JSON
    response (APIs).
    """
    roles = tuple(roles)
    try:
        role = ensure_role(roles)
    except AuthenticationRequired:
        if prefer_redirect:
            return _login_redirect(roles)
        return json_error("authentication_required", 401)
    except PermissionError:
        if prefer_redirect:
            return _login_redirect(roles)
        return json_error("forbidden", 403)

    profile = getattr(g, "current_profile", None) or auth_service.load_session_user(get_current_user_id())
    if profile is None or profile.role != role:
        clear_identity_session()
        if prefer_redirect:
            return _login_redirect(roles)
        return json_error("authentication_required", 401)

    if role in constants.TENANT_ROLES:
        tenant = current_tenant()
        if tenant is None or tenant.institution_id != profile.institution_id:
            LOG.info("Tenant mismatch user_id=%s role=%s", profile.id, role)
            return json_error("wrong_institution", 403)
    return True


def scoped_institution_id() -> Optional[int]:
    """Institution whose data the signed-in tenant user or admin works on."""
    tenant = current_tenant()
    if tenant is not None:
        return tenant.institution_id
    return get_current_institution_id()


__all__ = [
    "ERROR_MESSAGES",
    "error_message_for",
    "json_error",
    "service_error",
    "json_body",
    "current_locale",
    "current_tenant",
    "tenant_url",
    "ensure_portal",
    "scoped_institution_id",
]
