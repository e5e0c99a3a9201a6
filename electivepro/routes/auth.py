"""Portal sign-in pages, logout, invitation acceptance and auth APIs."""
from __future__ import annotations

from typing import Any, Optional

from flask import Blueprint, jsonify, redirect, render_template, request, url_for
from flask_babel import gettext as _

from electivepro.db.repositories import institutions_repo, profiles_repo
from electivepro.services import auth_service, institutions_service, password_service, tenancy_service
from electivepro.services.auth_service import AuthError, SignupError
from electivepro.services.email_delivery import EmailDeliveryError, MailNotConfiguredError
from electivepro.services.institutions_service import InstitutionConflictError, InstitutionValidationError
from electivepro.services.password_service import PasswordError
from electivepro.routes.common import (
    current_tenant,
    error_message_for,
    json_body,
    json_error,
    service_error,
    tenant_url,
)
from electivepro.utils import constants
from electivepro.utils.identity import (
    clear_identity_session,
    get_current_user_id,
    set_identity_session,
)
from electivepro.utils.logging import get_logger

LOG = get_logger("auth_routes")

bp = Blueprint("auth", __name__)
api_bp = Blueprint("auth_api", __name__, url_prefix="/api/auth")

PORTALS = {
    "student": constants.ROLE_STUDENT,
    "manager": constants.ROLE_PROGRAM_MANAGER,
    "admin": constants.ROLE_ADMIN,
    "super-admin": constants.ROLE_SUPER_ADMIN,
}
_AUTH_ERROR_STATUS = {
    "credentials_required": 400,
    "invalid_credentials": 401,
    "account_inactive": 403,
    "wrong_portal": 403,
    "wrong_institution": 403,
    "institution_subdomain_required": 403,
    "main_domain_required": 403,
    "institution_inactive": 403,
    "unknown_role": 403,
}


def _wants_json() -> bool:
    return request.is_json or request.accept_mimetypes.best == "application/json"


def _sign_in(user: auth_service.AuthenticatedUser) -> None:
    set_identity_session(
        user_id=user.id,
        email=user.email,
        role=user.role,
        institution_id=user.institution_id,
    )


def _portal_login_url(role: str, institution_id: Optional[int]) -> str:
    path = constants.LOGIN_PATHS.get(role, "/")
    if role in constants.TENANT_ROLES and institution_id:
        institution = institutions_repo.get_institution(institution_id)
        if institution is not None:
            base = tenancy_service.institution_url(institution.subdomain, request.host, request.scheme)
            if "?" in base:
                root, query = base.split("?", 1)
                return f"{root.rstrip('/')}{path}?{query}"
            return f"{base}{path}"
    return path


def _render_login(portal: str, *, error: Optional[str] = None, status: int = 200, email: str = ""):
    return (
        render_template(
            "login.html",
            portal=portal,
            portal_role=PORTALS[portal],
            error=error,
            email=email,
        ),
        status,
    )


def _login_view(portal: str):
    if request.method == "GET":
        return _render_login(portal)
    payload = json_body() or {}
    email = str(payload.get("email") or "")
    try:
        user = auth_service.authenticate(
            email,
            str(payload.get("password") or ""),
            current_tenant(),
            portal_role=PORTALS[portal],
        )
    except AuthError as exc:
        code = str(exc)
        status = _AUTH_ERROR_STATUS.get(code, 401)
        if _wants_json():
            return json_error(code, status)
        return _render_login(portal, error=error_message_for(code) or _("Sign-in failed."), status=status, email=email)
    _sign_in(user)
    target = user.redirect_path
    if target == "/":
        clear_identity_session()
    target = tenant_url(target)
    if _wants_json():
        return jsonify({"status": "ok", "redirect": target, "role": user.role})
    return redirect(target)


@bp.route("/student/login", methods=["GET", "POST"])
def student_login():
    return _login_view("student")


@bp.route("/manager/login", methods=["GET", "POST"])
def manager_login():
    return _login_view("manager")


@bp.route("/admin/login", methods=["GET", "POST"])
def admin_login():
    return _login_view("admin")


@bp.route("/super-admin/login", methods=["GET", "POST"])
def super_admin_login():
    return _login_view("super-admin")


def _reset_link(token: str) -> str:
    return url_for("auth.accept_invite", token=token, _external=True)


def _request_reset(email: str, tenant, portal_role: Optional[str]):
    """Run the reset request; returns ``(code, status)`` on failure, else None."""
    try:
        auth_service.request_password_reset(email, tenant, portal_role=portal_role, link_for=_reset_link)
    except AuthError as exc:
        return str(exc), 400
    except MailNotConfiguredError as exc:
        return str(exc), 503
    except EmailDeliveryError as exc:
        return str(exc), 502
    return None


def _forgot_view(portal: str):
    if request.method == "GET":
        return render_template("forgot_password.html", portal=portal, sent=False, error=None, email="")
    payload = json_body() or {}
    email = str(payload.get("email") or "")
    failure = _request_reset(email, current_tenant(), PORTALS[portal])
    if failure is not None:
        code, status = failure
        if _wants_json():
            return json_error(code, status)
        message = error_message_for(code) or _("The request could not be processed.")
        return render_template("forgot_password.html", portal=portal, sent=False, error=message, email=email), status
    if _wants_json():
        return jsonify({"status": "sent"})
    return render_template("forgot_password.html", portal=portal, sent=True, error=None, email=email)


@bp.route("/student/forgot-password", methods=["GET", "POST"])
def student_forgot_password():
    return _forgot_view("student")


@bp.route("/manager/forgot-password", methods=["GET", "POST"])
def manager_forgot_password():
    return _forgot_view("manager")


@bp.route("/admin/forgot-password", methods=["GET", "POST"])
def admin_forgot_password():
    return _forgot_view("admin")


@bp.route("/logout", methods=["GET", "POST"])
def logout():
    user_id = get_current_user_id()
    clear_identity_session()
    if user_id:
        LOG.info("Logout user_id=%s", user_id)
    target = tenant_url("/")
    if _wants_json():
        return jsonify({"status": "ok", "redirect": target})
    return redirect(target)


@bp.route("/auth/accept-invite", methods=["GET", "POST"])
def accept_invite():
    token = request.values.get("token") or ""
    if request.method == "GET":
        try:
            pending = password_service.resolve_pending_link(token)
        except PasswordError as exc:
            return render_template("accept_invite.html", token=None, pending=None, error=error_message_for(str(exc)) or _("This link cannot be used.")), 400
        return render_template("accept_invite.html", token=token, pending=pending, error=None)

    payload = json_body() or {}
    token = str(payload.get("token") or token)
    password = payload.get("password")
    confirm = payload.get("password_confirm", password)
    if password != confirm:
        return json_error("password_mismatch", 400, message=_("Passwords do not match."))
    try:
        pending = password_service.complete_password_change(token=token, new_password=password)
    except PasswordError as exc:
        return service_error(exc)
    try:
        user = auth_service.authenticate(pending.email, password, current_tenant(), portal_role=pending.role)
    except AuthError:
        profile = profiles_repo.get_by_email(pending.email)
        target = _portal_login_url(pending.role, profile.institution_id if profile else None)
        return jsonify({"status": "ok", "signed_in": False, "redirect": target})
    _sign_in(user)
    return jsonify({"status": "ok", "signed_in": True, "redirect": tenant_url(user.redirect_path)})


# ---------------- /api/auth ---------------

def _request_tenant(payload: dict) -> Optional[tenancy_service.TenantContext]:
    subdomain = tenancy_service.extract_subdomain(
        request.host, request.args.get("subdomain") or payload.get("subdomain")
    )
    if not subdomain:
        return None
    try:
        return tenancy_service.lookup_institution(subdomain)
    except tenancy_service.TenantLookupError:
        return None


@api_bp.route("/check-role", methods=["GET"])
def check_role():
    user_id = get_current_user_id()
    if not user_id:
        return json_error("authentication_required", 401)
    profile = profiles_repo.get_profile(user_id)
    if profile is None:
        return json_error("profile_not_found", 404)
    return jsonify({"role": profile.role, "institutionId": profile.institution_id})


@api_bp.route("/signup", methods=["POST"])
def signup():
    payload = json_body()
    if payload is None:
        return json_error("invalid_json", 400)
    tenant = _request_tenant(payload)
    if tenant is None:
        return json_error("institution_required", 400)
    try:
        user = auth_service.signup_student(
            tenant,
            full_name=payload.get("full_name") or payload.get("name"),
            email=payload.get("email"),
            password=payload.get("password"),
            group_id=payload.get("group_id"),
            enrollment_year=payload.get("enrollment_year"),
        )
    except SignupError as exc:
        code = str(exc)
        return json_error(code, 409 if code in ("email_taken", "user_limit_reached") else 400)
    _sign_in(user)
    redirect_path = tenancy_service.tenant_path(user.redirect_path, request.host, tenant.subdomain)
    return jsonify({"status": "ok", "user_id": user.id, "redirect": redirect_path}), 201


@api_bp.route("/signup-admin", methods=["POST"])
def signup_admin():
    payload = json_body()
    if payload is None:
        return json_error("invalid_json", 400)
    try:
        created = institutions_service.signup_institution(payload)
    except (InstitutionValidationError, InstitutionConflictError) as exc:
        return service_error(exc)
    institution = created["institution"]
    return (
        jsonify(
            {
                "status": "ok",
                "institution_id": institution["id"],
                "subdomain": institution["subdomain"],
                "admin_id": created["admin"]["id"],
                "redirect": constants.LOGIN_PATHS[constants.ROLE_ADMIN],
            }
        ),
        201,
    )


@api_bp.route("/forgot-password", methods=["POST"])
def forgot_password():
    """Always answers ``sent`` for well-formed requests so addresses stay private."""
    payload = json_body()
    if payload is None:
        return json_error("invalid_json", 400)
    portal = payload.get("portal")
    if portal and portal not in PORTALS:
        return json_error("portal_invalid", 400)
    failure = _request_reset(
        str(payload.get("email") or ""),
        _request_tenant(payload),
        PORTALS[portal] if portal else None,
    )
    if failure is not None:
        return json_error(*failure)
    return jsonify({"status": "sent"})


def register_auth(app: Any) -> None:
    if getattr(app, "_ep_auth_bp", False):
        return
    app.register_blueprint(bp)
    app.register_blueprint(api_bp)
    setattr(app, "_ep_auth_bp", True)
    LOG.debug("Auth blueprints registered")


__all__ = ["register_auth", "bp", "api_bp", "PORTALS"]
