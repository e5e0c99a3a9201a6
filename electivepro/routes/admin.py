"""Institution admin portal (main domain).

Routes:
    /admin/dashboard                         -> dashboard shell page
    /admin/api/dashboard                     -> institution counters
    /admin/api/catalogue/<entity>[/<id>]     -> degrees, programs, groups, years, courses, universities
    /admin/api/catalogue/group/<id>/slug     -> group with its slug
    /admin/api/users[/<id>]                  -> institution users
    /admin/api/users/invite-manager          -> program manager invitation
    /admin/api/users/invite-student          -> student invitation
    /admin/api/users/<id>/reset-link         -> password reset link
    /admin/api/branding                      -> colors and logo/favicon uploads
"""
from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, jsonify, render_template, request, url_for

from electivepro.routes.common import (
    current_locale,
    ensure_portal,
    json_body,
    json_error,
    scoped_institution_id,
    service_error,
)
from electivepro.services import (
    catalogue_service,
    dashboard_service,
    institutions_service,
    storage_service,
    users_service,
)
from electivepro.services.catalogue_service import (
    CatalogueConflictError,
    CatalogueNotFoundError,
    CatalogueValidationError,
)
from electivepro.services.institutions_service import InstitutionNotFoundError, InstitutionValidationError
from electivepro.services.plans_service import PlanLimitReachedError
from electivepro.services.storage_service import StorageError
from electivepro.services.users_service import UserConflictError, UserNotFoundError, UserValidationError
from electivepro.utils import constants
from electivepro.utils.logging import get_logger

LOG = get_logger("admin")

bp = Blueprint("admin", __name__, url_prefix="/admin")
_ROLES = (constants.ROLE_ADMIN,)

_CATALOGUE_ERRORS = (CatalogueValidationError, CatalogueNotFoundError, CatalogueConflictError)
_USER_ERRORS = (UserValidationError, UserNotFoundError, UserConflictError, PlanLimitReachedError)
_CATALOGUE_FILTERS = ("status", "degree_id", "program_id", "enrollment_year", "country")
_BRANDING_UPLOADS = {"logo": "logo_url", "favicon": "favicon_url"}


def _require_json_auth():
    return ensure_portal(_ROLES, prefer_redirect=False)


def _accept_url(token: str) -> str:
    return url_for("auth.accept_invite", token=token, _external=True)


@bp.route("/dashboard", methods=["GET"])
def dashboard_page():  # pragma: no cover - thin render wrapper
    auth = ensure_portal(_ROLES, prefer_redirect=True)
    if auth is not True:
        return auth
    return render_template(
        "dashboard.html",
        portal="admin",
        summary=dashboard_service.institution_summary(scoped_institution_id()),
    )


@bp.route("/api/dashboard", methods=["GET"])
def api_dashboard():
    auth = _require_json_auth()
    if auth is not True:
        return auth
    return jsonify(dashboard_service.institution_summary(scoped_institution_id()))


# ---------------- catalogue ---------------

@bp.route("/api/catalogue/<entity>", methods=["GET"])
def api_catalogue_list(entity: str):
    auth = _require_json_auth()
    if auth is not True:
        return auth
    filters = {key: request.args.get(key) for key in _CATALOGUE_FILTERS if request.args.get(key)}
    try:
        items = catalogue_service.list_entities(
            entity, scoped_institution_id(), locale=current_locale(), **filters
        )
    except _CATALOGUE_ERRORS as exc:
        return service_error(exc)
    return jsonify({"items": items})


@bp.route("/api/catalogue/<entity>", methods=["POST"])
def api_catalogue_create(entity: str):
    auth = _require_json_auth()
    if auth is not True:
        return auth
    payload = json_body()
    if payload is None:
        return json_error("invalid_json", 400)
    try:
        item = catalogue_service.create_entity(entity, scoped_institution_id(), payload)
    except _CATALOGUE_ERRORS as exc:
        return service_error(exc)
    return jsonify(item), 201


@bp.route("/api/catalogue/<entity>/<int:row_id>", methods=["GET"])
def api_catalogue_get(entity: str, row_id: int):
    auth = _require_json_auth()
    if auth is not True:
        return auth
    try:
        item = catalogue_service.get_entity(entity, scoped_institution_id(), row_id, locale=current_locale())
    except _CATALOGUE_ERRORS as exc:
        return service_error(exc)
    return jsonify(item)


@bp.route("/api/catalogue/<entity>/<int:row_id>", methods=["PUT", "PATCH"])
def api_catalogue_update(entity: str, row_id: int):
    auth = _require_json_auth()
    if auth is not True:
        return auth
    payload = json_body()
    if payload is None:
        return json_error("invalid_json", 400)
    try:
        item = catalogue_service.update_entity(entity, scoped_institution_id(), row_id, payload)
    except _CATALOGUE_ERRORS as exc:
        return service_error(exc)
    return jsonify(item)


@bp.route("/api/catalogue/<entity>/<int:row_id>", methods=["DELETE"])
def api_catalogue_delete(entity: str, row_id: int):
    auth = _require_json_auth()
    if auth is not True:
        return auth
    try:
        catalogue_service.delete_entity(entity, scoped_institution_id(), row_id)
    except _CATALOGUE_ERRORS as exc:
        return service_error(exc)
    return jsonify({"status": "deleted", "id": row_id})


@bp.route("/api/catalogue/group/<int:group_id>/slug", methods=["GET"])
def api_group_slug(group_id: int):
    auth = _require_json_auth()
    if auth is not True:
        return auth
    try:
        item = catalogue_service.group_with_slug(scoped_institution_id(), group_id)
    except _CATALOGUE_ERRORS as exc:
        return service_error(exc)
    return jsonify(item)


# ---------------- users ---------------

@bp.route("/api/users", methods=["GET"])
def api_users_list():
    auth = _require_json_auth()
    if auth is not True:
        return auth
    try:
        users = users_service.list_users(scoped_institution_id(), request.args.get("role") or None)
    except _USER_ERRORS as exc:
        return service_error(exc)
    return jsonify({"users": users})


@bp.route("/api/users/<int:user_id>", methods=["GET"])
def api_users_get(user_id: int):
    auth = _require_json_auth()
    if auth is not True:
        return auth
    try:
        user = users_service.get_user(scoped_institution_id(), user_id)
    except _USER_ERRORS as exc:
        return service_error(exc)
    return jsonify(user)


@bp.route("/api/users/<int:user_id>", methods=["PUT", "PATCH"])
def api_users_update(user_id: int):
    auth = _require_json_auth()
    if auth is not True:
        return auth
    payload = json_body()
    if payload is None:
        return json_error("invalid_json", 400)
    try:
        user = users_service.update_user(scoped_institution_id(), user_id, payload)
    except _USER_ERRORS as exc:
        return service_error(exc)
    return jsonify(user)


def _invite(handler) -> Any:
    auth = _require_json_auth()
    if auth is not True:
        return auth
    payload = json_body()
    if payload is None:
        return json_error("invalid_json", 400)
    try:
        result = handler(scoped_institution_id(), payload)
    except _USER_ERRORS as exc:
        return service_error(exc)
    body: Dict[str, Any] = {"user": result["user"], "invite_url": _accept_url(result["token"])}
    return jsonify(body), 201


@bp.route("/api/users/invite-manager", methods=["POST"])
def api_invite_manager():
    return _invite(users_service.invite_manager)


@bp.route("/api/users/invite-student", methods=["POST"])
def api_invite_student():
    return _invite(users_service.invite_student)


@bp.route("/api/users/<int:user_id>/reset-link", methods=["POST"])
def api_users_reset_link(user_id: int):
    auth = _require_json_auth()
    if auth is not True:
        return auth
    try:
        result = users_service.issue_reset_link(scoped_institution_id(), user_id)
    except _USER_ERRORS as exc:
        return service_error(exc)
    return jsonify({"user": result["user"], "reset_url": _accept_url(result["token"])})


# ---------------- branding ---------------

def _branding_view(institution_id: int) -> dict:
    institution = institutions_service.get_institution(institution_id)
    return {
        "name": institution.get("name"),
        "subdomain": institution.get("subdomain"),
        "primary_color": institution.get("primary_color"),
        "logo_url": institution.get("logo_url"),
        "favicon_url": institution.get("favicon_url"),
    }


@bp.route("/api/branding", methods=["GET"])
def api_branding_get():
    auth = _require_json_auth()
    if auth is not True:
        return auth
    try:
        return jsonify(_branding_view(scoped_institution_id()))
    except InstitutionNotFoundError as exc:
        return service_error(exc)


@bp.route("/api/branding", methods=["PUT", "PATCH", "POST"])
def api_branding_update():
    """Update branding; multipart ``logo`` / ``favicon`` files are stored
    only after the other fields validate."""
    auth = _require_json_auth()
    if auth is not True:
        return auth
    institution_id = scoped_institution_id()
    payload = json_body()
    if payload is None:
        return json_error("invalid_json", 400)
    stored_files = []
    try:
        institutions_service.validate_branding(payload)
        for field, key in _BRANDING_UPLOADS.items():
            upload = request.files.get(field)
            if upload is None or not upload.filename:
                continue
            stored = storage_service.save_upload(
                storage_service.BUCKET_BRANDING,
                upload,
                institution_id=institution_id,
                prefix=field,
                owner=institution_id,
            )
            stored_files.append(stored)
            payload[key] = stored.url
        institutions_service.update_branding(institution_id, payload)
        view = _branding_view(institution_id)
    except (StorageError, InstitutionValidationError, InstitutionNotFoundError) as exc:
        for stored in stored_files:
            storage_service.delete_file(stored.bucket, stored.path)
        return service_error(exc)
    LOG.info("Branding updated institution_id=%s", institution_id)
    return jsonify(view)


def register_admin(app: Any) -> None:
    if getattr(app, "_ep_admin_bp", False):
        return
    app.register_blueprint(bp)
    setattr(app, "_ep_admin_bp", True)
    LOG.debug("Admin blueprint registered")


__all__ = ["bp", "register_admin"]
