"""Super-admin portal: tenants, subscription plans and platform overview.

Routes (main domain only):
    /super-admin/dashboard                       -> dashboard shell page
    /super-admin/api/dashboard                   -> platform counters
    /super-admin/api/institutions[/<id>]         -> tenant CRUD
    /super-admin/api/institutions/<id>/admins    -> create institution admin
    /super-admin/api/plans[/<id>]                -> subscription plan CRUD
    /super-admin/api/users                       -> cross-tenant user list
"""
from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, render_template, request, url_for

from electivepro.routes.common import ensure_portal, json_body, json_error, service_error
from electivepro.services import dashboard_service, institutions_service, plans_service, users_service
from electivepro.services.institutions_service import (
    InstitutionConflictError,
    InstitutionNotFoundError,
    InstitutionValidationError,
)
from electivepro.services.plans_service import PlanConflictError, PlanNotFoundError, PlanValidationError
from electivepro.services.users_service import UserNotFoundError, UserValidationError
from electivepro.utils import constants
from electivepro.utils.logging import get_logger

LOG = get_logger("super_admin")

bp = Blueprint("super_admin", __name__, url_prefix="/super-admin")
_ROLES = (constants.ROLE_SUPER_ADMIN,)

_INSTITUTION_ERRORS = (InstitutionValidationError, InstitutionNotFoundError, InstitutionConflictError)
_PLAN_ERRORS = (PlanValidationError, PlanNotFoundError, PlanConflictError)


def _require_json_auth():
    return ensure_portal(_ROLES, prefer_redirect=False)


@bp.route("/dashboard", methods=["GET"])
def dashboard_page():  # pragma: no cover - thin render wrapper
    auth = ensure_portal(_ROLES, prefer_redirect=True)
    if auth is not True:
        return auth
    return render_template(
        "dashboard.html",
        portal="super-admin",
        summary=dashboard_service.platform_summary(),
    )


@bp.route("/api/dashboard", methods=["GET"])
def api_dashboard():
    auth = _require_json_auth()
    if auth is not True:
        return auth
    return jsonify(dashboard_service.platform_summary())


# ---------------- institutions ---------------

@bp.route("/api/institutions", methods=["GET"])
def api_institutions_list():
    auth = _require_json_auth()
    if auth is not True:
        return auth
    return jsonify({"institutions": institutions_service.list_institutions()})


@bp.route("/api/institutions", methods=["POST"])
def api_institutions_create():
    auth = _require_json_auth()
    if auth is not True:
        return auth
    payload = json_body()
    if payload is None:
        return json_error("invalid_json", 400)
    try:
        institution = institutions_service.create_institution(payload)
    except _INSTITUTION_ERRORS as exc:
        return service_error(exc)
    return jsonify(institution), 201


@bp.route("/api/institutions/<int:institution_id>", methods=["GET"])
def api_institutions_get(institution_id: int):
    auth = _require_json_auth()
    if auth is not True:
        return auth
    try:
        return jsonify(institutions_service.get_institution(institution_id))
    except InstitutionNotFoundError as exc:
        return service_error(exc)


@bp.route("/api/institutions/<int:institution_id>", methods=["PUT", "PATCH"])
def api_institutions_update(institution_id: int):
    auth = _require_json_auth()
    if auth is not True:
        return auth
    payload = json_body()
    if payload is None:
        return json_error("invalid_json", 400)
    try:
        return jsonify(institutions_service.update_institution(institution_id, payload))
    except _INSTITUTION_ERRORS as exc:
        return service_error(exc)


@bp.route("/api/institutions/<int:institution_id>/deactivate", methods=["POST"])
def api_institutions_deactivate(institution_id: int):
    auth = _require_json_auth()
    if auth is not True:
        return auth
    try:
        return jsonify(institutions_service.deactivate_institution(institution_id))
    except _INSTITUTION_ERRORS as exc:
        return service_error(exc)


@bp.route("/api/institutions/<int:institution_id>/admins", methods=["POST"])
def api_institutions_create_admin(institution_id: int):
    auth = _require_json_auth()
    if auth is not True:
        return auth
    payload = json_body()
    if payload is None:
        return json_error("invalid_json", 400)
    try:
        admin = institutions_service.create_institution_admin(institution_id, payload)
    except _INSTITUTION_ERRORS as exc:
        return service_error(exc)
    token = admin.pop("invite_token", None)
    if token:
        admin["invite_url"] = url_for("auth.accept_invite", token=token, _external=True)
    return jsonify(admin), 201


# ---------------- plans ---------------

@bp.route("/api/plans", methods=["GET"])
def api_plans_list():
    auth = _require_json_auth()
    if auth is not True:
        return auth
    return jsonify({"plans": plans_service.list_plans()})


@bp.route("/api/plans", methods=["POST"])
def api_plans_create():
    auth = _require_json_auth()
    if auth is not True:
        return auth
    payload = json_body()
    if payload is None:
        return json_error("invalid_json", 400)
    try:
        return jsonify(plans_service.create_plan(payload)), 201
    except _PLAN_ERRORS as exc:
        return service_error(exc)


@bp.route("/api/plans/<int:plan_id>", methods=["GET"])
def api_plans_get(plan_id: int):
    auth = _require_json_auth()
    if auth is not True:
        return auth
    try:
        return jsonify(plans_service.get_plan(plan_id))
    except PlanNotFoundError as exc:
        return service_error(exc)


@bp.route("/api/plans/<int:plan_id>", methods=["PUT", "PATCH"])
def api_plans_update(plan_id: int):
    auth = _require_json_auth()
    if auth is not True:
        return auth
    payload = json_body()
    if payload is None:
        return json_error("invalid_json", 400)
    try:
        return jsonify(plans_service.update_plan(plan_id, payload))
    except _PLAN_ERRORS as exc:
        return service_error(exc)


@bp.route("/api/plans/<int:plan_id>", methods=["DELETE"])
def api_plans_delete(plan_id: int):
    auth = _require_json_auth()
    if auth is not True:
        return auth
    try:
        plans_service.delete_plan(plan_id)
    except _PLAN_ERRORS as exc:
        return service_error(exc)
    return jsonify({"status": "deleted", "id": plan_id})


# ---------------- users ---------------

@bp.route("/api/users", methods=["GET"])
def api_users_list():
    auth = _require_json_auth()
    if auth is not True:
        return auth
    try:
        users = users_service.list_all_users(request.args.get("role") or None)
    except UserValidationError as exc:
        return service_error(exc)
    return jsonify({"users": users})


@bp.route("/api/users/<int:user_id>/reset-link", methods=["POST"])
def api_users_reset_link(user_id: int):
    auth = _require_json_auth()
    if auth is not True:
        return auth
    try:
        result = users_service.issue_reset_link(None, user_id)
    except UserNotFoundError as exc:
        return service_error(exc)
    token = result.pop("token")
    result["reset_url"] = url_for("auth.accept_invite", token=token, _external=True)
    return jsonify(result)


def register_super_admin(app: Any) -> None:
    if getattr(app, "_ep_super_admin_bp", False):
        return
    app.register_blueprint(bp)
    setattr(app, "_ep_super_admin_bp", True)
    LOG.debug("Super-admin blueprint registered")


__all__ = ["register_super_admin", "bp"]
