"""Student portal (institution subdomain).

Routes:
    /student/dashboard                                   -> dashboard shell page
    /student/api/dashboard                               -> selection counters
    /student/api/profile                                 -> own profile
    /student/api/<packs|exchange>                        -> visible offerings
    /student/api/<packs|exchange>/<id>                   -> offering detail with remaining places
    /student/api/<packs|exchange>/<id>/selection         -> submit (POST) / cancel (DELETE)
    /student/api/<packs|exchange>/<id>/statement         -> upload signed statement
    /student/api/<packs|exchange>/<id>/syllabus          -> syllabus template address
"""
from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, render_template, request

from electivepro.routes.common import (
    current_locale,
    ensure_portal,
    json_body,
    json_error,
    scoped_institution_id,
    service_error,
)
from electivepro.routes.electives import SEGMENT_KINDS
from electivepro.services import dashboard_service, offerings_service, storage_service, users_service
from electivepro.services.offerings_service import (
    OfferingNotFoundError,
    OfferingStateError,
    OfferingValidationError,
)
from electivepro.services.selection_rules import SelectionRuleError
from electivepro.services.storage_service import StorageError
from electivepro.utils import constants
from electivepro.utils.identity import get_current_user_id
from electivepro.utils.logging import get_logger

LOG = get_logger("student")

bp = Blueprint("student", __name__, url_prefix="/student")
_ROLES = (constants.ROLE_STUDENT,)
_SEGMENTS = "<any(packs, exchange):segment>"
_ERRORS = (OfferingValidationError, OfferingNotFoundError, OfferingStateError, SelectionRuleError)


@bp.route("/dashboard", methods=["GET"])
def dashboard_page():  # pragma: no cover - thin render wrapper
    auth = ensure_portal(_ROLES, prefer_redirect=True)
    if auth is not True:
        return auth
    return render_template(
        "dashboard.html",
        portal="student",
        summary=dashboard_service.student_summary(scoped_institution_id(), get_current_user_id()),
    )


@bp.route("/api/dashboard", methods=["GET"])
def api_dashboard():
    auth = ensure_portal(_ROLES)
    if auth is not True:
        return auth
    return jsonify(dashboard_service.student_summary(scoped_institution_id(), get_current_user_id()))


@bp.route("/api/profile", methods=["GET"])
def api_profile():
    auth = ensure_portal(_ROLES)
    if auth is not True:
        return auth
    summary = users_service.get_profile_summary(get_current_user_id())
    if summary is None:
        return json_error("profile_not_found", 404)
    return jsonify(summary)


@bp.route(f"/api/{_SEGMENTS}", methods=["GET"])
def api_offerings(segment: str):
    auth = ensure_portal(_ROLES)
    if auth is not True:
        return auth
    items = offerings_service.student_offerings(
        SEGMENT_KINDS[segment], scoped_institution_id(), get_current_user_id(), locale=current_locale()
    )
    return jsonify({"items": items})


@bp.route(f"/api/{_SEGMENTS}/<int:offering_id>", methods=["GET"])
def api_offering_detail(segment: str, offering_id: int):
    auth = ensure_portal(_ROLES)
    if auth is not True:
        return auth
    try:
        item = offerings_service.student_offering_detail(
            SEGMENT_KINDS[segment],
            scoped_institution_id(),
            get_current_user_id(),
            offering_id,
            locale=current_locale(),
        )
    except _ERRORS as exc:
        return service_error(exc)
    return jsonify(item)


@bp.route(f"/api/{_SEGMENTS}/<int:offering_id>/selection", methods=["POST", "PUT"])
def api_submit_selection(segment: str, offering_id: int):
    auth = ensure_portal(_ROLES)
    if auth is not True:
        return auth
    kind = SEGMENT_KINDS[segment]
    payload = json_body()
    if payload is None:
        return json_error("invalid_json", 400)
    selected = payload.get(offerings_service.OPTION_KEYS[kind], payload.get("selected_ids"))
    if selected is None and not request.is_json:
        selected = request.form.getlist(offerings_service.OPTION_KEYS[kind]) or None
    try:
        item = offerings_service.submit_selection(
            kind,
            scoped_institution_id(),
            get_current_user_id(),
            offering_id,
            selected,
        )
    except _ERRORS as exc:
        return service_error(exc)
    return jsonify(item), 201


@bp.route(f"/api/{_SEGMENTS}/<int:offering_id>/selection", methods=["DELETE"])
def api_cancel_selection(segment: str, offering_id: int):
    auth = ensure_portal(_ROLES)
    if auth is not True:
        return auth
    try:
        offerings_service.cancel_selection(
            SEGMENT_KINDS[segment], scoped_institution_id(), get_current_user_id(), offering_id
        )
    except _ERRORS as exc:
        return service_error(exc)
    return jsonify({"status": "cancelled", "offering_id": offering_id})


@bp.route(f"/api/{_SEGMENTS}/<int:offering_id>/statement", methods=["POST"])
def api_upload_statement(segment: str, offering_id: int):
    auth = ensure_portal(_ROLES)
    if auth is not True:
        return auth
    kind = SEGMENT_KINDS[segment]
    institution_id = scoped_institution_id()
    student_id = get_current_user_id()
    try:
        offerings_service.statement_target(kind, institution_id, student_id, offering_id)
        stored = storage_service.save_upload(
            storage_service.BUCKET_STATEMENTS,
            request.files.get("file"),
            institution_id=institution_id,
            prefix=f"statement-{kind}-{offering_id}",
            owner=student_id,
        )
    except StorageError as exc:
        return service_error(exc)
    except _ERRORS as exc:
        return service_error(exc)
    try:
        item = offerings_service.attach_statement(kind, institution_id, student_id, offering_id, stored.url)
    except _ERRORS as exc:
        storage_service.delete_file(stored.bucket, stored.path)
        return service_error(exc)
    return jsonify(item)


@bp.route(f"/api/{_SEGMENTS}/<int:offering_id>/syllabus", methods=["GET"])
def api_syllabus(segment: str, offering_id: int):
    auth = ensure_portal(_ROLES)
    if auth is not True:
        return auth
    try:
        url = offerings_service.student_syllabus_template(
            SEGMENT_KINDS[segment], scoped_institution_id(), get_current_user_id(), offering_id
        )
    except _ERRORS as exc:
        return service_error(exc)
    if not url:
        return json_error("syllabus_not_found", 404)
    return jsonify({"url": url})


def register_student(app: Any) -> None:
    if getattr(app, "_ep_student_bp", False):
        return
    app.register_blueprint(bp)
    setattr(app, "_ep_student_bp", True)
    LOG.debug("Student blueprint registered")


__all__ = ["bp", "register_student"]
