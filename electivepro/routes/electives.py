"""Elective pack / exchange program management API.

The same blueprint is built twice: for program managers under
``/manager/api/electives`` (institution from the subdomain) and for
institution admins under ``/admin/api/electives`` (institution from the
admin's profile). ``packs`` addresses elective packs, ``exchange`` exchange
programs.
"""
from __future__ import annotations

from typing import Iterable

from flask import Blueprint, Response, jsonify, request

from electivepro.db.repositories.offerings_repo import KIND_COURSE, KIND_EXCHANGE
from electivepro.routes.common import (
    current_locale,
    ensure_portal,
    json_body,
    json_error,
    scoped_institution_id,
    service_error,
)
from electivepro.services import offerings_service, storage_service
from electivepro.services.offerings_service import (
    OfferingNotFoundError,
    OfferingStateError,
    OfferingValidationError,
)
from electivepro.services.storage_service import StorageError
from electivepro.utils.identity import get_current_user_id
from electivepro.utils.logging import get_logger

LOG = get_logger("electives")

SEGMENT_KINDS = {"packs": KIND_COURSE, "exchange": KIND_EXCHANGE}
_SEGMENTS = "<any(packs, exchange):segment>"
_ERRORS = (OfferingValidationError, OfferingNotFoundError, OfferingStateError)


def build_electives_blueprint(name: str, url_prefix: str, roles: Iterable[str]) -> Blueprint:
    bp = Blueprint(name, __name__, url_prefix=url_prefix)
    allowed = tuple(roles)

    def _auth():
        return ensure_portal(allowed, prefer_redirect=False)

    @bp.route(f"/{_SEGMENTS}", methods=["GET"])
    def list_offerings(segment: str):
        auth = _auth()
        if auth is not True:
            return auth
        kind = SEGMENT_KINDS[segment]
        items = offerings_service.list_offerings(
            kind,
            scoped_institution_id(),
            status=request.args.get("status") or None,
            locale=current_locale(),
        )
        return jsonify({"items": items})

    @bp.route(f"/{_SEGMENTS}", methods=["POST"])
    def create_offering(segment: str):
        auth = _auth()
        if auth is not True:
            return auth
        payload = json_body()
        if payload is None:
            return json_error("invalid_json", 400)
        try:
            item = offerings_service.create_offering(
                SEGMENT_KINDS[segment], scoped_institution_id(), payload, created_by=get_current_user_id()
            )
        except _ERRORS as exc:
            return service_error(exc)
        return jsonify(item), 201

    @bp.route(f"/{_SEGMENTS}/<int:offering_id>", methods=["GET"])
    def get_offering(segment: str, offering_id: int):
        auth = _auth()
        if auth is not True:
            return auth
        try:
            item = offerings_service.get_offering(
                SEGMENT_KINDS[segment], scoped_institution_id(), offering_id, locale=current_locale()
            )
        except _ERRORS as exc:
            return service_error(exc)
        return jsonify(item)

    @bp.route(f"/{_SEGMENTS}/<int:offering_id>", methods=["PUT", "PATCH"])
    def update_offering(segment: str, offering_id: int):
        auth = _auth()
        if auth is not True:
            return auth
        payload = json_body()
        if payload is None:
            return json_error("invalid_json", 400)
        try:
            item = offerings_service.update_offering(
                SEGMENT_KINDS[segment], scoped_institution_id(), offering_id, payload
            )
        except _ERRORS as exc:
            return service_error(exc)
        return jsonify(item)

    @bp.route(f"/{_SEGMENTS}/<int:offering_id>/status", methods=["POST"])
    def change_status(segment: str, offering_id: int):
        auth = _auth()
        if auth is not True:
            return auth
        payload = json_body() or {}
        try:
            item = offerings_service.change_status(
                SEGMENT_KINDS[segment], scoped_institution_id(), offering_id, payload.get("status")
            )
        except _ERRORS as exc:
            return service_error(exc)
        return jsonify(item)

    @bp.route(f"/{_SEGMENTS}/<int:offering_id>", methods=["DELETE"])
    def delete_offering(segment: str, offering_id: int):
        auth = _auth()
        if auth is not True:
            return auth
        try:
            offerings_service.delete_offering(SEGMENT_KINDS[segment], scoped_institution_id(), offering_id)
        except _ERRORS as exc:
            return service_error(exc)
        return jsonify({"status": "deleted", "id": offering_id})

    @bp.route(f"/{_SEGMENTS}/<int:offering_id>/syllabus", methods=["POST"])
    def upload_syllabus(segment: str, offering_id: int):
        auth = _auth()
        if auth is not True:
            return auth
        kind = SEGMENT_KINDS[segment]
        institution_id = scoped_institution_id()
        try:
            offerings_service.get_offering(kind, institution_id, offering_id)
            stored = storage_service.save_upload(
                storage_service.BUCKET_SYLLABI,
                request.files.get("file"),
                institution_id=institution_id,
                prefix=f"syllabus-{kind}",
                owner=offering_id,
            )
        except StorageError as exc:
            return service_error(exc)
        except _ERRORS as exc:
            return service_error(exc)
        try:
            item = offerings_service.update_offering(
                kind, institution_id, offering_id, {"syllabus_template_url": stored.url}
            )
        except _ERRORS as exc:
            storage_service.delete_file(stored.bucket, stored.path)
            return service_error(exc)
        return jsonify(item)

    @bp.route(f"/{_SEGMENTS}/<int:offering_id>/selections", methods=["GET"])
    def list_selections(segment: str, offering_id: int):
        auth = _auth()
        if auth is not True:
            return auth
        try:
            items = offerings_service.list_selections(
                SEGMENT_KINDS[segment],
                scoped_institution_id(),
                offering_id,
                status=request.args.get("status") or None,
                locale=current_locale(),
            )
        except _ERRORS as exc:
            return service_error(exc)
        return jsonify({"items": items})

    @bp.route(f"/{_SEGMENTS}/<int:offering_id>/options/<int:option_id>/selections", methods=["GET"])
    def option_selections(segment: str, offering_id: int, option_id: int):
        auth = _auth()
        if auth is not True:
            return auth
        try:
            items = offerings_service.option_selections(
                SEGMENT_KINDS[segment], scoped_institution_id(), offering_id, option_id
            )
        except _ERRORS as exc:
            return service_error(exc)
        return jsonify({"items": items})

    @bp.route(f"/{_SEGMENTS}/selections/<int:selection_id>/review", methods=["POST"])
    def review_selection(segment: str, selection_id: int):
        auth = _auth()
        if auth is not True:
            return auth
        payload = json_body() or {}
        try:
            item = offerings_service.review_selection(
                SEGMENT_KINDS[segment], scoped_institution_id(), selection_id, payload.get("status")
            )
        except _ERRORS as exc:
            return service_error(exc)
        return jsonify(item)

    @bp.route(f"/{_SEGMENTS}/selections/<int:selection_id>", methods=["PUT", "PATCH"])
    def edit_selection(segment: str, selection_id: int):
        auth = _auth()
        if auth is not True:
            return auth
        payload = json_body()
        if payload is None:
            return json_error("invalid_json", 400)
        try:
            item = offerings_service.edit_selection(
                SEGMENT_KINDS[segment], scoped_institution_id(), selection_id, payload
            )
        except _ERRORS as exc:
            return service_error(exc)
        return jsonify(item)

    @bp.route(f"/{_SEGMENTS}/<int:offering_id>/export.csv", methods=["GET"])
    def export_selections(segment: str, offering_id: int):
        auth = _auth()
        if auth is not True:
            return auth
        try:
            body = offerings_service.export_selections_csv(
                SEGMENT_KINDS[segment], scoped_institution_id(), offering_id, locale=current_locale()
            )
        except _ERRORS as exc:
            return service_error(exc)
        filename = f"{segment}-{offering_id}-selections.csv"
        return Response(
            body,
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    return bp


__all__ = ["build_electives_blueprint", "SEGMENT_KINDS"]
