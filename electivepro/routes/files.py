"""Stored file downloads: ``/files/<bucket>/<path>``.

Branding images are public; statements and syllabi are limited to members
of the owning institution (statements additionally to their student).
"""
from __future__ import annotations

from typing import Any

from flask import Blueprint, send_file

from electivepro.routes.common import json_error, service_error
from electivepro.services import storage_service
from electivepro.services.storage_service import StorageError, StorageNotFoundError
from electivepro.utils.identity import get_current_institution_id, get_current_role, get_current_user_id
from electivepro.utils.logging import get_logger

LOG = get_logger("files")

bp = Blueprint("files", __name__)


@bp.route("/files/<bucket>/<path:path>", methods=["GET"])
def download(bucket: str, path: str):
    if bucket not in storage_service.ALLOWED_EXTENSIONS:
        return json_error("bucket_unknown", 404)
    allowed = storage_service.can_access(
        bucket,
        path,
        role=get_current_role(),
        user_id=get_current_user_id(),
        institution_id=get_current_institution_id(),
    )
    if not allowed:
        LOG.info("File access denied bucket=%s path=%s user_id=%s", bucket, path, get_current_user_id())
        if get_current_user_id() is None:
            return json_error("authentication_required", 401)
        return json_error("forbidden", 403)
    try:
        full_path = storage_service.resolve_path(bucket, path)
    except (StorageError, StorageNotFoundError) as exc:
        return service_error(exc)
    return send_file(full_path)


def register_files(app: Any) -> None:
    if getattr(app, "_ep_files_bp", False):
        return
    app.register_blueprint(bp)
    setattr(app, "_ep_files_bp", True)
    LOG.debug("Files blueprint registered")


__all__ = ["bp", "register_files"]
