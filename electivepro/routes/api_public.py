"""Public tenant lookup endpoint used by clients to validate a subdomain."""
from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify

from electivepro.services import tenancy_service
from electivepro.utils.logging import get_logger

LOG = get_logger("api_public")

bp = Blueprint("api_public", __name__, url_prefix="/api/subdomain")


@bp.route("/<subdomain>", methods=["GET"])
def subdomain_lookup(subdomain: str):
    try:
        tenant = tenancy_service.lookup_institution(subdomain)
    except tenancy_service.TenantLookupError:
        return jsonify({"exists": False, "error": "lookup_failed"}), 500
    if tenant is None:
        return jsonify({"exists": False}), 404
    return jsonify({"exists": True, "institution": tenant.as_dict()})


def register_api_public(app: Any) -> None:
    if getattr(app, "_ep_api_public", False):
        return
    app.register_blueprint(bp)
    setattr(app, "_ep_api_public", True)
    LOG.debug("Public API blueprint registered")


__all__ = ["register_api_public", "bp"]
