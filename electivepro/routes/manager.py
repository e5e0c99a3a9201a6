"""Program manager portal (institution subdomain).

Offering management lives in the shared electives blueprint mounted at
``/manager/api/electives``; this module serves the dashboard and the
read-only catalogue managers pick options from.
"""
from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, render_template, request

from electivepro.routes.common import current_locale, ensure_portal, scoped_institution_id, service_error
from electivepro.services import catalogue_service, dashboard_service
from electivepro.services.catalogue_service import CatalogueNotFoundError
from electivepro.utils import constants
from electivepro.utils.logging import get_logger

LOG = get_logger("manager")

bp = Blueprint("manager", __name__, url_prefix="/manager")
_ROLES = (constants.ROLE_PROGRAM_MANAGER,)
_FILTERS = ("status", "degree_id", "program_id", "enrollment_year", "country")
_READABLE = {
    "courses": "course",
    "universities": "university",
    "groups": "group",
    "programs": "program",
    "degrees": "degree",
    "academic-years": "academic_year",
}


@bp.route("/dashboard", methods=["GET"])
def dashboard_page():  # pragma: no cover - thin render wrapper
    auth = ensure_portal(_ROLES, prefer_redirect=True)
    if auth is not True:
        return auth
    return render_template(
        "dashboard.html",
        portal="manager",
        summary=dashboard_service.institution_summary(scoped_institution_id()),
    )


@bp.route("/api/dashboard", methods=["GET"])
def api_dashboard():
    auth = ensure_portal(_ROLES)
    if auth is not True:
        return auth
    return jsonify(dashboard_service.institution_summary(scoped_institution_id()))


@bp.route("/api/catalogue/<name>", methods=["GET"])
def api_catalogue(name: str):
    auth = ensure_portal(_ROLES)
    if auth is not True:
        return auth
    entity = _READABLE.get(name)
    if entity is None:
        return service_error(CatalogueNotFoundError("entity_unknown"))
    filters = {key: request.args.get(key) for key in _FILTERS if request.args.get(key)}
    filters.setdefault("status", constants.STATUS_ACTIVE)
    items = catalogue_service.list_entities(entity, scoped_institution_id(), locale=current_locale(), **filters)
    return jsonify({"items": items})


def register_manager(app: Any) -> None:
    if getattr(app, "_ep_manager_bp", False):
        return
    app.register_blueprint(bp)
    setattr(app, "_ep_manager_bp", True)
    LOG.debug("Manager blueprint registered")


__all__ = ["bp", "register_manager"]
