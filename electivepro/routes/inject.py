"""Route registration.

Called from startup to install the tenant guard and register every portal
blueprint. JSON APIs are exempted from form CSRF protection; the HTML sign-in
forms keep it.
"""
from __future__ import annotations

from typing import Any

from electivepro.routes.admin import register_admin
from electivepro.routes.api_public import register_api_public
from electivepro.routes.auth import register_auth
from electivepro.routes.electives import build_electives_blueprint
from electivepro.routes.files import register_files
from electivepro.routes.health import register_health
from electivepro.routes.language_switch import register_language_switch
from electivepro.routes.manager import register_manager
from electivepro.routes.student import register_student
from electivepro.routes.super_admin import register_super_admin
from electivepro.routes.tenancy_guard import register_tenancy_guard
from electivepro.utils import constants
from electivepro.utils.logging import get_logger

LOG = get_logger("routes.inject")

_CSRF_EXEMPT = (
    "api_public",
    "auth_api",
    "language_switch",
    "admin",
    "super_admin",
    "manager",
    "student",
    "admin_electives",
    "manager_electives",
)


def _register_electives(app: Any) -> None:
    if getattr(app, "_ep_electives_bps", False):
        return
    app.register_blueprint(
        build_electives_blueprint("admin_electives", "/admin/api/electives", (constants.ROLE_ADMIN,))
    )
    app.register_blueprint(
        build_electives_blueprint(
            "manager_electives", "/manager/api/electives", (constants.ROLE_PROGRAM_MANAGER,)
        )
    )
    setattr(app, "_ep_electives_bps", True)


def _exempt_json_apis(app: Any) -> None:
    csrf = app.extensions.get("csrf")
    if csrf is None:
        return
    for name in _CSRF_EXEMPT:
        blueprint = app.blueprints.get(name)
        if blueprint is not None:
            csrf.exempt(blueprint)


def register_all(app: Any) -> None:
    register_tenancy_guard(app)
    register_health(app)
    register_api_public(app)
    register_auth(app)
    register_language_switch(app)
    register_super_admin(app)
    register_admin(app)
    register_manager(app)
    register_student(app)
    _register_electives(app)
    register_files(app)
    _exempt_json_apis(app)
    LOG.debug("Routes registered: %s", sorted(app.blueprints))


__all__ = ["register_all"]
