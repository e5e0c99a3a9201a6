"""Request-level tenant resolution and identity loading.

A ``before_request`` hook classifies every request by host (see
`tenancy_service.resolve_route`), redirects where the portal rules demand
it, and stores the tenant context on ``flask.g`` for views and templates.
"""
from __future__ import annotations

from typing import Any

from flask import Blueprint, g, redirect, render_template, request

from electivepro.services import auth_service, tenancy_service
from electivepro.utils.identity import clear_identity_session, get_current_user_id, is_authenticated
from electivepro.utils.logging import get_logger

LOG = get_logger("tenancy_guard")

bp = Blueprint("tenancy", __name__)


def _resolve_tenant():
    g.tenant = None
    g.subdomain = None
    if request.endpoint == "static" or tenancy_service.is_excluded_path(request.path):
        return None
    decision = tenancy_service.resolve_route(
        request.path,
        request.host,
        request.args.get("subdomain"),
        scheme=request.scheme,
    )
    if not decision.allowed:
        LOG.debug("redirect path=%s host=%s target=%s", request.path, request.host, decision.target)
        return redirect(decision.target, code=302)
    g.tenant = decision.tenant
    g.subdomain = decision.subdomain
    return None


def _load_identity():
    g.current_profile = None
    g.profile_locale = None
    if not is_authenticated():
        return None
    profile = auth_service.load_session_user(get_current_user_id())
    if profile is None:
        LOG.info("Clearing stale session user_id=%s", get_current_user_id())
        clear_identity_session()
        return None
    g.current_profile = profile
    g.profile_locale = profile.locale
    return None


def _inject_tenant_context():
    tenant = getattr(g, "tenant", None)
    profile = getattr(g, "current_profile", None)
    return {
        "tenant": tenant,
        "branding": {
            "name": tenant.name if tenant else "ElectivePRO",
            "logo_url": tenant.logo_url if tenant else None,
            "favicon_url": tenant.favicon_url if tenant else None,
            "primary_color": (tenant.primary_color if tenant else None) or "#1f4e79",
        },
        "current_profile": profile,
    }


@bp.route("/institution-required", methods=["GET"])
def institution_required():  # pragma: no cover - thin render wrapper
    return render_template("institution_required.html")


def register_tenancy_guard(app: Any) -> None:
    if getattr(app, "_ep_tenancy_guard", False):
        return
    app.before_request(_resolve_tenant)
    app.before_request(_load_identity)
    app.context_processor(_inject_tenant_context)
    app.register_blueprint(bp)
    setattr(app, "_ep_tenancy_guard", True)
    LOG.debug("Tenancy guard registered")


__all__ = ["register_tenancy_guard", "bp"]
