"""Application initialization / wiring.

Orchestrates: Flask app creation, secret and upload limits, Babel, CSRF,
DB init, route registration, CLI commands and super-admin bootstrap.
"""
from __future__ import annotations

import os
import secrets
from typing import Any, Mapping, Optional

from flask import Flask
from flask_wtf.csrf import CSRFProtect

from electivepro import config as app_config
from electivepro.db import init_engine_once
from electivepro.i18n import configure_babel
from electivepro.routes.inject import register_all as register_routes
from electivepro.services import users_service
from electivepro.services.password_service import WeakPasswordError
from electivepro.services.users_service import UserConflictError, UserValidationError
from electivepro.startup.cli import register_cli
from electivepro.utils.logging import get_logger

LOG = get_logger("electivepro.startup")

_PACKAGE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
csrf = CSRFProtect()


def _secret_key(overrides: Mapping[str, Any]) -> str:
    key = overrides.get("SECRET_KEY") or app_config.secret_key()
    if key:
        return str(key)
    LOG.warning("ELECTIVEPRO_SECRET_KEY not set; using an ephemeral key (sessions and links reset on restart)")
    return secrets.token_urlsafe(32)


def _maybe_bootstrap_super_admin() -> None:
    email = app_config.super_admin_bootstrap_email()
    password = app_config.super_admin_bootstrap_password()
    if not email and not password:
        return
    if not email or not password:
        LOG.warning("Super-admin bootstrap skipped (missing email/password)")
        return
    try:
        result = users_service.ensure_super_admin(email, password)
    except (UserValidationError, UserConflictError, WeakPasswordError) as exc:
        LOG.warning("Super-admin bootstrap skipped email=%s reason=%s", email, exc)
        return
    LOG.info("Super-admin bootstrap applied email=%s created=%s", email, result["created"])


def init_app(app: Flask) -> None:
    LOG.debug("init_app starting")
    configure_babel(app)
    csrf.init_app(app)
    init_engine_once()
    LOG.debug("DB engine initialized")
    register_routes(app)
    register_cli(app)
    _maybe_bootstrap_super_admin()
    LOG.info("App startup wiring complete config=%s", app_config.summarize_runtime_config())


def create_app(overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    overrides = dict(overrides or {})
    app = Flask(
        "electivepro",
        template_folder=os.path.join(_PACKAGE_DIR, "templates"),
        static_folder=os.path.join(_PACKAGE_DIR, "static"),
    )
    app.config.update(
        SECRET_KEY=_secret_key(overrides),
        MAX_CONTENT_LENGTH=app_config.max_upload_bytes(),
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        JSON_SORT_KEYS=False,
    )
    app.config.update(overrides)
    init_app(app)
    return app


__all__ = ["create_app", "init_app", "csrf"]
