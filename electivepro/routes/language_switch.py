"""Language switch endpoint for users and anonymous visitors."""
from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, request, session

from electivepro.i18n.preferences import SESSION_LOCALE_KEY, SUPPORTED_LANGUAGES, normalize_language_choice
from electivepro.services import users_service
from electivepro.utils.identity import get_current_user_id
from electivepro.utils.logging import get_logger

LOG = get_logger("language_switch")

bp = Blueprint("language_switch", __name__)


@bp.route("/language/switch", methods=["POST", "GET"])
def switch_language():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    raw_lang = payload.get("language") or request.values.get("language") or request.values.get("lang")
    normalized = normalize_language_choice(raw_lang)
    if not normalized:
        return jsonify({"error": "unsupported_language", "supported": list(SUPPORTED_LANGUAGES)}), 400

    session[SESSION_LOCALE_KEY] = normalized
    session.modified = True

    user_id = get_current_user_id()
    if user_id:
        users_service.update_locale(user_id, normalized)
        LOG.info("Locale stored user_id=%s locale=%s", user_id, normalized)

    target = payload.get("next") or request.values.get("next") or request.referrer or "/"
    return jsonify({"status": "ok", "language": normalized, "redirect": target})


def register_language_switch(app: Any) -> None:
    if getattr(app, "_ep_language_switch", False):
        return
    app.register_blueprint(bp)
    setattr(app, "_ep_language_switch", True)
    LOG.debug("Language switch blueprint registered")


__all__ = ["register_language_switch", "bp"]
