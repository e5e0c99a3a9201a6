"""Flask-Babel wiring: locale selection and translation directories."""
from __future__ import annotations

from pathlib import Path

from flask import g, session
from flask_babel import Babel

from electivepro import config as app_config
from electivepro.i18n.preferences import SESSION_LOCALE_KEY, normalize_language_choice
from electivepro.utils.logging import get_logger

LOG = get_logger("i18n")

_TRANSLATIONS_DIR = Path(__file__).resolve().parent / "translations"


def select_locale() -> str:
    """Session preference, then the signed-in profile locale, then the default."""
    preferred = normalize_language_choice(session.get(SESSION_LOCALE_KEY))
    if preferred:
        return preferred
    profile_locale = normalize_language_choice(getattr(g, "profile_locale", None))
    if profile_locale:
        return profile_locale
    return normalize_language_choice(app_config.default_locale()) or "en"


def configure_babel(app) -> Babel:
    if getattr(app, "_electivepro_babel", None) is not None:
        return app._electivepro_babel  # type: ignore[attr-defined]
    app.config.setdefault("BABEL_DEFAULT_LOCALE", app_config.default_locale())
    if _TRANSLATIONS_DIR.is_dir():
        app.config.setdefault("BABEL_TRANSLATION_DIRECTORIES", str(_TRANSLATIONS_DIR))
    babel = Babel(app, locale_selector=select_locale)
    setattr(app, "_electivepro_babel", babel)
    LOG.debug("Babel configured default=%s", app.config["BABEL_DEFAULT_LOCALE"])
    return babel


__all__ = ["configure_babel", "select_locale"]
