"""Shared language preference helpers for UI switching."""
from __future__ import annotations

from typing import Any, Optional

SESSION_LOCALE_KEY = "ep_preferred_locale"
SUPPORTED_LANGUAGES = ("en", "ru")


def normalize_language_choice(raw: Optional[str]) -> Optional[str]:
    """Normalize a user-provided language code (``ru_RU``, ``EN``) to a supported value."""
    if not raw:
        return None
    code = str(raw).strip().lower().replace("-", "_").split("_", 1)[0]
    return code if code in SUPPORTED_LANGUAGES else None


def localized_field(row: Any, field: str, locale: Optional[str]) -> Optional[str]:
    """Return `<field>_<locale>` when set, falling back to the base field."""
    getter = row.get if isinstance(row, dict) else lambda key: getattr(row, key, None)
    lang = normalize_language_choice(locale)
    if lang and lang != "en":
        translated = getter(f"{field}_{lang}")
        if translated:
            return translated
    return getter(field)


def localized_name(row: Any, locale: Optional[str]) -> Optional[str]:
    return localized_field(row, "name", locale)


__all__ = [
    "SESSION_LOCALE_KEY",
    "SUPPORTED_LANGUAGES",
    "normalize_language_choice",
    "localized_field",
    "localized_name",
]
