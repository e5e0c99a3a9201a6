"""Input coercion helpers shared by the service layer.

Each helper raises the caller-provided exception class with a stable error
code so routes can map failures without inspecting messages.
"""
from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Any, Iterable, List, Optional, Sequence, Type

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def clean_text(value: Any, *, max_length: int = 255) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text[:max_length]


def require_text(value: Any, code: str, error: Type[Exception], *, max_length: int = 255) -> str:
    text = clean_text(value, max_length=max_length)
    if not text:
        raise error(code)
    return text


def parse_int(
    value: Any,
    code: str,
    error: Type[Exception],
    *,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
    allow_none: bool = False,
) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_none:
            return None
        raise error(code)
    if isinstance(value, bool):
        raise error(code)
    try:
        number = int(str(value).strip()) if not isinstance(value, int) else value
    except (TypeError, ValueError) as exc:
        raise error(code) from exc
    if minimum is not None and number < minimum:
        raise error(code)
    if maximum is not None and number > maximum:
        raise error(code)
    return number


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    return default


def parse_choice(
    value: Any,
    choices: Sequence[str],
    code: str,
    error: Type[Exception],
    *,
    default: Optional[str] = None,
) -> str:
    candidate = (str(value).strip().lower() if value is not None else "") or default
    if candidate not in choices:
        raise error(code)
    return candidate  # type: ignore[return-value]


def parse_datetime(value: Any, code: str, error: Type[Exception], *, end_of_day: bool = True) -> datetime:
    """Parse ISO dates/datetimes into naive UTC datetimes.

    A bare date (YYYY-MM-DD) is expanded to the end of that day when
    `end_of_day` is set, so a deadline of "2025-01-31" includes the 31st.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time(23, 59, 59) if end_of_day else time.min)
    else:
        raw = clean_text(value, max_length=64)
        if not raw:
            raise error(code)
        try:
            if len(raw) == 10:
                day = datetime.strptime(raw, "%Y-%m-%d").date()
                parsed = datetime.combine(day, time(23, 59, 59) if end_of_day else time.min)
            else:
                parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError as exc:
            raise error(code) from exc
    if parsed.tzinfo:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_date(value: Any, code: str, error: Type[Exception], *, allow_none: bool = True) -> Optional[date]:
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_none:
            return None
        raise error(code)
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return datetime.strptime(str(value).strip()[:10], "%Y-%m-%d").date()
    except ValueError as exc:
        raise error(code) from exc


def parse_id_list(value: Any, code: str, error: Type[Exception]) -> List[int]:
    """Coerce a list (or comma separated string) of ids, preserving order."""
    if value is None:
        return []
    items: Iterable[Any]
    if isinstance(value, str):
        items = [part for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        raise error(code)
    result: List[int] = []
    for item in items:
        if isinstance(item, bool):
            raise error(code)
        try:
            result.append(int(str(item).strip()))
        except (TypeError, ValueError) as exc:
            raise error(code) from exc
    return result


__all__ = [
    "clean_text",
    "require_text",
    "parse_int",
    "parse_bool",
    "parse_choice",
    "parse_datetime",
    "parse_date",
    "parse_id_list",
]
