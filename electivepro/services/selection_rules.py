"""Validation rules shared by course and exchange selections."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional

from electivepro.utils import constants


class SelectionRuleError(RuntimeError):
    """A submitted selection violates an offering rule."""


def check_open(status: str, deadline: Optional[datetime], now: Optional[datetime] = None) -> None:
    if status != constants.PACK_PUBLISHED:
        raise SelectionRuleError("offering_not_open")
    current = now or datetime.utcnow()
    if deadline is not None and current > deadline:
        raise SelectionRuleError("deadline_passed")


def check_choice(selected: Iterable[int], allowed: Iterable[int], max_selections: int) -> List[int]:
    """Validate count, duplicates and membership; return the ids in order."""
    ids = list(selected)
    if not ids:
        raise SelectionRuleError("selection_empty")
    if len(set(ids)) != len(ids):
        raise SelectionRuleError("selection_duplicate")
    if len(ids) > max_selections:
        raise SelectionRuleError("selection_limit_exceeded")
    allowed_ids = set(allowed)
    if any(option_id not in allowed_ids for option_id in ids):
        raise SelectionRuleError("option_not_in_offering")
    return ids


def check_capacity(
    selected: Iterable[int],
    capacities: Mapping[int, Optional[int]],
    usage: Mapping[int, int],
) -> None:
    """`usage` counts pending + approved selections of *other* students."""
    for option_id in selected:
        limit = capacities.get(option_id)
        if limit is not None and usage.get(option_id, 0) >= limit:
            raise SelectionRuleError("option_full")


def check_editable(existing_status: Optional[str]) -> None:
    if existing_status == constants.SELECTION_APPROVED:
        raise SelectionRuleError("selection_locked")


def validate_submission(
    *,
    offering: Any,
    selected: Iterable[int],
    capacities: Mapping[int, Optional[int]],
    usage: Mapping[int, int],
    existing_status: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[int]:
    """Run every student-side rule against an offering row, in order."""
    check_open(offering.status, offering.deadline, now)
    check_editable(existing_status)
    ids = check_choice(selected, offering.option_id_list(), int(offering.max_selections or 0))
    check_capacity(ids, capacities, usage)
    return ids


__all__ = [
    "SelectionRuleError",
    "check_open",
    "check_choice",
    "check_capacity",
    "check_editable",
    "validate_submission",
]
