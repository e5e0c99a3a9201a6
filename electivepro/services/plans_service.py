"""Subscription plan management and user-limit enforcement."""
from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping

from electivepro.db.repositories import institutions_repo, plans_repo, profiles_repo
from electivepro.db.repositories.plans_repo import PlanExistsError
from electivepro.utils.forms import clean_text, parse_bool, parse_int, require_text
from electivepro.utils.logging import get_logger

LOG = get_logger("plans_service")
_CODE_RE = re.compile(r"^[a-z0-9][a-z0-9_-]{0,63}$")


class PlanValidationError(ValueError):
    """Invalid plan payload."""


class PlanNotFoundError(RuntimeError):
    """Plan id does not exist."""


class PlanConflictError(RuntimeError):
    """Plan code taken, or plan still referenced."""


class PlanLimitReachedError(RuntimeError):
    """Institution reached the user limit of its plan."""


def _clean_code(raw: Any) -> str:
    code = require_text(raw, "code_required", PlanValidationError, max_length=64).lower()
    if not _CODE_RE.match(code):
        raise PlanValidationError("code_invalid")
    return code


def _fields_from_payload(payload: Mapping[str, Any], *, partial: bool) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    if not partial or "code" in payload:
        fields["code"] = _clean_code(payload.get("code"))
    if not partial or "name" in payload:
        fields["name"] = require_text(payload.get("name"), "name_required", PlanValidationError)
    if not partial or "price_cents" in payload:
        fields["price_cents"] = parse_int(
            payload.get("price_cents", 0), "price_invalid", PlanValidationError, minimum=0
        )
    if not partial or "user_limit" in payload:
        fields["user_limit"] = parse_int(
            payload.get("user_limit"), "user_limit_invalid", PlanValidationError, minimum=1, allow_none=True
        )
    if "description" in payload or not partial:
        fields["description"] = clean_text(payload.get("description"), max_length=2000)
    if "is_active" in payload:
        fields["is_active"] = parse_bool(payload.get("is_active"), default=True)
    return fields


def list_plans() -> List[dict]:
    return [plan.as_dict() for plan in plans_repo.list_plans()]


def get_plan(plan_id: int) -> dict:
    plan = plans_repo.get_plan(plan_id)
    if plan is None:
        raise PlanNotFoundError("plan_not_found")
    return plan.as_dict()


def create_plan(payload: Mapping[str, Any]) -> dict:
    fields = _fields_from_payload(payload, partial=False)
    try:
        plan = plans_repo.create_plan(**fields)
    except PlanExistsError as exc:
        raise PlanConflictError("plan_code_taken") from exc
    LOG.info("Plan created id=%s code=%s", plan.id, plan.code)
    return plan.as_dict()


def update_plan(plan_id: int, payload: Mapping[str, Any]) -> dict:
    fields = _fields_from_payload(payload, partial=True)
    try:
        plan = plans_repo.update_plan(plan_id, **fields)
    except PlanExistsError as exc:
        raise PlanConflictError("plan_code_taken") from exc
    if plan is None:
        raise PlanNotFoundError("plan_not_found")
    LOG.info("Plan updated id=%s fields=%s", plan_id, sorted(fields))
    return plan.as_dict()


def delete_plan(plan_id: int) -> None:
    if plans_repo.get_plan(plan_id) is None:
        raise PlanNotFoundError("plan_not_found")
    if plans_repo.count_institutions_on_plan(plan_id):
        raise PlanConflictError("plan_in_use")
    plans_repo.delete_plan(plan_id)
    LOG.info("Plan deleted id=%s", plan_id)


def ensure_user_capacity(institution_id: int, additional: int = 1) -> None:
    """Raise when adding `additional` users would exceed the plan limit."""
    institution = institutions_repo.get_institution(institution_id)
    if institution is None or not institution.plan_id:
        return
    plan = plans_repo.get_plan(institution.plan_id)
    if plan is None or plan.user_limit is None:
        return
    current = profiles_repo.count_profiles(institution_id=institution_id)
    if current + additional > plan.user_limit:
        LOG.info(
            "User limit reached institution_id=%s limit=%s current=%s",
            institution_id,
            plan.user_limit,
            current,
        )
        raise PlanLimitReachedError("user_limit_reached")


__all__ = [
    "PlanValidationError",
    "PlanNotFoundError",
    "PlanConflictError",
    "PlanLimitReachedError",
    "list_plans",
    "get_plan",
    "create_plan",
    "update_plan",
    "delete_plan",
    "ensure_user_capacity",
]
