"""Repository helpers for subscription plans."""
from __future__ import annotations

from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from electivepro.db import app_session
from electivepro.db.models import Institution, SubscriptionPlan


class PlanExistsError(Exception):
    """Raised when a plan code is already taken."""


def list_plans(active_only: bool = False) -> List[SubscriptionPlan]:
    with app_session() as session:
        query = session.query(SubscriptionPlan)
        if active_only:
            query = query.filter(SubscriptionPlan.is_active.is_(True))
        return query.order_by(SubscriptionPlan.price_cents.asc(), SubscriptionPlan.id.asc()).all()


def get_plan(plan_id: int) -> Optional[SubscriptionPlan]:
    with app_session() as session:
        return session.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).one_or_none()


def get_plan_by_code(code: str) -> Optional[SubscriptionPlan]:
    with app_session() as session:
        return session.query(SubscriptionPlan).filter(SubscriptionPlan.code == code).one_or_none()


def create_plan(**fields) -> SubscriptionPlan:
    plan = SubscriptionPlan(**fields)
    try:
        with app_session() as session:
            session.add(plan)
    except IntegrityError as exc:
        raise PlanExistsError("Plan code already exists") from exc
    return plan


def update_plan(plan_id: int, **fields) -> Optional[SubscriptionPlan]:
    try:
        with app_session() as session:
            plan = session.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).one_or_none()
            if not plan:
                return None
            for key, value in fields.items():
                setattr(plan, key, value)
    except IntegrityError as exc:
        raise PlanExistsError("Plan code already exists") from exc
    return plan


def delete_plan(plan_id: int) -> bool:
    with app_session() as session:
        plan = session.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).one_or_none()
        if not plan:
            return False
        session.delete(plan)
        return True


def count_institutions_on_plan(plan_id: int) -> int:
    with app_session() as session:
        return int(session.query(Institution).filter(Institution.plan_id == plan_id).count())


def count_plans() -> int:
    with app_session() as session:
        return int(session.query(SubscriptionPlan).count())


__all__ = [
    "PlanExistsError",
    "list_plans",
    "get_plan",
    "get_plan_by_code",
    "create_plan",
    "update_plan",
    "delete_plan",
    "count_institutions_on_plan",
    "count_plans",
]
