"""Repository helpers for institutions (tenants)."""
from __future__ import annotations

from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from electivepro.db import app_session
from electivepro.db.models import Institution


class InstitutionExistsError(Exception):
    """Raised when a subdomain is already registered."""


def list_institutions() -> List[Institution]:
    with app_session() as session:
        return session.query(Institution).order_by(Institution.name.asc(), Institution.id.asc()).all()


def get_institution(institution_id: int) -> Optional[Institution]:
    with app_session() as session:
        return session.query(Institution).filter(Institution.id == institution_id).one_or_none()


def get_by_subdomain(subdomain: str, *, active_only: bool = False) -> Optional[Institution]:
    with app_session() as session:
        query = session.query(Institution).filter(Institution.subdomain == subdomain)
        if active_only:
            query = query.filter(Institution.is_active.is_(True))
        return query.one_or_none()


def create_institution(**fields) -> Institution:
    institution = Institution(**fields)
    try:
        with app_session() as session:
            session.add(institution)
    except IntegrityError as exc:
        raise InstitutionExistsError("Subdomain already registered") from exc
    return institution


def update_institution(institution_id: int, **fields) -> Optional[Institution]:
    try:
        with app_session() as session:
            institution = (
                session.query(Institution).filter(Institution.id == institution_id).one_or_none()
            )
            if not institution:
                return None
            for key, value in fields.items():
                setattr(institution, key, value)
    except IntegrityError as exc:
        raise InstitutionExistsError("Subdomain already registered") from exc
    return institution


def delete_institution(institution_id: int) -> bool:
    with app_session() as session:
        deleted = session.query(Institution).filter(Institution.id == institution_id).delete()
    return bool(deleted)


def count_institutions(*, active_only: bool = False) -> int:
    with app_session() as session:
        query = session.query(Institution)
        if active_only:
            query = query.filter(Institution.is_active.is_(True))
        return int(query.count())


__all__ = [
    "InstitutionExistsError",
    "list_institutions",
    "get_institution",
    "get_by_subdomain",
    "create_institution",
    "update_institution",
    "delete_institution",
    "count_institutions",
]
