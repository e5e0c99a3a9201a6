"""Repository helpers for institution catalogue rows.

Degrees, programs, groups, academic years, courses and universities share
the same tenant-scoped CRUD shape, so the helpers take the model class.
Every lookup is filtered by `institution_id`; a row of another tenant reads
as missing.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Type

from sqlalchemy.exc import IntegrityError

from electivepro.db import app_session
from electivepro.db.models import (
    AcademicYear,
    Course,
    Degree,
    Group,
    Program,
    University,
)

CATALOGUE_MODELS: Dict[str, Type] = {
    "degree": Degree,
    "program": Program,
    "group": Group,
    "academic_year": AcademicYear,
    "course": Course,
    "university": University,
}


class CatalogueExistsError(Exception):
    """Raised when a unique code/name collides within an institution."""


def list_rows(model: Type, institution_id: int, **filters: Any) -> List[Any]:
    with app_session() as session:
        query = session.query(model).filter(model.institution_id == institution_id)
        for key, value in filters.items():
            if value is not None:
                query = query.filter(getattr(model, key) == value)
        order_column = getattr(model, "name")
        return query.order_by(order_column.asc(), model.id.asc()).all()


def get_row(model: Type, institution_id: int, row_id: int) -> Optional[Any]:
    with app_session() as session:
        return (
            session.query(model)
            .filter(model.id == row_id, model.institution_id == institution_id)
            .one_or_none()
        )


def get_rows_by_ids(model: Type, institution_id: int, ids: Iterable[int]) -> List[Any]:
    id_list = list(ids)
    if not id_list:
        return []
    with app_session() as session:
        return (
            session.query(model)
            .filter(model.institution_id == institution_id, model.id.in_(id_list))
            .all()
        )


def create_row(model: Type, **fields: Any) -> Any:
    row = model(**fields)
    try:
        with app_session() as session:
            session.add(row)
    except IntegrityError as exc:
        raise CatalogueExistsError(f"{model.__tablename__} already exists") from exc
    return row


def update_row(model: Type, institution_id: int, row_id: int, **fields: Any) -> Optional[Any]:
    try:
        with app_session() as session:
            row = (
                session.query(model)
                .filter(model.id == row_id, model.institution_id == institution_id)
                .one_or_none()
            )
            if row is None:
                return None
            for key, value in fields.items():
                setattr(row, key, value)
    except IntegrityError as exc:
        raise CatalogueExistsError(f"{model.__tablename__} already exists") from exc
    return row


def delete_row(model: Type, institution_id: int, row_id: int) -> bool:
    with app_session() as session:
        row = (
            session.query(model)
            .filter(model.id == row_id, model.institution_id == institution_id)
            .one_or_none()
        )
        if row is None:
            return False
        session.delete(row)
        return True


def count_rows(model: Type, institution_id: int, **filters: Any) -> int:
    with app_session() as session:
        query = session.query(model).filter(model.institution_id == institution_id)
        for key, value in filters.items():
            query = query.filter(getattr(model, key) == value)
        return int(query.count())


__all__ = [
    "CATALOGUE_MODELS",
    "CatalogueExistsError",
    "list_rows",
    "get_row",
    "get_rows_by_ids",
    "create_row",
    "update_row",
    "delete_row",
    "count_rows",
]
