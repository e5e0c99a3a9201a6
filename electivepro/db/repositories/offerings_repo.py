"""Repository helpers for elective packs, exchange programs and selections.

Both offering kinds share one shape; `kind` is either ``"course"`` (elective
packs with course selections) or ``"exchange"`` (exchange programs with
university selections).
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from electivepro.db import app_session
from electivepro.db.models import (
    CourseSelection,
    ElectivePack,
    ExchangeProgram,
    ExchangeSelection,
)

KIND_COURSE = "course"
KIND_EXCHANGE = "exchange"
_OFFERINGS = {KIND_COURSE: ElectivePack, KIND_EXCHANGE: ExchangeProgram}
_SELECTIONS = {KIND_COURSE: CourseSelection, KIND_EXCHANGE: ExchangeSelection}


class SelectionExistsError(Exception):
    """Raised when a student already holds a selection for the offering."""


def _offering_model(kind: str):
    try:
        return _OFFERINGS[kind]
    except KeyError as exc:
        raise ValueError("invalid_offering_kind") from exc


def _selection_model(kind: str):
    try:
        return _SELECTIONS[kind]
    except KeyError as exc:
        raise ValueError("invalid_offering_kind") from exc


def _offering_fk(kind: str):
    model = _selection_model(kind)
    return model.elective_pack_id if kind == KIND_COURSE else model.exchange_program_id


# ---------------- offerings ---------------

def list_offerings(
    kind: str,
    institution_id: int,
    *,
    statuses: Optional[Sequence[str]] = None,
) -> List[Any]:
    model = _offering_model(kind)
    with app_session() as session:
        query = session.query(model).filter(model.institution_id == institution_id)
        if statuses:
            query = query.filter(model.status.in_(list(statuses)))
        return query.order_by(model.deadline.desc(), model.id.desc()).all()


def get_offering(kind: str, institution_id: int, offering_id: int) -> Optional[Any]:
    model = _offering_model(kind)
    with app_session() as session:
        return (
            session.query(model)
            .filter(model.id == offering_id, model.institution_id == institution_id)
            .one_or_none()
        )


def create_offering(kind: str, *, option_ids: Iterable[int], **fields: Any) -> Any:
    model = _offering_model(kind)
    offering = model(**fields)
    offering.set_option_ids(option_ids)
    with app_session() as session:
        session.add(offering)
    return offering


def update_offering(
    kind: str,
    institution_id: int,
    offering_id: int,
    *,
    option_ids: Optional[Iterable[int]] = None,
    **fields: Any,
) -> Optional[Any]:
    model = _offering_model(kind)
    with app_session() as session:
        offering = (
            session.query(model)
            .filter(model.id == offering_id, model.institution_id == institution_id)
            .one_or_none()
        )
        if offering is None:
            return None
        for key, value in fields.items():
            setattr(offering, key, value)
        if option_ids is not None:
            offering.set_option_ids(option_ids)
        return offering


def delete_offering(kind: str, institution_id: int, offering_id: int) -> bool:
    model = _offering_model(kind)
    with app_session() as session:
        offering = (
            session.query(model)
            .filter(model.id == offering_id, model.institution_id == institution_id)
            .one_or_none()
        )
        if offering is None:
            return False
        session.delete(offering)
        return True


def offerings_using_option(kind: str, institution_id: int, option_id: int) -> List[int]:
    """Ids of offerings whose option list contains `option_id`."""
    model = _offering_model(kind)
    with app_session() as session:
        rows = session.query(model).filter(model.institution_id == institution_id).all()
        return [row.id for row in rows if option_id in row.option_id_list()]


def count_offerings(kind: str, institution_id: int, *, statuses: Optional[Sequence[str]] = None) -> int:
    model = _offering_model(kind)
    with app_session() as session:
        query = session.query(model).filter(model.institution_id == institution_id)
        if statuses:
            query = query.filter(model.status.in_(list(statuses)))
        return int(query.count())


# ---------------- selections ---------------

def list_selections(kind: str, offering_id: int, *, status: Optional[str] = None) -> List[Any]:
    model = _selection_model(kind)
    fk = _offering_fk(kind)
    with app_session() as session:
        query = session.query(model).filter(fk == offering_id)
        if status:
            query = query.filter(model.status == status)
        return query.order_by(model.created_at.asc(), model.id.asc()).all()


def list_student_selections(kind: str, student_id: int) -> List[Any]:
    model = _selection_model(kind)
    with app_session() as session:
        return session.query(model).filter(model.student_id == student_id).all()


def get_selection(kind: str, institution_id: int, selection_id: int) -> Optional[Any]:
    model = _selection_model(kind)
    with app_session() as session:
        return (
            session.query(model)
            .filter(model.id == selection_id, model.institution_id == institution_id)
            .one_or_none()
        )


def get_student_selection(kind: str, student_id: int, offering_id: int) -> Optional[Any]:
    model = _selection_model(kind)
    fk = _offering_fk(kind)
    with app_session() as session:
        return (
            session.query(model)
            .filter(model.student_id == student_id, fk == offering_id)
            .one_or_none()
        )


def create_selection(
    kind: str,
    *,
    institution_id: int,
    student_id: int,
    offering_id: int,
    selected_ids: Iterable[int],
    status: str,
    statement_url: Optional[str] = None,
) -> Any:
    model = _selection_model(kind)
    fk_name = "elective_pack_id" if kind == KIND_COURSE else "exchange_program_id"
    selection = model(
        institution_id=institution_id,
        student_id=student_id,
        status=status,
        statement_url=statement_url,
        **{fk_name: offering_id},
    )
    selection.set_selected(selected_ids)
    try:
        with app_session() as session:
            session.add(selection)
    except IntegrityError as exc:
        raise SelectionExistsError("Selection already exists for student") from exc
    return selection


def update_selection(
    kind: str,
    selection_id: int,
    *,
    selected_ids: Optional[Iterable[int]] = None,
    **fields: Any,
) -> Optional[Any]:
    model = _selection_model(kind)
    with app_session() as session:
        selection = session.query(model).filter(model.id == selection_id).one_or_none()
        if selection is None:
            return None
        for key, value in fields.items():
            setattr(selection, key, value)
        if selected_ids is not None:
            selection.set_selected(selected_ids)
        return selection


def delete_selection(kind: str, selection_id: int) -> bool:
    model = _selection_model(kind)
    with app_session() as session:
        selection = session.query(model).filter(model.id == selection_id).one_or_none()
        if selection is None:
            return False
        session.delete(selection)
        return True


def status_counts(kind: str, offering_ids: Iterable[int]) -> Dict[int, Dict[str, int]]:
    """Map offering id -> {status: count} for the given offerings."""
    ids = list(offering_ids)
    if not ids:
        return {}
    model = _selection_model(kind)
    fk = _offering_fk(kind)
    result: Dict[int, Dict[str, int]] = {offering_id: {} for offering_id in ids}
    with app_session() as session:
        rows = (
            session.query(fk, model.status, func.count(model.id))
            .filter(fk.in_(ids))
            .group_by(fk, model.status)
            .all()
        )
    for offering_id, status, count in rows:
        result.setdefault(offering_id, {})[status] = int(count)
    return result


def option_usage(
    kind: str,
    offering_id: int,
    *,
    statuses: Sequence[str],
    exclude_student_id: Optional[int] = None,
) -> Dict[int, int]:
    """Count how many selections of the offering include each option id."""
    model = _selection_model(kind)
    fk = _offering_fk(kind)
    usage: Dict[int, int] = {}
    with app_session() as session:
        query = session.query(model).filter(fk == offering_id, model.status.in_(list(statuses)))
        if exclude_student_id is not None:
            query = query.filter(model.student_id != exclude_student_id)
        for selection in query:
            for option_id in selection.selected_list():
                usage[option_id] = usage.get(option_id, 0) + 1
    return usage


def count_selections(
    kind: str,
    institution_id: int,
    *,
    status: Optional[str] = None,
    student_id: Optional[int] = None,
) -> int:
    model = _selection_model(kind)
    with app_session() as session:
        query = session.query(model).filter(model.institution_id == institution_id)
        if status:
            query = query.filter(model.status == status)
        if student_id is not None:
            query = query.filter(model.student_id == student_id)
        return int(query.count())


__all__ = [
    "KIND_COURSE",
    "KIND_EXCHANGE",
    "SelectionExistsError",
    "list_offerings",
    "get_offering",
    "create_offering",
    "update_offering",
    "delete_offering",
    "offerings_using_option",
    "count_offerings",
    "list_selections",
    "list_student_selections",
    "get_selection",
    "get_student_selection",
    "create_selection",
    "update_selection",
    "delete_selection",
    "status_counts",
    "option_usage",
    "count_selections",
]
