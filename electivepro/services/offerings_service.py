"""Elective packs and exchange programs: building, publishing, selecting.

One service handles both offering kinds. For ``kind="course"`` the options
are institution courses (an elective pack); for ``kind="exchange"`` they are
partner universities (an exchange program).
"""
from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from electivepro.db.models import Course, Group, University
from electivepro.db.repositories import catalogue_repo, offerings_repo, profiles_repo
from electivepro.db.repositories.offerings_repo import KIND_COURSE, KIND_EXCHANGE, SelectionExistsError
from electivepro.i18n.preferences import localized_field
from electivepro.services import selection_rules, storage_service
from electivepro.services.selection_rules import SelectionRuleError
from electivepro.utils import constants
from electivepro.utils.forms import (
    clean_text,
    parse_choice,
    parse_datetime,
    parse_id_list,
    parse_int,
    require_text,
)
from electivepro.utils.logging import get_logger

LOG = get_logger("offerings_service")

KINDS = (KIND_COURSE, KIND_EXCHANGE)
OPTION_KEYS = {KIND_COURSE: "course_ids", KIND_EXCHANGE: "university_ids"}
_OPTION_MODELS = {KIND_COURSE: Course, KIND_EXCHANGE: University}
_CAPACITY_STATUSES = (constants.SELECTION_PENDING, constants.SELECTION_APPROVED)


class OfferingValidationError(ValueError):
    """Invalid pack/program payload."""


class OfferingNotFoundError(RuntimeError):
    """Pack/program or selection missing for the institution."""


class OfferingStateError(RuntimeError):
    """Operation not allowed in the current state."""


@dataclass
class SelectionView:
    id: int
    student_id: int
    student_name: Optional[str]
    student_email: Optional[str]
    group_name: Optional[str]
    selected_ids: List[int]
    selected_names: List[str]
    status: str
    statement_url: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]


def _check_kind(kind: str) -> None:
    if kind not in KINDS:
        raise OfferingNotFoundError("offering_kind_unknown")


def _get_offering(kind: str, institution_id: int, offering_id: int):
    _check_kind(kind)
    offering = offerings_repo.get_offering(kind, institution_id, offering_id)
    if offering is None:
        raise OfferingNotFoundError("offering_not_found")
    return offering


def _options(kind: str, institution_id: int, ids: List[int]) -> Dict[int, Any]:
    rows = catalogue_repo.get_rows_by_ids(_OPTION_MODELS[kind], institution_id, ids)
    return {row.id: row for row in rows}


def _option_ids(kind: str, institution_id: int, raw: Any) -> List[int]:
    ids = parse_id_list(raw, "options_invalid", OfferingValidationError)
    if len(set(ids)) != len(ids):
        raise OfferingValidationError("options_duplicate")
    known = _options(kind, institution_id, ids)
    if len(known) != len(ids):
        raise OfferingValidationError("options_invalid")
    return ids


def _fields_from_payload(
    kind: str,
    institution_id: int,
    payload: Mapping[str, Any],
    *,
    partial: bool,
) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    if not partial or "name" in payload:
        fields["name"] = require_text(payload.get("name"), "name_required", OfferingValidationError)
    if "name_ru" in payload or not partial:
        fields["name_ru"] = clean_text(payload.get("name_ru"))
    if not partial or "semester" in payload:
        fields["semester"] = parse_choice(
            payload.get("semester"), constants.SEMESTERS, "semester_invalid", OfferingValidationError
        )
    if not partial or "academic_year" in payload:
        fields["academic_year"] = require_text(
            payload.get("academic_year"), "academic_year_required", OfferingValidationError, max_length=32
        )
    if not partial or "deadline" in payload:
        fields["deadline"] = parse_datetime(payload.get("deadline"), "deadline_invalid", OfferingValidationError)
    if not partial or "max_selections" in payload:
        fields["max_selections"] = parse_int(
            payload.get("max_selections", 1), "max_selections_invalid", OfferingValidationError, minimum=1
        )
    if not partial or "status" in payload:
        fields["status"] = parse_choice(
            payload.get("status"),
            constants.PACK_STATUSES,
            "status_invalid",
            OfferingValidationError,
            default=constants.PACK_DRAFT,
        )
    if "syllabus_template_url" in payload:
        fields["syllabus_template_url"] = clean_text(payload.get("syllabus_template_url"), max_length=500)
    if "group_id" in payload:
        group_id = parse_int(payload.get("group_id"), "group_invalid", OfferingValidationError, minimum=1, allow_none=True)
        if group_id is not None and catalogue_repo.get_row(Group, institution_id, group_id) is None:
            raise OfferingValidationError("group_invalid")
        fields["group_id"] = group_id
    return fields


def _check_consistency(status: str, max_selections: int, option_ids: List[int]) -> None:
    if option_ids and max_selections > len(option_ids):
        raise OfferingValidationError("max_selections_exceeds_options")
    if status == constants.PACK_PUBLISHED and not option_ids:
        raise OfferingValidationError("options_required")


def _counts(kind: str, offering_ids: List[int]) -> Dict[int, Dict[str, int]]:
    raw = offerings_repo.status_counts(kind, offering_ids)
    result: Dict[int, Dict[str, int]] = {}
    for offering_id in offering_ids:
        by_status = raw.get(offering_id, {})
        summary = {status: by_status.get(status, 0) for status in constants.SELECTION_STATUSES}
        summary["total"] = sum(summary.values())
        result[offering_id] = summary
    return result


def _offering_view(offering, locale: Optional[str] = None) -> dict:
    data = offering.as_dict()
    data["display_name"] = localized_field(data, "name", locale)
    data["option_count"] = len(offering.option_id_list())
    data["is_open"] = offering.status == constants.PACK_PUBLISHED and datetime.utcnow() <= offering.deadline
    return data


def _option_view(row, locale: Optional[str]) -> dict:
    data = row.as_dict()
    data["display_name"] = localized_field(data, "name", locale)
    if "description" in data:
        data["display_description"] = localized_field(data, "description", locale)
    return data


# ---------------- manager / admin ---------------

def list_offerings(kind: str, institution_id: int, *, status: Optional[str] = None, locale: Optional[str] = None) -> List[dict]:
    _check_kind(kind)
    statuses = [status] if status else None
    offerings = offerings_repo.list_offerings(kind, institution_id, statuses=statuses)
    counts = _counts(kind, [o.id for o in offerings])
    views = []
    for offering in offerings:
        view = _offering_view(offering, locale)
        view["selection_counts"] = counts.get(offering.id, {})
        views.append(view)
    return views


def get_offering(kind: str, institution_id: int, offering_id: int, *, locale: Optional[str] = None) -> dict:
    offering = _get_offering(kind, institution_id, offering_id)
    option_ids = offering.option_id_list()
    rows = _options(kind, institution_id, option_ids)
    usage = offerings_repo.option_usage(kind, offering_id, statuses=_CAPACITY_STATUSES)
    view = _offering_view(offering, locale)
    view["options"] = []
    for option_id in option_ids:
        row = rows.get(option_id)
        if row is None:
            continue
        option = _option_view(row, locale)
        option["selected_count"] = usage.get(option_id, 0)
        view["options"].append(option)
    view["selection_counts"] = _counts(kind, [offering_id]).get(offering_id, {})
    return view


def create_offering(kind: str, institution_id: int, payload: Mapping[str, Any], *, created_by: Optional[int] = None) -> dict:
    _check_kind(kind)
    fields = _fields_from_payload(kind, institution_id, payload, partial=False)
    option_ids = _option_ids(kind, institution_id, payload.get(OPTION_KEYS[kind]))
    _check_consistency(fields["status"], fields["max_selections"], option_ids)
    offering = offerings_repo.create_offering(
        kind,
        option_ids=option_ids,
        institution_id=institution_id,
        created_by=created_by,
        **fields,
    )
    LOG.info(
        "Offering created kind=%s id=%s institution_id=%s options=%s",
        kind,
        offering.id,
        institution_id,
        len(option_ids),
    )
    return _offering_view(offering)


def update_offering(kind: str, institution_id: int, offering_id: int, payload: Mapping[str, Any]) -> dict:
    existing = _get_offering(kind, institution_id, offering_id)
    fields = _fields_from_payload(kind, institution_id, payload, partial=True)
    option_key = OPTION_KEYS[kind]
    option_ids = _option_ids(kind, institution_id, payload.get(option_key)) if option_key in payload else None
    if option_ids is not None:
        removed = set(existing.option_id_list()) - set(option_ids)
        selections = offerings_repo.list_selections(kind, offering_id) if removed else []
        if any(set(s.selected_list()) & removed for s in selections):
            raise OfferingStateError("options_in_use")
    _check_consistency(
        fields.get("status", existing.status),
        fields.get("max_selections", existing.max_selections),
        option_ids if option_ids is not None else existing.option_id_list(),
    )
    offering = offerings_repo.update_offering(kind, institution_id, offering_id, option_ids=option_ids, **fields)
    if "syllabus_template_url" in fields:
        storage_service.discard_url(
            existing.syllabus_template_url,
            bucket=storage_service.BUCKET_SYLLABI,
            institution_id=institution_id,
            keep=offering.syllabus_template_url,
        )
    LOG.info("Offering updated kind=%s id=%s fields=%s", kind, offering_id, sorted(fields))
    return _offering_view(offering)


def change_status(kind: str, institution_id: int, offering_id: int, status: Any) -> dict:
    return update_offering(kind, institution_id, offering_id, {"status": status})


def delete_offering(kind: str, institution_id: int, offering_id: int) -> None:
    existing = _get_offering(kind, institution_id, offering_id)
    if offerings_repo.list_selections(kind, offering_id):
        raise OfferingStateError("offering_has_selections")
    offerings_repo.delete_offering(kind, institution_id, offering_id)
    storage_service.discard_url(
        existing.syllabus_template_url, bucket=storage_service.BUCKET_SYLLABI, institution_id=institution_id
    )
    LOG.info("Offering deleted kind=%s id=%s institution_id=%s", kind, offering_id, institution_id)


def _selection_views(kind: str, institution_id: int, selections: List[Any], locale: Optional[str]) -> List[SelectionView]:
    students = profiles_repo.students_by_ids([s.student_id for s in selections])
    option_ids = sorted({oid for s in selections for oid in s.selected_list()})
    names = {
        oid: localized_field(row, "name", locale) for oid, row in _options(kind, institution_id, option_ids).items()
    }
    views = []
    for selection in selections:
        student = students.get(selection.student_id, {})
        data = selection.as_dict()
        views.append(
            SelectionView(
                id=selection.id,
                student_id=selection.student_id,
                student_name=student.get("full_name"),
                student_email=student.get("email"),
                group_name=student.get("group_name"),
                selected_ids=data["selected_ids"],
                selected_names=[names.get(oid, str(oid)) for oid in data["selected_ids"]],
                status=selection.status,
                statement_url=selection.statement_url,
                created_at=data["created_at"],
                updated_at=data["updated_at"],
            )
        )
    return views


def list_selections(
    kind: str,
    institution_id: int,
    offering_id: int,
    *,
    status: Optional[str] = None,
    locale: Optional[str] = None,
) -> List[dict]:
    _get_offering(kind, institution_id, offering_id)
    if status is not None and status not in constants.SELECTION_STATUSES:
        raise OfferingValidationError("status_invalid")
    selections = offerings_repo.list_selections(kind, offering_id, status=status)
    return [view.__dict__ for view in _selection_views(kind, institution_id, selections, locale)]


def option_selections(kind: str, institution_id: int, offering_id: int, option_id: int) -> List[dict]:
    """Students whose selection in the offering includes `option_id`."""
    offering = _get_offering(kind, institution_id, offering_id)
    if option_id not in offering.option_id_list():
        raise OfferingNotFoundError("option_not_found")
    selections = [s for s in offerings_repo.list_selections(kind, offering_id) if option_id in s.selected_list()]
    students = profiles_repo.students_by_ids([s.student_id for s in selections])
    result = []
    for selection in selections:
        entry = dict(students.get(selection.student_id, {"id": selection.student_id}))
        entry["selection_id"] = selection.id
        entry["status"] = selection.status
        result.append(entry)
    return result


def _get_selection(kind: str, institution_id: int, selection_id: int):
    _check_kind(kind)
    selection = offerings_repo.get_selection(kind, institution_id, selection_id)
    if selection is None:
        raise OfferingNotFoundError("selection_not_found")
    return selection


def review_selection(kind: str, institution_id: int, selection_id: int, status: Any) -> dict:
    """Approve / reject (or reopen as pending) a student's selection."""
    target = parse_choice(status, constants.SELECTION_STATUSES, "status_invalid", OfferingValidationError)
    _get_selection(kind, institution_id, selection_id)
    selection = offerings_repo.update_selection(kind, selection_id, status=target)
    LOG.info("Selection reviewed kind=%s id=%s status=%s", kind, selection_id, target)
    return selection.as_dict()


def edit_selection(kind: str, institution_id: int, selection_id: int, payload: Mapping[str, Any]) -> dict:
    """Manager edit of a selection's options and/or status.

    Count, duplicate and membership rules apply; capacity and deadline do
    not, managers may place students over the limit.
    """
    selection = _get_selection(kind, institution_id, selection_id)
    offering_id = selection.elective_pack_id if kind == KIND_COURSE else selection.exchange_program_id
    offering = _get_offering(kind, institution_id, offering_id)
    fields: Dict[str, Any] = {}
    selected_ids = None
    if "selected_ids" in payload:
        raw = parse_id_list(payload.get("selected_ids"), "selection_invalid", OfferingValidationError)
        try:
            selected_ids = selection_rules.check_choice(raw, offering.option_id_list(), int(offering.max_selections))
        except SelectionRuleError as exc:
            raise OfferingValidationError(str(exc)) from exc
    if "status" in payload:
        fields["status"] = parse_choice(
            payload.get("status"), constants.SELECTION_STATUSES, "status_invalid", OfferingValidationError
        )
    updated = offerings_repo.update_selection(kind, selection_id, selected_ids=selected_ids, **fields)
    LOG.info("Selection edited kind=%s id=%s", kind, selection_id)
    return updated.as_dict()


def export_selections_csv(kind: str, institution_id: int, offering_id: int, *, locale: Optional[str] = None) -> str:
    offering = _get_offering(kind, institution_id, offering_id)
    views = _selection_views(kind, institution_id, offerings_repo.list_selections(kind, offering_id), locale)
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["student_name", "student_email", "group", "selected", "status", "statement", "submitted_at"])
    for view in views:
        writer.writerow(
            [
                view.student_name or "",
                view.student_email or "",
                view.group_name or "",
                "; ".join(view.selected_names),
                view.status,
                "yes" if view.statement_url else "no",
                view.created_at or "",
            ]
        )
    LOG.info("Selections exported kind=%s offering_id=%s rows=%s", kind, offering.id, len(views))
    return buffer.getvalue()


# ---------------- student ---------------

def _student_group_id(student_id: int) -> Optional[int]:
    student = profiles_repo.get_student_profile(student_id)
    return student.group_id if student else None


def _visible_to(offering, group_id: Optional[int]) -> bool:
    if offering.status not in constants.STUDENT_VISIBLE_PACK_STATUSES:
        return False
    return offering.group_id is None or offering.group_id == group_id


def student_offerings(kind: str, institution_id: int, student_id: int, *, locale: Optional[str] = None) -> List[dict]:
    _check_kind(kind)
    group_id = _student_group_id(student_id)
    own = {
        (s.elective_pack_id if kind == KIND_COURSE else s.exchange_program_id): s
        for s in offerings_repo.list_student_selections(kind, student_id)
    }
    result = []
    for offering in offerings_repo.list_offerings(kind, institution_id, statuses=constants.STUDENT_VISIBLE_PACK_STATUSES):
        if not _visible_to(offering, group_id):
            continue
        view = _offering_view(offering, locale)
        selection = own.get(offering.id)
        view["selection_status"] = selection.status if selection else None
        view["selected_count"] = len(selection.selected_list()) if selection else 0
        result.append(view)
    return result


def _student_offering(kind: str, institution_id: int, student_id: int, offering_id: int):
    offering = _get_offering(kind, institution_id, offering_id)
    if not _visible_to(offering, _student_group_id(student_id)):
        raise OfferingNotFoundError("offering_not_found")
    return offering


def student_offering_detail(
    kind: str,
    institution_id: int,
    student_id: int,
    offering_id: int,
    *,
    locale: Optional[str] = None,
) -> dict:
    offering = _student_offering(kind, institution_id, student_id, offering_id)
    view = get_offering(kind, institution_id, offering.id, locale=locale)
    view.pop("selection_counts", None)
    for option in view["options"]:
        limit = option.get("max_students")
        option["remaining"] = None if limit is None else max(0, limit - option["selected_count"])
    selection = offerings_repo.get_student_selection(kind, student_id, offering.id)
    view["selection"] = selection.as_dict() if selection else None
    return view


def submit_selection(
    kind: str,
    institution_id: int,
    student_id: int,
    offering_id: int,
    selected: Any,
    *,
    now: Optional[datetime] = None,
) -> dict:
    """Create or replace the student's selection; always lands as pending."""
    offering = _student_offering(kind, institution_id, student_id, offering_id)
    ids = parse_id_list(selected, "selection_invalid", OfferingValidationError)
    existing = offerings_repo.get_student_selection(kind, student_id, offering.id)
    capacities = {
        oid: row.max_students for oid, row in _options(kind, institution_id, offering.option_id_list()).items()
    }
    usage = offerings_repo.option_usage(
        kind, offering.id, statuses=_CAPACITY_STATUSES, exclude_student_id=student_id
    )
    ids = selection_rules.validate_submission(
        offering=offering,
        selected=ids,
        capacities=capacities,
        usage=usage,
        existing_status=existing.status if existing else None,
        now=now,
    )
    if existing is not None:
        selection = offerings_repo.update_selection(
            kind, existing.id, selected_ids=ids, status=constants.SELECTION_PENDING
        )
    else:
        try:
            selection = offerings_repo.create_selection(
                kind,
                institution_id=institution_id,
                student_id=student_id,
                offering_id=offering.id,
                selected_ids=ids,
                status=constants.SELECTION_PENDING,
            )
        except SelectionExistsError as exc:
            raise OfferingStateError("selection_conflict") from exc
    LOG.info(
        "Selection submitted kind=%s offering_id=%s student_id=%s options=%s",
        kind,
        offering.id,
        student_id,
        ids,
    )
    return selection.as_dict()


def cancel_selection(kind: str, institution_id: int, student_id: int, offering_id: int) -> None:
    offering = _student_offering(kind, institution_id, student_id, offering_id)
    selection = offerings_repo.get_student_selection(kind, student_id, offering.id)
    if selection is None:
        raise OfferingNotFoundError("selection_not_found")
    if selection.status != constants.SELECTION_PENDING:
        raise OfferingStateError("selection_not_pending")
    try:
        selection_rules.check_open(offering.status, offering.deadline)
    except SelectionRuleError as exc:
        raise OfferingStateError(str(exc)) from exc
    offerings_repo.delete_selection(kind, selection.id)
    storage_service.discard_url(
        selection.statement_url, bucket=storage_service.BUCKET_STATEMENTS, institution_id=institution_id
    )
    LOG.info("Selection cancelled kind=%s offering_id=%s student_id=%s", kind, offering.id, student_id)


def statement_target(kind: str, institution_id: int, student_id: int, offering_id: int):
    """Selection a statement can be attached to; raises when there is none."""
    offering = _student_offering(kind, institution_id, student_id, offering_id)
    selection = offerings_repo.get_student_selection(kind, student_id, offering.id)
    if selection is None:
        raise OfferingNotFoundError("selection_not_found")
    if selection.status == constants.SELECTION_APPROVED:
        raise OfferingStateError("selection_locked")
    return selection


def attach_statement(kind: str, institution_id: int, student_id: int, offering_id: int, statement_url: str) -> dict:
    selection = statement_target(kind, institution_id, student_id, offering_id)
    previous = selection.statement_url
    updated = offerings_repo.update_selection(kind, selection.id, statement_url=statement_url)
    storage_service.discard_url(
        previous, bucket=storage_service.BUCKET_STATEMENTS, institution_id=institution_id, keep=statement_url
    )
    LOG.info("Statement attached kind=%s selection_id=%s", kind, selection.id)
    return updated.as_dict()


def student_syllabus_template(kind: str, institution_id: int, student_id: int, offering_id: int) -> Optional[str]:
    offering = _student_offering(kind, institution_id, student_id, offering_id)
    return offering.syllabus_template_url


__all__ = [
    "KIND_COURSE",
    "KIND_EXCHANGE",
    "KINDS",
    "OPTION_KEYS",
    "OfferingValidationError",
    "OfferingNotFoundError",
    "OfferingStateError",
    "SelectionView",
    "list_offerings",
    "get_offering",
    "create_offering",
    "update_offering",
    "change_status",
    "delete_offering",
    "list_selections",
    "option_selections",
    "review_selection",
    "edit_selection",
    "export_selections_csv",
    "student_offerings",
    "student_offering_detail",
    "submit_selection",
    "cancel_selection",
    "statement_target",
    "attach_statement",
    "student_syllabus_template",
]
