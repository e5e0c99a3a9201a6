"""Institution catalogue management (degrees, programs, groups, years,
courses and partner universities).

All entities share list/get/create/update/delete; what differs is the
payload parsing and the references that block a delete, both declared per
entity in `_ENTITIES`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Type

from electivepro.db.models import AcademicYear, Course, Degree, Group, Program, University
from electivepro.db.repositories import catalogue_repo, offerings_repo, profiles_repo
from electivepro.db.repositories.catalogue_repo import CatalogueExistsError
from electivepro.i18n.preferences import localized_field
from electivepro.utils import constants
from electivepro.utils.forms import clean_text, parse_choice, parse_int, require_text
from electivepro.utils.logging import get_logger

LOG = get_logger("catalogue_service")


class CatalogueValidationError(ValueError):
    """Invalid catalogue payload."""


class CatalogueNotFoundError(RuntimeError):
    """Row missing (or owned by another institution)."""


class CatalogueConflictError(RuntimeError):
    """Duplicate code, or delete refused while referenced."""


# ---------------- group naming ---------------

def group_display_name(name: str) -> str:
    """``"24.B01"`` -> ``"B01"``; names without a dot are returned unchanged."""
    parts = (name or "").split(".", 1)
    return parts[1] if len(parts) == 2 and parts[1] else (name or "")


def group_slug(degree_code: str, program_code: str, year: Any, group_name: str) -> str:
    """Stable group slug, e.g. ``bak-men-24-b01``."""
    yy = str(year)[-2:] if year not in (None, "") else "00"
    code = group_display_name(group_name).lower().replace(" ", "")
    return "-".join(part.strip().lower() for part in (degree_code, program_code, yy, code))


# ---------------- payload parsing ---------------

def _status(payload: Mapping[str, Any], partial: bool, fields: Dict[str, Any]) -> None:
    if not partial or "status" in payload:
        fields["status"] = parse_choice(
            payload.get("status"),
            constants.RECORD_STATUSES,
            "status_invalid",
            CatalogueValidationError,
            default=constants.STATUS_ACTIVE,
        )


def _names(payload: Mapping[str, Any], partial: bool, fields: Dict[str, Any]) -> None:
    if not partial or "name" in payload:
        fields["name"] = require_text(payload.get("name"), "name_required", CatalogueValidationError)
    if "name_ru" in payload or not partial:
        fields["name_ru"] = clean_text(payload.get("name_ru"))


def _code(payload: Mapping[str, Any], partial: bool, fields: Dict[str, Any]) -> None:
    if not partial or "code" in payload:
        fields["code"] = require_text(payload.get("code"), "code_required", CatalogueValidationError, max_length=32)


def _reference(model: Type, institution_id: int, raw: Any, code: str, *, required: bool) -> Optional[int]:
    ref_id = parse_int(raw, code, CatalogueValidationError, minimum=1, allow_none=not required)
    if ref_id is None:
        return None
    if catalogue_repo.get_row(model, institution_id, ref_id) is None:
        raise CatalogueValidationError(code)
    return ref_id


def _degree_fields(institution_id: int, payload: Mapping[str, Any], partial: bool) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    _names(payload, partial, fields)
    _code(payload, partial, fields)
    if "duration_years" in payload or not partial:
        fields["duration_years"] = parse_int(
            payload.get("duration_years"), "duration_invalid", CatalogueValidationError,
            minimum=1, maximum=10, allow_none=True,
        )
    _status(payload, partial, fields)
    return fields


def _program_fields(institution_id: int, payload: Mapping[str, Any], partial: bool) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    _names(payload, partial, fields)
    _code(payload, partial, fields)
    if not partial or "degree_id" in payload:
        fields["degree_id"] = _reference(Degree, institution_id, payload.get("degree_id"), "degree_invalid", required=True)
    _status(payload, partial, fields)
    return fields


def _group_fields(institution_id: int, payload: Mapping[str, Any], partial: bool) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    if not partial or "name" in payload:
        fields["name"] = require_text(payload.get("name"), "name_required", CatalogueValidationError, max_length=128)
    if "display_name" in payload or "name" in fields:
        fields["display_name"] = clean_text(payload.get("display_name"), max_length=128) or group_display_name(
            fields.get("name") or ""
        ) or None
    if not partial or "program_id" in payload:
        fields["program_id"] = _reference(Program, institution_id, payload.get("program_id"), "program_invalid", required=True)
    if "enrollment_year" in payload or not partial:
        fields["enrollment_year"] = parse_int(
            payload.get("enrollment_year"), "enrollment_year_invalid", CatalogueValidationError,
            minimum=1900, maximum=2100, allow_none=True,
        )
    _status(payload, partial, fields)
    return fields


def _year_fields(institution_id: int, payload: Mapping[str, Any], partial: bool) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    if not partial or "name" in payload:
        fields["name"] = require_text(payload.get("name"), "name_required", CatalogueValidationError, max_length=64)
    if "name_ru" in payload or not partial:
        fields["name_ru"] = clean_text(payload.get("name_ru"), max_length=64)
    _code(payload, partial, fields)
    return fields


def _course_fields(institution_id: int, payload: Mapping[str, Any], partial: bool) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    _names(payload, partial, fields)
    _code(payload, partial, fields)
    for key in ("description", "description_ru"):
        if key in payload or not partial:
            fields[key] = clean_text(payload.get(key), max_length=10000)
    if "instructor" in payload or not partial:
        fields["instructor"] = clean_text(payload.get("instructor"))
    if "credits" in payload or not partial:
        fields["credits"] = parse_int(
            payload.get("credits"), "credits_invalid", CatalogueValidationError, minimum=0, maximum=60, allow_none=True
        )
    if "max_students" in payload or not partial:
        fields["max_students"] = parse_int(
            payload.get("max_students"), "max_students_invalid", CatalogueValidationError, minimum=1, allow_none=True
        )
    if "degree_id" in payload or not partial:
        fields["degree_id"] = _reference(Degree, institution_id, payload.get("degree_id"), "degree_invalid", required=False)
    _status(payload, partial, fields)
    return fields


def _university_fields(institution_id: int, payload: Mapping[str, Any], partial: bool) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    _names(payload, partial, fields)
    for key in ("country", "city"):
        if key in payload or not partial:
            fields[key] = clean_text(payload.get(key), max_length=128)
    if "website" in payload or not partial:
        website = clean_text(payload.get("website"), max_length=500)
        if website and not website.startswith(("http://", "https://")):
            raise CatalogueValidationError("website_invalid")
        fields["website"] = website
    if "description" in payload or not partial:
        fields["description"] = clean_text(payload.get("description"), max_length=10000)
    if "max_students" in payload or not partial:
        fields["max_students"] = parse_int(
            payload.get("max_students"), "max_students_invalid", CatalogueValidationError, minimum=1, allow_none=True
        )
    _status(payload, partial, fields)
    return fields


# ---------------- delete guards ---------------

def _degree_in_use(institution_id: int, row_id: int) -> bool:
    return bool(
        catalogue_repo.count_rows(Program, institution_id, degree_id=row_id)
        or catalogue_repo.count_rows(Course, institution_id, degree_id=row_id)
    )


def _program_in_use(institution_id: int, row_id: int) -> bool:
    return bool(
        catalogue_repo.count_rows(Group, institution_id, program_id=row_id)
        or profiles_repo.count_managers_in_program(row_id)
    )


def _group_in_use(institution_id: int, row_id: int) -> bool:
    if profiles_repo.count_students_in_group(row_id):
        return True
    return any(
        getattr(offering, "group_id", None) == row_id
        for kind in (offerings_repo.KIND_COURSE, offerings_repo.KIND_EXCHANGE)
        for offering in offerings_repo.list_offerings(kind, institution_id)
    )


def _course_in_use(institution_id: int, row_id: int) -> bool:
    return bool(offerings_repo.offerings_using_option(offerings_repo.KIND_COURSE, institution_id, row_id))


def _university_in_use(institution_id: int, row_id: int) -> bool:
    return bool(offerings_repo.offerings_using_option(offerings_repo.KIND_EXCHANGE, institution_id, row_id))


@dataclass(frozen=True)
class _EntityDef:
    model: Type
    parse: Callable[[int, Mapping[str, Any], bool], Dict[str, Any]]
    in_use: Optional[Callable[[int, int], bool]] = None
    filters: tuple = ()


_ENTITIES: Dict[str, _EntityDef] = {
    "degree": _EntityDef(Degree, _degree_fields, _degree_in_use, ("status",)),
    "program": _EntityDef(Program, _program_fields, _program_in_use, ("degree_id", "status")),
    "group": _EntityDef(Group, _group_fields, _group_in_use, ("program_id", "enrollment_year", "status")),
    "academic_year": _EntityDef(AcademicYear, _year_fields, None, ()),
    "course": _EntityDef(Course, _course_fields, _course_in_use, ("degree_id", "status")),
    "university": _EntityDef(University, _university_fields, _university_in_use, ("country", "status")),
}
ENTITY_NAMES = tuple(_ENTITIES)


def _entity_def(entity: str) -> _EntityDef:
    defn = _ENTITIES.get(entity)
    if defn is None:
        raise CatalogueNotFoundError("entity_unknown")
    return defn


def _view(row, locale: Optional[str]) -> dict:
    data = row.as_dict()
    data["display_name"] = data.get("display_name") or localized_field(data, "name", locale)
    if "description" in data:
        data["display_description"] = localized_field(data, "description", locale)
    return data


def list_entities(entity: str, institution_id: int, *, locale: Optional[str] = None, **filters: Any) -> List[dict]:
    defn = _entity_def(entity)
    clean_filters = {key: value for key, value in filters.items() if key in defn.filters and value not in (None, "")}
    return [_view(row, locale) for row in catalogue_repo.list_rows(defn.model, institution_id, **clean_filters)]


def get_entity(entity: str, institution_id: int, row_id: int, *, locale: Optional[str] = None) -> dict:
    defn = _entity_def(entity)
    row = catalogue_repo.get_row(defn.model, institution_id, row_id)
    if row is None:
        raise CatalogueNotFoundError(f"{entity}_not_found")
    return _view(row, locale)


def create_entity(entity: str, institution_id: int, payload: Mapping[str, Any]) -> dict:
    defn = _entity_def(entity)
    fields = defn.parse(institution_id, payload, False)
    try:
        row = catalogue_repo.create_row(defn.model, institution_id=institution_id, **fields)
    except CatalogueExistsError as exc:
        raise CatalogueConflictError(f"{entity}_exists") from exc
    LOG.info("Catalogue create entity=%s id=%s institution_id=%s", entity, row.id, institution_id)
    return _view(row, None)


def update_entity(entity: str, institution_id: int, row_id: int, payload: Mapping[str, Any]) -> dict:
    defn = _entity_def(entity)
    fields = defn.parse(institution_id, payload, True)
    try:
        row = catalogue_repo.update_row(defn.model, institution_id, row_id, **fields)
    except CatalogueExistsError as exc:
        raise CatalogueConflictError(f"{entity}_exists") from exc
    if row is None:
        raise CatalogueNotFoundError(f"{entity}_not_found")
    LOG.info("Catalogue update entity=%s id=%s fields=%s", entity, row_id, sorted(fields))
    return _view(row, None)


def delete_entity(entity: str, institution_id: int, row_id: int) -> None:
    defn = _entity_def(entity)
    if catalogue_repo.get_row(defn.model, institution_id, row_id) is None:
        raise CatalogueNotFoundError(f"{entity}_not_found")
    if defn.in_use is not None and defn.in_use(institution_id, row_id):
        raise CatalogueConflictError(f"{entity}_in_use")
    catalogue_repo.delete_row(defn.model, institution_id, row_id)
    LOG.info("Catalogue delete entity=%s id=%s institution_id=%s", entity, row_id, institution_id)


def group_with_slug(institution_id: int, group_id: int) -> dict:
    """Group view including its slug (degree and program codes resolved)."""
    group = get_entity("group", institution_id, group_id)
    program = catalogue_repo.get_row(Program, institution_id, group["program_id"])
    degree = catalogue_repo.get_row(Degree, institution_id, program.degree_id) if program else None
    group["slug"] = group_slug(
        degree.code if degree else "deg",
        program.code if program else "prog",
        group.get("enrollment_year"),
        group["name"],
    )
    return group


__all__ = [
    "CatalogueValidationError",
    "CatalogueNotFoundError",
    "CatalogueConflictError",
    "ENTITY_NAMES",
    "group_display_name",
    "group_slug",
    "list_entities",
    "get_entity",
    "create_entity",
    "update_entity",
    "delete_entity",
    "group_with_slug",
]
