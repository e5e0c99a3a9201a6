from __future__ import annotations

import pytest

from electivepro.services import catalogue_service as svc
from electivepro.services.catalogue_service import (
    CatalogueConflictError,
    CatalogueNotFoundError,
    CatalogueValidationError,
)
from electivepro.utils import constants


@pytest.fixture
def institution(seed):
    return seed.institution("alpha")["id"]


@pytest.fixture
def catalogue(seed, institution):
    return seed.catalogue(institution)


@pytest.mark.parametrize(
    "name, expected",
    [("24.B01", "B01"), ("B02", "B02"), ("24.", "24."), ("", "")],
)
def test_group_display_name(name, expected):
    assert svc.group_display_name(name) == expected


def test_group_slug_format():
    assert svc.group_slug("BAK", "MEN", 2024, "24.B01") == "bak-men-24-b01"
    assert svc.group_slug("MAG", "FIN", None, "A 1") == "mag-fin-00-a1"


def test_group_with_slug_resolves_codes(institution, catalogue):
    group = svc.group_with_slug(institution, catalogue.group["id"])

    assert group["slug"] == "bak-men-24-b01"
    assert group["display_name"] == "B01"


def test_duplicate_code_within_institution_conflicts(seed, institution, catalogue):
    with pytest.raises(CatalogueConflictError) as excinfo:
        svc.create_entity("degree", institution, {"name": "Other bachelor", "code": "BAK"})
    assert str(excinfo.value) == "degree_exists"

    other = seed.institution("beta")["id"]
    created = svc.create_entity("degree", other, {"name": "Bachelor", "code": "BAK"})
    assert created["institution_id"] == other


def test_references_must_belong_to_institution(seed, catalogue):
    other = seed.institution("beta")["id"]

    with pytest.raises(CatalogueValidationError) as excinfo:
        svc.create_entity("program", other, {"name": "Finance", "code": "FIN", "degree_id": catalogue.degree["id"]})
    assert str(excinfo.value) == "degree_invalid"


def test_rows_of_other_institution_are_not_found(seed, catalogue):
    other = seed.institution("beta")["id"]

    with pytest.raises(CatalogueNotFoundError) as excinfo:
        svc.get_entity("course", other, catalogue.courses[0]["id"])
    assert str(excinfo.value) == "course_not_found"
    with pytest.raises(CatalogueNotFoundError):
        svc.update_entity("course", other, catalogue.courses[0]["id"], {"name": "Hijacked"})


@pytest.mark.parametrize(
    "entity, payload, code",
    [
        ("degree", {"code": "X"}, "name_required"),
        ("degree", {"name": "X"}, "code_required"),
        ("course", {"name": "X", "code": "X", "max_students": 0}, "max_students_invalid"),
        ("course", {"name": "X", "code": "X", "status": "hidden"}, "status_invalid"),
        ("university", {"name": "X", "website": "ftp://example.org"}, "website_invalid"),
        ("group", {"name": "24.B09"}, "program_invalid"),
    ],
)
def test_create_validation(institution, entity, payload, code):
    with pytest.raises(CatalogueValidationError) as excinfo:
        svc.create_entity(entity, institution, payload)
    assert str(excinfo.value) == code


def test_unknown_entity(institution):
    with pytest.raises(CatalogueNotFoundError) as excinfo:
        svc.list_entities("campus", institution)
    assert str(excinfo.value) == "entity_unknown"


def test_list_filters_and_localized_names(institution, catalogue):
    svc.update_entity("course", institution, catalogue.courses[1]["id"], {"status": constants.STATUS_INACTIVE})

    active = svc.list_entities("course", institution, status=constants.STATUS_ACTIVE, locale="ru")
    everything = svc.list_entities("course", institution, bogus="ignored")

    assert [c["code"] for c in active] == ["C1", "C3"]
    assert active[0]["display_name"] == "Курс 1"
    assert len(everything) == 3


def test_partial_update_keeps_other_fields(institution, catalogue):
    course = catalogue.courses[0]

    updated = svc.update_entity("course", institution, course["id"], {"instructor": "Dr. Ozols"})

    assert updated["instructor"] == "Dr. Ozols"
    assert updated["name"] == course["name"]
    assert updated["max_students"] == course["max_students"]


def test_delete_refused_while_referenced(seed, institution, catalogue):
    with pytest.raises(CatalogueConflictError) as excinfo:
        svc.delete_entity("degree", institution, catalogue.degree["id"])
    assert str(excinfo.value) == "degree_in_use"

    seed.offering("course", institution, [catalogue.courses[0]["id"]], max_selections=1)
    with pytest.raises(CatalogueConflictError) as excinfo:
        svc.delete_entity("course", institution, catalogue.courses[0]["id"])
    assert str(excinfo.value) == "course_in_use"

    seed.profile("s@alpha.edu", constants.ROLE_STUDENT, institution, group_id=catalogue.group["id"])
    with pytest.raises(CatalogueConflictError):
        svc.delete_entity("group", institution, catalogue.group["id"])


def test_delete_unreferenced_row(institution, catalogue):
    svc.delete_entity("course", institution, catalogue.courses[2]["id"])

    with pytest.raises(CatalogueNotFoundError):
        svc.get_entity("course", institution, catalogue.courses[2]["id"])


def test_academic_years(institution):
    created = svc.create_entity("academic_year", institution, {"name": "2025/2026", "code": "2025"})

    assert svc.list_entities("academic_year", institution)[0]["id"] == created["id"]
    with pytest.raises(CatalogueConflictError):
        svc.create_entity("academic_year", institution, {"name": "Duplicate", "code": "2025"})
