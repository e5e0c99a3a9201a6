"""Offering repository: JSON option lists, selection uniqueness and usage counts."""
from __future__ import annotations

import pytest

from electivepro.db.repositories import offerings_repo
from electivepro.db.repositories.offerings_repo import KIND_COURSE, KIND_EXCHANGE, SelectionExistsError


def test_option_ids_round_trip_through_text_column(seed):
    tenant = seed.tenant()
    stored = offerings_repo.get_offering(KIND_COURSE, tenant.id, tenant.pack["id"])

    assert stored.option_id_list() == [c["id"] for c in tenant.catalogue.courses]
    assert stored.as_dict()["course_ids"] == stored.option_id_list()


def test_offering_of_other_institution_reads_as_missing(seed):
    tenant = seed.tenant("alpha")
    other = seed.institution("beta")

    assert offerings_repo.get_offering(KIND_COURSE, other["id"], tenant.pack["id"]) is None


def test_second_selection_for_same_student_rejected(seed):
    tenant = seed.tenant()
    course_id = tenant.catalogue.courses[0]["id"]
    offerings_repo.create_selection(
        KIND_COURSE,
        institution_id=tenant.id,
        student_id=tenant.student.id,
        offering_id=tenant.pack["id"],
        selected_ids=[course_id],
        status="pending",
    )

    with pytest.raises(SelectionExistsError):
        offerings_repo.create_selection(
            KIND_COURSE,
            institution_id=tenant.id,
            student_id=tenant.student.id,
            offering_id=tenant.pack["id"],
            selected_ids=[course_id],
            status="pending",
        )


def test_option_usage_filters_status_and_student(seed):
    tenant = seed.tenant()
    u1, u2 = (u["id"] for u in tenant.catalogue.universities)
    offerings_repo.create_selection(
        KIND_EXCHANGE,
        institution_id=tenant.id,
        student_id=tenant.student.id,
        offering_id=tenant.exchange["id"],
        selected_ids=[u1],
        status="approved",
    )
    offerings_repo.create_selection(
        KIND_EXCHANGE,
        institution_id=tenant.id,
        student_id=tenant.other_student.id,
        offering_id=tenant.exchange["id"],
        selected_ids=[u2],
        status="rejected",
    )

    usage = offerings_repo.option_usage(KIND_EXCHANGE, tenant.exchange["id"], statuses=("pending", "approved"))
    assert usage == {u1: 1}

    excluded = offerings_repo.option_usage(
        KIND_EXCHANGE,
        tenant.exchange["id"],
        statuses=("pending", "approved"),
        exclude_student_id=tenant.student.id,
    )
    assert excluded == {}

    counts = offerings_repo.status_counts(KIND_EXCHANGE, [tenant.exchange["id"]])
    assert counts[tenant.exchange["id"]] == {"approved": 1, "rejected": 1}


def test_offerings_using_option_lists_referencing_packs(seed):
    tenant = seed.tenant()
    third_course = tenant.catalogue.courses[2]["id"]

    assert offerings_repo.offerings_using_option(KIND_COURSE, tenant.id, third_course) == [tenant.pack["id"]]
