from __future__ import annotations

from electivepro.services import dashboard_service, offerings_service
from electivepro.utils import constants


def test_student_summary_counts_open_offerings_and_statuses(seed):
    tenant = seed.tenant("alpha")
    course = tenant.catalogue.courses[2]["id"]
    uni = tenant.catalogue.universities[0]["id"]
    offerings_service.submit_selection("course", tenant.id, tenant.student.id, tenant.pack["id"], [course])
    exchange = offerings_service.submit_selection("exchange", tenant.id, tenant.student.id, tenant.exchange["id"], [uni])
    offerings_service.review_selection("exchange", tenant.id, exchange["id"], constants.SELECTION_APPROVED)

    summary = dashboard_service.student_summary(tenant.id, tenant.student.id)

    assert summary == {"open_packs": 1, "open_programs": 1, "pending": 1, "approved": 1, "rejected": 0}


def test_institution_summary(seed):
    tenant = seed.tenant("alpha")
    seed.offering("course", tenant.id, [tenant.catalogue.courses[0]["id"]], status=constants.PACK_DRAFT, max_selections=1)
    offerings_service.submit_selection(
        "course", tenant.id, tenant.student.id, tenant.pack["id"], [tenant.catalogue.courses[2]["id"]]
    )

    summary = dashboard_service.institution_summary(tenant.id)

    assert summary["packs"] == 2
    assert summary["published_packs"] == 1
    assert summary["programs"] == 1
    assert summary["published_programs"] == 1
    assert summary["pending_selections"] == 1
    assert summary["students"] == 2
    assert summary["managers"] == 1


def test_platform_summary(seed):
    seed.tenant("alpha")
    seed.institution("closed", is_active=False)

    summary = dashboard_service.platform_summary()

    assert summary == {"institutions": 2, "active_institutions": 1, "users": 4, "plans": 1}
