"""Student portal: offerings, selections, statements."""
from __future__ import annotations

import io

import pytest

from electivepro.services import offerings_service


@pytest.fixture
def tenant(seed):
    return seed.tenant("alpha")


@pytest.fixture
def student_client(client, login, tenant):
    login(client, tenant.student)
    return client


def _url(path: str) -> str:
    return f"/student/api{path}?subdomain=alpha"


def _stored_files(tmp_path, bucket: str = "statements"):
    root = tmp_path / "storage" / bucket
    return sorted(p.name for p in root.rglob("*") if p.is_file()) if root.exists() else []


def _upload_statement(client, tenant, content: bytes = b"%PDF statement"):
    return client.post(
        _url(f"/exchange/{tenant.exchange['id']}/statement"),
        data={"file": (io.BytesIO(content), "motivation.pdf")},
        content_type="multipart/form-data",
    )


def test_requires_login(client, tenant):
    resp = client.get(_url("/packs"))

    assert resp.status_code == 401


def test_dashboard_page_redirects_to_tenant_login(client, tenant):
    resp = client.get("/student/dashboard?subdomain=alpha")

    assert resp.status_code == 302
    assert resp.headers["Location"] == "/student/login?subdomain=alpha"


def test_lists_visible_offerings(student_client, tenant):
    packs = student_client.get(_url("/packs")).get_json()["items"]
    programs = student_client.get(_url("/exchange")).get_json()["items"]

    assert [p["id"] for p in packs] == [tenant.pack["id"]]
    assert packs[0]["is_open"] is True
    assert packs[0]["selection_status"] is None
    assert [p["id"] for p in programs] == [tenant.exchange["id"]]


def test_offering_detail_shows_remaining_places(student_client, tenant):
    detail = student_client.get(_url(f"/packs/{tenant.pack['id']}")).get_json()

    remaining = [o["remaining"] for o in detail["options"]]
    assert remaining == [1, 2, None]
    assert detail["selection"] is None


def test_submit_and_cancel_selection(student_client, tenant):
    course = tenant.catalogue.courses[2]["id"]

    submitted = student_client.post(_url(f"/packs/{tenant.pack['id']}/selection"), json={"course_ids": [course]})
    cancelled = student_client.delete(_url(f"/packs/{tenant.pack['id']}/selection"))
    missing = student_client.delete(_url(f"/packs/{tenant.pack['id']}/selection"))

    assert submitted.status_code == 201
    assert submitted.get_json()["status"] == "pending"
    assert cancelled.get_json() == {"status": "cancelled", "offering_id": tenant.pack["id"]}
    assert missing.status_code == 404


def test_submit_with_form_fields(student_client, tenant):
    universities = tenant.catalogue.universities

    resp = student_client.post(
        _url(f"/exchange/{tenant.exchange['id']}/selection"),
        data={"university_ids": [str(universities[1]["id"])]},
    )

    assert resp.status_code == 201
    assert resp.get_json()["selected_ids"] == [universities[1]["id"]]


@pytest.mark.parametrize(
    "payload, status, code",
    [
        ({"course_ids": []}, 409, "selection_empty"),
        ({"course_ids": [999]}, 409, "option_not_in_offering"),
        ({"course_ids": "abc"}, 400, "selection_invalid"),
    ],
)
def test_submit_rule_errors(student_client, tenant, payload, status, code):
    resp = student_client.post(_url(f"/packs/{tenant.pack['id']}/selection"), json=payload)

    assert resp.status_code == status
    assert resp.get_json()["error"] == code


def test_full_option_reported_as_conflict(client, login, tenant):
    first = tenant.catalogue.courses[0]["id"]
    login(client, tenant.student)
    client.post(_url(f"/packs/{tenant.pack['id']}/selection"), json={"course_ids": [first]})

    login(client, tenant.other_student)
    resp = client.post(_url(f"/packs/{tenant.pack['id']}/selection"), json={"course_ids": [first]})

    assert resp.status_code == 409
    assert resp.get_json()["error"] == "option_full"
    assert resp.get_json()["message"] == "One of the selected options has no places left."


def test_statement_upload_attaches_to_selection(student_client, tenant):
    uni = tenant.catalogue.universities[0]["id"]
    student_client.post(_url(f"/exchange/{tenant.exchange['id']}/selection"), json={"university_ids": [uni]})

    resp = student_client.post(
        _url(f"/exchange/{tenant.exchange['id']}/statement"),
        data={"file": (io.BytesIO(b"%PDF statement"), "motivation.pdf")},
        content_type="multipart/form-data",
    )

    url = resp.get_json()["statement_url"]
    assert url.startswith(f"/files/statements/{tenant.id}/statement-exchange-{tenant.exchange['id']}_{tenant.student.id}_")
    assert student_client.get(url).data == b"%PDF statement"


def test_statement_requires_selection(student_client, tenant, tmp_path):
    resp = student_client.post(
        _url(f"/exchange/{tenant.exchange['id']}/statement"),
        data={"file": (io.BytesIO(b"%PDF"), "motivation.pdf")},
        content_type="multipart/form-data",
    )

    assert resp.status_code == 404
    assert resp.get_json()["error"] == "selection_not_found"
    assert _stored_files(tmp_path) == []


def test_statement_refused_for_approved_selection_leaves_no_file(student_client, tenant, tmp_path):
    uni = tenant.catalogue.universities[0]["id"]
    selection = student_client.post(
        _url(f"/exchange/{tenant.exchange['id']}/selection"), json={"university_ids": [uni]}
    ).get_json()
    offerings_service.review_selection("exchange", tenant.id, selection["id"], "approved")

    resp = _upload_statement(student_client, tenant)

    assert resp.status_code == 409
    assert resp.get_json()["error"] == "selection_locked"
    assert _stored_files(tmp_path) == []


def test_statement_replacement_deletes_previous_file(student_client, tenant, tmp_path):
    uni = tenant.catalogue.universities[0]["id"]
    student_client.post(_url(f"/exchange/{tenant.exchange['id']}/selection"), json={"university_ids": [uni]})

    first = _upload_statement(student_client, tenant, b"%PDF first").get_json()["statement_url"]
    second = _upload_statement(student_client, tenant, b"%PDF second").get_json()["statement_url"]

    assert first != second
    assert _stored_files(tmp_path) == [second.rsplit("/", 1)[-1]]
    assert student_client.get(first).status_code == 404


def test_cancel_removes_statement_file(student_client, tenant, tmp_path):
    uni = tenant.catalogue.universities[0]["id"]
    student_client.post(_url(f"/exchange/{tenant.exchange['id']}/selection"), json={"university_ids": [uni]})
    _upload_statement(student_client, tenant)

    resp = student_client.delete(_url(f"/exchange/{tenant.exchange['id']}/selection"))

    assert resp.status_code == 200
    assert _stored_files(tmp_path) == []


def test_submit_ignores_client_statement_url(client, login, tenant):
    first, second = (u["id"] for u in tenant.catalogue.universities)
    login(client, tenant.other_student)
    client.post(_url(f"/exchange/{tenant.exchange['id']}/selection"), json={"university_ids": [first]})
    foreign = _upload_statement(client, tenant).get_json()["statement_url"]

    login(client, tenant.student)
    resp = client.post(
        _url(f"/exchange/{tenant.exchange['id']}/selection"),
        json={"university_ids": [second], "statement_url": foreign},
    )

    assert resp.status_code == 201
    assert resp.get_json()["statement_url"] is None


def test_syllabus_template(student_client, tenant):
    missing = student_client.get(_url(f"/exchange/{tenant.exchange['id']}/syllabus"))
    assert missing.status_code == 404

    offerings_service.update_offering(
        "exchange", tenant.id, tenant.exchange["id"], {"syllabus_template_url": "/files/syllabi/1/t.pdf"}
    )
    found = student_client.get(_url(f"/exchange/{tenant.exchange['id']}/syllabus"))
    assert found.get_json() == {"url": "/files/syllabi/1/t.pdf"}


def test_profile_and_dashboard(student_client, tenant):
    profile = student_client.get(_url("/profile")).get_json()
    dashboard = student_client.get(_url("/dashboard")).get_json()

    assert profile["student"]["group_id"] == tenant.catalogue.group["id"]
    assert dashboard["open_packs"] == 1
    assert dashboard["pending"] == 0


def test_student_on_other_subdomain_forbidden(student_client, seed):
    seed.tenant("beta")

    resp = student_client.get("/student/api/packs?subdomain=beta")

    assert resp.status_code == 403
