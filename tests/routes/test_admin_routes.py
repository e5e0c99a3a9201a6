"""Institution admin portal: catalogue, users and branding."""
from __future__ import annotations

import io

import pytest

from electivepro.services import institutions_service


@pytest.fixture
def tenant(seed):
    return seed.tenant("alpha")


@pytest.fixture
def admin_client(client, login, tenant):
    login(client, tenant.admin)
    return client


def test_catalogue_listing_with_filters(admin_client, tenant):
    courses = admin_client.get("/admin/api/catalogue/course").get_json()["items"]
    groups = admin_client.get(
        f"/admin/api/catalogue/group?program_id={tenant.catalogue.program['id']}"
    ).get_json()["items"]

    assert [c["code"] for c in courses] == ["C1", "C2", "C3"]
    assert [g["name"] for g in groups] == ["24.B01"]


def test_catalogue_crud(admin_client):
    created = admin_client.post("/admin/api/catalogue/degree", json={"name": "Master", "code": "MAG"})
    assert created.status_code == 201
    degree_id = created.get_json()["id"]

    duplicate = admin_client.post("/admin/api/catalogue/degree", json={"name": "Master 2", "code": "MAG"})
    assert duplicate.status_code == 409

    renamed = admin_client.put(f"/admin/api/catalogue/degree/{degree_id}", json={"name": "Magistrs"})
    assert renamed.get_json()["name"] == "Magistrs"

    assert admin_client.delete(f"/admin/api/catalogue/degree/{degree_id}").status_code == 200
    assert admin_client.get(f"/admin/api/catalogue/degree/{degree_id}").status_code == 404


def test_catalogue_errors(admin_client, tenant):
    unknown = admin_client.get("/admin/api/catalogue/campus")
    in_use = admin_client.delete(f"/admin/api/catalogue/degree/{tenant.catalogue.degree['id']}")
    invalid = admin_client.post("/admin/api/catalogue/course", json={"code": "X"})

    assert unknown.status_code == 404
    assert in_use.status_code == 409
    assert in_use.get_json()["error"] == "degree_in_use"
    assert invalid.status_code == 400
    assert invalid.get_json()["error"] == "name_required"


def test_group_slug(admin_client, tenant):
    resp = admin_client.get(f"/admin/api/catalogue/group/{tenant.catalogue.group['id']}/slug")

    assert resp.get_json()["slug"] == "bak-men-24-b01"


def test_admin_sees_only_own_institution(admin_client, seed):
    other = seed.tenant("beta")

    resp = admin_client.get(f"/admin/api/catalogue/course/{other.catalogue.courses[0]['id']}")
    users = admin_client.get(f"/admin/api/users/{other.student.id}")

    assert resp.status_code == 404
    assert users.status_code == 404


def test_invite_student_returns_link(admin_client, tenant):
    resp = admin_client.post(
        "/admin/api/users/invite-student",
        json={"email": "fresh@alpha.edu", "full_name": "Fresh", "group_id": tenant.catalogue.group["id"]},
    )

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["user"]["email"] == "fresh@alpha.edu"
    assert body["invite_url"].startswith("http://localhost/auth/accept-invite?token=")


def test_invite_manager_conflict_and_limit(client, login, seed):
    small = seed.tenant("small", user_limit=4)
    login(client, small.admin)

    taken = client.post("/admin/api/users/invite-manager", json={"email": small.manager.email})
    limited = client.post("/admin/api/users/invite-manager", json={"email": "pm2@small.edu"})

    assert taken.status_code == 409
    assert limited.status_code == 409
    assert limited.get_json()["error"] == "user_limit_reached"


def test_users_list_update_and_reset(admin_client, tenant):
    managers = admin_client.get("/admin/api/users?role=program_manager").get_json()["users"]
    updated = admin_client.patch(f"/admin/api/users/{tenant.student.id}", json={"is_active": False})
    reset = admin_client.post(f"/admin/api/users/{tenant.manager.id}/reset-link")

    assert [m["email"] for m in managers] == [tenant.manager.email]
    assert updated.get_json()["is_active"] is False
    assert "/auth/accept-invite?token=" in reset.get_json()["reset_url"]


def test_branding_json_update(admin_client):
    resp = admin_client.put("/admin/api/branding", json={"primary_color": "#336699"})
    bad = admin_client.put("/admin/api/branding", json={"primary_color": "red"})

    assert resp.get_json()["primary_color"] == "#336699"
    assert resp.get_json()["subdomain"] == "alpha"
    assert bad.status_code == 400


def test_branding_logo_upload(admin_client, tenant):
    resp = admin_client.post(
        "/admin/api/branding",
        data={"logo": (io.BytesIO(b"\x89PNG fake"), "logo.png"), "primary_color": "#000000"},
        content_type="multipart/form-data",
    )

    body = resp.get_json()
    assert resp.status_code == 200
    assert body["logo_url"].startswith(f"/files/branding/{tenant.id}/logo_")
    assert admin_client.get(body["logo_url"]).data == b"\x89PNG fake"


def test_branding_rejects_wrong_file_type(admin_client):
    resp = admin_client.post(
        "/admin/api/branding",
        data={"favicon": (io.BytesIO(b"MZ"), "favicon.exe")},
        content_type="multipart/form-data",
    )

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "file_type_not_allowed"


def _branding_files(tmp_path):
    root = tmp_path / "storage" / "branding"
    return sorted(p.name for p in root.rglob("*") if p.is_file()) if root.exists() else []


def test_invalid_branding_fields_store_no_logo(admin_client, tmp_path):
    resp = admin_client.post(
        "/admin/api/branding",
        data={"logo": (io.BytesIO(b"\x89PNG fake"), "logo.png"), "primary_color": "red"},
        content_type="multipart/form-data",
    )

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "primary_color_invalid"
    assert _branding_files(tmp_path) == []


def test_rejected_favicon_discards_stored_logo(admin_client, tmp_path):
    resp = admin_client.post(
        "/admin/api/branding",
        data={
            "logo": (io.BytesIO(b"\x89PNG fake"), "logo.png"),
            "favicon": (io.BytesIO(b"MZ"), "favicon.exe"),
        },
        content_type="multipart/form-data",
    )

    assert resp.status_code == 400
    assert _branding_files(tmp_path) == []


def test_logo_replacement_deletes_previous_file(admin_client, tmp_path):
    first = admin_client.post(
        "/admin/api/branding",
        data={"logo": (io.BytesIO(b"\x89PNG one"), "logo.png")},
        content_type="multipart/form-data",
    ).get_json()["logo_url"]
    second = admin_client.post(
        "/admin/api/branding",
        data={"logo": (io.BytesIO(b"\x89PNG two"), "logo.png")},
        content_type="multipart/form-data",
    ).get_json()["logo_url"]

    assert first != second
    assert _branding_files(tmp_path) == [second.rsplit("/", 1)[-1]]


def test_dashboard_counters(admin_client):
    summary = admin_client.get("/admin/api/dashboard").get_json()

    assert summary["students"] == 2
    assert summary["published_packs"] == 1


def test_manager_cannot_use_admin_api(client, login, tenant):
    login(client, tenant.manager)

    resp = client.get("/admin/api/users")

    assert resp.status_code == 403


def test_admin_api_on_subdomain_redirects(admin_client):
    resp = admin_client.get("/admin/api/dashboard?subdomain=alpha")

    assert resp.status_code == 302
    assert resp.headers["Location"] == "http://localhost/admin/api/dashboard"


def test_admin_of_inactive_institution_cannot_sign_in(client, seed):
    tenant = seed.tenant("gamma")
    institutions_service.deactivate_institution(tenant.id)

    resp = client.post("/admin/login", json={"email": tenant.admin.email, "password": "correct-horse-1"})

    assert resp.status_code == 403
    assert resp.get_json()["error"] == "institution_inactive"
