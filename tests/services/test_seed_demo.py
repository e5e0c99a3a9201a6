from __future__ import annotations

from electivepro.db.repositories import institutions_repo, profiles_repo
from electivepro.services import offerings_service, password_service
from electivepro.startup.seed import DEMO_SUBDOMAIN, seed_demo

PASSWORD = "correct-horse-1"


def test_seed_demo_builds_tenant_with_open_offerings(app_context):
    summary = seed_demo(admin_password=PASSWORD)

    assert summary["created"] is True
    assert summary["invite_token"] is None
    institution = institutions_repo.get_by_subdomain(DEMO_SUBDOMAIN)
    assert institution is not None and institution.id == summary["institution_id"]
    admin = profiles_repo.get_by_email(summary["admin_email"])
    assert admin is not None and admin.role == "admin"

    packs = offerings_service.list_offerings(offerings_service.KIND_COURSE, institution.id)
    assert [p["id"] for p in packs] == [summary["elective_pack_id"]]
    assert packs[0]["status"] == "published"
    exchanges = offerings_service.list_offerings(offerings_service.KIND_EXCHANGE, institution.id)
    assert [p["id"] for p in exchanges] == [summary["exchange_program_id"]]


def test_seed_demo_is_idempotent(app_context):
    first = seed_demo(admin_password=PASSWORD)
    second = seed_demo()
    assert second == {"created": False, "institution_id": first["institution_id"]}


def test_seed_demo_without_password_issues_invitation(app_context):
    summary = seed_demo()
    link = password_service.resolve_pending_link(summary["invite_token"])
    assert link.email == summary["admin_email"]
    assert link.role == "admin"


def test_cli_seed_demo_and_create_super_admin(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["seed-demo", "--admin-password", PASSWORD])
    assert result.exit_code == 0
    assert "Demo institution created" in result.output

    again = runner.invoke(args=["seed-demo"])
    assert again.exit_code == 0
    assert "already exists" in again.output

    created = runner.invoke(
        args=["create-super-admin", "--email", "root@electivepro.net", "--password", PASSWORD]
    )
    assert created.exit_code == 0
    assert "root@electivepro.net created" in created.output

    weak = runner.invoke(args=["create-super-admin", "--email", "root@electivepro.net", "--password", "x"])
    assert weak.exit_code != 0
