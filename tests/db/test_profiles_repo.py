"""Profile repository: role extension rows, uniqueness and enriched listings."""
from __future__ import annotations

import pytest

from electivepro.db.repositories import profiles_repo
from electivepro.db.repositories.profiles_repo import ProfileExistsError


def test_create_student_adds_extension_row(seed):
    tenant_id = seed.institution("alpha")["id"]
    catalogue = seed.catalogue(tenant_id)

    profile = profiles_repo.create_profile(
        email="s@alpha.edu",
        role="student",
        institution_id=tenant_id,
        full_name="Student One",
        group_id=catalogue.group["id"],
        enrollment_year=2024,
    )

    student = profiles_repo.get_student_profile(profile.id)
    assert student is not None
    assert student.group_id == catalogue.group["id"]
    assert student.enrollment_year == 2024
    assert profiles_repo.get_manager_profile(profile.id) is None


def test_duplicate_email_raises_exists_error(seed):
    tenant_id = seed.institution("alpha")["id"]
    seed.profile("dup@alpha.edu", "admin", tenant_id)

    with pytest.raises(ProfileExistsError):
        profiles_repo.create_profile(email="dup@alpha.edu", role="admin", institution_id=tenant_id)


def test_as_dict_hides_password_hash(seed):
    tenant_id = seed.institution("alpha")["id"]
    profile = seed.profile("admin@alpha.edu", "admin", tenant_id)

    data = profile.as_dict()

    assert "password_hash" not in data
    assert data["has_password"] is True


def test_list_institution_users_enriches_group_program_and_degree(seed):
    tenant_id = seed.institution("alpha")["id"]
    catalogue = seed.catalogue(tenant_id)
    seed.profile("s@alpha.edu", "student", tenant_id, group_id=catalogue.group["id"], enrollment_year=2024)
    seed.profile("m@alpha.edu", "program_manager", tenant_id, program_id=catalogue.program["id"])
    other_id = seed.institution("beta")["id"]
    seed.profile("s@beta.edu", "student", other_id)

    rows = {row["email"]: row for row in profiles_repo.list_institution_users(tenant_id)}

    assert set(rows) == {"s@alpha.edu", "m@alpha.edu"}
    assert rows["s@alpha.edu"]["group_name"] == "B01"
    assert rows["s@alpha.edu"]["program_name"] == "Management"
    assert rows["s@alpha.edu"]["degree_name"] == "Bachelor"
    assert rows["m@alpha.edu"]["program_id"] == catalogue.program["id"]
    assert rows["m@alpha.edu"]["group_id"] is None


def test_user_counts_by_institution_skips_platform_users(seed):
    tenant_id = seed.institution("alpha")["id"]
    seed.profile("a@alpha.edu", "admin", tenant_id)
    seed.profile("b@alpha.edu", "student", tenant_id)
    seed.profile("root@electivepro.net", "super_admin", None)

    assert profiles_repo.user_counts_by_institution() == {tenant_id: 2}
