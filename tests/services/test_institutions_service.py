"""Tenant and subscription plan management."""
from __future__ import annotations

import pytest

from electivepro.services import auth_service, institutions_service, plans_service, tenancy_service, users_service
from electivepro.services.institutions_service import (
    InstitutionConflictError,
    InstitutionNotFoundError,
    InstitutionValidationError,
)
from electivepro.utils import constants


@pytest.mark.parametrize("raw", ["riga-tech", "RSU", "a1", "x"])
def test_valid_subdomains(raw):
    assert institutions_service.validate_subdomain(raw) == raw.lower()


@pytest.mark.parametrize(
    "raw, code",
    [
        ("", "subdomain_required"),
        ("-edge", "subdomain_invalid"),
        ("under_score", "subdomain_invalid"),
        ("dots.not.allowed", "subdomain_invalid"),
        ("app", "subdomain_reserved"),
        ("www", "subdomain_reserved"),
    ],
)
def test_invalid_subdomains(raw, code):
    with pytest.raises(InstitutionValidationError) as excinfo:
        institutions_service.validate_subdomain(raw)
    assert str(excinfo.value) == code


def test_color_validation():
    assert institutions_service.validate_color("#1A2B3C") == "#1a2b3c"
    assert institutions_service.validate_color("") is None
    with pytest.raises(InstitutionValidationError):
        institutions_service.validate_color("blue")


def test_create_and_list_with_plan_and_user_count(seed):
    plan = seed.plan("pro", user_limit=100)
    created = seed.institution("alpha", plan_id=plan["id"])
    seed.profile("admin@alpha.edu", constants.ROLE_ADMIN, created["id"])

    listed = institutions_service.list_institutions()

    assert created["plan"] == {"id": plan["id"], "code": "pro", "name": "Pro"}
    assert listed[0]["subdomain"] == "alpha"
    assert listed[0]["user_count"] == 1
    assert institutions_service.get_institution(created["id"])["user_count"] == 1


def test_subdomain_taken(seed):
    seed.institution("alpha")

    with pytest.raises(InstitutionConflictError) as excinfo:
        institutions_service.create_institution({"name": "Copy", "subdomain": "ALPHA"})
    assert str(excinfo.value) == "subdomain_taken"


def test_unknown_plan_rejected():
    with pytest.raises(InstitutionValidationError) as excinfo:
        institutions_service.create_institution({"name": "Alpha", "subdomain": "alpha", "plan_id": 42})
    assert str(excinfo.value) == "plan_invalid"


def test_subscription_range_checked_against_stored_values(seed):
    created = institutions_service.create_institution(
        {"name": "Alpha", "subdomain": "alpha", "subscription_start": "2025-09-01"}
    )

    with pytest.raises(InstitutionValidationError) as excinfo:
        institutions_service.update_institution(created["id"], {"subscription_end": "2025-01-01"})
    assert str(excinfo.value) == "subscription_range_invalid"


def test_deactivation_refreshes_tenant_cache(seed):
    created = seed.institution("alpha")
    assert tenancy_service.lookup_institution("alpha") is not None

    institutions_service.deactivate_institution(created["id"])

    assert tenancy_service.lookup_institution("alpha") is None


def test_missing_institution():
    with pytest.raises(InstitutionNotFoundError):
        institutions_service.get_institution(999)
    with pytest.raises(InstitutionNotFoundError):
        institutions_service.update_institution(999, {"name": "Nope"})


def test_create_admin_with_invitation(seed, app_context):
    created = seed.institution("alpha")

    admin = institutions_service.create_institution_admin(created["id"], {"email": "Head@Alpha.edu", "full_name": "Head"})

    assert admin["email"] == "head@alpha.edu"
    assert admin["role"] == constants.ROLE_ADMIN
    assert admin["invite_token"]
    with pytest.raises(InstitutionConflictError):
        institutions_service.create_institution_admin(created["id"], {"email": "head@alpha.edu"})


def test_create_admin_with_password(seed):
    created = seed.institution("alpha")

    admin = institutions_service.create_institution_admin(
        created["id"], {"email": "head@alpha.edu", "password": "long-enough-1"}
    )

    assert "invite_token" not in admin
    with pytest.raises(InstitutionValidationError):
        institutions_service.create_institution_admin(created["id"], {"email": "x@alpha.edu", "password": "short"})


def test_branding_update_ignores_other_keys(seed):
    created = seed.institution("alpha")

    updated = institutions_service.update_branding(
        created["id"], {"primary_color": "#112233", "subdomain": "hijack", "is_active": False}
    )

    assert updated["primary_color"] == "#112233"
    assert updated["subdomain"] == "alpha"
    assert updated["is_active"] is True


# ---------------- plans ---------------

def test_plan_code_rules():
    with pytest.raises(plans_service.PlanValidationError) as excinfo:
        plans_service.create_plan({"code": "Bad Code", "name": "Bad"})
    assert str(excinfo.value) == "code_invalid"

    plans_service.create_plan({"code": "basic", "name": "Basic"})
    with pytest.raises(plans_service.PlanConflictError) as excinfo:
        plans_service.create_plan({"code": "BASIC", "name": "Again"})
    assert str(excinfo.value) == "plan_code_taken"


def test_plan_update_and_delete(seed):
    plan = seed.plan("basic")
    updated = plans_service.update_plan(plan["id"], {"price_cents": 4900, "user_limit": 250})
    assert updated["price_cents"] == 4900
    assert updated["user_limit"] == 250

    seed.institution("alpha", plan_id=plan["id"])
    with pytest.raises(plans_service.PlanConflictError) as excinfo:
        plans_service.delete_plan(plan["id"])
    assert str(excinfo.value) == "plan_in_use"

    spare = seed.plan("spare")
    plans_service.delete_plan(spare["id"])
    with pytest.raises(plans_service.PlanNotFoundError):
        plans_service.get_plan(spare["id"])


def test_user_capacity(seed):
    plan = seed.plan("tiny", user_limit=2)
    limited = seed.institution("alpha", plan_id=plan["id"])
    unlimited = seed.institution("beta")
    seed.profile("one@alpha.edu", constants.ROLE_ADMIN, limited["id"])

    plans_service.ensure_user_capacity(limited["id"])
    plans_service.ensure_user_capacity(unlimited["id"], additional=1000)
    with pytest.raises(plans_service.PlanLimitReachedError):
        plans_service.ensure_user_capacity(limited["id"], additional=2)


def test_admins_count_toward_limit_but_are_never_blocked(seed, app_context):
    plan = seed.plan("tiny", user_limit=1)
    created = seed.institution("alpha", plan_id=plan["id"])
    institutions_service.create_institution_admin(created["id"], {"email": "one@alpha.edu", "password": "long-enough-1"})

    second = institutions_service.create_institution_admin(
        created["id"], {"email": "two@alpha.edu", "password": "long-enough-1"}
    )

    assert second["role"] == constants.ROLE_ADMIN
    assert institutions_service.get_institution(created["id"])["user_count"] == 2
    with pytest.raises(plans_service.PlanLimitReachedError) as excinfo:
        users_service.invite_manager(created["id"], {"email": "pm@alpha.edu"})
    assert str(excinfo.value) == "user_limit_reached"


# ---------------- self-service signup ---------------

_SIGNUP = {
    "institution_name": "Gamma College",
    "subdomain": "Gamma",
    "full_name": "Grace Hopper",
    "email": "Grace@Gamma.edu",
    "password": "long-enough-1",
}


def test_signup_creates_tenant_and_admin_on_basic_plan(seed):
    basic = seed.plan("basic", user_limit=50)
    assert tenancy_service.lookup_institution("gamma") is None

    created = institutions_service.signup_institution(_SIGNUP)

    institution, admin = created["institution"], created["admin"]
    assert institution["subdomain"] == "gamma"
    assert institution["name"] == "Gamma College"
    assert institution["plan"]["id"] == basic["id"]
    assert admin["email"] == "grace@gamma.edu"
    assert admin["role"] == constants.ROLE_ADMIN
    assert admin["institution_id"] == institution["id"]
    assert admin["has_password"] is True
    assert tenancy_service.lookup_institution("gamma").institution_id == institution["id"]
    user = auth_service.authenticate("grace@gamma.edu", "long-enough-1", portal_role=constants.ROLE_ADMIN)
    assert user.institution_id == institution["id"]


def test_signup_accepts_camel_case_keys_without_basic_plan():
    created = institutions_service.signup_institution(
        {
            "institutionName": "Delta Institute",
            "subdomain": "delta",
            "fullName": "Dee Admin",
            "adminEmail": "dee@delta.edu",
            "adminPassword": "long-enough-1",
        }
    )

    assert created["institution"]["plan"] is None
    assert created["admin"]["full_name"] == "Dee Admin"


@pytest.mark.parametrize(
    "overrides, code",
    [
        ({"institution_name": ""}, "institution_name_required"),
        ({"subdomain": "bad_sub"}, "subdomain_invalid"),
        ({"subdomain": "admin"}, "subdomain_reserved"),
        ({"full_name": None}, "full_name_required"),
        ({"email": "nope"}, "email_invalid"),
        ({"password": "short"}, "password_too_short"),
    ],
)
def test_signup_validation_writes_nothing(overrides, code):
    payload = dict(_SIGNUP, **overrides)

    with pytest.raises(InstitutionValidationError) as excinfo:
        institutions_service.signup_institution(payload)

    assert str(excinfo.value) == code
    assert institutions_service.list_institutions() == []


def test_signup_conflicts_write_nothing(seed):
    existing = seed.tenant("alpha")

    with pytest.raises(InstitutionConflictError) as taken:
        institutions_service.signup_institution(dict(_SIGNUP, subdomain="alpha"))
    with pytest.raises(InstitutionConflictError) as duplicate:
        institutions_service.signup_institution(dict(_SIGNUP, email=existing.admin.email))

    assert str(taken.value) == "subdomain_taken"
    assert str(duplicate.value) == "email_taken"
    assert [inst["subdomain"] for inst in institutions_service.list_institutions()] == ["alpha"]
