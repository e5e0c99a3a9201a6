"""Demo tenant seeding.

Creates one plan, one institution with an admin and a small catalogue, and a
published elective pack plus exchange program. Idempotent: an existing demo
subdomain is reported and left untouched.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from electivepro.db.repositories import institutions_repo, plans_repo
from electivepro.services import (
    catalogue_service,
    institutions_service,
    offerings_service,
    plans_service,
)
from electivepro.utils import constants
from electivepro.utils.logging import get_logger

LOG = get_logger("seed")

DEMO_SUBDOMAIN = "demo"
DEMO_PLAN_CODE = "standard"

_COURSES = (
    {"name": "Data Analysis", "name_ru": "Анализ данных", "code": "DA101", "credits": 6, "max_students": 30},
    {"name": "Corporate Finance", "name_ru": "Корпоративные финансы", "code": "CF201", "credits": 6, "max_students": 25},
    {"name": "Digital Marketing", "name_ru": "Цифровой маркетинг", "code": "DM110", "credits": 4},
)
_UNIVERSITIES = (
    {"name": "University of Vienna", "country": "Austria", "city": "Vienna", "max_students": 3},
    {"name": "Sorbonne University", "country": "France", "city": "Paris", "max_students": 2},
)


def seed_demo(*, admin_email: str = "admin@demo.electivepro.net", admin_password: Optional[str] = None) -> Dict[str, Any]:
    existing = institutions_repo.get_by_subdomain(DEMO_SUBDOMAIN)
    if existing is not None:
        LOG.info("Demo institution already present id=%s", existing.id)
        return {"created": False, "institution_id": existing.id}

    plan = plans_repo.get_plan_by_code(DEMO_PLAN_CODE)
    plan_id = plan.id if plan else plans_service.create_plan(
        {"code": DEMO_PLAN_CODE, "name": "Standard", "price_cents": 0, "user_limit": 500}
    )["id"]
    institution = institutions_service.create_institution(
        {"name": "Demo University", "subdomain": DEMO_SUBDOMAIN, "plan_id": plan_id, "primary_color": "#1f4e79"}
    )
    inst_id = institution["id"]
    admin_payload: Dict[str, Any] = {"email": admin_email, "full_name": "Demo Admin"}
    if admin_password:
        admin_payload["password"] = admin_password
    admin = institutions_service.create_institution_admin(inst_id, admin_payload)

    degree = catalogue_service.create_entity(
        "degree", inst_id, {"name": "Bachelor", "name_ru": "Бакалавриат", "code": "BAK", "duration_years": 4}
    )
    program = catalogue_service.create_entity(
        "program", inst_id, {"name": "Management", "name_ru": "Менеджмент", "code": "MEN", "degree_id": degree["id"]}
    )
    year = datetime.utcnow().year
    group = catalogue_service.create_entity(
        "group", inst_id, {"name": f"{year % 100}.B01", "program_id": program["id"], "enrollment_year": year}
    )
    catalogue_service.create_entity(
        "academic_year", inst_id, {"name": f"{year}/{year + 1}", "code": f"{year}-{year + 1}"}
    )
    course_ids = [
        catalogue_service.create_entity("course", inst_id, dict(course, degree_id=degree["id"]))["id"]
        for course in _COURSES
    ]
    university_ids = [catalogue_service.create_entity("university", inst_id, dict(u))["id"] for u in _UNIVERSITIES]

    deadline = (datetime.utcnow() + timedelta(days=30)).strftime("%Y-%m-%d")
    common = {
        "semester": "fall",
        "academic_year": f"{year}/{year + 1}",
        "deadline": deadline,
        "status": constants.PACK_PUBLISHED,
        "group_id": group["id"],
    }
    pack = offerings_service.create_offering(
        offerings_service.KIND_COURSE,
        inst_id,
        dict(common, name="Fall electives", name_ru="Осенние элективы", max_selections=2, course_ids=course_ids),
        created_by=admin["id"],
    )
    exchange = offerings_service.create_offering(
        offerings_service.KIND_EXCHANGE,
        inst_id,
        dict(common, name="Exchange semester", max_selections=1, university_ids=university_ids),
        created_by=admin["id"],
    )
    LOG.info("Demo institution seeded id=%s pack_id=%s exchange_id=%s", inst_id, pack["id"], exchange["id"])
    return {
        "created": True,
        "institution_id": inst_id,
        "admin_email": admin["email"],
        "invite_token": admin.get("invite_token"),
        "group_id": group["id"],
        "elective_pack_id": pack["id"],
        "exchange_program_id": exchange["id"],
    }


__all__ = ["seed_demo", "DEMO_SUBDOMAIN"]
