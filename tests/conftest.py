"""Shared fixtures: in-memory database, Flask app and seed helpers."""
from __future__ import annotations

import smtplib
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Any, Dict, Iterable, Optional

import pytest
from werkzeug.security import generate_password_hash

from electivepro import create_app
from electivepro.db.engine import init_engine_once, reset_for_tests
from electivepro.db.repositories import profiles_repo
from electivepro.services import (
    catalogue_service,
    email_delivery,
    institutions_service,
    offerings_service,
    plans_service,
    tenancy_service,
)
from electivepro.utils import constants
from electivepro.utils.identity import SESSION_EMAIL, SESSION_INSTITUTION_ID, SESSION_ROLE, SESSION_USER_ID

PASSWORD = "correct-horse-1"


@pytest.fixture(autouse=True)
def in_memory_db(monkeypatch, tmp_path):
    monkeypatch.setenv("ELECTIVEPRO_DB_PATH", ":memory:")
    monkeypatch.setenv("ELECTIVEPRO_STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.delenv("ELECTIVEPRO_SUPER_ADMIN_EMAIL", raising=False)
    monkeypatch.delenv("ELECTIVEPRO_SUPER_ADMIN_PASSWORD", raising=False)
    monkeypatch.delenv("ELECTIVEPRO_DEV_HOSTS", raising=False)
    monkeypatch.delenv("ELECTIVEPRO_ROOT_DOMAIN", raising=False)
    monkeypatch.delenv("ELECTIVEPRO_MAIN_HOST", raising=False)
    monkeypatch.delenv("ELECTIVEPRO_SMTP_HOST", raising=False)
    monkeypatch.delenv("ELECTIVEPRO_SMTP_USERNAME", raising=False)
    monkeypatch.delenv("ELECTIVEPRO_DEFAULT_LOCALE", raising=False)
    reset_for_tests(drop=True)
    tenancy_service.invalidate()
    init_engine_once()
    yield
    reset_for_tests(drop=True)
    tenancy_service.invalidate()


@pytest.fixture
def app():
    application = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "electivepro-test-secret",
            "WTF_CSRF_ENABLED": False,
        }
    )
    return application


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def app_context(app):
    with app.app_context():
        yield app


class Seeder:
    """Builds tenants, users and offerings straight through the service layer."""

    def plan(self, code: str = "basic", user_limit: Optional[int] = None) -> Dict[str, Any]:
        return plans_service.create_plan({"code": code, "name": code.title(), "price_cents": 0, "user_limit": user_limit})

    def institution(self, subdomain: str = "demo", *, plan_id: Optional[int] = None, is_active: bool = True) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": f"{subdomain.title()} University", "subdomain": subdomain}
        if plan_id is not None:
            payload["plan_id"] = plan_id
        institution = institutions_service.create_institution(payload)
        if not is_active:
            institution = institutions_service.deactivate_institution(institution["id"])
        return institution

    def profile(
        self,
        email: str,
        role: str,
        institution_id: Optional[int],
        *,
        password: Optional[str] = PASSWORD,
        is_active: bool = True,
        **extra: Any,
    ):
        return profiles_repo.create_profile(
            email=email,
            role=role,
            institution_id=institution_id,
            full_name=email.split("@", 1)[0].title(),
            password_hash=generate_password_hash(password) if password else None,
            is_active=is_active,
            **extra,
        )

    def catalogue(self, institution_id: int) -> SimpleNamespace:
        degree = catalogue_service.create_entity(
            "degree", institution_id, {"name": "Bachelor", "name_ru": "Бакалавриат", "code": "BAK"}
        )
        program = catalogue_service.create_entity(
            "program", institution_id, {"name": "Management", "code": "MEN", "degree_id": degree["id"]}
        )
        group = catalogue_service.create_entity(
            "group", institution_id, {"name": "24.B01", "program_id": program["id"], "enrollment_year": 2024}
        )
        courses = [
            catalogue_service.create_entity(
                "course",
                institution_id,
                {"name": f"Course {n}", "name_ru": f"Курс {n}", "code": f"C{n}", "max_students": limit},
            )
            for n, limit in ((1, 1), (2, 2), (3, None))
        ]
        universities = [
            catalogue_service.create_entity(
                "university", institution_id, {"name": f"University {n}", "country": "Austria", "max_students": 1}
            )
            for n in (1, 2)
        ]
        return SimpleNamespace(degree=degree, program=program, group=group, courses=courses, universities=universities)

    def offering(
        self,
        kind: str,
        institution_id: int,
        option_ids: Iterable[int],
        *,
        status: str = constants.PACK_PUBLISHED,
        max_selections: int = 2,
        deadline: Optional[datetime] = None,
        group_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        deadline = deadline or datetime.utcnow() + timedelta(days=7)
        payload: Dict[str, Any] = {
            "name": "Fall electives" if kind == offerings_service.KIND_COURSE else "Exchange semester",
            "semester": "fall",
            "academic_year": "2025/2026",
            "deadline": deadline.strftime("%Y-%m-%dT%H:%M:%S"),
            "max_selections": max_selections,
            "status": status,
            offerings_service.OPTION_KEYS[kind]: list(option_ids),
        }
        if group_id is not None:
            payload["group_id"] = group_id
        return offerings_service.create_offering(kind, institution_id, payload)

    def tenant(self, subdomain: str = "demo", *, user_limit: Optional[int] = None) -> SimpleNamespace:
        """Institution with catalogue, admin, manager, two students and open offerings."""
        plan = self.plan(code=f"plan-{subdomain}", user_limit=user_limit)
        institution = self.institution(subdomain, plan_id=plan["id"])
        inst_id = institution["id"]
        catalogue = self.catalogue(inst_id)
        group_id = catalogue.group["id"]
        admin = self.profile(f"admin@{subdomain}.edu", constants.ROLE_ADMIN, inst_id)
        manager = self.profile(
            f"manager@{subdomain}.edu", constants.ROLE_PROGRAM_MANAGER, inst_id, program_id=catalogue.program["id"]
        )
        student = self.profile(
            f"student@{subdomain}.edu", constants.ROLE_STUDENT, inst_id, group_id=group_id, enrollment_year=2024
        )
        other_student = self.profile(
            f"other@{subdomain}.edu", constants.ROLE_STUDENT, inst_id, group_id=group_id, enrollment_year=2024
        )
        pack = self.offering(offerings_service.KIND_COURSE, inst_id, [c["id"] for c in catalogue.courses])
        exchange = self.offering(
            offerings_service.KIND_EXCHANGE, inst_id, [u["id"] for u in catalogue.universities], max_selections=1
        )
        return SimpleNamespace(
            plan=plan,
            institution=institution,
            id=inst_id,
            subdomain=subdomain,
            catalogue=catalogue,
            admin=admin,
            manager=manager,
            student=student,
            other_student=other_student,
            pack=pack,
            exchange=exchange,
        )


@pytest.fixture
def seed() -> Seeder:
    return Seeder()


class FakeSMTP:
    """Records messages instead of talking to a mail server."""

    instances: list = []
    fail_with: Optional[Exception] = None

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.started_tls = False
        self.credentials = None
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def starttls(self):
        self.started_tls = True

    def login(self, username, password):
        self.credentials = (username, password)

    def send_message(self, message):
        if FakeSMTP.fail_with is not None:
            raise FakeSMTP.fail_with
        self.sent.append(message)


@pytest.fixture
def mail_outbox(monkeypatch):
    """Configure SMTP and capture outgoing messages."""
    monkeypatch.setenv("ELECTIVEPRO_SMTP_HOST", "smtp.test")
    FakeSMTP.instances = []
    FakeSMTP.fail_with = None
    monkeypatch.setattr(
        email_delivery, "smtplib", SimpleNamespace(SMTP=FakeSMTP, SMTPException=smtplib.SMTPException)
    )
    outbox = SimpleNamespace(connections=FakeSMTP.instances, smtp=FakeSMTP)
    outbox.messages = lambda: [message for conn in FakeSMTP.instances for message in conn.sent]
    return outbox


def _login(client, profile) -> None:
    with client.session_transaction() as sess:
        sess[SESSION_USER_ID] = profile.id
        sess[SESSION_EMAIL] = profile.email
        sess[SESSION_ROLE] = profile.role
        sess[SESSION_INSTITUTION_ID] = profile.institution_id


@pytest.fixture
def login():
    """Put a profile into the client session without going through a login form."""
    return _login
