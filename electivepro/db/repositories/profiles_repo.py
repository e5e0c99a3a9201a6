"""Repository helpers for profiles and their role-specific extensions."""
from __future__ import annotations

from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from electivepro.db import app_session
from electivepro.db.models import (
    Degree,
    Group,
    ManagerProfile,
    Profile,
    Program,
    StudentProfile,
)


class ProfileExistsError(Exception):
    """Raised when the email is already registered."""


def get_profile(profile_id: int) -> Optional[Profile]:
    with app_session() as session:
        return session.query(Profile).filter(Profile.id == profile_id).one_or_none()


def get_by_email(email: str) -> Optional[Profile]:
    with app_session() as session:
        return session.query(Profile).filter(Profile.email == email).one_or_none()


def create_profile(
    *,
    email: str,
    role: str,
    institution_id: Optional[int],
    full_name: Optional[str] = None,
    password_hash: Optional[str] = None,
    is_active: bool = True,
    locale: Optional[str] = None,
    group_id: Optional[int] = None,
    enrollment_year: Optional[int] = None,
    program_id: Optional[int] = None,
) -> Profile:
    """Insert a profile and, for students/managers, its extension row."""
    profile = Profile(
        email=email,
        role=role,
        institution_id=institution_id,
        full_name=full_name,
        password_hash=password_hash,
        is_active=is_active,
        locale=locale,
    )
    try:
        with app_session() as session:
            session.add(profile)
            session.flush()
            if role == "student":
                session.add(
                    StudentProfile(
                        profile_id=profile.id,
                        group_id=group_id,
                        enrollment_year=enrollment_year,
                    )
                )
            elif role == "program_manager":
                session.add(ManagerProfile(profile_id=profile.id, program_id=program_id))
    except IntegrityError as exc:
        raise ProfileExistsError("Email already registered") from exc
    return profile


def update_profile(profile_id: int, **fields) -> Optional[Profile]:
    with app_session() as session:
        profile = session.query(Profile).filter(Profile.id == profile_id).one_or_none()
        if not profile:
            return None
        for key, value in fields.items():
            setattr(profile, key, value)
        return profile


def set_password_hash(email: str, password_hash: str) -> bool:
    with app_session() as session:
        profile = session.query(Profile).filter(Profile.email == email).one_or_none()
        if not profile:
            return False
        profile.password_hash = password_hash
        return True


def get_student_profile(profile_id: int) -> Optional[StudentProfile]:
    with app_session() as session:
        return session.query(StudentProfile).filter(StudentProfile.profile_id == profile_id).one_or_none()


def get_manager_profile(profile_id: int) -> Optional[ManagerProfile]:
    with app_session() as session:
        return session.query(ManagerProfile).filter(ManagerProfile.profile_id == profile_id).one_or_none()


def upsert_student_profile(profile_id: int, **fields) -> StudentProfile:
    with app_session() as session:
        record = session.query(StudentProfile).filter(StudentProfile.profile_id == profile_id).one_or_none()
        if record is None:
            record = StudentProfile(profile_id=profile_id)
            session.add(record)
        for key, value in fields.items():
            setattr(record, key, value)
        return record


def upsert_manager_profile(profile_id: int, program_id: Optional[int]) -> ManagerProfile:
    with app_session() as session:
        record = session.query(ManagerProfile).filter(ManagerProfile.profile_id == profile_id).one_or_none()
        if record is None:
            record = ManagerProfile(profile_id=profile_id)
            session.add(record)
        record.program_id = program_id
        return record


def list_profiles(*, institution_id: Optional[int] = None, role: Optional[str] = None) -> List[Profile]:
    with app_session() as session:
        query = session.query(Profile)
        if institution_id is not None:
            query = query.filter(Profile.institution_id == institution_id)
        if role is not None:
            query = query.filter(Profile.role == role)
        return query.order_by(Profile.created_at.desc(), Profile.id.desc()).all()


def list_institution_users(institution_id: int, role: Optional[str] = None) -> List[dict]:
    """Profiles of one institution enriched with group/program/degree info."""
    rows: List[dict] = []
    with app_session() as session:
        query = (
            session.query(Profile, StudentProfile, ManagerProfile)
            .outerjoin(StudentProfile, StudentProfile.profile_id == Profile.id)
            .outerjoin(ManagerProfile, ManagerProfile.profile_id == Profile.id)
            .filter(Profile.institution_id == institution_id)
        )
        if role is not None:
            query = query.filter(Profile.role == role)
        groups = {g.id: g for g in session.query(Group).filter(Group.institution_id == institution_id)}
        programs = {p.id: p for p in session.query(Program).filter(Program.institution_id == institution_id)}
        degrees = {d.id: d for d in session.query(Degree).filter(Degree.institution_id == institution_id)}
        for profile, student, manager in query.order_by(Profile.full_name.asc(), Profile.id.asc()):
            entry = profile.as_dict()
            group = groups.get(student.group_id) if student else None
            program_id = group.program_id if group else (manager.program_id if manager else None)
            program = programs.get(program_id) if program_id else None
            degree = degrees.get(program.degree_id) if program else None
            entry.update(
                {
                    "group_id": group.id if group else None,
                    "group_name": (group.display_name or group.name) if group else None,
                    "enrollment_year": student.enrollment_year if student else None,
                    "program_id": program.id if program else None,
                    "program_name": program.name if program else None,
                    "degree_id": degree.id if degree else None,
                    "degree_name": degree.name if degree else None,
                }
            )
            rows.append(entry)
    return rows


def count_profiles(*, institution_id: Optional[int] = None, role: Optional[str] = None) -> int:
    with app_session() as session:
        query = session.query(Profile)
        if institution_id is not None:
            query = query.filter(Profile.institution_id == institution_id)
        if role is not None:
            query = query.filter(Profile.role == role)
        return int(query.count())


def user_counts_by_institution() -> Dict[int, int]:
    with app_session() as session:
        rows = (
            session.query(Profile.institution_id, func.count(Profile.id))
            .filter(Profile.institution_id.isnot(None))
            .group_by(Profile.institution_id)
            .all()
        )
        return {int(inst_id): int(count) for inst_id, count in rows}


def count_students_in_group(group_id: int) -> int:
    with app_session() as session:
        return int(session.query(StudentProfile).filter(StudentProfile.group_id == group_id).count())


def count_managers_in_program(program_id: int) -> int:
    with app_session() as session:
        return int(session.query(ManagerProfile).filter(ManagerProfile.program_id == program_id).count())


def students_by_ids(profile_ids: List[int]) -> Dict[int, dict]:
    """Map profile id -> {email, full_name, group_id, group_name, enrollment_year}."""
    if not profile_ids:
        return {}
    result: Dict[int, dict] = {}
    with app_session() as session:
        query = (
            session.query(Profile, StudentProfile, Group)
            .outerjoin(StudentProfile, StudentProfile.profile_id == Profile.id)
            .outerjoin(Group, Group.id == StudentProfile.group_id)
            .filter(Profile.id.in_(profile_ids))
        )
        for profile, student, group in query:
            result[profile.id] = {
                "id": profile.id,
                "email": profile.email,
                "full_name": profile.full_name,
                "group_id": group.id if group else None,
                "group_name": (group.display_name or group.name) if group else None,
                "enrollment_year": student.enrollment_year if student else None,
            }
    return result


__all__ = [
    "ProfileExistsError",
    "get_profile",
    "get_by_email",
    "create_profile",
    "update_profile",
    "set_password_hash",
    "get_student_profile",
    "get_manager_profile",
    "upsert_student_profile",
    "upsert_manager_profile",
    "list_profiles",
    "list_institution_users",
    "count_profiles",
    "user_counts_by_institution",
    "count_students_in_group",
    "count_managers_in_program",
    "students_by_ids",
]
