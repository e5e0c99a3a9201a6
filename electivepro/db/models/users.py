"""Accounts: profiles, role extensions and pending auth tokens."""
from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)

from .base import Base, iso, utcnow


class Profile(Base):
    """Login identity. `institution_id` is NULL only for super admins."""

    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(32), nullable=False, index=True)
    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=True, index=True)
    password_hash = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    locale = Column(String(8), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def as_dict(self) -> dict:
        # password_hash is never exposed
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "institution_id": self.institution_id,
            "is_active": bool(self.is_active),
            "locale": self.locale,
            "has_password": bool(self.password_hash),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Profile id={self.id} email={self.email} role={self.role}>"


class StudentProfile(Base):
    __tablename__ = "student_profiles"

    profile_id = Column(Integer, ForeignKey("profiles.id"), primary_key=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=True, index=True)
    enrollment_year = Column(Integer, nullable=True)

    def as_dict(self) -> dict:
        return {
            "profile_id": self.profile_id,
            "group_id": self.group_id,
            "enrollment_year": self.enrollment_year,
        }


class ManagerProfile(Base):
    __tablename__ = "manager_profiles"

    profile_id = Column(Integer, ForeignKey("profiles.id"), primary_key=True)
    program_id = Column(Integer, ForeignKey("programs.id"), nullable=True, index=True)

    def as_dict(self) -> dict:
        return {"profile_id": self.profile_id, "program_id": self.program_id}


class AuthToken(Base):
    """Pending invitation / password reset, one row per (email, token_type).

    The row stores the hash of the temporary password embedded in the
    emailed link; deleting the row invalidates outstanding links.
    """

    __tablename__ = "auth_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, index=True)
    token_type = Column(String(16), nullable=False)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_sent_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("email", "token_type", name="uq_auth_token_email_type"),
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "token_type": self.token_type,
            "created_at": iso(self.created_at),
            "last_sent_at": iso(self.last_sent_at),
        }


__all__ = ["Profile", "StudentProfile", "ManagerProfile", "AuthToken"]
