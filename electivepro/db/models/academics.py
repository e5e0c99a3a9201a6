"""Institution catalogue: degrees, programs, groups, years, courses, universities."""
from __future__ import annotations

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from .base import Base, iso, utcnow


class Degree(Base):
    __tablename__ = "degrees"

    id = Column(Integer, primary_key=True, autoincrement=True)
    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    name_ru = Column(String(255), nullable=True)
    code = Column(String(32), nullable=False)
    duration_years = Column(Integer, nullable=True)
    status = Column(String(16), nullable=False, default="active")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("institution_id", "code", name="uq_degree_institution_code"),
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "institution_id": self.institution_id,
            "name": self.name,
            "name_ru": self.name_ru,
            "code": self.code,
            "duration_years": self.duration_years,
            "status": self.status,
            "created_at": iso(self.created_at),
        }


class Program(Base):
    __tablename__ = "programs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=False, index=True)
    degree_id = Column(Integer, ForeignKey("degrees.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    name_ru = Column(String(255), nullable=True)
    code = Column(String(32), nullable=False)
    status = Column(String(16), nullable=False, default="active")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("institution_id", "code", name="uq_program_institution_code"),
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "institution_id": self.institution_id,
            "degree_id": self.degree_id,
            "name": self.name,
            "name_ru": self.name_ru,
            "code": self.code,
            "status": self.status,
            "created_at": iso(self.created_at),
        }


class Group(Base):
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=False, index=True)
    program_id = Column(Integer, ForeignKey("programs.id"), nullable=False, index=True)
    name = Column(String(128), nullable=False)
    display_name = Column(String(128), nullable=True)
    enrollment_year = Column(Integer, nullable=True)
    status = Column(String(16), nullable=False, default="active")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("institution_id", "name", name="uq_group_institution_name"),
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "institution_id": self.institution_id,
            "program_id": self.program_id,
            "name": self.name,
            "display_name": self.display_name,
            "enrollment_year": self.enrollment_year,
            "status": self.status,
            "created_at": iso(self.created_at),
        }


class AcademicYear(Base):
    __tablename__ = "academic_years"

    id = Column(Integer, primary_key=True, autoincrement=True)
    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=False, index=True)
    name = Column(String(64), nullable=False)
    name_ru = Column(String(64), nullable=True)
    code = Column(String(32), nullable=False)

    __table_args__ = (
        UniqueConstraint("institution_id", "code", name="uq_academic_year_institution_code"),
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "institution_id": self.institution_id,
            "name": self.name,
            "name_ru": self.name_ru,
            "code": self.code,
        }


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    name_ru = Column(String(255), nullable=True)
    code = Column(String(32), nullable=False)
    description = Column(Text, nullable=True)
    description_ru = Column(Text, nullable=True)
    credits = Column(Integer, nullable=True)
    max_students = Column(Integer, nullable=True)  # NULL = unlimited
    instructor = Column(String(255), nullable=True)
    degree_id = Column(Integer, ForeignKey("degrees.id"), nullable=True, index=True)
    status = Column(String(16), nullable=False, default="active")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("institution_id", "code", name="uq_course_institution_code"),
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "institution_id": self.institution_id,
            "name": self.name,
            "name_ru": self.name_ru,
            "code": self.code,
            "description": self.description,
            "description_ru": self.description_ru,
            "credits": self.credits,
            "max_students": self.max_students,
            "instructor": self.instructor,
            "degree_id": self.degree_id,
            "status": self.status,
            "created_at": iso(self.created_at),
        }


class University(Base):
    """Partner university offered through exchange programs."""

    __tablename__ = "universities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    name_ru = Column(String(255), nullable=True)
    country = Column(String(128), nullable=True)
    city = Column(String(128), nullable=True)
    website = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    max_students = Column(Integer, nullable=True)
    status = Column(String(16), nullable=False, default="active")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "institution_id": self.institution_id,
            "name": self.name,
            "name_ru": self.name_ru,
            "country": self.country,
            "city": self.city,
            "website": self.website,
            "description": self.description,
            "max_students": self.max_students,
            "status": self.status,
            "created_at": iso(self.created_at),
        }


__all__ = ["Degree", "Program", "Group", "AcademicYear", "Course", "University"]
