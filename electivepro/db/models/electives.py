"""Elective packs, exchange programs and the students' selections.

Option ids (courses / universities) are stored as JSON arrays in Text
columns, the list is small and always read whole.
"""
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

from .base import Base, dump_ids, iso, load_ids, utcnow


class _OfferingColumns:
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    name_ru = Column(String(255), nullable=True)
    semester = Column(String(16), nullable=False)
    academic_year = Column(String(32), nullable=False)
    deadline = Column(DateTime, nullable=False)
    max_selections = Column(Integer, nullable=False, default=1)
    status = Column(String(16), nullable=False, default="draft", index=True)
    syllabus_template_url = Column(String(500), nullable=True)
    option_ids = Column(Text, nullable=True)  # JSON array
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def set_option_ids(self, ids) -> None:
        self.option_ids = dump_ids(ids)

    def option_id_list(self):
        return load_ids(self.option_ids)

    def _base_dict(self) -> dict:
        return {
            "id": self.id,
            "institution_id": self.institution_id,
            "name": self.name,
            "name_ru": self.name_ru,
            "semester": self.semester,
            "academic_year": self.academic_year,
            "deadline": iso(self.deadline),
            "max_selections": self.max_selections,
            "status": self.status,
            "syllabus_template_url": self.syllabus_template_url,
            "group_id": self.group_id,
            "created_by": self.created_by,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class ElectivePack(_OfferingColumns, Base):
    __tablename__ = "elective_packs"

    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=False, index=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=True)
    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)

    def as_dict(self) -> dict:
        data = self._base_dict()
        data["course_ids"] = self.option_id_list()
        return data


class ExchangeProgram(_OfferingColumns, Base):
    __tablename__ = "exchange_programs"

    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=False, index=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=True)
    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)

    def as_dict(self) -> dict:
        data = self._base_dict()
        data["university_ids"] = self.option_id_list()
        return data


class _SelectionColumns:
    id = Column(Integer, primary_key=True, autoincrement=True)
    selected_ids = Column(Text, nullable=False, default="[]")  # JSON array
    status = Column(String(16), nullable=False, default="pending", index=True)
    statement_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def set_selected(self, ids) -> None:
        self.selected_ids = dump_ids(ids)

    def selected_list(self):
        return load_ids(self.selected_ids)

    def _base_dict(self) -> dict:
        return {
            "id": self.id,
            "institution_id": self.institution_id,
            "student_id": self.student_id,
            "selected_ids": self.selected_list(),
            "status": self.status,
            "statement_url": self.statement_url,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class CourseSelection(_SelectionColumns, Base):
    __tablename__ = "course_selections"

    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    elective_pack_id = Column(Integer, ForeignKey("elective_packs.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("student_id", "elective_pack_id", name="uq_course_selection_student_pack"),
    )

    def as_dict(self) -> dict:
        data = self._base_dict()
        data["elective_pack_id"] = self.elective_pack_id
        return data


class ExchangeSelection(_SelectionColumns, Base):
    __tablename__ = "exchange_selections"

    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    exchange_program_id = Column(Integer, ForeignKey("exchange_programs.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("student_id", "exchange_program_id", name="uq_exchange_selection_student_program"),
    )

    def as_dict(self) -> dict:
        data = self._base_dict()
        data["exchange_program_id"] = self.exchange_program_id
        return data


__all__ = ["ElectivePack", "ExchangeProgram", "CourseSelection", "ExchangeSelection"]
