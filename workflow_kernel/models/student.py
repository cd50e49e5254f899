"""
Module: workflow_kernel.models.student
Responsibility: ORM persistence for the student roster written by imports.
Architecture position: Kernel > Models.

Roster rows are master data: import commits insert or overwrite them, never
delete.  ``source_batch_id`` records the batch that last wrote the row.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from workflow_kernel.db.base import TrackedBase, UUIDString
from workflow_kernel.domain.types import StudentRecord


class StudentRecordModel(TrackedBase):
    """Persistent roster entry.  ``id`` is the student_id."""

    __tablename__ = "students"

    __table_args__ = (
        Index("ix_students_school", "school_id"),
    )

    parent_attribute = "school_id"
    list_order = ("name", "grade")

    school_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    grade: Mapped[int] = mapped_column(Integer, nullable=False)
    guardian: Mapped[str] = mapped_column(String(300), nullable=False)
    contact: Mapped[str | None] = mapped_column(String(300), nullable=True)
    source_batch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Student {self.id} school={self.school_id} name={self.name!r}>"

    def to_dto(self) -> StudentRecord:
        return StudentRecord(
            student_id=self.id,
            school_id=self.school_id,
            name=self.name,
            grade=self.grade,
            guardian=self.guardian,
            contact=self.contact,
            source_batch_id=self.source_batch_id,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: StudentRecord, created_by_id: UUID) -> StudentRecordModel:
        model = cls(id=dto.student_id, created_by_id=created_by_id)
        model.apply_dto(dto, None)
        return model

    def apply_dto(self, dto: StudentRecord, updated_by_id: UUID | None) -> None:
        self.school_id = dto.school_id
        self.name = dto.name
        self.grade = dto.grade
        self.guardian = dto.guardian
        self.contact = dto.contact
        self.source_batch_id = dto.source_batch_id
        self.updated_by_id = updated_by_id
