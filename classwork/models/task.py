"""
classwork/models/task.py
Task – an assignable unit of work created by a teacher

Scope: one student (individual) or a department / year broadcast.
Carries the submission rules: allowed file types, max file size, format.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, BigInteger, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from classwork.database.base import Base, str_pk
from classwork.models.base_model import BaseModel
from classwork.models.file import FileRefMixin


class AssignmentType(str, enum.Enum):
    INDIVIDUAL = "individual"
    DEPARTMENT = "department"
    YEAR = "year"


class SubmissionFormat(str, enum.Enum):
    FILE = "file"
    TEXT = "text"
    BOTH = "both"


class Task(BaseModel):
    __tablename__ = "tasks"

    id: Mapped[str_pk]
    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    instructions: Mapped[Optional[str]] = mapped_column(Text)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    max_marks: Mapped[int] = mapped_column(Integer, default=100, nullable=False)

    # Assignment scope – exactly one discriminator matches assignment_type
    assignment_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AssignmentType.INDIVIDUAL.value
    )
    assignee_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id"), index=True
    )
    target_department: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    target_year: Mapped[Optional[str]] = mapped_column(String(20), index=True)

    # Submission rules
    allowed_file_types: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    max_file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    submission_format: Mapped[str] = mapped_column(
        String(10), nullable=False, default=SubmissionFormat.FILE.value
    )

    reference_files: Mapped[List["TaskReferenceFile"]] = relationship(
        "TaskReferenceFile",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="TaskReferenceFile.id",
    )

    def __repr__(self) -> str:
        return f"<Task {self.title!r} ({self.assignment_type})>"


class TaskReferenceFile(FileRefMixin, Base):
    """Reference material uploaded by the teacher with the task."""

    __tablename__ = "task_reference_files"

    task_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )

    task: Mapped["Task"] = relationship("Task", back_populates="reference_files")
