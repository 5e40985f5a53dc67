"""
classwork/models/submission.py
Student submission – one record per (task, student)

Features:
- Files are appended as child rows (never rewritten as a list)
- Resubmission mutates the same record
- Grade constrained to 0..100 at the database level
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean, CheckConstraint, DateTime, Float, ForeignKey, String, Text,
    UniqueConstraint, func
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from classwork.database.base import Base, str_pk
from classwork.models.base_model import BaseModel
from classwork.models.file import FileRefMixin
from classwork.models.task import Task


class SubmissionStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    REVIEWED = "reviewed"
    GRADED = "graded"
    RETURNED = "returned"


class Submission(BaseModel):
    __tablename__ = "submissions"

    id: Mapped[str_pk]
    task_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )

    submission_text: Mapped[Optional[str]] = mapped_column(Text)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubmissionStatus.SUBMITTED.value, index=True
    )

    # Grading (null until graded)
    grade: Mapped[Optional[float]] = mapped_column(Float)
    feedback: Mapped[Optional[str]] = mapped_column(Text)
    teacher_comments: Mapped[Optional[str]] = mapped_column(Text)

    # Best-effort flag, set by the notification task
    notified_owner: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    task: Mapped["Task"] = relationship("Task")
    files: Mapped[List["SubmissionFile"]] = relationship(
        "SubmissionFile",
        back_populates="submission",
        cascade="all, delete-orphan",
        order_by="SubmissionFile.id",
    )

    __table_args__ = (
        UniqueConstraint("task_id", "student_id", name="uq_submission_task_student"),
        CheckConstraint("grade IS NULL OR (grade >= 0 AND grade <= 100)", name="grade_range"),
        CheckConstraint(
            "status IN ('submitted', 'reviewed', 'graded', 'returned')", name="valid_status"
        ),
    )

    @property
    def is_graded(self) -> bool:
        return self.status == SubmissionStatus.GRADED.value

    def __repr__(self) -> str:
        return f"<Submission {self.id} task={self.task_id} student={self.student_id} ({self.status})>"


class SubmissionFile(FileRefMixin, Base):
    __tablename__ = "submission_files"

    submission_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )

    submission: Mapped["Submission"] = relationship("Submission", back_populates="files")
