"""
classwork/models/user.py
User directory record – teachers and students share one table

A student's department and year drive broadcast task scopes.
"""

from __future__ import annotations

import enum
from typing import Optional

from sqlalchemy import CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from classwork.database.base import str_pk
from classwork.models.base_model import BaseModel


class UserRoleName(str, enum.Enum):
    TEACHER = "teacher"
    STUDENT = "student"


class User(BaseModel):
    __tablename__ = "users"

    id: Mapped[str_pk]
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRoleName.STUDENT.value)

    # Student profile (null for teachers)
    department: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    year: Mapped[Optional[str]] = mapped_column(String(20), index=True)

    __table_args__ = (
        CheckConstraint("role IN ('teacher', 'student')", name="valid_role"),
    )

    @property
    def is_student(self) -> bool:
        return self.role == UserRoleName.STUDENT.value

    @property
    def is_teacher(self) -> bool:
        return self.role == UserRoleName.TEACHER.value

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"
