"""
classwork/models/base_model.py
Abstract base model – every table model with timestamps inherits from this
"""

from __future__ import annotations

from sqlalchemy.orm import Mapped

from classwork.database.base import Base, created_at_col, updated_at_col


class BaseModel(Base):
    __abstract__ = True

    created_at: Mapped[created_at_col]
    updated_at: Mapped[updated_at_col]

    def __repr__(self) -> str:
        pk = getattr(self, "id", None)
        return f"<{self.__class__.__name__} {pk}>"
