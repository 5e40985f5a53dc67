"""
classwork/repositories/user_repository.py
Student/User directory – data access only, no business rules
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from classwork.models.user import User


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(func.lower(User.email) == email.lower())
        return self.db.scalars(stmt).first()

    def create_user(
        self,
        *,
        email: str,
        full_name: str,
        password_hash: str,
        role: str,
        department: Optional[str] = None,
        year: Optional[str] = None,
    ) -> User:
        user = User(
            email=email.lower(),
            full_name=full_name,
            password_hash=password_hash,
            role=role,
            department=department,
            year=year,
        )
        self.db.add(user)
        self.db.flush()
        return user
