"""
classwork/services/auth_service.py
Authentication Service – Register, Login, Profile
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from classwork.core.security import SecurityManager
from classwork.models.user import User, UserRoleName
from classwork.repositories.user_repository import UserRepository
from classwork.schemas.user import Token, UserCreate, UserLogin, UserProfile
from classwork.utils.exceptions import (
    ConflictException, InvalidArgumentException, NotFoundException, UnauthorizedException
)

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, db: Session):
        self.user_repo = UserRepository(db)
        self.db = db

    def register(self, user_data: UserCreate) -> Dict[str, Any]:
        """Self-registration for teachers and students"""
        if user_data.role == UserRoleName.STUDENT.value and not (user_data.department and user_data.year):
            raise InvalidArgumentException("Students must provide a department and year")

        if self.user_repo.get_by_email(user_data.email):
            raise ConflictException("Email already registered")

        try:
            user = self.user_repo.create_user(
                email=user_data.email,
                full_name=user_data.full_name.strip(),
                password_hash=SecurityManager.hash_password(user_data.password),
                role=user_data.role,
                department=user_data.department,
                year=user_data.year,
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictException("Email already registered")

        logger.info("Registered %s %s", user.role, user.id)
        return {"user": UserProfile.model_validate(user), "token": self._issue_token(user)}

    def login(self, credentials: UserLogin) -> Dict[str, Any]:
        user = self.user_repo.get_by_email(credentials.email)
        if not user or not SecurityManager.verify_password(credentials.password, user.password_hash):
            raise UnauthorizedException("Invalid email or password")

        return {"user": UserProfile.model_validate(user), "token": self._issue_token(user)}

    def get_current_user_profile(self, user_id: str) -> UserProfile:
        user = self.user_repo.get_by_id(user_id)
        if not user:
            raise NotFoundException("User not found")
        return UserProfile.model_validate(user)

    @staticmethod
    def _issue_token(user: User) -> Token:
        return Token(access_token=SecurityManager.create_access_token({"sub": user.id, "role": user.role}))
