"""
classwork/core/dependencies.py
FastAPI dependency functions – reusable across all controllers

Provides:
- Database session (scoped)
- Current authenticated user (from JWT)
- Role-based access enforcement
- Blob Store handle, notifier and fully wired services
"""

from typing import List, Optional

from fastapi import BackgroundTasks, Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from classwork.core.config import settings
from classwork.core.security import SecurityManager
from classwork.database.session import get_db, get_session_factory
from classwork.models.user import UserRoleName
from classwork.services.notification_service import (
    BackgroundNotificationDispatcher, NotificationDispatcher, Notifier
)
from classwork.services.submission_service import SubmissionService
from classwork.services.task_service import TaskService
from classwork.storage.blob_store import BlobStore
from classwork.utils.exceptions import ForbiddenException, UnauthorizedException

# OAuth2 scheme for token extraction from Authorization header
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login/form", auto_error=False)


def get_current_user(token: Optional[str] = Depends(oauth2_scheme)) -> dict:
    """
    Extract and validate JWT token → return user payload (user_id + role)
    Used in all protected routes
    """
    if not token:
        raise UnauthorizedException("Not authenticated")
    return SecurityManager.decode_token(token)


# Role-based dependency factories
def require_roles(allowed_roles: List[str]):
    """
    Factory function to create role-specific dependencies
    Usage: Depends(require_roles(["teacher"]))
    """
    def role_checker(current_user: dict = Depends(get_current_user)):
        if current_user["role"] not in allowed_roles:
            raise ForbiddenException(f"Access denied. Required roles: {allowed_roles}")
        return current_user
    return role_checker


def get_teacher_user(user: dict = Depends(require_roles([UserRoleName.TEACHER.value]))):
    return user


def get_student_user(user: dict = Depends(require_roles([UserRoleName.STUDENT.value]))):
    return user


# =============================================================================
# INFRASTRUCTURE
# =============================================================================

def get_blob_store(request: Request) -> BlobStore:
    """Blob Store built once in the application lifespan."""
    return request.app.state.blob_store


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_notification_dispatcher(
    background_tasks: BackgroundTasks,
    notifier: Notifier = Depends(get_notifier),
) -> NotificationDispatcher:
    return BackgroundNotificationDispatcher(
        background_tasks,
        notifier,
        get_session_factory(),
        settings.NOTIFY_TIMEOUT_SECONDS,
    )


def get_submission_service(
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> SubmissionService:
    return SubmissionService(db, blob_store, dispatcher)


def get_task_service(
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
) -> TaskService:
    return TaskService(db, blob_store)
