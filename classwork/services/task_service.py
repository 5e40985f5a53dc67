"""
classwork/services/task_service.py
Task Directory surface – teacher-created tasks and their reference files
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from classwork.core.config import Settings, settings as default_settings
from classwork.models.task import AssignmentType, SubmissionFormat, Task, TaskReferenceFile
from classwork.repositories.task_repository import TaskRepository
from classwork.repositories.user_repository import UserRepository
from classwork.services import access_policy, file_service
from classwork.services.file_service import IncomingFile
from classwork.storage.blob_store import BlobStore, StoredBlob
from classwork.utils.dates import as_utc, utcnow
from classwork.utils.exceptions import (
    ForbiddenException, InvalidArgumentException, NotFoundException, PartialFailure
)

logger = logging.getLogger(__name__)


@dataclass
class TaskDraft:
    title: str
    assignment_type: str
    description: Optional[str] = None
    instructions: Optional[str] = None
    due_date: Optional[datetime] = None
    max_marks: int = 100
    assignee_id: Optional[str] = None
    target_department: Optional[str] = None
    target_year: Optional[str] = None
    allowed_file_types: Optional[Iterable[str]] = None
    max_file_size: Optional[int] = None
    submission_format: str = SubmissionFormat.FILE.value
    reference_files: List[IncomingFile] = field(default_factory=list)


@dataclass
class TaskChanges:
    """Partial update; None leaves a field as it is."""
    title: Optional[str] = None
    description: Optional[str] = None
    instructions: Optional[str] = None
    due_date: Optional[datetime] = None
    clear_due_date: bool = False
    max_marks: Optional[int] = None
    assignment_type: Optional[str] = None
    assignee_id: Optional[str] = None
    target_department: Optional[str] = None
    target_year: Optional[str] = None
    allowed_file_types: Optional[Iterable[str]] = None
    max_file_size: Optional[int] = None
    submission_format: Optional[str] = None

    @property
    def touches_scope(self) -> bool:
        return any(v is not None for v in (
            self.assignment_type, self.assignee_id, self.target_department, self.target_year
        ))


class TaskService:
    def __init__(self, db: Session, blob_store: BlobStore, settings: Settings = default_settings):
        self.db = db
        self.task_repo = TaskRepository(db)
        self.user_repo = UserRepository(db)
        self.blob_store = blob_store
        self.settings = settings

    def create_task(self, draft: TaskDraft, owner_id: str) -> Task:
        owner = self.user_repo.get_by_id(owner_id)
        if owner is None or not owner.is_teacher:
            raise ForbiddenException("Only teachers can create tasks")

        title = self._validate_title(draft.title)
        self._validate_max_marks(draft.max_marks)
        scope = self._validate_scope(draft)
        allowed_types = self._validate_file_types(draft.allowed_file_types)
        max_file_size = draft.max_file_size or self.settings.DEFAULT_MAX_FILE_SIZE
        self._validate_max_file_size(max_file_size)
        self._validate_format(draft.submission_format)

        # reference material is checked against the global list, not the student one
        file_service.validate_batch(
            draft.reference_files,
            allowed_types=self.settings.SUPPORTED_FILE_TYPES,
            max_file_size=self.settings.DEFAULT_MAX_FILE_SIZE,
            max_files=self.settings.MAX_FILES_PER_SUBMISSION,
        )

        task = Task(
            owner_id=owner_id,
            title=title,
            description=(draft.description or "").strip() or None,
            instructions=(draft.instructions or "").strip() or None,
            due_date=as_utc(draft.due_date),
            max_marks=draft.max_marks,
            allowed_file_types=allowed_types,
            max_file_size=max_file_size,
            submission_format=draft.submission_format,
            **scope,
        )

        stored = file_service.store_batch(
            self.blob_store,
            draft.reference_files,
            {"ownerId": owner_id, "kind": "reference"},
            uploaded_at=utcnow(),
            attempts=self.settings.BLOB_RETRY_ATTEMPTS,
            backoff=self.settings.BLOB_RETRY_BACKOFF_SECONDS,
            backoff_cap=self.settings.BLOB_RETRY_BACKOFF_CAP_SECONDS,
        )
        try:
            self.task_repo.create_task(task, [TaskReferenceFile(**ref) for ref in stored])
            self.db.commit()
        except Exception:
            self.db.rollback()
            if stored:
                logger.warning("Task write failed; %d reference blob(s) left orphaned", len(stored))
            raise

        logger.info("Task %s created by %s (%s)", task.id, owner_id, task.assignment_type)
        return task

    def update_task(self, task_id: str, changes: TaskChanges, user_id: str) -> Task:
        """
        Owner edits a task. Scope fields are replaced as a group: when any
        of them is given, the others are cleared unless given too.
        Existing submissions are kept; lateness is derived from the new due date.
        """
        task = self.task_repo.get_by_id(task_id)
        if task is None:
            raise NotFoundException("Task not found")
        if not access_policy.is_task_owner(user_id, task):
            raise ForbiddenException("Only the task owner can update this task")

        values = {}
        if changes.title is not None:
            values["title"] = self._validate_title(changes.title)
        if changes.max_marks is not None:
            self._validate_max_marks(changes.max_marks)
            values["max_marks"] = changes.max_marks
        if changes.touches_scope:
            values.update(self._validate_scope(TaskDraft(
                title=task.title,
                assignment_type=changes.assignment_type or task.assignment_type,
                assignee_id=changes.assignee_id,
                target_department=changes.target_department,
                target_year=changes.target_year,
            )))
        if changes.allowed_file_types is not None:
            values["allowed_file_types"] = self._validate_file_types(changes.allowed_file_types)
        if changes.max_file_size is not None:
            self._validate_max_file_size(changes.max_file_size)
            values["max_file_size"] = changes.max_file_size
        if changes.submission_format is not None:
            self._validate_format(changes.submission_format)
            values["submission_format"] = changes.submission_format
        if changes.description is not None:
            values["description"] = changes.description.strip() or None
        if changes.instructions is not None:
            values["instructions"] = changes.instructions.strip() or None
        if changes.clear_due_date:
            values["due_date"] = None
        elif changes.due_date is not None:
            values["due_date"] = as_utc(changes.due_date)

        for name, value in values.items():
            setattr(task, name, value)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Task %s updated by %s (%s)", task_id, user_id, ", ".join(sorted(values)) or "no changes")
        return task

    @staticmethod
    def _validate_title(title: Optional[str]) -> str:
        title = (title or "").strip()
        if not title:
            raise InvalidArgumentException("Title is required")
        return title

    @staticmethod
    def _validate_max_marks(max_marks: Optional[int]) -> None:
        if max_marks is None or max_marks <= 0:
            raise InvalidArgumentException("Max marks must be positive")

    @staticmethod
    def _validate_max_file_size(max_file_size: int) -> None:
        if max_file_size <= 0:
            raise InvalidArgumentException("Max file size must be positive")

    @staticmethod
    def _validate_format(submission_format: str) -> None:
        if submission_format not in {f.value for f in SubmissionFormat}:
            raise InvalidArgumentException(f"Invalid submission format: {submission_format}")

    def _validate_scope(self, draft: TaskDraft) -> dict:
        """Exactly the discriminator matching the assignment type, nothing else."""
        kind = draft.assignment_type
        assignee_id = draft.assignee_id or None
        department = (draft.target_department or "").strip() or None
        year = (draft.target_year or "").strip() or None

        if kind == AssignmentType.INDIVIDUAL.value:
            if not assignee_id or department or year:
                raise InvalidArgumentException("Individual tasks need an assignee and no broadcast target")
            assignee = self.user_repo.get_by_id(assignee_id)
            if assignee is None or not assignee.is_student:
                raise InvalidArgumentException("Assignee must be an existing student")
        elif kind == AssignmentType.DEPARTMENT.value:
            if not department or assignee_id or year:
                raise InvalidArgumentException("Department tasks need a target department only")
        elif kind == AssignmentType.YEAR.value:
            if not year or assignee_id or department:
                raise InvalidArgumentException("Year tasks need a target year only")
        else:
            raise InvalidArgumentException(f"Invalid assignment type: {kind}")

        return {
            "assignment_type": kind,
            "assignee_id": assignee_id,
            "target_department": department,
            "target_year": year,
        }

    def _validate_file_types(self, file_types: Optional[Iterable[str]]) -> List[str]:
        if not file_types:
            return sorted(self.settings.DEFAULT_ALLOWED_FILE_TYPES)
        normalized = {t.strip().lower().lstrip(".") for t in file_types if t and t.strip()}
        unsupported = normalized - set(self.settings.SUPPORTED_FILE_TYPES)
        if unsupported:
            raise InvalidArgumentException(f"Unsupported file type(s): {', '.join(sorted(unsupported))}")
        if not normalized:
            return sorted(self.settings.DEFAULT_ALLOWED_FILE_TYPES)
        return sorted(normalized)

    # ===================================================================
    # READS
    # ===================================================================

    def list_for_user(self, user_id: str) -> List[Task]:
        user = self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundException("User not found")
        if user.is_teacher:
            return self.task_repo.list_owned(user_id)
        return self.task_repo.list_for_student(user)

    def get_task(self, task_id: str, user_id: str) -> Task:
        task = self.task_repo.get_by_id(task_id)
        if task is None:
            raise NotFoundException("Task not found")
        if not access_policy.can_view_task(self.user_repo.get_by_id(user_id), task):
            raise ForbiddenException("Access denied")
        return task

    def open_reference_file(
        self, task_id: str, file_id: str, user_id: str
    ) -> Tuple[TaskReferenceFile, StoredBlob]:
        self.get_task(task_id, user_id)
        ref = self.task_repo.find_reference_file(task_id, file_id)
        if ref is None:
            raise NotFoundException("File not found")
        return ref, file_service.open_blob(self.blob_store, file_id)

    # ===================================================================
    # DELETE
    # ===================================================================

    def delete_task(self, task_id: str, user_id: str) -> int:
        """
        Delete the task, every submission on it and all their blobs.
        Returns the number of blobs removed.
        """
        task = self.task_repo.get_by_id(task_id)
        if task is None:
            raise NotFoundException("Task not found")
        if not access_policy.is_task_owner(user_id, task):
            raise ForbiddenException("Only the task owner can delete this task")

        blob_keys = self.task_repo.delete_task(task)
        self.db.commit()

        removed = self._purge(blob_keys, task_id)
        logger.info("Task %s deleted; %d of %d blob(s) removed", task_id, removed, len(blob_keys))
        return removed

    def _purge(self, blob_keys: Sequence[str], task_id: str) -> int:
        try:
            return file_service.discard_blobs(self.blob_store, blob_keys, step="task delete")
        except PartialFailure as exc:
            for file_id, error in exc.failures:
                logger.warning("Blob %s of task %s not deleted: %s", file_id, task_id, error)
            return len(blob_keys) - len(exc.failures)
