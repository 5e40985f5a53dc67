"""
classwork/services/submission_service.py
Business logic for the submission and grading lifecycle

Handles:
- Student submission (files and/or text) validated against task rules
- Resubmission into the same record (files appended, text replaced)
- Late detection
- Teacher grading, reopening a graded submission
- Student deletion with blob cleanup
- Authorized reads and file downloads
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from classwork.core.config import Settings, settings as default_settings
from classwork.models.submission import Submission, SubmissionFile
from classwork.models.task import SubmissionFormat, Task
from classwork.models.user import User
from classwork.repositories.submission_repository import SubmissionRepository
from classwork.repositories.task_repository import TaskRepository
from classwork.repositories.user_repository import UserRepository
from classwork.services import access_policy, file_service
from classwork.services.file_service import IncomingFile
from classwork.services.notification_service import NotificationDispatcher, SubmissionEvent
from classwork.storage.blob_store import BlobStore, StoredBlob
from classwork.utils.dates import is_late, utcnow
from classwork.utils.exceptions import (
    ForbiddenException, InvalidArgumentException, InvalidOperationException,
    NotFoundException, PartialFailure
)

logger = logging.getLogger(__name__)

GRADED_LOCKED = "Submission has been graded; ask the teacher to reopen it before resubmitting"


@dataclass
class SubmissionResult:
    submission: Submission
    is_late: bool


class SubmissionService:
    def __init__(
        self,
        db: Session,
        blob_store: BlobStore,
        dispatcher: Optional[NotificationDispatcher] = None,
        settings: Settings = default_settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.submission_repo = SubmissionRepository(db)
        self.task_repo = TaskRepository(db)
        self.user_repo = UserRepository(db)
        self.blob_store = blob_store
        self.dispatcher = dispatcher
        self.settings = settings
        self.clock = clock

    # ===================================================================
    # STUDENT: SUBMIT / RESUBMIT
    # ===================================================================

    def submit(
        self,
        task_id: str,
        student_id: str,
        files: Sequence[IncomingFile] = (),
        submission_text: Optional[str] = None,
    ) -> SubmissionResult:
        task = self._get_task(task_id)
        student = self.user_repo.get_by_id(student_id)
        if student is None:
            raise NotFoundException("Student not found")
        if not access_policy.is_assignee_of(student, task):
            raise ForbiddenException("You are not assigned to this task")

        files = list(files or [])
        text = (submission_text or "").strip() or None
        existing = self.submission_repo.get_for_task_and_student(task_id, student_id)
        if existing is not None and existing.is_graded:
            raise InvalidOperationException(GRADED_LOCKED)

        self._check_format(task, files, text, existing)
        file_service.validate_batch(
            files,
            allowed_types=task.allowed_file_types,
            max_file_size=task.max_file_size,
            max_files=self.settings.MAX_FILES_PER_SUBMISSION,
        )

        submitted_at = self.clock()
        stored = file_service.store_batch(
            self.blob_store,
            files,
            {"taskId": task_id, "studentId": student_id},
            uploaded_at=submitted_at,
            attempts=self.settings.BLOB_RETRY_ATTEMPTS,
            backoff=self.settings.BLOB_RETRY_BACKOFF_SECONDS,
            backoff_cap=self.settings.BLOB_RETRY_BACKOFF_CAP_SECONDS,
        )

        try:
            submission_id, created = self._upsert(task_id, student_id, text, submitted_at,
                                                  has_existing=existing is not None)
            if stored:
                self.submission_repo.append_files(submission_id, stored)
            self.db.commit()
        except Exception:
            self.db.rollback()
            if stored:
                # Reconciliation sweep picks these up; no synchronous rollback
                logger.warning(
                    "Submission write failed for task %s; %d stored blob(s) left orphaned",
                    task_id, len(stored),
                )
            raise

        submission = self.submission_repo.get_by_id(submission_id)
        late = is_late(submission.submitted_at, task.due_date)
        logger.info(
            "%s submission %s for task %s (%d new file(s), late=%s)",
            "Created" if created else "Updated", submission.id, task_id, len(stored), late,
        )

        self._dispatch_notice(task, student, submission, stored, late, resubmission=not created)
        return SubmissionResult(submission=submission, is_late=late)

    def _check_format(
        self,
        task: Task,
        files: List[IncomingFile],
        text: Optional[str],
        existing: Optional[Submission],
    ) -> None:
        if not files and not text:
            raise InvalidArgumentException("Please upload at least one file or provide submission text")

        fmt = task.submission_format
        if fmt == SubmissionFormat.TEXT.value and files:
            raise InvalidArgumentException("This task accepts text submissions only")
        if fmt == SubmissionFormat.FILE.value and not files:
            # text-only resubmission keeps earlier files; a first one needs a file
            if existing is None or not existing.files:
                raise InvalidArgumentException("This task requires at least one file")

    def _upsert(
        self,
        task_id: str,
        student_id: str,
        text: Optional[str],
        submitted_at: datetime,
        *,
        has_existing: bool,
    ) -> Tuple[str, bool]:
        if not has_existing:
            try:
                created = self.submission_repo.create(
                    task_id=task_id,
                    student_id=student_id,
                    submission_text=text,
                    submitted_at=submitted_at,
                )
            except IntegrityError as exc:
                raise NotFoundException("Task or student no longer exists") from exc
            if created is not None:
                return created.id, True
            logger.info("Concurrent first submission for task %s; resubmitting instead", task_id)

        if not self.submission_repo.resubmit(
            task_id=task_id,
            student_id=student_id,
            submission_text=text,
            submitted_at=submitted_at,
        ):
            # graded or deleted since the lookup
            if self.submission_repo.get_for_task_and_student(task_id, student_id) is None:
                raise NotFoundException("Submission was deleted; please submit again")
            raise InvalidOperationException(GRADED_LOCKED)

        current = self.submission_repo.get_for_task_and_student(task_id, student_id)
        return current.id, False

    def _dispatch_notice(
        self,
        task: Task,
        student: User,
        submission: Submission,
        stored: List[dict],
        late: bool,
        *,
        resubmission: bool,
    ) -> None:
        if self.dispatcher is None:
            return
        try:
            owner = self.user_repo.get_by_id(task.owner_id)
            event = SubmissionEvent(
                submission_id=submission.id,
                task_id=task.id,
                task_title=task.title,
                owner_id=task.owner_id,
                owner_email=owner.email if owner else None,
                student_id=student.id,
                student_name=student.full_name,
                student_email=student.email,
                submitted_at=submission.submitted_at,
                due_date=task.due_date,
                is_late=late,
                resubmission=resubmission,
                submission_text=submission.submission_text,
                files=[(ref["original_name"], ref["size_bytes"]) for ref in stored],
            )
            self.dispatcher.dispatch(event)
        except Exception:
            logger.warning("Could not dispatch notice for submission %s", submission.id, exc_info=True)

    # ===================================================================
    # TEACHER: GRADE / REOPEN
    # ===================================================================

    def grade(
        self,
        submission_id: str,
        grade: float,
        feedback: Optional[str],
        teacher_comments: Optional[str],
        acting_user_id: str,
    ) -> SubmissionResult:
        submission = self._get_submission(submission_id)
        task = self.task_repo.get_by_id(submission.task_id)
        if not access_policy.is_task_owner(acting_user_id, task):
            raise ForbiddenException("Only the task owner can grade this submission")

        if grade is None or isinstance(grade, bool) or not math.isfinite(grade) or not 0 <= grade <= 100:
            raise InvalidArgumentException("Grade must be between 0 and 100")

        applied = self.submission_repo.apply_grade(
            submission_id,
            grade=float(grade),
            feedback=(feedback or "").strip() or None,
            teacher_comments=(teacher_comments or "").strip() or None,
        )
        if not applied:
            self.db.rollback()
            raise NotFoundException("Submission not found")
        self.db.commit()

        logger.info("Submission %s graded %.2f", submission_id, grade)
        return self._result(self._get_submission(submission_id), task)

    def reopen(self, submission_id: str, acting_user_id: str) -> SubmissionResult:
        """Return a graded submission to the student so it can be resubmitted."""
        submission = self._get_submission(submission_id)
        task = self.task_repo.get_by_id(submission.task_id)
        if not access_policy.is_task_owner(acting_user_id, task):
            raise ForbiddenException("Only the task owner can reopen this submission")

        if not self.submission_repo.reopen(submission_id):
            self.db.rollback()
            raise InvalidOperationException("Only graded submissions can be reopened")
        self.db.commit()

        logger.info("Submission %s reopened", submission_id)
        return self._result(self._get_submission(submission_id), task)

    # ===================================================================
    # STUDENT: DELETE
    # ===================================================================

    def delete_submission(self, submission_id: str, acting_user_id: str) -> None:
        submission = self._get_submission(submission_id)
        if not access_policy.is_submission_owner(acting_user_id, submission):
            raise ForbiddenException("Only the submitting student can delete this submission")
        if submission.is_graded:
            raise InvalidOperationException("Cannot delete graded submission")

        file_ids = [f.file_id for f in submission.files]
        if not self.submission_repo.delete_unless_graded(submission_id):
            # lost a race against grading (or another delete)
            self.db.rollback()
            if self.submission_repo.get_by_id(submission_id) is None:
                raise NotFoundException("Submission not found")
            raise InvalidOperationException("Cannot delete graded submission")
        self.db.commit()

        try:
            file_service.discard_blobs(self.blob_store, file_ids, step="submission delete")
        except PartialFailure as exc:
            for file_id, error in exc.failures:
                logger.warning("Blob %s of submission %s not deleted: %s", file_id, submission_id, error)

        logger.info("Submission %s deleted (%d file(s))", submission_id, len(file_ids))

    # ===================================================================
    # READS
    # ===================================================================

    def get_by_id(self, submission_id: str, acting_user_id: str) -> SubmissionResult:
        submission = self._get_submission(submission_id)
        task = self.task_repo.get_by_id(submission.task_id)
        if not access_policy.can_view_submission(acting_user_id, submission, task):
            raise ForbiddenException("Access denied")
        return self._result(submission, task)

    def list_by_task(self, task_id: str, acting_user_id: str) -> List[SubmissionResult]:
        task = self._get_task(task_id)
        if not access_policy.is_task_owner(acting_user_id, task):
            raise ForbiddenException("Only the task owner can view its submissions")
        return [self._result(s, task) for s in self.submission_repo.list_by_task(task_id)]

    def list_by_student(self, student_id: str) -> List[SubmissionResult]:
        return [self._result(s, s.task) for s in self.submission_repo.list_by_student(student_id)]

    def list_for_teacher(self, acting_user_id: str) -> List[SubmissionResult]:
        """Every submission on tasks the teacher owns."""
        teacher = self.user_repo.get_by_id(acting_user_id)
        if teacher is None or not teacher.is_teacher:
            raise ForbiddenException("Teacher role required")
        return [self._result(s, s.task) for s in self.submission_repo.list_for_task_owner(acting_user_id)]

    def open_file(self, file_id: str, acting_user_id: str) -> Tuple[SubmissionFile, StoredBlob]:
        ref = self.submission_repo.find_file(file_id)
        if ref is None:
            raise NotFoundException("File not found")
        task = self.task_repo.get_by_id(ref.submission.task_id)
        if not access_policy.can_view_submission(acting_user_id, ref.submission, task):
            raise ForbiddenException("Access denied")
        return ref, file_service.open_blob(self.blob_store, file_id)

    # ===================================================================
    # HELPERS
    # ===================================================================

    def _get_task(self, task_id: str) -> Task:
        task = self.task_repo.get_by_id(task_id)
        if task is None:
            raise NotFoundException("Task not found")
        return task

    def _get_submission(self, submission_id: str) -> Submission:
        submission = self.submission_repo.get_by_id(submission_id)
        if submission is None:
            raise NotFoundException("Submission not found")
        return submission

    @staticmethod
    def _result(submission: Submission, task: Optional[Task]) -> SubmissionResult:
        due = task.due_date if task is not None else None
        return SubmissionResult(submission=submission, is_late=is_late(submission.submitted_at, due))
