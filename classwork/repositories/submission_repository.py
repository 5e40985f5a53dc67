"""
classwork/repositories/submission_repository.py
Submission Store – one record per (task, student) plus its FileRef rows

Concurrency notes:
- create relies on the (task_id, student_id) unique constraint
- resubmission, grading and deletion are single conditional statements,
  so the status guard is evaluated together with the mutation
- files are appended as new rows, never rewritten as a list
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from classwork.models.submission import Submission, SubmissionFile, SubmissionStatus
from classwork.models.task import Task


class SubmissionRepository:
    def __init__(self, db: Session):
        self.db = db

    # ===================================================================
    # READ
    # ===================================================================

    def get_by_id(self, submission_id: str) -> Optional[Submission]:
        stmt = (
            select(Submission)
            .where(Submission.id == submission_id)
            .options(selectinload(Submission.files))
            .execution_options(populate_existing=True)
        )
        return self.db.scalars(stmt).first()

    def get_for_task_and_student(self, task_id: str, student_id: str) -> Optional[Submission]:
        stmt = (
            select(Submission)
            .where(Submission.task_id == task_id, Submission.student_id == student_id)
            .options(selectinload(Submission.files))
            .execution_options(populate_existing=True)
        )
        return self.db.scalars(stmt).first()

    def list_by_task(self, task_id: str) -> List[Submission]:
        stmt = (
            select(Submission)
            .where(Submission.task_id == task_id)
            .options(selectinload(Submission.files))
            .order_by(Submission.submitted_at.desc())
        )
        return list(self.db.scalars(stmt).all())

    def list_by_student(self, student_id: str) -> List[Submission]:
        stmt = (
            select(Submission)
            .where(Submission.student_id == student_id)
            .options(selectinload(Submission.files), selectinload(Submission.task))
            .order_by(Submission.submitted_at.desc())
        )
        return list(self.db.scalars(stmt).all())

    def list_for_task_owner(self, owner_id: str) -> List[Submission]:
        stmt = (
            select(Submission)
            .join(Task, Task.id == Submission.task_id)
            .where(Task.owner_id == owner_id)
            .options(selectinload(Submission.files), selectinload(Submission.task))
            .order_by(Submission.submitted_at.desc())
        )
        return list(self.db.scalars(stmt).all())

    def find_file(self, file_id: str) -> Optional[SubmissionFile]:
        stmt = (
            select(SubmissionFile)
            .where(SubmissionFile.file_id == file_id)
            .options(selectinload(SubmissionFile.submission))
        )
        return self.db.scalars(stmt).first()

    # ===================================================================
    # SUBMIT / RESUBMIT
    # ===================================================================

    def create(
        self,
        *,
        task_id: str,
        student_id: str,
        submission_text: Optional[str],
        submitted_at: datetime,
    ) -> Optional[Submission]:
        """
        Insert the first submission for (task, student).
        Returns None when a concurrent request created it first; the
        transaction is rolled back in that case. Any other integrity
        failure (a task or student that no longer exists) is re-raised.
        """
        submission = Submission(
            task_id=task_id,
            student_id=student_id,
            submission_text=submission_text,
            submitted_at=submitted_at,
            status=SubmissionStatus.SUBMITTED.value,
            notified_owner=False,
        )
        self.db.add(submission)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            # the backend's message does not reliably name the constraint
            if self.get_for_task_and_student(task_id, student_id) is None:
                raise
            return None
        return submission

    def resubmit(
        self,
        *,
        task_id: str,
        student_id: str,
        submission_text: Optional[str],
        submitted_at: datetime,
    ) -> bool:
        """
        Reset an existing submission for a new round.
        Scalar fields are last-writer-wins; graded submissions are left
        untouched and False is returned.
        """
        values: Dict[str, Any] = {
            "submitted_at": submitted_at,
            "status": SubmissionStatus.SUBMITTED.value,
            "notified_owner": False,
        }
        if submission_text:
            values["submission_text"] = submission_text

        stmt = (
            update(Submission)
            .where(
                Submission.task_id == task_id,
                Submission.student_id == student_id,
                Submission.status != SubmissionStatus.GRADED.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def append_files(self, submission_id: str, files: Sequence[Dict[str, Any]]) -> List[SubmissionFile]:
        rows = [SubmissionFile(submission_id=submission_id, **f) for f in files]
        self.db.add_all(rows)
        self.db.flush()
        return rows

    # ===================================================================
    # GRADE / REOPEN / DELETE
    # ===================================================================

    def apply_grade(
        self,
        submission_id: str,
        *,
        grade: float,
        feedback: Optional[str],
        teacher_comments: Optional[str],
    ) -> bool:
        values: Dict[str, Any] = {"grade": grade, "status": SubmissionStatus.GRADED.value}
        if feedback is not None:
            values["feedback"] = feedback
        if teacher_comments is not None:
            values["teacher_comments"] = teacher_comments

        stmt = (
            update(Submission)
            .where(Submission.id == submission_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def reopen(self, submission_id: str) -> bool:
        stmt = (
            update(Submission)
            .where(
                Submission.id == submission_id,
                Submission.status == SubmissionStatus.GRADED.value,
            )
            .values(status=SubmissionStatus.RETURNED.value)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def delete_unless_graded(self, submission_id: str) -> bool:
        stmt = (
            delete(Submission)
            .where(
                Submission.id == submission_id,
                Submission.status != SubmissionStatus.GRADED.value,
            )
            .execution_options(synchronize_session=False)
        )
        if self.db.execute(stmt).rowcount != 1:
            return False
        self.db.execute(
            delete(SubmissionFile)
            .where(SubmissionFile.submission_id == submission_id)
            .execution_options(synchronize_session=False)
        )
        return True

    # ===================================================================
    # NOTIFICATION FLAG
    # ===================================================================

    def mark_owner_notified(self, submission_id: str, submitted_at: datetime) -> bool:
        """Set the flag only if no resubmission happened since the event."""
        stmt = (
            update(Submission)
            .where(Submission.id == submission_id, Submission.submitted_at == submitted_at)
            .values(notified_owner=True)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1
