"""
classwork/repositories/task_repository.py
Task directory – task records and their reference-file rows
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.orm import Session, selectinload

from classwork.models.submission import Submission, SubmissionFile
from classwork.models.task import AssignmentType, Task, TaskReferenceFile
from classwork.models.user import User


class TaskRepository:
    def __init__(self, db: Session):
        self.db = db

    # ===================================================================
    # READ
    # ===================================================================

    def get_by_id(self, task_id: str) -> Optional[Task]:
        return self.db.get(Task, task_id)

    def list_owned(self, owner_id: str) -> List[Task]:
        stmt = (
            select(Task)
            .where(Task.owner_id == owner_id)
            .options(selectinload(Task.reference_files))
            .order_by(Task.created_at.desc())
        )
        return list(self.db.scalars(stmt).all())

    def list_for_student(self, student: User) -> List[Task]:
        """Tasks assigned directly or through the student's department/year."""
        conditions = [
            and_(
                Task.assignment_type == AssignmentType.INDIVIDUAL.value,
                Task.assignee_id == student.id,
            )
        ]
        if student.department:
            conditions.append(and_(
                Task.assignment_type == AssignmentType.DEPARTMENT.value,
                Task.target_department == student.department,
            ))
        if student.year:
            conditions.append(and_(
                Task.assignment_type == AssignmentType.YEAR.value,
                Task.target_year == student.year,
            ))

        stmt = (
            select(Task)
            .where(or_(*conditions))
            .options(selectinload(Task.reference_files))
            .order_by(Task.due_date.is_(None), Task.due_date.asc(), Task.created_at.desc())
        )
        return list(self.db.scalars(stmt).all())

    def find_reference_file(self, task_id: str, file_id: str) -> Optional[TaskReferenceFile]:
        stmt = select(TaskReferenceFile).where(
            TaskReferenceFile.task_id == task_id,
            TaskReferenceFile.file_id == file_id,
        )
        return self.db.scalars(stmt).first()

    # ===================================================================
    # WRITE
    # ===================================================================

    def create_task(self, task: Task, reference_files: Sequence[TaskReferenceFile] = ()) -> Task:
        task.reference_files = list(reference_files)
        self.db.add(task)
        self.db.flush()
        return task

    def delete_task(self, task: Task) -> List[str]:
        """
        Delete the task with its submissions and FileRef rows.
        Returns every blob key the deleted rows referenced.
        """
        submission_ids = select(Submission.id).where(Submission.task_id == task.id)
        blob_keys = list(self.db.scalars(
            select(SubmissionFile.file_id).where(SubmissionFile.submission_id.in_(submission_ids))
        ).all())
        blob_keys.extend(ref.file_id for ref in task.reference_files)

        self.db.execute(
            delete(SubmissionFile).where(SubmissionFile.submission_id.in_(submission_ids))
        )
        self.db.execute(delete(Submission).where(Submission.task_id == task.id))
        self.db.delete(task)
        self.db.flush()
        return blob_keys
