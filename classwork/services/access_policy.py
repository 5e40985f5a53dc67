"""
classwork/services/access_policy.py
Authorization predicates for tasks and submissions

Pure functions, no I/O. Every service operation that touches a specific
task or submission consults these instead of comparing ids inline.
"""

from __future__ import annotations

from typing import Optional

from classwork.models.submission import Submission
from classwork.models.task import AssignmentType, Task
from classwork.models.user import User


def is_task_owner(user_id: Optional[str], task: Optional[Task]) -> bool:
    return bool(user_id) and task is not None and task.owner_id == user_id


def is_submission_owner(user_id: Optional[str], submission: Optional[Submission]) -> bool:
    return bool(user_id) and submission is not None and submission.student_id == user_id


def is_assignee_of(student: Optional[User], task: Optional[Task]) -> bool:
    """
    Direct match for individual tasks; department or year match against
    the student's directory record for broadcast tasks.
    """
    if student is None or task is None or not student.is_student:
        return False

    if task.assignment_type == AssignmentType.INDIVIDUAL.value:
        return task.assignee_id is not None and task.assignee_id == student.id
    if task.assignment_type == AssignmentType.DEPARTMENT.value:
        return bool(task.target_department) and task.target_department == student.department
    if task.assignment_type == AssignmentType.YEAR.value:
        return bool(task.target_year) and task.target_year == student.year
    return False


def can_view_submission(user_id: Optional[str], submission: Submission, task: Optional[Task]) -> bool:
    """Task owner or the submitting student."""
    return is_submission_owner(user_id, submission) or is_task_owner(user_id, task)


def can_view_task(user: Optional[User], task: Task) -> bool:
    return user is not None and (is_task_owner(user.id, task) or is_assignee_of(user, task))
