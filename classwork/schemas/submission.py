"""
classwork/schemas/submission.py
Submission DTOs – grading input, submission output with lateness
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import ConfigDict, Field

from classwork.schemas.common import CamelModel
from classwork.schemas.task import FileRefOut
from classwork.services.submission_service import SubmissionResult


class GradeRequest(CamelModel):
    """Range is checked by the service (400), not here (422). Booleans are rejected outright."""
    model_config = ConfigDict(extra="forbid")

    grade: float = Field(..., strict=True)
    feedback: Optional[str] = Field(None, max_length=5000)
    teacher_comments: Optional[str] = Field(None, max_length=5000)


class SubmissionOut(CamelModel):
    id: str
    task_id: str
    student_id: str
    submission_text: Optional[str] = None
    submitted_at: datetime
    status: str
    grade: Optional[float] = None
    feedback: Optional[str] = None
    teacher_comments: Optional[str] = None
    notified_owner: bool = False
    files: List[FileRefOut] = []


class SubmissionListItem(SubmissionOut):
    is_late: bool = False

    @classmethod
    def from_result(cls, result: SubmissionResult) -> "SubmissionListItem":
        item = cls.model_validate(result.submission)
        item.is_late = result.is_late
        return item


class SubmissionResponse(CamelModel):
    success: bool = True
    message: str
    submission: SubmissionOut
    is_late: bool

    @classmethod
    def from_result(cls, result: SubmissionResult, message: str) -> "SubmissionResponse":
        return cls(
            message=message,
            submission=SubmissionOut.model_validate(result.submission),
            is_late=result.is_late,
        )


class SubmissionListResponse(CamelModel):
    success: bool = True
    total: int
    data: List[SubmissionListItem]

    @classmethod
    def from_results(cls, results: List[SubmissionResult]) -> "SubmissionListResponse":
        items = [SubmissionListItem.from_result(r) for r in results]
        return cls(total=len(items), data=items)
