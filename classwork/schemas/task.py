"""
classwork/schemas/task.py
Task DTOs – creation arrives as multipart form fields, so only output models live here
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from classwork.schemas.common import CamelModel


class FileRefOut(CamelModel):
    file_id: str
    original_name: str
    size_bytes: int
    content_type: str
    uploaded_at: datetime


class TaskOut(CamelModel):
    id: str
    owner_id: str
    title: str
    description: Optional[str] = None
    instructions: Optional[str] = None
    due_date: Optional[datetime] = None
    max_marks: int
    assignment_type: str
    assignee_id: Optional[str] = None
    target_department: Optional[str] = None
    target_year: Optional[str] = None
    allowed_file_types: List[str]
    max_file_size: int
    submission_format: str
    reference_files: List[FileRefOut] = []
    created_at: Optional[datetime] = None


class TaskResponse(BaseModel):
    success: bool = True
    message: str
    data: TaskOut


class TaskListResponse(BaseModel):
    success: bool = True
    total: int
    data: List[TaskOut]
