"""
classwork/controllers/task_controller.py
Task Directory routes – teachers create, edit and delete, assignees read
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Path, UploadFile, status
from fastapi.responses import StreamingResponse

from classwork.core.dependencies import get_current_user, get_task_service, get_teacher_user
from classwork.schemas.common import MessageResponse
from classwork.schemas.task import TaskListResponse, TaskOut, TaskResponse
from classwork.services.file_service import IncomingFile, content_disposition
from classwork.services.task_service import TaskChanges, TaskDraft, TaskService

router = APIRouter()


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    title: str = Form(...),
    assignment_type: str = Form("individual", alias="assignmentType"),
    description: Optional[str] = Form(None),
    instructions: Optional[str] = Form(None),
    due_date: Optional[datetime] = Form(None, alias="dueDate"),
    max_marks: int = Form(100, alias="maxMarks"),
    assignee_id: Optional[str] = Form(None, alias="assigneeId"),
    target_department: Optional[str] = Form(None, alias="targetDepartment"),
    target_year: Optional[str] = Form(None, alias="targetYear"),
    allowed_file_types: Optional[str] = Form(None, alias="allowedFileTypes"),
    max_file_size: Optional[int] = Form(None, alias="maxFileSize"),
    submission_format: str = Form("file", alias="submissionFormat"),
    reference_files: Optional[List[UploadFile]] = File(None, alias="referenceFiles"),
    teacher: dict = Depends(get_teacher_user),
    service: TaskService = Depends(get_task_service),
):
    """Teacher creates a task (allowedFileTypes is comma separated)"""
    draft = TaskDraft(
        title=title,
        assignment_type=assignment_type,
        description=description,
        instructions=instructions,
        due_date=due_date,
        max_marks=max_marks,
        assignee_id=assignee_id,
        target_department=target_department,
        target_year=target_year,
        allowed_file_types=allowed_file_types.split(",") if allowed_file_types else None,
        max_file_size=max_file_size,
        submission_format=submission_format,
        reference_files=[IncomingFile.from_upload(f) for f in (reference_files or []) if f.filename],
    )
    task = service.create_task(draft, teacher["user_id"])
    return TaskResponse(message="Task created successfully", data=TaskOut.model_validate(task))


@router.get("", response_model=TaskListResponse)
def list_tasks(
    current_user: dict = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Teacher: own tasks. Student: tasks assigned directly or by department/year."""
    tasks = service.list_for_user(current_user["user_id"])
    return TaskListResponse(total=len(tasks), data=[TaskOut.model_validate(t) for t in tasks])


@router.get("/{task_id}", response_model=TaskResponse)
def get_task(
    task_id: str = Path(...),
    current_user: dict = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    task = service.get_task(task_id, current_user["user_id"])
    return TaskResponse(message="Task retrieved", data=TaskOut.model_validate(task))


@router.put("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: str = Path(...),
    title: Optional[str] = Form(None),
    assignment_type: Optional[str] = Form(None, alias="assignmentType"),
    description: Optional[str] = Form(None),
    instructions: Optional[str] = Form(None),
    due_date: Optional[datetime] = Form(None, alias="dueDate"),
    clear_due_date: bool = Form(False, alias="clearDueDate"),
    max_marks: Optional[int] = Form(None, alias="maxMarks"),
    assignee_id: Optional[str] = Form(None, alias="assigneeId"),
    target_department: Optional[str] = Form(None, alias="targetDepartment"),
    target_year: Optional[str] = Form(None, alias="targetYear"),
    allowed_file_types: Optional[str] = Form(None, alias="allowedFileTypes"),
    max_file_size: Optional[int] = Form(None, alias="maxFileSize"),
    submission_format: Optional[str] = Form(None, alias="submissionFormat"),
    teacher: dict = Depends(get_teacher_user),
    service: TaskService = Depends(get_task_service),
):
    """Owner edits a task; omitted fields keep their values"""
    changes = TaskChanges(
        title=title,
        description=description,
        instructions=instructions,
        due_date=due_date,
        clear_due_date=clear_due_date,
        max_marks=max_marks,
        assignment_type=assignment_type,
        assignee_id=assignee_id,
        target_department=target_department,
        target_year=target_year,
        allowed_file_types=allowed_file_types.split(",") if allowed_file_types is not None else None,
        max_file_size=max_file_size,
        submission_format=submission_format,
    )
    task = service.update_task(task_id, changes, teacher["user_id"])
    return TaskResponse(message="Task updated successfully", data=TaskOut.model_validate(task))


@router.delete("/{task_id}", response_model=MessageResponse)
def delete_task(
    task_id: str = Path(...),
    teacher: dict = Depends(get_teacher_user),
    service: TaskService = Depends(get_task_service),
):
    service.delete_task(task_id, teacher["user_id"])
    return MessageResponse(message="Task deleted successfully")


@router.get("/{task_id}/files/{file_id}")
def download_reference_file(
    task_id: str = Path(...),
    file_id: str = Path(...),
    current_user: dict = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    ref, blob = service.open_reference_file(task_id, file_id, current_user["user_id"])
    return StreamingResponse(
        blob.iter_chunks(),
        media_type=ref.content_type or blob.content_type,
        headers={
            "Content-Disposition": content_disposition(ref.original_name),
            "Content-Length": str(blob.size),
        },
    )
