"""
classwork/controllers/submission_controller.py
Submission lifecycle routes – submit, list, grade, reopen, delete, download

Static paths (/mine, /task/..., /files/...) are declared before /{submission_id}.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Path, Query, UploadFile, status
from fastapi.responses import StreamingResponse

from classwork.core.dependencies import (
    get_current_user, get_student_user, get_submission_service, get_teacher_user
)
from classwork.schemas.common import MessageResponse
from classwork.schemas.submission import (
    GradeRequest, SubmissionListResponse, SubmissionResponse
)
from classwork.services.file_service import IncomingFile, content_disposition
from classwork.services.submission_service import SubmissionService

router = APIRouter()


# ===================================================================
# STUDENT ENDPOINTS
# ===================================================================

@router.post("", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
def submit_assignment(
    task_id: str = Form(..., alias="taskId"),
    submission_text: Optional[str] = Form(None, alias="submissionText"),
    files: Optional[List[UploadFile]] = File(None),
    student: dict = Depends(get_student_user),
    service: SubmissionService = Depends(get_submission_service),
):
    """Student submits files and/or text (resubmission updates the same record)"""
    incoming = [IncomingFile.from_upload(f) for f in (files or []) if f.filename]
    result = service.submit(task_id, student["user_id"], incoming, submission_text)
    return SubmissionResponse.from_result(result, "Assignment submitted successfully")


@router.get("/mine", response_model=SubmissionListResponse)
def list_my_submissions(
    student: dict = Depends(get_student_user),
    service: SubmissionService = Depends(get_submission_service),
):
    return SubmissionListResponse.from_results(service.list_by_student(student["user_id"]))


@router.get("", response_model=SubmissionListResponse)
def list_submissions(
    all_: bool = Query(False, alias="all"),
    current_user: dict = Depends(get_current_user),
    service: SubmissionService = Depends(get_submission_service),
):
    """?all=true – teacher view of every submission on the teacher's tasks"""
    if all_:
        return SubmissionListResponse.from_results(service.list_for_teacher(current_user["user_id"]))
    return SubmissionListResponse.from_results(service.list_by_student(current_user["user_id"]))


# ===================================================================
# TEACHER ENDPOINTS
# ===================================================================

@router.get("/task/{task_id}", response_model=SubmissionListResponse)
def list_task_submissions(
    task_id: str = Path(...),
    teacher: dict = Depends(get_teacher_user),
    service: SubmissionService = Depends(get_submission_service),
):
    return SubmissionListResponse.from_results(service.list_by_task(task_id, teacher["user_id"]))


# ===================================================================
# FILES
# ===================================================================

@router.get("/files/{file_id}")
def download_submission_file(
    file_id: str = Path(...),
    current_user: dict = Depends(get_current_user),
    service: SubmissionService = Depends(get_submission_service),
):
    ref, blob = service.open_file(file_id, current_user["user_id"])
    return StreamingResponse(
        blob.iter_chunks(),
        media_type=ref.content_type or blob.content_type,
        headers={
            "Content-Disposition": content_disposition(ref.original_name),
            "Content-Length": str(blob.size),
        },
    )


# ===================================================================
# SINGLE SUBMISSION
# ===================================================================

@router.get("/{submission_id}", response_model=SubmissionResponse)
def get_submission(
    submission_id: str = Path(...),
    current_user: dict = Depends(get_current_user),
    service: SubmissionService = Depends(get_submission_service),
):
    result = service.get_by_id(submission_id, current_user["user_id"])
    return SubmissionResponse.from_result(result, "Submission retrieved")


@router.put("/{submission_id}/grade", response_model=SubmissionResponse)
def grade_submission(
    grade_data: GradeRequest,
    submission_id: str = Path(...),
    teacher: dict = Depends(get_teacher_user),
    service: SubmissionService = Depends(get_submission_service),
):
    result = service.grade(
        submission_id,
        grade_data.grade,
        grade_data.feedback,
        grade_data.teacher_comments,
        teacher["user_id"],
    )
    return SubmissionResponse.from_result(result, "Submission graded successfully")


@router.put("/{submission_id}/reopen", response_model=SubmissionResponse)
def reopen_submission(
    submission_id: str = Path(...),
    teacher: dict = Depends(get_teacher_user),
    service: SubmissionService = Depends(get_submission_service),
):
    """Return a graded submission so the student can resubmit"""
    result = service.reopen(submission_id, teacher["user_id"])
    return SubmissionResponse.from_result(result, "Submission returned to student")


@router.delete("/{submission_id}", response_model=MessageResponse)
def delete_submission(
    submission_id: str = Path(...),
    current_user: dict = Depends(get_current_user),
    service: SubmissionService = Depends(get_submission_service),
):
    service.delete_submission(submission_id, current_user["user_id"])
    return MessageResponse(message="Submission deleted successfully")
