"""
PawLenx Backend — Job Application Routes
==========================================

What:  POST /api/applications/submit and GET /api/applications.
How:   Multipart parts are read with a byte cap and handed to the
       IngestionPipeline, which validates, stages and replicates them.

Request Flow (submit):
    1. Client sends multipart/form-data: application (required PDF),
       resume (optional PDF), applicantName, jobTitle, email
    2. Each file part is read into memory, at most MAX_FILE_SIZE + 1 bytes
    3. IngestionPipeline: validate → stage locally → replicate remotely
    4. 200 with the submission folder and githubUploaded flag

Error responses (global exception handlers):
    400: No PDF file received / Only PDF files are accepted
    413: File too large. Max size is 10MB.
    500: Local staging failed
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from pawlenx.dependencies import ServiceContainer, get_services, read_part
from pawlenx.schemas.applications import ApplicationListResponse, SubmissionResponse
from pawlenx.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/applications", tags=["Applications"])


@router.post(
    "/submit",
    response_model=SubmissionResponse,
    responses={
        400: {"description": "Missing or non-PDF file", "model": ErrorResponse},
        413: {"description": "File larger than the size ceiling", "model": ErrorResponse},
        500: {"description": "Local staging failed", "model": ErrorResponse},
    },
    summary="Submit a job application",
)
async def submit_application(
    application: Optional[UploadFile] = File(default=None, description="Application PDF"),
    resume: Optional[UploadFile] = File(default=None, description="Resume PDF (optional)"),
    applicant_name: Optional[str] = Form(default=None, alias="applicantName"),
    job_title: Optional[str] = Form(default=None, alias="jobTitle"),
    email: Optional[str] = Form(default=None),
    services: ServiceContainer = Depends(get_services),
) -> SubmissionResponse:
    max_size = services.settings.max_file_size
    application_part = await read_part(application, "application", max_size)
    resume_part = await read_part(resume, "resume", max_size)

    data = await services.ingestion.submit_application(
        application_part,
        resume_part,
        applicant_name=_blank_to_none(applicant_name),
        job_title=_blank_to_none(job_title),
        email=_blank_to_none(email),
    )
    return SubmissionResponse(data=data)


@router.get(
    "",
    response_model=ApplicationListResponse,
    summary="List staged applications, newest first",
)
async def list_applications(
    services: ServiceContainer = Depends(get_services),
) -> ApplicationListResponse:
    applications = services.ingestion.list_applications()
    return ApplicationListResponse(total=len(applications), applications=applications)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()
