"""
PawLenx Backend — Job Application Schemas
===========================================

What:  Response contracts for the application ingestion endpoints.
Who:   Returned by POST /api/applications/submit and GET /api/applications.

Replication reporting:
    `githubUploaded` tells the careers page whether the submission is fully
    durable (local stage + remote host) or locally durable only. A false
    value is still a successful submission.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SubmissionData(BaseModel):
    """Result of one application submission."""

    model_config = ConfigDict(populate_by_name=True)

    folder: str = Field(description="Submission folder name: <Applicant_Name>_<timestamp>")
    application_file: str = Field(serialization_alias="applicationFile")
    resume_file: Optional[str] = Field(default=None, serialization_alias="resumeFile")
    applicant_name: str = Field(serialization_alias="applicantName")
    job_title: Optional[str] = Field(default=None, serialization_alias="jobTitle")
    email: Optional[str] = None
    received_at: datetime = Field(serialization_alias="receivedAt")
    github_uploaded: bool = Field(serialization_alias="githubUploaded")
    state: str = Field(description="Final pipeline state: remote_replicated or remote_replication_failed")


class SubmissionResponse(BaseModel):
    success: bool = True
    message: str = "Application received successfully"
    data: SubmissionData


class ApplicationSummary(BaseModel):
    """One staged submission folder."""

    model_config = ConfigDict(populate_by_name=True)

    folder: str
    files: List[str]
    received_at: datetime = Field(serialization_alias="receivedAt")


class ApplicationListResponse(BaseModel):
    total: int
    applications: List[ApplicationSummary]
