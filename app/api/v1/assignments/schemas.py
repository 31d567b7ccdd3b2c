from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field, model_validator

from app.core.schemas import CamelModel


class AssignmentCreate(CamelModel):
    academic_year_id: UUID
    term_id: UUID
    class_id: UUID
    section_id: Optional[UUID] = None
    subject_id: UUID
    title: str = Field(..., min_length=1, max_length=255)
    instructions: str = Field(..., min_length=1)
    due_at: datetime
    max_score: int = Field(..., gt=0)
    attachment_url: Optional[str] = None


class AssignmentResponse(CamelModel):
    id: UUID
    school_id: UUID
    academic_year_id: UUID
    term_id: UUID
    class_id: UUID
    section_id: Optional[UUID] = None
    subject_id: UUID
    title: str
    instructions: str
    due_at: datetime
    max_score: int
    attachment_url: Optional[str] = None
    status: str
    created_by: Optional[UUID] = None
    published_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    created_at: datetime
    submitted: Optional[bool] = Field(None, description="Student/parent listings only")


class SubmissionCreate(CamelModel):
    submission_url: Optional[str] = None
    submission_text: Optional[str] = None

    @model_validator(mode="after")
    def require_content(self) -> "SubmissionCreate":
        if not (self.submission_url or self.submission_text):
            raise ValueError("submissionUrl or submissionText is required")
        return self


class ReviewCreate(CamelModel):
    score: int = Field(..., ge=0)
    feedback: Optional[str] = None


class SubmissionResponse(CamelModel):
    id: UUID
    assignment_id: UUID
    school_id: UUID
    student_id: UUID
    submission_url: Optional[str] = None
    submission_text: Optional[str] = None
    submitted_at: datetime
    score: Optional[int] = None
    feedback: Optional[str] = None
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None


class SubmissionStudent(CamelModel):
    id: UUID
    name: str
    email: str
    student_id: Optional[str] = None


class SubmissionWithStudent(CamelModel):
    submission: SubmissionResponse
    student: SubmissionStudent
