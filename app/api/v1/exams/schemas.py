from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import Field, model_validator

from app.core.enums import ExamType
from app.core.schemas import CamelModel


class ExamCreate(CamelModel):
    academic_year_id: UUID
    term_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    type: ExamType = ExamType.exam
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def check_dates(self) -> "ExamCreate":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("endDate must not be before startDate")
        return self


class ExamResponse(CamelModel):
    id: UUID
    school_id: UUID
    academic_year_id: UUID
    term_id: UUID
    name: str
    type: str
    status: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    published_at: Optional[datetime] = None
    created_at: datetime


class MarkInput(CamelModel):
    student_id: UUID
    subject_id: UUID
    marks_obtained: Optional[float] = Field(None, ge=0, le=10000)
    total_marks: float = Field(..., ge=1, le=10000)
    remarks: Optional[str] = Field(None, max_length=500)


class MarkStudent(CamelModel):
    id: UUID
    name: str
    student_id: Optional[str] = None


class MarkSubject(CamelModel):
    id: UUID
    name: str
    code: Optional[str] = None


class MarkResponse(CamelModel):
    id: UUID
    exam_id: UUID
    student_id: UUID
    subject_id: UUID
    marks_obtained: Optional[float] = None
    total_marks: float
    remarks: Optional[str] = None
    graded_by: Optional[UUID] = None
    updated_at: datetime
    student: Optional[MarkStudent] = None
    subject: Optional[MarkSubject] = None
