from typing import List, Optional
from uuid import UUID

from app.core.schemas import CamelModel


class SummaryCards(CamelModel):
    """Dashboard cards; values are preformatted strings."""

    students: str
    employees: str
    pending_admissions: str
    assignments: str
    attendance_locked_sessions: str
    total_expenses: str
    fee_collection: str
    open_invoices: str
    exams_count: str


class SummaryResponse(CamelModel):
    academic_year_id: Optional[UUID] = None
    cards: SummaryCards


class AttendanceReportRow(CamelModel):
    student_id: UUID
    student_name: str
    present: int = 0
    absent: int = 0
    late: int = 0
    excused: int = 0
    total: int = 0
    presence_rate: float = 0.0


class AttendanceReport(CamelModel):
    academic_year_id: Optional[UUID] = None
    class_id: Optional[UUID] = None
    rows: List[AttendanceReportRow]


class AssignmentReportRow(CamelModel):
    assignment_id: UUID
    title: str
    status: str
    max_score: int
    submissions: int
    reviewed: int
    average_score: Optional[float] = None


class AssignmentReport(CamelModel):
    academic_year_id: Optional[UUID] = None
    class_id: Optional[UUID] = None
    rows: List[AssignmentReportRow]


class ExamReportRow(CamelModel):
    student_id: UUID
    student_name: str
    subjects: int
    marks_obtained: float
    total_marks: float
    percentage: Optional[float] = None


class ExamReport(CamelModel):
    exam_id: UUID
    exam_name: str
    status: str
    rows: List[ExamReportRow]
