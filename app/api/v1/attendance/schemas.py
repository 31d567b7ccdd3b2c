from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field

from app.core.enums import AttendanceStatus
from app.core.schemas import CamelModel


class SessionCreate(CamelModel):
    academic_year_id: UUID
    term_id: UUID
    class_id: UUID
    section_id: Optional[UUID] = None
    subject_id: Optional[UUID] = None
    date: date


class SessionResponse(CamelModel):
    id: UUID
    school_id: UUID
    academic_year_id: UUID
    term_id: UUID
    class_id: UUID
    section_id: Optional[UUID] = None
    subject_id: Optional[UUID] = None
    date: date
    status: str
    marked_by: Optional[UUID] = None
    submitted_by: Optional[UUID] = None
    submitted_at: Optional[datetime] = None
    locked_by: Optional[UUID] = None
    locked_at: Optional[datetime] = None
    created_at: datetime


class EntryItem(CamelModel):
    student_id: UUID
    status: AttendanceStatus
    note: Optional[str] = Field(None, max_length=500)


class EntriesUpsert(CamelModel):
    entries: List[EntryItem]


class EntryResponse(CamelModel):
    id: UUID
    session_id: UUID
    student_id: UUID
    status: str
    note: Optional[str] = None
    marked_by: Optional[UUID] = None
    marked_at: datetime


class RosterStudent(CamelModel):
    id: UUID
    name: str
    student_id: Optional[str] = None


class RosterItem(CamelModel):
    enrollment_id: UUID
    student: RosterStudent


class SessionSummary(CamelModel):
    """Session row for listings, with display names resolved."""

    id: UUID
    date: date
    status: str
    academic_year_id: UUID
    academic_year_name: Optional[str] = None
    class_id: UUID
    class_name: Optional[str] = None
    section_id: Optional[UUID] = None
    subject_id: Optional[UUID] = None
    subject_name: Optional[str] = None
    marked_by: Optional[UUID] = None
    marked_by_name: Optional[str] = None
    created_at: datetime
    submitted_at: Optional[datetime] = None
    locked_at: Optional[datetime] = None


class SessionEntryRow(EntryResponse):
    student_name: str
    student_code: Optional[str] = None


class MyAttendanceEntry(CamelModel):
    session_id: UUID
    date: date
    status: str
    note: Optional[str] = None
    class_id: UUID
    subject_id: Optional[UUID] = None
    subject_name: Optional[str] = None


class MyAttendanceResponse(CamelModel):
    academic_year_id: Optional[UUID] = None
    student_id: Optional[UUID] = None
    entries: List[MyAttendanceEntry] = Field(default_factory=list)
