from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field

from app.core.enums import AttendanceStatus
from app.core.schemas import CamelModel


class StaffSessionCreate(CamelModel):
    date: date


class StaffSessionResponse(CamelModel):
    id: UUID
    school_id: UUID
    date: date
    status: str
    marked_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


class StaffEntryItem(CamelModel):
    staff_id: UUID
    status: AttendanceStatus
    note: Optional[str] = Field(None, max_length=500)


class StaffEntriesUpsert(CamelModel):
    entries: List[StaffEntryItem]


class StaffEntryRow(CamelModel):
    id: UUID
    session_id: UUID
    staff_id: UUID
    staff_name: str
    employee_id: Optional[str] = None
    sub_role: Optional[str] = None
    status: str
    note: Optional[str] = None
    marked_by: Optional[UUID] = None
    marked_at: datetime
