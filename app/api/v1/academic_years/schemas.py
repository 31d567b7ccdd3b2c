from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from app.core.schemas import CamelModel


class AcademicYearCreate(CamelModel):
    """Create academic year. The first year of a school becomes active automatically."""

    name: str = Field(..., min_length=1, max_length=50, description="e.g. 2025-2026")
    start_date: date
    end_date: date = Field(..., description="Must be after start_date")
    is_active: bool = Field(False, description="Activate now; every other year of the school is deactivated")


class AcademicYearUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None


class AcademicYearResponse(CamelModel):
    id: UUID
    school_id: UUID
    name: str
    start_date: date
    end_date: date
    is_active: bool
    created_at: datetime


class TermCreate(CamelModel):
    academic_year_id: UUID
    name: str = Field(..., min_length=1, max_length=50)
    start_date: date
    end_date: date
    is_active: bool = False


class TermResponse(CamelModel):
    id: UUID
    school_id: UUID
    academic_year_id: UUID
    name: str
    start_date: date
    end_date: date
    is_active: bool
    created_at: datetime
