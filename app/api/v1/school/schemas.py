from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import EmailStr, Field

from app.core.schemas import CamelModel


class SchoolUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    logo_url: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None


class SchoolResponse(CamelModel):
    id: UUID
    name: str
    logo_url: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    enrollment_open: bool
    student_applications_enabled: bool
    parent_applications_enabled: bool
    staff_applications_enabled: bool
    created_at: datetime
