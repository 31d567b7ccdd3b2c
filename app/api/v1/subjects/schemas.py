from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from app.core.schemas import CamelModel


class SubjectCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: Optional[str] = Field(None, max_length=20)


class SubjectResponse(CamelModel):
    id: UUID
    school_id: UUID
    name: str
    code: Optional[str] = None
    created_at: datetime
