from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from app.core.schemas import CamelModel


class ClassCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=50)
    sort_order: int = 0
    grade_level: Optional[int] = Field(
        None,
        ge=1,
        description="Position in the promotion ladder. Derived from a 'Grade N' name when omitted.",
    )


class ClassResponse(CamelModel):
    id: UUID
    school_id: UUID
    name: str
    sort_order: int
    grade_level: Optional[int] = None
    created_at: datetime
