from datetime import datetime
from uuid import UUID

from pydantic import Field

from app.core.schemas import CamelModel


class SectionCreate(CamelModel):
    class_id: UUID
    name: str = Field(..., min_length=1, max_length=50)


class SectionResponse(CamelModel):
    id: UUID
    school_id: UUID
    class_id: UUID
    name: str
    created_at: datetime
