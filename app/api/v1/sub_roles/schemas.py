from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field

from app.core.schemas import CamelModel


class PermissionResponse(CamelModel):
    id: UUID
    key: str
    label: str
    description: Optional[str] = None


class SubRoleCreate(CamelModel):
    key: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)


class SubRoleResponse(CamelModel):
    id: UUID
    school_id: UUID
    key: str
    name: str
    is_system: bool
    created_at: datetime


class GrantsReplace(CamelModel):
    sub_role_id: UUID
    permission_keys: List[str] = Field(default_factory=list)


class GrantResponse(CamelModel):
    id: UUID
    school_id: UUID
    sub_role_id: UUID
    permission_key: str
    created_at: datetime
