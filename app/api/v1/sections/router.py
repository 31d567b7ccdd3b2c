from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_admin
from app.auth.schemas import Actor
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import SectionCreate, SectionResponse

router = APIRouter(prefix="/api/sms/sections", tags=["sections"])


@router.get("", response_model=List[SectionResponse])
async def list_sections(
    class_id: Optional[UUID] = Query(None, alias="classId"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    return await service.list_sections(db, actor.school_id, class_id)


@router.post("", response_model=SectionResponse, status_code=status.HTTP_201_CREATED)
async def create_section(
    payload: SectionCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    try:
        return await service.create_section(db, actor.school_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{section_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_section(
    section_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> None:
    try:
        await service.delete_section(db, actor.school_id, section_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
