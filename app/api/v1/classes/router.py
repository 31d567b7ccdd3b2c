from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_admin, require_staff
from app.auth.schemas import Actor
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import ClassCreate, ClassResponse

router = APIRouter(prefix="/api/sms/classes", tags=["classes"])


@router.get("", response_model=List[ClassResponse])
async def list_classes(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    return await service.list_classes(db, actor.school_id)


@router.post("", response_model=ClassResponse, status_code=status.HTTP_201_CREATED)
async def create_class(
    payload: ClassCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    try:
        return await service.create_class(db, actor.school_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{class_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_class(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> None:
    try:
        await service.delete_class(db, actor.school_id, class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
