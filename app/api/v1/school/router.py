from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_admin, require_staff
from app.auth.schemas import Actor
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import SchoolResponse, SchoolUpdate

router = APIRouter(prefix="/api/sms/school", tags=["school"])


@router.get("", response_model=SchoolResponse)
async def get_school(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    try:
        return await service.get_school(db, actor.school_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("", response_model=SchoolResponse)
async def update_school(
    payload: SchoolUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    try:
        return await service.update_school(db, actor.school_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
