from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_admin
from app.auth.schemas import Actor
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import StaffEntriesUpsert, StaffEntryRow, StaffSessionCreate, StaffSessionResponse

router = APIRouter(prefix="/api/sms/staff-attendance", tags=["staff-attendance"])


@router.get("/sessions", response_model=List[StaffSessionResponse])
async def list_sessions(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    return await service.list_sessions(db, actor.school_id)


@router.post(
    "/sessions",
    response_model=StaffSessionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={200: {"description": "Session already existed for this date"}},
)
async def create_session(
    payload: StaffSessionCreate,
    response: Response,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    session, created = await service.create_or_get_session(db, actor, payload)
    if not created:
        response.status_code = status.HTTP_200_OK
    return session


@router.get("/sessions/{session_id}/entries", response_model=List[StaffEntryRow])
async def list_entries(
    session_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    try:
        return await service.list_entries(db, actor.school_id, session_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/sessions/{session_id}/entries", response_model=List[StaffEntryRow])
async def upsert_entries(
    session_id: UUID,
    payload: StaffEntriesUpsert,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    try:
        return await service.upsert_entries(db, actor, session_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
