from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import check_permission, require_admin, require_school
from app.auth.schemas import Actor
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import (
    EntriesUpsert,
    EntryResponse,
    MyAttendanceResponse,
    RosterItem,
    SessionCreate,
    SessionEntryRow,
    SessionResponse,
    SessionSummary,
)

router = APIRouter(prefix="/api/sms/attendance", tags=["attendance"])


@router.get("/roster", response_model=List[RosterItem])
async def get_roster(
    academic_year_id: UUID = Query(..., alias="academicYearId"),
    class_id: UUID = Query(..., alias="classId"),
    section_id: Optional[UUID] = Query(None, alias="sectionId"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("view_attendance")),
):
    return await service.get_roster(db, actor.school_id, academic_year_id, class_id, section_id)


@router.post(
    "/sessions",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={200: {"description": "Session already existed for this class and date"}},
)
async def create_session(
    payload: SessionCreate,
    response: Response,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("mark_attendance")),
):
    """Create-or-fetch: the same (year, term, class, section, subject, date) always yields one session."""
    try:
        session, created = await service.create_or_get_session(db, actor, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not created:
        response.status_code = status.HTTP_200_OK
    return session


@router.get("/sessions", response_model=List[SessionSummary])
async def list_sessions(
    academic_year_id: Optional[UUID] = Query(None, alias="academicYearId"),
    class_id: Optional[UUID] = Query(None, alias="classId"),
    subject_id: Optional[UUID] = Query(None, alias="subjectId"),
    on_date: Optional[date] = Query(None, alias="date"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("view_attendance")),
):
    return await service.list_sessions(db, actor.school_id, academic_year_id, class_id, subject_id, on_date)


@router.get("/sessions/{session_id}/entries", response_model=List[SessionEntryRow])
async def list_session_entries(
    session_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("view_attendance")),
):
    try:
        return await service.list_session_entries(db, actor.school_id, session_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/sessions/{session_id}/entries", response_model=List[EntryResponse])
async def upsert_entries(
    session_id: UUID,
    payload: EntriesUpsert,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("mark_attendance")),
):
    try:
        return await service.upsert_entries(db, actor, session_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/sessions/{session_id}/submit", response_model=SessionResponse)
async def submit_session(
    session_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("mark_attendance")),
):
    try:
        return await service.submit_session(db, actor, session_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/sessions/{session_id}/lock", response_model=SessionResponse)
async def lock_session(
    session_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    try:
        return await service.lock_session(db, actor, session_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/my", response_model=MyAttendanceResponse)
async def my_attendance(
    child_id: Optional[UUID] = Query(None, alias="childId"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_school),
):
    try:
        return await service.my_attendance(db, actor, child_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
