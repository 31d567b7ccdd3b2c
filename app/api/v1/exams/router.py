from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import check_permission, require_admin, require_school
from app.auth.schemas import Actor
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import ExamCreate, ExamResponse, MarkInput, MarkResponse

router = APIRouter(prefix="/api/sms/exams", tags=["exams"])


@router.get("", response_model=List[ExamResponse])
async def list_exams(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_school),
):
    return await service.list_exams(db, actor.school_id)


@router.post("", response_model=ExamResponse, status_code=status.HTTP_201_CREATED)
async def create_exam(
    payload: ExamCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    try:
        return await service.create_exam(db, actor.school_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{exam_id}/publish", response_model=ExamResponse)
async def publish_exam(
    exam_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    try:
        return await service.publish_exam(db, actor, exam_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{exam_id}/marks", response_model=List[MarkResponse])
async def get_marks(
    exam_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_school),
):
    try:
        return await service.get_marks(db, actor, exam_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{exam_id}/marks", response_model=List[MarkResponse])
async def save_marks(
    exam_id: UUID,
    payload: List[MarkInput],
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("edit_grades")),
):
    try:
        return await service.save_marks(db, actor, exam_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
