from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import check_permission, require_roles, require_school
from app.auth.schemas import Actor
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import (
    AssignmentCreate,
    AssignmentResponse,
    ReviewCreate,
    SubmissionCreate,
    SubmissionResponse,
    SubmissionWithStudent,
)

router = APIRouter(prefix="/api/sms/assignments", tags=["assignments"])


@router.get("", response_model=List[AssignmentResponse])
async def list_assignments(
    academic_year_id: Optional[UUID] = Query(None, alias="academicYearId"),
    term_id: Optional[UUID] = Query(None, alias="termId"),
    child_id: Optional[UUID] = Query(None, alias="childId"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_school),
):
    try:
        return await service.list_assignments(db, actor, academic_year_id, term_id, child_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
async def create_assignment(
    payload: AssignmentCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("create_assignments")),
):
    try:
        return await service.create_assignment(db, actor, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{assignment_id}/publish", response_model=AssignmentResponse)
async def publish_assignment(
    assignment_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("create_assignments")),
):
    try:
        return await service.publish_assignment(db, actor, assignment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{assignment_id}/close", response_model=AssignmentResponse)
async def close_assignment(
    assignment_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("create_assignments")),
):
    try:
        return await service.close_assignment(db, actor, assignment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{assignment_id}/submit",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles("student"))],
)
async def submit_assignment(
    assignment_id: UUID,
    payload: SubmissionCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_school),
):
    try:
        return await service.submit_assignment(db, actor, assignment_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/submissions/{submission_id}/review", response_model=SubmissionResponse)
async def review_submission(
    submission_id: UUID,
    payload: ReviewCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("grade_assignments")),
):
    try:
        return await service.review_submission(db, actor, submission_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{assignment_id}/submissions", response_model=List[SubmissionWithStudent])
async def list_submissions(
    assignment_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("grade_assignments")),
):
    try:
        return await service.list_submissions(db, actor.school_id, assignment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
