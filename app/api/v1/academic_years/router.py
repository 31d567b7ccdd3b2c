from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_admin, require_staff
from app.auth.schemas import Actor
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import AcademicYearCreate, AcademicYearResponse, AcademicYearUpdate, TermCreate, TermResponse

router = APIRouter(prefix="/api/sms", tags=["academic-years"])


@router.get("/academic-years", response_model=List[AcademicYearResponse])
async def list_academic_years(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    return await service.list_academic_years(db, actor.school_id)


@router.post(
    "/academic-years",
    response_model=AcademicYearResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_academic_year(
    payload: AcademicYearCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    try:
        return await service.create_academic_year(db, actor.school_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/academic-years/{academic_year_id}", response_model=AcademicYearResponse)
async def update_academic_year(
    academic_year_id: UUID,
    payload: AcademicYearUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    try:
        return await service.update_academic_year(db, actor.school_id, academic_year_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/academic-years/{academic_year_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_academic_year(
    academic_year_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> None:
    try:
        await service.delete_academic_year(db, actor.school_id, academic_year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ----- Terms -----
@router.get("/terms", response_model=List[TermResponse])
async def list_terms(
    academic_year_id: Optional[UUID] = Query(None, alias="academicYearId"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    return await service.list_terms(db, actor.school_id, academic_year_id)


@router.post("/terms", response_model=TermResponse, status_code=status.HTTP_201_CREATED)
async def create_term(
    payload: TermCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    try:
        return await service.create_term(db, actor.school_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/terms/{term_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_term(
    term_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> None:
    try:
        await service.delete_term(db, actor.school_id, term_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
