import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BusinessRuleError, ServiceError
from app.core.models import AcademicYear, Term
from app.core.tenant_service import get_active_year, get_scoped_or_404

from .schemas import AcademicYearCreate, AcademicYearUpdate, TermCreate

logger = logging.getLogger(__name__)


def _validate_dates(start_date: date, end_date: date) -> None:
    if end_date <= start_date:
        raise BusinessRuleError("End date must be after start date")


async def _deactivate_others(db: AsyncSession, school_id: UUID, keep_id: Optional[UUID] = None) -> None:
    stmt = update(AcademicYear).where(AcademicYear.school_id == school_id)
    if keep_id is not None:
        stmt = stmt.where(AcademicYear.id != keep_id)
    await db.execute(stmt.values(is_active=False))


async def list_academic_years(db: AsyncSession, school_id: UUID) -> List[AcademicYear]:
    stmt = (
        select(AcademicYear)
        .where(AcademicYear.school_id == school_id)
        .order_by(AcademicYear.start_date.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_academic_year(db: AsyncSession, school_id: UUID, payload: AcademicYearCreate) -> AcademicYear:
    """Create a year. It becomes the active one when requested or when the school has none active."""
    _validate_dates(payload.start_date, payload.end_date)
    activate = payload.is_active or (await get_active_year(db, school_id)) is None
    if activate:
        await _deactivate_others(db, school_id)
    ay = AcademicYear(
        school_id=school_id,
        name=payload.name.strip(),
        start_date=payload.start_date,
        end_date=payload.end_date,
        is_active=activate,
    )
    db.add(ay)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Academic year could not be created", status.HTTP_409_CONFLICT)
    await db.refresh(ay)
    if activate:
        logger.info("Academic year %s is now active for school %s", ay.id, school_id)
    return ay


async def update_academic_year(
    db: AsyncSession,
    school_id: UUID,
    academic_year_id: UUID,
    payload: AcademicYearUpdate,
) -> AcademicYear:
    ay = await get_scoped_or_404(db, AcademicYear, academic_year_id, school_id, "Academic year")
    if payload.is_active is False:
        raise BusinessRuleError("Activate another academic year instead of deactivating this one")

    start = payload.start_date or ay.start_date
    end = payload.end_date or ay.end_date
    _validate_dates(start, end)

    if payload.name is not None:
        ay.name = payload.name.strip()
    ay.start_date = start
    ay.end_date = end
    if payload.is_active and not ay.is_active:
        await _deactivate_others(db, school_id, keep_id=ay.id)
        ay.is_active = True
        logger.info("Academic year %s is now active for school %s", ay.id, school_id)
    await db.commit()
    await db.refresh(ay)
    return ay


async def delete_academic_year(db: AsyncSession, school_id: UUID, academic_year_id: UUID) -> None:
    ay = await get_scoped_or_404(db, AcademicYear, academic_year_id, school_id, "Academic year")
    if ay.is_active:
        raise BusinessRuleError("Cannot delete the active academic year")
    try:
        await db.execute(delete(Term).where(Term.academic_year_id == ay.id))
        await db.delete(ay)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Academic year is in use and cannot be deleted", status.HTTP_409_CONFLICT)


# ----- Terms -----
async def list_terms(db: AsyncSession, school_id: UUID, academic_year_id: Optional[UUID] = None) -> List[Term]:
    stmt = select(Term).where(Term.school_id == school_id)
    if academic_year_id:
        stmt = stmt.where(Term.academic_year_id == academic_year_id)
    stmt = stmt.order_by(Term.start_date)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_term(db: AsyncSession, school_id: UUID, payload: TermCreate) -> Term:
    await get_scoped_or_404(db, AcademicYear, payload.academic_year_id, school_id, "Academic year")
    _validate_dates(payload.start_date, payload.end_date)
    term = Term(
        school_id=school_id,
        academic_year_id=payload.academic_year_id,
        name=payload.name.strip(),
        start_date=payload.start_date,
        end_date=payload.end_date,
        is_active=payload.is_active,
    )
    db.add(term)
    await db.commit()
    await db.refresh(term)
    return term


async def delete_term(db: AsyncSession, school_id: UUID, term_id: UUID) -> None:
    term = await get_scoped_or_404(db, Term, term_id, school_id, "Term")
    try:
        await db.delete(term)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Term is in use and cannot be deleted", status.HTTP_409_CONFLICT)
