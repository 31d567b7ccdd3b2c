import re
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ServiceError
from app.core.models import SchoolClass
from app.core.tenant_service import get_scoped_or_404

from .schemas import ClassCreate

_GRADE_NAME = re.compile(r"^\s*grade\s+(\d+)\s*$", re.IGNORECASE)


def grade_level_from_name(name: str) -> Optional[int]:
    """'Grade 3' -> 3. Any other naming yields None."""
    match = _GRADE_NAME.match(name or "")
    return int(match.group(1)) if match else None


async def list_classes(db: AsyncSession, school_id: UUID) -> List[SchoolClass]:
    stmt = (
        select(SchoolClass)
        .where(SchoolClass.school_id == school_id)
        .order_by(SchoolClass.sort_order, SchoolClass.name)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_class(db: AsyncSession, school_id: UUID, payload: ClassCreate) -> SchoolClass:
    name = payload.name.strip()
    grade_level = payload.grade_level if payload.grade_level is not None else grade_level_from_name(name)
    obj = SchoolClass(
        school_id=school_id,
        name=name,
        sort_order=payload.sort_order,
        grade_level=grade_level,
    )
    db.add(obj)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Class name already exists for this school", status.HTTP_409_CONFLICT)
    await db.refresh(obj)
    return obj


async def delete_class(db: AsyncSession, school_id: UUID, class_id: UUID) -> None:
    obj = await get_scoped_or_404(db, SchoolClass, class_id, school_id, "Class")
    try:
        await db.delete(obj)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Class is in use and cannot be deleted", status.HTTP_409_CONFLICT)
