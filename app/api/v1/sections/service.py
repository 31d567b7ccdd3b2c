from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ServiceError
from app.core.models import ClassSection, SchoolClass
from app.core.tenant_service import get_scoped_or_404

from .schemas import SectionCreate


async def list_sections(db: AsyncSession, school_id: UUID, class_id: Optional[UUID] = None) -> List[ClassSection]:
    stmt = select(ClassSection).where(ClassSection.school_id == school_id)
    if class_id:
        stmt = stmt.where(ClassSection.class_id == class_id)
    stmt = stmt.order_by(ClassSection.name)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_section(db: AsyncSession, school_id: UUID, payload: SectionCreate) -> ClassSection:
    await get_scoped_or_404(db, SchoolClass, payload.class_id, school_id, "Class")
    obj = ClassSection(school_id=school_id, class_id=payload.class_id, name=payload.name.strip())
    db.add(obj)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Section name already exists for this class", status.HTTP_409_CONFLICT)
    await db.refresh(obj)
    return obj


async def delete_section(db: AsyncSession, school_id: UUID, section_id: UUID) -> None:
    obj = await get_scoped_or_404(db, ClassSection, section_id, school_id, "Section")
    await db.delete(obj)
    await db.commit()
