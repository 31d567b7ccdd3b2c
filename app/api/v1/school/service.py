from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.core.models import School

from .schemas import SchoolUpdate


async def get_school(db: AsyncSession, school_id: UUID) -> School:
    school = await db.get(School, school_id)
    if not school:
        raise NotFoundError("School not found")
    return school


async def update_school(db: AsyncSession, school_id: UUID, payload: SchoolUpdate) -> School:
    school = await get_school(db, school_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(school, field, value.strip() if isinstance(value, str) else value)
    await db.commit()
    await db.refresh(school)
    return school
