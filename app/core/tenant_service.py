"""
Tenant-scoped lookups shared by the feature services.

A record that exists but belongs to another school is reported exactly like a missing one
(404), so ids from other schools cannot be probed.
"""
from typing import List, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.core.enums import UserRole
from app.core.exceptions import NotFoundError
from app.core.models import AcademicYear, ParentChild

T = TypeVar("T")


async def get_scoped_or_404(
    db: AsyncSession,
    model: Type[T],
    entity_id: Optional[UUID],
    school_id: UUID,
    label: str,
) -> T:
    obj = await db.get(model, entity_id) if entity_id else None
    if obj is None or obj.school_id != school_id:
        raise NotFoundError(f"{label} not found")
    return obj


async def get_school_student_or_404(db: AsyncSession, school_id: UUID, student_id: UUID) -> User:
    user = await db.get(User, student_id)
    if not user or user.school_id != school_id or user.role != UserRole.STUDENT.value:
        raise NotFoundError("Student not found")
    return user


async def get_active_year(db: AsyncSession, school_id: UUID) -> Optional[AcademicYear]:
    stmt = (
        select(AcademicYear)
        .where(AcademicYear.school_id == school_id, AcademicYear.is_active.is_(True))
        .order_by(AcademicYear.start_date.desc())
        .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_child_ids(db: AsyncSession, parent_id: UUID) -> List[UUID]:
    """Children linked to a parent, oldest link first."""
    stmt = (
        select(ParentChild.child_id)
        .where(ParentChild.parent_id == parent_id)
        .order_by(ParentChild.created_at)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())
