from typing import List
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ServiceError
from app.core.models import Subject
from app.core.tenant_service import get_scoped_or_404

from .schemas import SubjectCreate


async def list_subjects(db: AsyncSession, school_id: UUID) -> List[Subject]:
    result = await db.execute(select(Subject).where(Subject.school_id == school_id).order_by(Subject.name))
    return list(result.scalars().all())


async def create_subject(db: AsyncSession, school_id: UUID, payload: SubjectCreate) -> Subject:
    code = payload.code.strip().upper() if payload.code and payload.code.strip() else None
    obj = Subject(school_id=school_id, name=payload.name.strip(), code=code)
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    return obj


async def delete_subject(db: AsyncSession, school_id: UUID, subject_id: UUID) -> None:
    obj = await get_scoped_or_404(db, Subject, subject_id, school_id, "Subject")
    try:
        await db.delete(obj)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Subject is in use and cannot be deleted", status.HTTP_409_CONFLICT)
