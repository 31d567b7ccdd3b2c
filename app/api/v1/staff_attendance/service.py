import logging
from datetime import date, datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.schemas import Actor
from app.core.enums import AttendanceSessionStatus, UserRole
from app.core.exceptions import NotFoundError, StateConflictError
from app.core.models import StaffAttendanceEntry, StaffAttendanceSession
from app.core.tenant_service import get_scoped_or_404

from .schemas import StaffEntriesUpsert, StaffEntryRow, StaffSessionCreate

logger = logging.getLogger(__name__)


async def list_sessions(db: AsyncSession, school_id: UUID) -> List[StaffAttendanceSession]:
    stmt = (
        select(StaffAttendanceSession)
        .where(StaffAttendanceSession.school_id == school_id)
        .order_by(StaffAttendanceSession.date.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def _find_session(db: AsyncSession, school_id: UUID, on_date: date) -> Optional[StaffAttendanceSession]:
    result = await db.execute(
        select(StaffAttendanceSession).where(
            StaffAttendanceSession.school_id == school_id,
            StaffAttendanceSession.date == on_date,
        )
    )
    return result.scalar_one_or_none()


async def create_or_get_session(
    db: AsyncSession, actor: Actor, payload: StaffSessionCreate
) -> Tuple[StaffAttendanceSession, bool]:
    """Return (session, created). A school has at most one staff session per day."""
    existing = await _find_session(db, actor.school_id, payload.date)
    if existing:
        return existing, False

    session = StaffAttendanceSession(
        school_id=actor.school_id,
        date=payload.date,
        status=AttendanceSessionStatus.draft.value,
        marked_by=actor.id,
    )
    db.add(session)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        existing = await _find_session(db, actor.school_id, payload.date)
        if existing is None:
            raise
        return existing, False
    await db.refresh(session)
    logger.info("Staff attendance session %s created for school %s on %s", session.id, actor.school_id, session.date)
    return session, True


async def list_entries(db: AsyncSession, school_id: UUID, session_id: UUID) -> List[StaffEntryRow]:
    session = await get_scoped_or_404(db, StaffAttendanceSession, session_id, school_id, "Session")
    stmt = (
        select(StaffAttendanceEntry, User.name, User.employee_id, User.sub_role)
        .join(User, User.id == StaffAttendanceEntry.staff_id)
        .where(StaffAttendanceEntry.session_id == session.id)
        .order_by(User.name)
    )
    result = await db.execute(stmt)
    return [
        StaffEntryRow(
            id=e.id,
            session_id=e.session_id,
            staff_id=e.staff_id,
            staff_name=name,
            employee_id=employee_code,
            sub_role=sub_role,
            status=e.status,
            note=e.note,
            marked_by=e.marked_by,
            marked_at=e.marked_at,
        )
        for e, name, employee_code, sub_role in result.all()
    ]


async def upsert_entries(
    db: AsyncSession, actor: Actor, session_id: UUID, payload: StaffEntriesUpsert
) -> List[StaffEntryRow]:
    """Insert or update one entry per employee. Later items win for the same employee."""
    result = await db.execute(
        select(StaffAttendanceSession)
        .where(StaffAttendanceSession.id == session_id, StaffAttendanceSession.school_id == actor.school_id)
        .with_for_update()
    )
    session = result.scalar_one_or_none()
    if not session:
        raise NotFoundError("Session not found")

    by_staff = {item.staff_id: item for item in payload.entries}
    if by_staff:
        result = await db.execute(
            select(User.id).where(
                User.id.in_(list(by_staff)),
                User.school_id == actor.school_id,
                User.role == UserRole.EMPLOYEE.value,
            )
        )
        if len(set(result.scalars().all())) != len(by_staff):
            await db.rollback()
            raise NotFoundError("Staff member not found")

    result = await db.execute(select(StaffAttendanceEntry).where(StaffAttendanceEntry.session_id == session.id))
    existing = {e.staff_id: e for e in result.scalars().all()}
    now = datetime.utcnow()
    for staff_id, item in by_staff.items():
        entry = existing.get(staff_id)
        if entry is None:
            db.add(
                StaffAttendanceEntry(
                    session_id=session.id,
                    school_id=session.school_id,
                    staff_id=staff_id,
                    status=item.status.value,
                    note=item.note,
                    marked_by=actor.id,
                    marked_at=now,
                )
            )
        else:
            entry.status = item.status.value
            entry.note = item.note
            entry.marked_by = actor.id
            entry.marked_at = now
    session.marked_by = actor.id
    session.updated_at = now
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise StateConflictError("Attendance was changed concurrently, please retry")
    logger.info("Staff attendance session %s: %d entries saved", session.id, len(by_staff))
    return await list_entries(db, actor.school_id, session.id)
