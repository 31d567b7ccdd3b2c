"""
Attendance sessions: create-or-fetch per (school, year, term, class, section, subject, date),
entry upsert while draft, and the draft -> submitted -> locked lifecycle.

Every status change is a conditional UPDATE on the expected current status, and every
mutation writes its attendance_audit_log row in the same transaction.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.schemas import Actor
from app.core.enums import AttendanceSessionStatus, EnrollmentStatus, UserRole
from app.core.exceptions import AuthorizationError, NotFoundError, StateConflictError
from app.core.models import (
    AcademicYear,
    AttendanceAuditLog,
    AttendanceEntry,
    AttendanceSession,
    ClassSection,
    SchoolClass,
    StudentEnrollment,
    Subject,
    Term,
    session_scope_key,
)
from app.core.tenant_service import get_active_year, get_child_ids, get_scoped_or_404

from .schemas import (
    EntriesUpsert,
    MyAttendanceEntry,
    MyAttendanceResponse,
    RosterItem,
    RosterStudent,
    SessionCreate,
    SessionEntryRow,
    SessionSummary,
)

logger = logging.getLogger(__name__)

DRAFT = AttendanceSessionStatus.draft.value
SUBMITTED = AttendanceSessionStatus.submitted.value
LOCKED = AttendanceSessionStatus.locked.value

SESSION_LIST_LIMIT = 50


def _audit(session: AttendanceSession, action: str, actor_id: UUID, meta: Optional[Dict[str, Any]] = None):
    return AttendanceAuditLog(
        school_id=session.school_id,
        session_id=session.id,
        action=action,
        actor_id=actor_id,
        meta=meta,
        at=datetime.utcnow(),
    )


async def _find_session(db: AsyncSession, school_id: UUID, payload: SessionCreate) -> Optional[AttendanceSession]:
    stmt = select(AttendanceSession).where(
        AttendanceSession.school_id == school_id,
        AttendanceSession.academic_year_id == payload.academic_year_id,
        AttendanceSession.term_id == payload.term_id,
        AttendanceSession.class_id == payload.class_id,
        AttendanceSession.scope_key == session_scope_key(payload.section_id, payload.subject_id),
        AttendanceSession.date == payload.date,
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def _validate_scope(db: AsyncSession, school_id: UUID, payload: SessionCreate) -> None:
    await get_scoped_or_404(db, AcademicYear, payload.academic_year_id, school_id, "Academic year")
    term = await get_scoped_or_404(db, Term, payload.term_id, school_id, "Term")
    if term.academic_year_id != payload.academic_year_id:
        raise NotFoundError("Term not found")
    await get_scoped_or_404(db, SchoolClass, payload.class_id, school_id, "Class")
    if payload.section_id:
        section = await get_scoped_or_404(db, ClassSection, payload.section_id, school_id, "Section")
        if section.class_id != payload.class_id:
            raise NotFoundError("Section not found")
    if payload.subject_id:
        await get_scoped_or_404(db, Subject, payload.subject_id, school_id, "Subject")


async def create_or_get_session(
    db: AsyncSession,
    actor: Actor,
    payload: SessionCreate,
) -> Tuple[AttendanceSession, bool]:
    """Return (session, created). An existing session for the same tuple is returned unchanged."""
    school_id = actor.school_id
    existing = await _find_session(db, school_id, payload)
    if existing:
        return existing, False

    await _validate_scope(db, school_id, payload)
    session = AttendanceSession(
        school_id=school_id,
        academic_year_id=payload.academic_year_id,
        term_id=payload.term_id,
        class_id=payload.class_id,
        section_id=payload.section_id,
        subject_id=payload.subject_id,
        scope_key=session_scope_key(payload.section_id, payload.subject_id),
        date=payload.date,
        status=DRAFT,
        marked_by=actor.id,
    )
    db.add(session)
    try:
        await db.flush()
        db.add(_audit(session, "session_created", actor.id, {"status": DRAFT}))
        await db.commit()
    except IntegrityError:
        # Lost a race against an identical create; the unique tuple constraint kept one row.
        await db.rollback()
        existing = await _find_session(db, school_id, payload)
        if existing is None:
            raise
        return existing, False

    await db.refresh(session)
    logger.info("Attendance session %s created for class %s on %s", session.id, session.class_id, session.date)
    return session, True


async def _transition(
    db: AsyncSession,
    actor: Actor,
    session_id: UUID,
    from_status: str,
    to_status: str,
    values: Dict[str, Any],
    action: str,
    conflict_message: str,
) -> AttendanceSession:
    session = await get_scoped_or_404(db, AttendanceSession, session_id, actor.school_id, "Session")
    if session.status != from_status:
        raise StateConflictError(conflict_message)

    result = await db.execute(
        update(AttendanceSession)
        .where(AttendanceSession.id == session.id, AttendanceSession.status == from_status)
        .values(status=to_status, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise StateConflictError(conflict_message)

    db.add(_audit(session, action, actor.id, {"status": to_status}))
    await db.commit()
    await db.refresh(session)
    logger.info("Attendance session %s %s -> %s by %s", session.id, from_status, to_status, actor.id)
    return session


async def submit_session(db: AsyncSession, actor: Actor, session_id: UUID) -> AttendanceSession:
    return await _transition(
        db,
        actor,
        session_id,
        DRAFT,
        SUBMITTED,
        {"submitted_by": actor.id, "submitted_at": datetime.utcnow()},
        "session_submitted",
        "Session cannot be submitted",
    )


async def lock_session(db: AsyncSession, actor: Actor, session_id: UUID) -> AttendanceSession:
    return await _transition(
        db,
        actor,
        session_id,
        SUBMITTED,
        LOCKED,
        {"locked_by": actor.id, "locked_at": datetime.utcnow()},
        "session_locked",
        "Only submitted sessions can be locked",
    )


async def _session_entries(db: AsyncSession, session_id: UUID) -> List[AttendanceEntry]:
    result = await db.execute(select(AttendanceEntry).where(AttendanceEntry.session_id == session_id))
    return list(result.scalars().all())


async def upsert_entries(
    db: AsyncSession,
    actor: Actor,
    session_id: UUID,
    payload: EntriesUpsert,
) -> List[AttendanceEntry]:
    """Insert or update one entry per student. Later items win over earlier ones for the same student."""
    # Row lock keeps a concurrent submit from slipping in between the check and the writes
    result = await db.execute(
        select(AttendanceSession)
        .where(AttendanceSession.id == session_id, AttendanceSession.school_id == actor.school_id)
        .with_for_update()
    )
    session = result.scalar_one_or_none()
    if not session:
        raise NotFoundError("Session not found")
    if session.status != DRAFT:
        raise StateConflictError("Session is not editable")

    by_student = {item.student_id: item for item in payload.entries}
    if by_student:
        result = await db.execute(
            select(User.id).where(
                User.id.in_(list(by_student)),
                User.school_id == actor.school_id,
                User.role == UserRole.STUDENT.value,
            )
        )
        known = set(result.scalars().all())
        if len(known) != len(by_student):
            await db.rollback()
            raise NotFoundError("Student not found")

    existing = {e.student_id: e for e in await _session_entries(db, session.id)}
    now = datetime.utcnow()
    for student_id, item in by_student.items():
        entry = existing.get(student_id)
        if entry is None:
            db.add(
                AttendanceEntry(
                    session_id=session.id,
                    school_id=session.school_id,
                    student_id=student_id,
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

    db.add(_audit(session, "entries_upserted", actor.id, {"count": len(payload.entries)}))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise StateConflictError("Attendance was changed concurrently, please retry")
    return await _session_entries(db, session.id)


async def get_roster(
    db: AsyncSession,
    school_id: UUID,
    academic_year_id: UUID,
    class_id: UUID,
    section_id: Optional[UUID] = None,
) -> List[RosterItem]:
    stmt = (
        select(StudentEnrollment.id, User.id, User.name, User.student_id)
        .join(User, User.id == StudentEnrollment.student_id)
        .where(
            StudentEnrollment.school_id == school_id,
            StudentEnrollment.academic_year_id == academic_year_id,
            StudentEnrollment.class_id == class_id,
            StudentEnrollment.status == EnrollmentStatus.active.value,
        )
        .order_by(User.name)
    )
    if section_id:
        stmt = stmt.where(StudentEnrollment.section_id == section_id)
    else:
        stmt = stmt.where(StudentEnrollment.section_id.is_(None))
    result = await db.execute(stmt)
    return [
        RosterItem(
            enrollment_id=enrollment_id,
            student=RosterStudent(id=user_id, name=name, student_id=student_code),
        )
        for enrollment_id, user_id, name, student_code in result.all()
    ]


async def list_sessions(
    db: AsyncSession,
    school_id: UUID,
    academic_year_id: Optional[UUID] = None,
    class_id: Optional[UUID] = None,
    subject_id: Optional[UUID] = None,
    on_date: Optional[date] = None,
) -> List[SessionSummary]:
    stmt = (
        select(AttendanceSession, AcademicYear.name, SchoolClass.name, Subject.name, User.name)
        .outerjoin(AcademicYear, AcademicYear.id == AttendanceSession.academic_year_id)
        .outerjoin(SchoolClass, SchoolClass.id == AttendanceSession.class_id)
        .outerjoin(Subject, Subject.id == AttendanceSession.subject_id)
        .outerjoin(User, User.id == AttendanceSession.marked_by)
        .where(AttendanceSession.school_id == school_id)
    )
    if academic_year_id:
        stmt = stmt.where(AttendanceSession.academic_year_id == academic_year_id)
    if class_id:
        stmt = stmt.where(AttendanceSession.class_id == class_id)
    if subject_id:
        stmt = stmt.where(AttendanceSession.subject_id == subject_id)
    if on_date:
        stmt = stmt.where(AttendanceSession.date == on_date)
    stmt = stmt.order_by(AttendanceSession.date).limit(SESSION_LIST_LIMIT)

    result = await db.execute(stmt)
    rows = []
    for s, year_name, class_name, subject_name, marked_by_name in result.all():
        rows.append(
            SessionSummary(
                id=s.id,
                date=s.date,
                status=s.status,
                academic_year_id=s.academic_year_id,
                academic_year_name=year_name,
                class_id=s.class_id,
                class_name=class_name,
                section_id=s.section_id,
                subject_id=s.subject_id,
                subject_name=subject_name,
                marked_by=s.marked_by,
                marked_by_name=marked_by_name,
                created_at=s.created_at,
                submitted_at=s.submitted_at,
                locked_at=s.locked_at,
            )
        )
    return rows


async def list_session_entries(db: AsyncSession, school_id: UUID, session_id: UUID) -> List[SessionEntryRow]:
    session = await get_scoped_or_404(db, AttendanceSession, session_id, school_id, "Session")
    stmt = (
        select(AttendanceEntry, User.name, User.student_id)
        .join(User, User.id == AttendanceEntry.student_id)
        .where(AttendanceEntry.session_id == session.id)
        .order_by(User.name)
    )
    result = await db.execute(stmt)
    return [
        SessionEntryRow(
            id=e.id,
            session_id=e.session_id,
            student_id=e.student_id,
            status=e.status,
            note=e.note,
            marked_by=e.marked_by,
            marked_at=e.marked_at,
            student_name=name,
            student_code=student_code,
        )
        for e, name, student_code in result.all()
    ]


async def _resolve_subject_student(db: AsyncSession, actor: Actor, child_id: Optional[UUID]) -> Optional[UUID]:
    if actor.role == UserRole.STUDENT.value:
        return actor.id
    if actor.role != UserRole.PARENT.value:
        raise AuthorizationError("Only students and parents have personal attendance")
    children = await get_child_ids(db, actor.id)
    if child_id is not None:
        if child_id not in children:
            raise NotFoundError("Child not found")
        return child_id
    return children[0] if children else None


async def my_attendance(db: AsyncSession, actor: Actor, child_id: Optional[UUID] = None) -> MyAttendanceResponse:
    """Entries of the student (or a parent's child) in locked sessions of the active year only."""
    student_id = await _resolve_subject_student(db, actor, child_id)
    active = await get_active_year(db, actor.school_id)
    if student_id is None or active is None:
        return MyAttendanceResponse(academic_year_id=active.id if active else None, student_id=student_id)

    stmt = (
        select(AttendanceEntry, AttendanceSession, Subject.name)
        .join(AttendanceSession, AttendanceSession.id == AttendanceEntry.session_id)
        .outerjoin(Subject, Subject.id == AttendanceSession.subject_id)
        .where(
            AttendanceEntry.student_id == student_id,
            AttendanceSession.school_id == actor.school_id,
            AttendanceSession.academic_year_id == active.id,
            AttendanceSession.status == LOCKED,
        )
        .order_by(AttendanceSession.date.desc())
    )
    result = await db.execute(stmt)
    entries = [
        MyAttendanceEntry(
            session_id=s.id,
            date=s.date,
            status=e.status,
            note=e.note,
            class_id=s.class_id,
            subject_id=s.subject_id,
            subject_name=subject_name,
        )
        for e, s, subject_name in result.all()
    ]
    return MyAttendanceResponse(academic_year_id=active.id, student_id=student_id, entries=entries)
