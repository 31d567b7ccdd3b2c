import logging
from datetime import datetime
from typing import List
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.enrollment.audit_service import log_audit
from app.auth.models import User
from app.auth.schemas import Actor
from app.core.enums import ExamStatus, UserRole
from app.core.exceptions import AuthorizationError, BusinessRuleError, NotFoundError, StateConflictError
from app.core.models import AcademicYear, Exam, ExamMark, Subject, Term
from app.core.tenant_service import get_child_ids, get_scoped_or_404

from .schemas import ExamCreate, MarkInput, MarkResponse, MarkStudent, MarkSubject

logger = logging.getLogger(__name__)

GRADES_LOCKED_MESSAGE = "Grades are locked. This exam has been published and cannot be edited."


async def list_exams(db: AsyncSession, school_id: UUID) -> List[Exam]:
    result = await db.execute(select(Exam).where(Exam.school_id == school_id).order_by(Exam.created_at.desc()))
    return list(result.scalars().all())


async def create_exam(db: AsyncSession, school_id: UUID, payload: ExamCreate) -> Exam:
    await get_scoped_or_404(db, AcademicYear, payload.academic_year_id, school_id, "Academic year")
    term = await get_scoped_or_404(db, Term, payload.term_id, school_id, "Term")
    if term.academic_year_id != payload.academic_year_id:
        raise NotFoundError("Term not found")
    exam = Exam(
        school_id=school_id,
        academic_year_id=payload.academic_year_id,
        term_id=payload.term_id,
        name=payload.name.strip(),
        type=payload.type.value,
        status=ExamStatus.draft.value,
        start_date=payload.start_date,
        end_date=payload.end_date,
    )
    db.add(exam)
    await db.commit()
    await db.refresh(exam)
    return exam


async def publish_exam(db: AsyncSession, actor: Actor, exam_id: UUID) -> Exam:
    exam = await get_scoped_or_404(db, Exam, exam_id, actor.school_id, "Exam")
    result = await db.execute(
        update(Exam)
        .where(Exam.id == exam.id, Exam.status == ExamStatus.draft.value)
        .values(status=ExamStatus.published.value, published_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise StateConflictError("Exam is already published")
    log_audit(
        db,
        actor,
        "exam",
        exam.id,
        "exam_published",
        from_status=ExamStatus.draft.value,
        to_status=ExamStatus.published.value,
    )
    await db.commit()
    await db.refresh(exam)
    logger.info("Exam %s published by %s", exam.id, actor.id)
    return exam


async def get_marks(db: AsyncSession, actor: Actor, exam_id: UUID) -> List[MarkResponse]:
    """Staff see every mark. Students see their own and parents their children's, once published."""
    exam = await get_scoped_or_404(db, Exam, exam_id, actor.school_id, "Exam")
    stmt = (
        select(ExamMark, User, Subject)
        .outerjoin(User, User.id == ExamMark.student_id)
        .outerjoin(Subject, Subject.id == ExamMark.subject_id)
        .where(ExamMark.exam_id == exam.id)
        .order_by(ExamMark.updated_at.desc())
    )
    if not actor.is_staff:
        if exam.status != ExamStatus.published.value:
            return []
        if actor.role == UserRole.STUDENT.value:
            visible = [actor.id]
        else:
            visible = await get_child_ids(db, actor.id)
        stmt = stmt.where(ExamMark.student_id.in_(visible))

    result = await db.execute(stmt)
    rows = []
    for mark, student, subject in result.all():
        resp = MarkResponse.model_validate(mark)
        if student is not None:
            resp.student = MarkStudent(id=student.id, name=student.name, student_id=student.student_id)
        if subject is not None:
            resp.subject = MarkSubject(id=subject.id, name=subject.name, code=subject.code)
        rows.append(resp)
    return rows


async def save_marks(db: AsyncSession, actor: Actor, exam_id: UUID, items: List[MarkInput]) -> List[ExamMark]:
    """Upsert marks keyed by (exam, student, subject) in one transaction with one audit row."""
    result = await db.execute(
        select(Exam).where(Exam.id == exam_id, Exam.school_id == actor.school_id).with_for_update()
    )
    exam = result.scalar_one_or_none()
    if not exam:
        raise NotFoundError("Exam not found")
    if exam.status == ExamStatus.published.value:
        raise AuthorizationError(GRADES_LOCKED_MESSAGE)

    for item in items:
        obtained = item.marks_obtained or 0
        if obtained > item.total_marks:
            raise BusinessRuleError(
                f"Marks obtained ({obtained:g}) cannot exceed total marks ({item.total_marks:g})"
            )

    subject_ids = {i.subject_id for i in items}
    student_ids = {i.student_id for i in items}
    if subject_ids:
        found = await db.execute(
            select(Subject.id).where(Subject.id.in_(subject_ids), Subject.school_id == actor.school_id)
        )
        if len(set(found.scalars().all())) != len(subject_ids):
            raise NotFoundError("Subject not found")
    if student_ids:
        found = await db.execute(
            select(User.id).where(
                User.id.in_(student_ids),
                User.school_id == actor.school_id,
                User.role == UserRole.STUDENT.value,
            )
        )
        if len(set(found.scalars().all())) != len(student_ids):
            raise NotFoundError("Student not found")

    result = await db.execute(select(ExamMark).where(ExamMark.exam_id == exam.id))
    existing = {(m.student_id, m.subject_id): m for m in result.scalars().all()}
    saved = []
    for item in items:
        mark = existing.get((item.student_id, item.subject_id))
        if mark is None:
            mark = ExamMark(exam_id=exam.id, student_id=item.student_id, subject_id=item.subject_id)
            db.add(mark)
            existing[(item.student_id, item.subject_id)] = mark
        mark.marks_obtained = item.marks_obtained
        mark.total_marks = item.total_marks
        mark.remarks = item.remarks
        mark.graded_by = actor.id
        mark.updated_at = datetime.utcnow()
        if mark not in saved:
            saved.append(mark)

    log_audit(db, actor, "exam_marks", exam.id, "grade_save", meta={"examId": str(exam.id), "count": len(items)})
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise StateConflictError("Marks were changed concurrently, please retry")
    for mark in saved:
        await db.refresh(mark)
    logger.info("Saved %d marks for exam %s", len(items), exam.id)
    return saved
