import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.schemas import Actor
from app.core.enums import AssignmentStatus, EnrollmentStatus, UserRole
from app.core.exceptions import BusinessRuleError, NotFoundError, StateConflictError
from app.core.models import (
    AcademicYear,
    Assignment,
    AssignmentSubmission,
    ClassSection,
    SchoolClass,
    StudentEnrollment,
    Subject,
    Term,
)
from app.core.tenant_service import get_active_year, get_child_ids, get_scoped_or_404

from .schemas import (
    AssignmentCreate,
    AssignmentResponse,
    ReviewCreate,
    SubmissionCreate,
    SubmissionResponse,
    SubmissionStudent,
    SubmissionWithStudent,
)

logger = logging.getLogger(__name__)


async def create_assignment(db: AsyncSession, actor: Actor, payload: AssignmentCreate) -> Assignment:
    school_id = actor.school_id
    await get_scoped_or_404(db, AcademicYear, payload.academic_year_id, school_id, "Academic year")
    term = await get_scoped_or_404(db, Term, payload.term_id, school_id, "Term")
    if term.academic_year_id != payload.academic_year_id:
        raise NotFoundError("Term not found")
    await get_scoped_or_404(db, SchoolClass, payload.class_id, school_id, "Class")
    if payload.section_id:
        section = await get_scoped_or_404(db, ClassSection, payload.section_id, school_id, "Section")
        if section.class_id != payload.class_id:
            raise NotFoundError("Section not found")
    await get_scoped_or_404(db, Subject, payload.subject_id, school_id, "Subject")

    obj = Assignment(
        school_id=school_id,
        academic_year_id=payload.academic_year_id,
        term_id=payload.term_id,
        class_id=payload.class_id,
        section_id=payload.section_id,
        subject_id=payload.subject_id,
        title=payload.title.strip(),
        instructions=payload.instructions,
        due_at=payload.due_at,
        max_score=payload.max_score,
        attachment_url=payload.attachment_url,
        status=AssignmentStatus.draft.value,
        created_by=actor.id,
    )
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    return obj


async def _transition(
    db: AsyncSession,
    actor: Actor,
    assignment_id: UUID,
    from_status: str,
    to_status: str,
    stamp_field: str,
    conflict_message: str,
) -> Assignment:
    obj = await get_scoped_or_404(db, Assignment, assignment_id, actor.school_id, "Assignment")
    result = await db.execute(
        update(Assignment)
        .where(Assignment.id == obj.id, Assignment.status == from_status)
        .values(status=to_status, **{stamp_field: datetime.utcnow()})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise StateConflictError(conflict_message)
    await db.commit()
    await db.refresh(obj)
    logger.info("Assignment %s %s -> %s by %s", obj.id, from_status, to_status, actor.id)
    return obj


async def publish_assignment(db: AsyncSession, actor: Actor, assignment_id: UUID) -> Assignment:
    return await _transition(
        db,
        actor,
        assignment_id,
        AssignmentStatus.draft.value,
        AssignmentStatus.published.value,
        "published_at",
        "Only draft assignments can be published",
    )


async def close_assignment(db: AsyncSession, actor: Actor, assignment_id: UUID) -> Assignment:
    return await _transition(
        db,
        actor,
        assignment_id,
        AssignmentStatus.published.value,
        AssignmentStatus.closed.value,
        "closed_at",
        "Only published assignments can be closed",
    )


def _to_response(a: Assignment, submitted: Optional[bool] = None) -> AssignmentResponse:
    resp = AssignmentResponse.model_validate(a)
    resp.submitted = submitted
    return resp


async def list_assignments(
    db: AsyncSession,
    actor: Actor,
    academic_year_id: Optional[UUID] = None,
    term_id: Optional[UUID] = None,
    child_id: Optional[UUID] = None,
) -> List[AssignmentResponse]:
    """
    Admin: every assignment of the school (optionally filtered).
    Employee: the ones they created.
    Student/parent: published assignments of the student's active class and section, flagged with
    whether the student already submitted.
    """
    school_id = actor.school_id
    if actor.is_staff:
        stmt = select(Assignment).where(Assignment.school_id == school_id)
        if actor.is_admin:
            if academic_year_id:
                stmt = stmt.where(Assignment.academic_year_id == academic_year_id)
            if term_id:
                stmt = stmt.where(Assignment.term_id == term_id)
        else:
            stmt = stmt.where(Assignment.created_by == actor.id)
        result = await db.execute(stmt.order_by(Assignment.due_at.desc()))
        return [_to_response(a) for a in result.scalars().all()]

    if actor.role == UserRole.STUDENT.value:
        student_id = actor.id
    else:
        children = await get_child_ids(db, actor.id)
        if child_id is not None and child_id not in children:
            raise NotFoundError("Child not found")
        student_id = child_id or (children[0] if children else None)
    active = await get_active_year(db, school_id)
    if student_id is None or active is None:
        return []

    result = await db.execute(
        select(StudentEnrollment)
        .where(
            StudentEnrollment.school_id == school_id,
            StudentEnrollment.academic_year_id == active.id,
            StudentEnrollment.student_id == student_id,
            StudentEnrollment.status == EnrollmentStatus.active.value,
        )
        .limit(1)
    )
    enrollment = result.scalar_one_or_none()
    if not enrollment:
        return []

    stmt = select(Assignment).where(
        Assignment.school_id == school_id,
        Assignment.academic_year_id == active.id,
        Assignment.class_id == enrollment.class_id,
        Assignment.status == AssignmentStatus.published.value,
    )
    if enrollment.section_id:
        stmt = stmt.where(Assignment.section_id == enrollment.section_id)
    else:
        stmt = stmt.where(Assignment.section_id.is_(None))
    result = await db.execute(stmt.order_by(Assignment.due_at.desc()))
    assignments = list(result.scalars().all())

    result = await db.execute(
        select(AssignmentSubmission.assignment_id).where(
            AssignmentSubmission.school_id == school_id,
            AssignmentSubmission.student_id == student_id,
        )
    )
    submitted = set(result.scalars().all())
    return [_to_response(a, a.id in submitted) for a in assignments]


async def submit_assignment(
    db: AsyncSession,
    actor: Actor,
    assignment_id: UUID,
    payload: SubmissionCreate,
) -> AssignmentSubmission:
    """
    One submission per (assignment, student). Submitting again while the assignment is
    published replaces the content and clears any earlier review.
    """
    assignment = await get_scoped_or_404(db, Assignment, assignment_id, actor.school_id, "Assignment")
    if assignment.status == AssignmentStatus.closed.value:
        raise StateConflictError("Assignment is closed")
    if assignment.status != AssignmentStatus.published.value:
        raise StateConflictError("Assignment is not published")

    result = await db.execute(
        select(AssignmentSubmission).where(
            AssignmentSubmission.assignment_id == assignment.id,
            AssignmentSubmission.student_id == actor.id,
        )
    )
    sub = result.scalar_one_or_none()
    now = datetime.utcnow()
    if sub is None:
        sub = AssignmentSubmission(
            assignment_id=assignment.id,
            school_id=actor.school_id,
            student_id=actor.id,
        )
        db.add(sub)
    sub.submission_url = payload.submission_url
    sub.submission_text = payload.submission_text
    sub.submitted_at = now
    sub.score = None
    sub.feedback = None
    sub.reviewed_by = None
    sub.reviewed_at = None
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise StateConflictError("Submission was changed concurrently, please retry")
    await db.refresh(sub)
    return sub


async def review_submission(
    db: AsyncSession,
    actor: Actor,
    submission_id: UUID,
    payload: ReviewCreate,
) -> AssignmentSubmission:
    sub = await get_scoped_or_404(db, AssignmentSubmission, submission_id, actor.school_id, "Submission")
    assignment = await db.get(Assignment, sub.assignment_id)
    if assignment and payload.score > assignment.max_score:
        raise BusinessRuleError(f"Score cannot exceed the maximum score of {assignment.max_score}")
    sub.score = payload.score
    sub.feedback = payload.feedback
    sub.reviewed_by = actor.id
    sub.reviewed_at = datetime.utcnow()
    await db.commit()
    await db.refresh(sub)
    return sub


async def list_submissions(db: AsyncSession, school_id: UUID, assignment_id: UUID) -> List[SubmissionWithStudent]:
    assignment = await get_scoped_or_404(db, Assignment, assignment_id, school_id, "Assignment")
    stmt = (
        select(AssignmentSubmission, User)
        .join(User, User.id == AssignmentSubmission.student_id)
        .where(AssignmentSubmission.assignment_id == assignment.id)
        .order_by(User.name)
    )
    result = await db.execute(stmt)
    return [
        SubmissionWithStudent(
            submission=SubmissionResponse.model_validate(sub),
            student=SubmissionStudent(id=u.id, name=u.name, email=u.email, student_id=u.student_id),
        )
        for sub, u in result.all()
    ]
