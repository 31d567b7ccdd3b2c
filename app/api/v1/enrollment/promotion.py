"""
Batch placement: auto-enrolling orphaned students and year-end promotion.

Each student is its own transaction. A failure is recorded in that student's result and
rolled back on its own; students committed before it stay committed.
"""

import logging
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.academic_years.schemas import AcademicYearResponse
from app.auth.models import User
from app.auth.schemas import Actor
from app.core.config import settings
from app.core.enums import EnrollmentStatus, UserRole
from app.core.exceptions import BusinessRuleError, ServiceError, StateConflictError
from app.core.models import AcademicYear, ClassSection, SchoolClass, StudentEnrollment
from app.core.tenant_service import get_active_year

from .audit_service import log_audit
from .schemas import (
    AutoEnrollResponse,
    AutoEnrollResult,
    ClassBreakdownRow,
    DashboardEnrollment,
    DashboardResponse,
    DashboardStatistics,
    DashboardStudent,
    PromotionResponse,
    PromotionResult,
)

logger = logging.getLogger(__name__)


async def _section_by_name(db: AsyncSession, class_id: UUID, name: str) -> Optional[ClassSection]:
    result = await db.execute(
        select(ClassSection).where(ClassSection.class_id == class_id, ClassSection.name == name).limit(1)
    )
    return result.scalar_one_or_none()


# ----- Auto-enroll -----

async def auto_enroll(db: AsyncSession, actor: Actor) -> AutoEnrollResponse:
    school_id = actor.school_id
    result = await db.execute(
        select(User.id, User.name)
        .where(
            User.school_id == school_id,
            User.role == UserRole.STUDENT.value,
            or_(User.grade.is_(None), User.grade == ""),
        )
        .order_by(User.name)
    )
    orphans = result.all()
    if not orphans:
        return AutoEnrollResponse(message="No orphaned students found", enrolled=0)

    year = await get_active_year(db, school_id)
    if not year:
        raise BusinessRuleError("No active academic year found")
    cls_result = await db.execute(
        select(SchoolClass).where(
            SchoolClass.school_id == school_id,
            SchoolClass.name == settings.default_class_name,
        )
    )
    default_class = cls_result.scalar_one_or_none()
    if not default_class:
        raise BusinessRuleError("No default class found for enrollment")
    default_section = await _section_by_name(db, default_class.id, settings.default_section_name)

    year_id = year.id
    class_id, class_name = default_class.id, default_class.name
    section_id = default_section.id if default_section else None
    section_name = default_section.name if default_section else settings.default_section_name

    enrolled = 0
    results: List[AutoEnrollResult] = []
    for student_id, student_name in orphans:
        try:
            existing = await db.execute(
                select(StudentEnrollment.id).where(
                    StudentEnrollment.student_id == student_id,
                    StudentEnrollment.academic_year_id == year_id,
                )
            )
            if existing.scalar_one_or_none():
                results.append(
                    AutoEnrollResult(
                        student_id=student_id,
                        student_name=student_name,
                        status="already_enrolled",
                        message="Student already enrolled",
                    )
                )
                continue

            enrollment = StudentEnrollment(
                school_id=school_id,
                student_id=student_id,
                academic_year_id=year_id,
                class_id=class_id,
                section_id=section_id,
                status=EnrollmentStatus.active.value,
            )
            db.add(enrollment)
            await db.execute(
                update(User)
                .where(User.id == student_id)
                .values(grade=class_name, class_section=section_name)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.warning("Auto-enroll failed for student %s: %s", student_id, exc)
            results.append(
                AutoEnrollResult(student_id=student_id, student_name=student_name, status="error", message=str(exc))
            )
            continue

        enrolled += 1
        results.append(
            AutoEnrollResult(
                student_id=student_id,
                student_name=student_name,
                status="enrolled",
                enrollment_id=enrollment.id,
                class_name=class_name,
                section=section_name,
            )
        )

    logger.info("Auto-enroll for school %s: %d of %d orphans enrolled", school_id, enrolled, len(orphans))
    return AutoEnrollResponse(
        message="Auto-enrollment completed",
        total_orphans=len(orphans),
        enrolled=enrolled,
        results=results,
    )


# ----- Dashboard -----

def _enrollment_rows(rows) -> List[DashboardEnrollment]:
    return [
        DashboardEnrollment(
            enrollment_id=e.id,
            student_id=e.student_id,
            student_name=name,
            student_email=email,
            class_name=class_name,
            status=e.status,
            created_at=e.created_at,
        )
        for e, name, email, class_name in rows
    ]


async def enrollment_dashboard(db: AsyncSession, school_id: UUID) -> DashboardResponse:
    year = await get_active_year(db, school_id)

    unassigned = await db.execute(
        select(User)
        .where(
            User.school_id == school_id,
            User.role == UserRole.STUDENT.value,
            or_(User.grade.is_(None), User.grade == ""),
        )
        .order_by(User.name)
    )
    unassigned_students = [DashboardStudent.model_validate(u) for u in unassigned.scalars().all()]

    base = (
        select(StudentEnrollment, User.name, User.email, SchoolClass.name)
        .outerjoin(User, User.id == StudentEnrollment.student_id)
        .outerjoin(SchoolClass, SchoolClass.id == StudentEnrollment.class_id)
        .where(StudentEnrollment.school_id == school_id)
    )
    pending = await db.execute(
        base.where(StudentEnrollment.status == EnrollmentStatus.pending.value).order_by(StudentEnrollment.created_at)
    )
    pending_enrollments = _enrollment_rows(pending.all())

    candidates = await db.execute(
        base.where(
            StudentEnrollment.status == EnrollmentStatus.active.value,
            SchoolClass.grade_level == settings.final_grade_level,
        ).order_by(User.name)
    )
    graduation_candidates = _enrollment_rows(candidates.all())

    breakdown = await db.execute(
        select(SchoolClass.name, ClassSection.name, func.count(StudentEnrollment.id))
        .select_from(StudentEnrollment)
        .outerjoin(SchoolClass, SchoolClass.id == StudentEnrollment.class_id)
        .outerjoin(ClassSection, ClassSection.id == StudentEnrollment.section_id)
        .where(
            StudentEnrollment.school_id == school_id,
            StudentEnrollment.status == EnrollmentStatus.active.value,
        )
        .group_by(SchoolClass.name, ClassSection.name)
        .order_by(SchoolClass.name, ClassSection.name)
    )
    class_breakdown = [
        ClassBreakdownRow(class_name=c, section_name=s, enrolled_count=n) for c, s, n in breakdown.all()
    ]

    return DashboardResponse(
        academic_year=AcademicYearResponse.model_validate(year) if year else None,
        statistics=DashboardStatistics(
            unassigned_students=len(unassigned_students),
            pending_enrollments=len(pending_enrollments),
            graduation_candidates=len(graduation_candidates),
            total_active_enrollments=sum(r.enrolled_count for r in class_breakdown),
        ),
        unassigned_students=unassigned_students,
        pending_enrollments=pending_enrollments,
        graduation_candidates=graduation_candidates,
        class_breakdown=class_breakdown,
    )


# ----- Promotion -----

async def _close_enrollment(db: AsyncSession, enrollment_id: UUID, to_status: str) -> None:
    result = await db.execute(
        update(StudentEnrollment)
        .where(
            StudentEnrollment.id == enrollment_id,
            StudentEnrollment.status == EnrollmentStatus.active.value,
        )
        .values(status=to_status)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise StateConflictError("Enrollment is no longer active")


async def _next_placement(
    db: AsyncSession,
    school_id: UUID,
    classes_by_level: Dict[int, Tuple[UUID, str]],
    grade_level: int,
    current_section: Optional[str],
) -> Optional[Tuple[UUID, str, Optional[UUID], Optional[str]]]:
    """(class_id, class_name, section_id, section_name) for the next grade, or None when missing."""
    nxt = classes_by_level.get(grade_level + 1)
    if nxt is None:
        return None
    class_id, class_name = nxt
    section = None
    if current_section:
        section = await _section_by_name(db, class_id, current_section)
    if section is None:
        section = await _section_by_name(db, class_id, settings.default_section_name)
    if section is None:
        return class_id, class_name, None, None
    return class_id, class_name, section.id, section.name


async def promote_students(db: AsyncSession, actor: Actor, target_year_id: Optional[UUID]) -> PromotionResponse:
    school_id = actor.school_id
    if not target_year_id:
        raise BusinessRuleError("Target academic year ID required")
    current = await get_active_year(db, school_id)
    if not current:
        raise BusinessRuleError("No active academic year found")
    target = await db.get(AcademicYear, target_year_id)
    if not target or target.school_id != school_id:
        raise BusinessRuleError("Target academic year not found")
    if target.id == current.id:
        raise BusinessRuleError("Target academic year must differ from the active academic year")
    current_year_id, target_id = current.id, target.id

    levels = await db.execute(
        select(SchoolClass.grade_level, SchoolClass.id, SchoolClass.name).where(
            SchoolClass.school_id == school_id, SchoolClass.grade_level.isnot(None)
        )
    )
    classes_by_level = {level: (cid, name) for level, cid, name in levels.all()}

    rows = await db.execute(
        select(
            StudentEnrollment.id,
            StudentEnrollment.student_id,
            User.name,
            SchoolClass.name,
            SchoolClass.grade_level,
            ClassSection.name,
        )
        .select_from(StudentEnrollment)
        .outerjoin(User, User.id == StudentEnrollment.student_id)
        .outerjoin(SchoolClass, SchoolClass.id == StudentEnrollment.class_id)
        .outerjoin(ClassSection, ClassSection.id == StudentEnrollment.section_id)
        .where(
            StudentEnrollment.school_id == school_id,
            StudentEnrollment.academic_year_id == current_year_id,
            StudentEnrollment.status == EnrollmentStatus.active.value,
        )
        .order_by(User.name)
    )
    active = rows.all()

    promoted = graduated = 0
    results: List[PromotionResult] = []
    for enrollment_id, student_id, student_name, class_name, grade_level, section_name in active:
        base = dict(student_id=student_id, student_name=student_name, enrollment_id=enrollment_id, from_grade=class_name)
        try:
            if student_name is None:
                raise BusinessRuleError("Student record missing for enrollment")
            if grade_level is None:
                raise BusinessRuleError(f"Class {class_name!r} has no grade level")

            if grade_level >= settings.final_grade_level:
                await _close_enrollment(db, enrollment_id, EnrollmentStatus.graduated.value)
                await db.execute(
                    update(User)
                    .where(User.id == student_id)
                    .values(grade=None, class_section=None)
                    .execution_options(synchronize_session=False)
                )
                log_audit(
                    db, actor, "student_enrollment", enrollment_id, "student_graduated",
                    from_status=EnrollmentStatus.active.value, to_status=EnrollmentStatus.graduated.value,
                )
                await db.commit()
                graduated += 1
                results.append(PromotionResult(action="graduated", **base))
                continue

            placement = await _next_placement(db, school_id, classes_by_level, grade_level, section_name)
            if placement is None:
                results.append(PromotionResult(action="no_next_class", **base))
                continue
            next_class_id, next_class_name, next_section_id, next_section_name = placement

            new_enrollment = StudentEnrollment(
                school_id=school_id,
                student_id=student_id,
                academic_year_id=target_id,
                class_id=next_class_id,
                section_id=next_section_id,
                status=EnrollmentStatus.active.value,
            )
            db.add(new_enrollment)
            await _close_enrollment(db, enrollment_id, EnrollmentStatus.promoted.value)
            await db.execute(
                update(User)
                .where(User.id == student_id)
                .values(grade=next_class_name, class_section=next_section_name)
                .execution_options(synchronize_session=False)
            )
            log_audit(
                db, actor, "student_enrollment", enrollment_id, "student_promoted",
                from_status=EnrollmentStatus.active.value, to_status=EnrollmentStatus.promoted.value,
                meta={"fromGrade": class_name, "toGrade": next_class_name, "targetYearId": str(target_id)},
            )
            await db.commit()
        except (ServiceError, SQLAlchemyError) as exc:
            await db.rollback()
            message = exc.message if isinstance(exc, ServiceError) else str(exc)
            logger.warning("Promotion failed for enrollment %s: %s", enrollment_id, message)
            results.append(PromotionResult(action="error", message=message, **base))
            continue

        promoted += 1
        results.append(
            PromotionResult(action="promoted", to_grade=next_class_name, new_enrollment_id=new_enrollment.id, **base)
        )

    logger.info(
        "Promotion for school %s into year %s: %d promoted, %d graduated, %d processed",
        school_id,
        target_id,
        promoted,
        graduated,
        len(active),
    )
    return PromotionResponse(
        message="Student promotion completed",
        total_processed=len(active),
        promoted=promoted,
        graduated=graduated,
        results=results,
    )
