"""
Self-service enrollment: school discovery, application intake for students, parents and
employees, and the admin review that turns an approved application into school membership.

Review is one transaction: the conditional status change, the approval side effects and
the audit row commit together or not at all.
"""

import logging
from datetime import datetime
from typing import List, Optional, Union
from uuid import UUID

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.sub_roles.service import get_sub_role_by_key, slugify_key
from app.auth.models import User
from app.auth.rbac import ensure_same_school
from app.auth.schemas import Actor
from app.auth.security import generate_temp_password, hash_password
from app.core.enums import (
    REVIEWABLE_APPLICATION_STATUSES,
    ApplicationStatus,
    ApplicationType,
    EnrollmentStatus,
    UserRole,
)
from app.core.exceptions import BusinessRuleError, NotFoundError, StateConflictError
from app.core.models import (
    ClassSection,
    EnrollmentApplication,
    ParentChild,
    PendingStudentProfile,
    School,
    SchoolClass,
    StudentEnrollment,
    SubRole,
)
from app.core.tenant_service import get_active_year, get_child_ids, get_scoped_or_404
from app.db.seed_permissions import seed_default_sub_roles

from .audit_service import log_audit
from .schemas import (
    ApplicationDetails,
    ApplicationReview,
    ApplicationWithApplicant,
    EmployeeApplyRequest,
    EmployeeDetails,
    EnrollmentSettingsUpdate,
    ParentApplyRequest,
    ParentStudentDetails,
    RegisterChildRequest,
    SchoolListing,
    StudentApplyRequest,
    StudentSelfDetails,
)

logger = logging.getLogger(__name__)

OTHER_SUB_ROLE = "other"

# Flag on School that gates each application type
_FLAG_BY_TYPE = {
    ApplicationType.student_self.value: "student_applications_enabled",
    ApplicationType.parent_student.value: "parent_applications_enabled",
    ApplicationType.employee.value: "staff_applications_enabled",
}

_TYPE_BY_ROLE = {
    UserRole.STUDENT.value: ApplicationType.student_self.value,
    UserRole.PARENT.value: ApplicationType.parent_student.value,
    UserRole.EMPLOYEE.value: ApplicationType.employee.value,
}

_CLOSED_MESSAGES = {
    ApplicationType.student_self.value: "School is not currently accepting student applications",
    ApplicationType.parent_student.value: "School is not currently accepting parent applications",
    ApplicationType.employee.value: "School is not currently accepting staff applications",
}


# ----- Discovery -----

async def list_schools(db: AsyncSession, actor: Actor, q: Optional[str]) -> List[SchoolListing]:
    """Schools for applicants. enrollmentOpen also reflects the flag for the caller's role."""
    stmt = select(School).order_by(School.name).limit(100)
    term = (q or "").strip().lower()
    if term:
        stmt = stmt.where(func.lower(School.name).contains(term, autoescape=True))
    result = await db.execute(stmt)
    app_type = _TYPE_BY_ROLE.get(actor.role)
    flag = _FLAG_BY_TYPE[app_type] if app_type else None
    listings = []
    for school in result.scalars().all():
        enabled = getattr(school, flag) if flag else True
        listings.append(
            SchoolListing(
                id=school.id,
                name=school.name,
                address=school.address,
                logo_url=school.logo_url,
                phone=school.phone,
                email=school.email,
                enrollment_open=bool(school.enrollment_open and enabled),
            )
        )
    return listings


# ----- Settings -----

async def get_settings(db: AsyncSession, school_id: UUID) -> School:
    school = await db.get(School, school_id)
    if not school:
        raise NotFoundError("School not found")
    return school


async def update_settings(db: AsyncSession, school_id: UUID, payload: EnrollmentSettingsUpdate) -> School:
    school = await get_settings(db, school_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(school, field, value)
    await db.commit()
    await db.refresh(school)
    logger.info("Enrollment settings updated for school %s", school_id)
    return school


# ----- Intake -----

async def _open_school_or_error(db: AsyncSession, school_id: UUID, app_type: str) -> School:
    school = await db.get(School, school_id)
    if not school:
        raise NotFoundError("School not found")
    if not (school.enrollment_open and getattr(school, _FLAG_BY_TYPE[app_type])):
        raise BusinessRuleError(_CLOSED_MESSAGES[app_type])
    return school


async def _check_placement(
    db: AsyncSession, school_id: UUID, class_id: UUID, section_id: Optional[UUID]
) -> None:
    await get_scoped_or_404(db, SchoolClass, class_id, school_id, "Class")
    if section_id:
        section = await get_scoped_or_404(db, ClassSection, section_id, school_id, "Section")
        if section.class_id != class_id:
            raise NotFoundError("Section not found")


async def _ensure_no_pending(
    db: AsyncSession,
    applicant_id: UUID,
    school_id: UUID,
    app_type: str,
    pending_profile_id: Optional[UUID] = None,
    child_user_id: Optional[UUID] = None,
) -> None:
    stmt = select(EnrollmentApplication.id).where(
        EnrollmentApplication.applicant_user_id == applicant_id,
        EnrollmentApplication.school_id == school_id,
        EnrollmentApplication.type == app_type,
        EnrollmentApplication.status.in_(REVIEWABLE_APPLICATION_STATUSES),
    )
    if pending_profile_id is not None:
        stmt = stmt.where(EnrollmentApplication.pending_student_profile_id == pending_profile_id)
    if child_user_id is not None:
        stmt = stmt.where(EnrollmentApplication.child_user_id == child_user_id)
    result = await db.execute(stmt.limit(1))
    if result.scalar_one_or_none():
        raise StateConflictError("You already have a pending application to this school")


async def _ensure_not_enrolled(db: AsyncSession, student_id: UUID, school_id: UUID, message: str) -> None:
    """Conflict when the student already holds an active enrollment in the school."""
    result = await db.execute(
        select(StudentEnrollment.id)
        .where(
            StudentEnrollment.student_id == student_id,
            StudentEnrollment.school_id == school_id,
            StudentEnrollment.status == EnrollmentStatus.active.value,
        )
        .limit(1)
    )
    if result.scalar_one_or_none():
        raise StateConflictError(message)


async def _linked_child(db: AsyncSession, parent_id: UUID, child_id: UUID) -> User:
    if child_id not in await get_child_ids(db, parent_id):
        raise NotFoundError("Child not found")
    child = await db.get(User, child_id)
    if child is None or child.role != UserRole.STUDENT.value:
        raise NotFoundError("Child not found")
    return child


async def _save_application(db: AsyncSession, application: EnrollmentApplication) -> EnrollmentApplication:
    db.add(application)
    await db.commit()
    await db.refresh(application)
    logger.info(
        "Application %s (%s) submitted to school %s by %s",
        application.id,
        application.type,
        application.school_id,
        application.applicant_user_id,
    )
    return application


async def list_my_applications(db: AsyncSession, actor: Actor, app_type: ApplicationType) -> List[EnrollmentApplication]:
    stmt = (
        select(EnrollmentApplication)
        .where(
            EnrollmentApplication.applicant_user_id == actor.id,
            EnrollmentApplication.type == app_type.value,
        )
        .order_by(EnrollmentApplication.created_at.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def apply_as_student(db: AsyncSession, actor: Actor, payload: StudentApplyRequest) -> EnrollmentApplication:
    app_type = ApplicationType.student_self.value
    if actor.school_id is not None:
        ensure_same_school(actor, payload.school_id)
    await _open_school_or_error(db, payload.school_id, app_type)
    await _check_placement(db, payload.school_id, payload.class_id, payload.section_id)
    await _ensure_no_pending(db, actor.id, payload.school_id, app_type)
    await _ensure_not_enrolled(db, actor.id, payload.school_id, "You are already enrolled in this school")

    details = StudentSelfDetails(**payload.model_dump(exclude={"school_id", "class_id", "section_id"}))
    return await _save_application(
        db,
        EnrollmentApplication(
            type=app_type,
            school_id=payload.school_id,
            applicant_user_id=actor.id,
            status=ApplicationStatus.submitted.value,
            class_id=payload.class_id,
            section_id=payload.section_id,
            details=details.model_dump(mode="json"),
        ),
    )


async def register_child(db: AsyncSession, actor: Actor, payload: RegisterChildRequest) -> PendingStudentProfile:
    profile = PendingStudentProfile(
        parent_id=actor.id,
        full_name=payload.name.strip(),
        date_of_birth=payload.date_of_birth,
        previous_school=payload.previous_school,
        previous_class=payload.previous_class,
        medical_info=payload.medical_info,
        documents=payload.documents,
    )
    db.add(profile)
    await db.commit()
    await db.refresh(profile)
    return profile


async def list_children(db: AsyncSession, actor: Actor) -> List[dict]:
    """Linked child accounts first, then profiles not yet materialized into accounts."""
    linked = await db.execute(
        select(User)
        .join(ParentChild, ParentChild.child_id == User.id)
        .where(ParentChild.parent_id == actor.id)
        .order_by(User.name)
    )
    children = [
        {"id": u.id, "name": u.name, "is_active": True, "current_school_id": u.school_id}
        for u in linked.scalars().all()
    ]
    pending = await db.execute(
        select(PendingStudentProfile)
        .where(
            PendingStudentProfile.parent_id == actor.id,
            PendingStudentProfile.student_user_id.is_(None),
        )
        .order_by(PendingStudentProfile.created_at)
    )
    children.extend(
        {
            "id": p.id,
            "name": p.full_name,
            "date_of_birth": p.date_of_birth,
            "previous_school": p.previous_school,
            "is_active": False,
        }
        for p in pending.scalars().all()
    )
    return children


async def apply_for_child(db: AsyncSession, actor: Actor, payload: ParentApplyRequest) -> EnrollmentApplication:
    """childId is either one of the parent's pending profiles or an already linked child account."""
    app_type = ApplicationType.parent_student.value
    profile = await db.get(PendingStudentProfile, payload.child_id)
    if profile is not None and profile.parent_id == actor.id:
        if profile.student_user_id is not None:
            raise StateConflictError("Child is already enrolled")
        child_name, profile_id, child_user_id = profile.full_name, profile.id, None
    else:
        child = await _linked_child(db, actor.id, payload.child_id)
        await _ensure_not_enrolled(db, child.id, payload.school_id, "Child is already enrolled")
        child_name, profile_id, child_user_id = child.name, None, child.id

    await _open_school_or_error(db, payload.school_id, app_type)
    await _check_placement(db, payload.school_id, payload.class_id, payload.section_id)
    await _ensure_no_pending(
        db, actor.id, payload.school_id, app_type, pending_profile_id=profile_id, child_user_id=child_user_id
    )

    details = ParentStudentDetails(child_name=child_name, documents=payload.documents)
    return await _save_application(
        db,
        EnrollmentApplication(
            type=app_type,
            school_id=payload.school_id,
            applicant_user_id=actor.id,
            status=ApplicationStatus.submitted.value,
            class_id=payload.class_id,
            section_id=payload.section_id,
            pending_student_profile_id=profile_id,
            child_user_id=child_user_id,
            details=details.model_dump(mode="json"),
        ),
    )


async def apply_as_employee(db: AsyncSession, actor: Actor, payload: EmployeeApplyRequest) -> EnrollmentApplication:
    app_type = ApplicationType.employee.value
    if actor.school_id is not None:
        ensure_same_school(actor, payload.school_id)
    await _open_school_or_error(db, payload.school_id, app_type)
    await _ensure_no_pending(db, actor.id, payload.school_id, app_type)

    desired_sub_role_id = None
    if payload.desired_sub_role != OTHER_SUB_ROLE:
        await seed_default_sub_roles(db, payload.school_id)
        sub_role = await get_sub_role_by_key(db, payload.school_id, payload.desired_sub_role)
        if not sub_role:
            raise BusinessRuleError("Unknown sub-role for this school")
        desired_sub_role_id = sub_role.id

    details = EmployeeDetails(**payload.model_dump(exclude={"school_id"}))
    return await _save_application(
        db,
        EnrollmentApplication(
            type=app_type,
            school_id=payload.school_id,
            applicant_user_id=actor.id,
            status=ApplicationStatus.submitted.value,
            desired_sub_role_id=desired_sub_role_id,
            details=details.model_dump(mode="json"),
        ),
    )


# ----- Review -----

async def list_applications(db: AsyncSession, school_id: UUID) -> List[ApplicationWithApplicant]:
    stmt = (
        select(EnrollmentApplication, User)
        .outerjoin(User, User.id == EnrollmentApplication.applicant_user_id)
        .where(EnrollmentApplication.school_id == school_id)
        .order_by(EnrollmentApplication.created_at.desc())
    )
    result = await db.execute(stmt)
    rows = []
    for application, applicant in result.all():
        item = ApplicationWithApplicant.model_validate(application)
        if applicant is not None:
            item.applicant_name = applicant.name
            item.applicant_email = applicant.email
            item.applicant_role = applicant.role
        rows.append(item)
    return rows


def _allowed_from(new_status: str) -> tuple:
    if new_status == ApplicationStatus.under_review.value:
        return (ApplicationStatus.submitted.value,)
    return REVIEWABLE_APPLICATION_STATUSES


async def _placement_names(db: AsyncSession, application: EnrollmentApplication):
    cls = await get_scoped_or_404(db, SchoolClass, application.class_id, application.school_id, "Class")
    section = None
    if application.section_id:
        section = await get_scoped_or_404(db, ClassSection, application.section_id, application.school_id, "Section")
    return cls, section


async def _enroll(
    db: AsyncSession,
    school_id: UUID,
    student_id: UUID,
    year_id: Optional[UUID],
    class_id: UUID,
    section_id: Optional[UUID],
) -> Optional[StudentEnrollment]:
    """Create the active enrollment for the year unless the student already has one there."""
    if year_id is None:
        return None
    existing = await db.execute(
        select(StudentEnrollment.id).where(
            StudentEnrollment.student_id == student_id,
            StudentEnrollment.academic_year_id == year_id,
        )
    )
    if existing.scalar_one_or_none():
        return None
    enrollment = StudentEnrollment(
        school_id=school_id,
        student_id=student_id,
        academic_year_id=year_id,
        class_id=class_id,
        section_id=section_id,
        status=EnrollmentStatus.active.value,
    )
    db.add(enrollment)
    return enrollment


async def _applicant_for(db: AsyncSession, application: EnrollmentApplication) -> User:
    applicant = await db.get(User, application.applicant_user_id)
    if not applicant:
        raise NotFoundError("Applicant not found")
    if applicant.school_id is not None and applicant.school_id != application.school_id:
        raise StateConflictError("Applicant already belongs to another school")
    return applicant


async def _approve_employee(db: AsyncSession, application: EnrollmentApplication, details: EmployeeDetails) -> None:
    applicant = await _applicant_for(db, application)
    if details.desired_sub_role == OTHER_SUB_ROLE:
        name = (details.custom_sub_role_name or "").strip()
        key = slugify_key(name)
        if not key:
            raise BusinessRuleError("Custom sub-role name is empty")
        sub_role = await get_sub_role_by_key(db, application.school_id, key)
        if sub_role is None:
            sub_role = SubRole(school_id=application.school_id, key=key, name=name, is_system=False)
            db.add(sub_role)
            await db.flush()
    else:
        sub_role = await get_sub_role_by_key(db, application.school_id, details.desired_sub_role)
        if sub_role is None:
            raise NotFoundError("Sub-role not found")
    application.desired_sub_role_id = sub_role.id
    applicant.school_id = application.school_id
    applicant.sub_role = sub_role.key


async def _place_student(db: AsyncSession, application: EnrollmentApplication, student: User) -> None:
    """Set the student's school and denormalized placement, then enroll them in the active year."""
    cls, section = await _placement_names(db, application)
    student.school_id = application.school_id
    student.grade = cls.name
    student.class_section = section.name if section else None

    year = await get_active_year(db, application.school_id)
    year_id = application.academic_year_id or (year.id if year else None)
    enrollment = await _enroll(db, application.school_id, student.id, year_id, cls.id, application.section_id)
    if enrollment is None:
        logger.info("Student %s admitted to school %s without a new enrollment", student.id, application.school_id)


async def _link_parent_school(db: AsyncSession, application: EnrollmentApplication) -> None:
    parent = await db.get(User, application.applicant_user_id)
    if parent is not None and parent.school_id is None:
        parent.school_id = application.school_id


async def _approve_student(db: AsyncSession, application: EnrollmentApplication) -> None:
    applicant = await _applicant_for(db, application)
    await _ensure_not_enrolled(db, applicant.id, application.school_id, "Student is already enrolled in this school")
    await _place_student(db, application, applicant)


async def _approve_linked_child(db: AsyncSession, application: EnrollmentApplication) -> None:
    child = await db.get(User, application.child_user_id)
    if child is None:
        raise NotFoundError("Child not found")
    if child.school_id is not None and child.school_id != application.school_id:
        raise StateConflictError("Child already belongs to another school")
    await _ensure_not_enrolled(db, child.id, application.school_id, "Child is already enrolled")
    await _place_student(db, application, child)
    await _link_parent_school(db, application)


async def _approve_parent_student(db: AsyncSession, application: EnrollmentApplication) -> None:
    profile = await db.get(PendingStudentProfile, application.pending_student_profile_id) if application.pending_student_profile_id else None
    if not profile:
        raise NotFoundError("Child profile not found")
    if profile.student_user_id is not None:
        raise StateConflictError("Child is already enrolled")

    student = User(
        email=f"student.{profile.id}@campus.pending",
        password_hash=hash_password(generate_temp_password()),
        name=profile.full_name,
        role=UserRole.STUDENT.value,
        verified=True,
        profile_completion=40,
    )
    db.add(student)
    await db.flush()
    profile.student_user_id = student.id

    await _place_student(db, application, student)
    db.add(ParentChild(parent_id=application.applicant_user_id, child_id=student.id))
    await _link_parent_school(db, application)


async def review_application(
    db: AsyncSession,
    actor: Actor,
    application_id: UUID,
    payload: ApplicationReview,
) -> EnrollmentApplication:
    application = await get_scoped_or_404(db, EnrollmentApplication, application_id, actor.school_id, "Application")
    from_status = application.status
    values = {
        "status": payload.status,
        "review_notes": payload.review_notes,
        "reviewed_by": actor.id,
        "reviewed_at": datetime.utcnow(),
        "updated_at": datetime.utcnow(),
    }
    if payload.status == ApplicationStatus.rejected.value:
        values["rejection_reason"] = payload.review_notes

    result = await db.execute(
        update(EnrollmentApplication)
        .where(
            EnrollmentApplication.id == application.id,
            EnrollmentApplication.status.in_(_allowed_from(payload.status)),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise StateConflictError(f"Application cannot move from {from_status} to {payload.status}")

    try:
        if payload.status == ApplicationStatus.approved.value:
            details = _parse_details(application.details)
            if isinstance(details, EmployeeDetails):
                await _approve_employee(db, application, details)
            elif isinstance(details, StudentSelfDetails):
                await _approve_student(db, application)
            elif application.child_user_id is not None:
                await _approve_linked_child(db, application)
            else:
                await _approve_parent_student(db, application)

        log_audit(
            db,
            actor,
            "enrollment_application",
            application.id,
            f"application_{payload.status}",
            from_status=from_status,
            to_status=payload.status,
            meta={"type": application.type},
            remarks=payload.review_notes,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise StateConflictError("Application could not be applied, conflicting records exist")
    except Exception:
        await db.rollback()
        raise

    await db.refresh(application)
    logger.info("Application %s moved %s -> %s by %s", application.id, from_status, payload.status, actor.id)
    return application


_DETAILS_ADAPTER = TypeAdapter(ApplicationDetails)


def _parse_details(raw) -> Union[StudentSelfDetails, ParentStudentDetails, EmployeeDetails]:
    try:
        return _DETAILS_ADAPTER.validate_python(raw or {})
    except ValidationError:
        raise BusinessRuleError("Application details are invalid")
