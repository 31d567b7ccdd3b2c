"""Read-only aggregates over attendance, assignments, exams and finances."""

from typing import Dict, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.core.enums import (
    REVIEWABLE_APPLICATION_STATUSES,
    AttendanceSessionStatus,
    AttendanceStatus,
    InvoiceStatus,
    UserRole,
)
from app.core.models import (
    Assignment,
    AssignmentSubmission,
    AttendanceEntry,
    AttendanceSession,
    EnrollmentApplication,
    Exam,
    ExamMark,
    Expense,
    Invoice,
    Payment,
    StudentEnrollment,
)
from app.core.tenant_service import get_active_year, get_scoped_or_404

from .schemas import (
    AssignmentReport,
    AssignmentReportRow,
    AttendanceReport,
    AttendanceReportRow,
    ExamReport,
    ExamReportRow,
    SummaryCards,
    SummaryResponse,
)


async def _count(db: AsyncSession, stmt) -> int:
    result = await db.execute(stmt)
    return result.scalar_one() or 0


async def _year_or_active(db: AsyncSession, school_id: UUID, academic_year_id: Optional[UUID]) -> Optional[UUID]:
    if academic_year_id:
        return academic_year_id
    year = await get_active_year(db, school_id)
    return year.id if year else None


async def summary(db: AsyncSession, school_id: UUID) -> SummaryResponse:
    """Counts for the active year, or across all years when none is active."""
    year = await get_active_year(db, school_id)
    year_id = year.id if year else None

    def in_year(model, stmt):
        stmt = stmt.where(model.school_id == school_id)
        return stmt.where(model.academic_year_id == year_id) if year_id else stmt

    students = await _count(db, in_year(StudentEnrollment, select(func.count(StudentEnrollment.id))))
    employees = await _count(
        db,
        select(func.count(User.id)).where(User.school_id == school_id, User.role == UserRole.EMPLOYEE.value),
    )
    pending = await _count(
        db,
        select(func.count(EnrollmentApplication.id)).where(
            EnrollmentApplication.school_id == school_id,
            EnrollmentApplication.status.in_(REVIEWABLE_APPLICATION_STATUSES),
        ),
    )
    assignments = await _count(db, in_year(Assignment, select(func.count(Assignment.id))))
    locked_sessions = await _count(
        db,
        in_year(AttendanceSession, select(func.count(AttendanceSession.id))).where(
            AttendanceSession.status == AttendanceSessionStatus.locked.value
        ),
    )
    exams = await _count(db, in_year(Exam, select(func.count(Exam.id))))
    expenses = await db.execute(select(func.sum(Expense.amount)).where(Expense.school_id == school_id))
    total_expenses = expenses.scalar_one() or 0
    collected = await db.execute(select(func.sum(Payment.amount)).where(Payment.school_id == school_id))
    fee_collection = collected.scalar_one() or 0
    open_invoices = await _count(
        db,
        select(func.count(Invoice.id)).where(
            Invoice.school_id == school_id,
            Invoice.status != InvoiceStatus.paid.value,
        ),
    )

    return SummaryResponse(
        academic_year_id=year_id,
        cards=SummaryCards(
            students=str(students),
            employees=str(employees),
            pending_admissions=str(pending),
            assignments=str(assignments),
            attendance_locked_sessions=str(locked_sessions),
            total_expenses=f"{total_expenses:.2f}",
            fee_collection=f"{fee_collection:.2f}",
            open_invoices=str(open_invoices),
            exams_count=str(exams),
        ),
    )


async def attendance_report(
    db: AsyncSession,
    school_id: UUID,
    academic_year_id: Optional[UUID],
    class_id: Optional[UUID],
) -> AttendanceReport:
    """Per-student status counts over locked sessions. Late counts as present for the rate."""
    year_id = await _year_or_active(db, school_id, academic_year_id)
    stmt = (
        select(AttendanceEntry.student_id, User.name, AttendanceEntry.status, func.count(AttendanceEntry.id))
        .join(AttendanceSession, AttendanceSession.id == AttendanceEntry.session_id)
        .join(User, User.id == AttendanceEntry.student_id)
        .where(
            AttendanceSession.school_id == school_id,
            AttendanceSession.status == AttendanceSessionStatus.locked.value,
        )
        .group_by(AttendanceEntry.student_id, User.name, AttendanceEntry.status)
    )
    if year_id:
        stmt = stmt.where(AttendanceSession.academic_year_id == year_id)
    if class_id:
        stmt = stmt.where(AttendanceSession.class_id == class_id)
    result = await db.execute(stmt)

    rows: Dict[UUID, AttendanceReportRow] = {}
    for student_id, name, status, count in result.all():
        row = rows.setdefault(student_id, AttendanceReportRow(student_id=student_id, student_name=name))
        if status in AttendanceStatus.__members__:
            setattr(row, status, getattr(row, status) + count)
        row.total += count
    for row in rows.values():
        if row.total:
            row.presence_rate = round((row.present + row.late) * 100.0 / row.total, 1)
    return AttendanceReport(
        academic_year_id=year_id,
        class_id=class_id,
        rows=sorted(rows.values(), key=lambda r: r.student_name),
    )


async def assignment_report(
    db: AsyncSession,
    school_id: UUID,
    academic_year_id: Optional[UUID],
    class_id: Optional[UUID],
) -> AssignmentReport:
    year_id = await _year_or_active(db, school_id, academic_year_id)
    stmt = (
        select(
            Assignment.id,
            Assignment.title,
            Assignment.status,
            Assignment.max_score,
            func.count(AssignmentSubmission.id),
            func.count(AssignmentSubmission.reviewed_at),
            func.avg(AssignmentSubmission.score),
        )
        .outerjoin(AssignmentSubmission, AssignmentSubmission.assignment_id == Assignment.id)
        .where(Assignment.school_id == school_id)
        .group_by(Assignment.id, Assignment.title, Assignment.status, Assignment.max_score, Assignment.due_at)
        .order_by(Assignment.due_at.desc())
    )
    if year_id:
        stmt = stmt.where(Assignment.academic_year_id == year_id)
    if class_id:
        stmt = stmt.where(Assignment.class_id == class_id)
    result = await db.execute(stmt)
    rows = [
        AssignmentReportRow(
            assignment_id=aid,
            title=title,
            status=status,
            max_score=max_score,
            submissions=submissions,
            reviewed=reviewed,
            average_score=round(float(avg), 2) if avg is not None else None,
        )
        for aid, title, status, max_score, submissions, reviewed, avg in result.all()
    ]
    return AssignmentReport(academic_year_id=year_id, class_id=class_id, rows=rows)


async def exam_report(db: AsyncSession, school_id: UUID, exam_id: UUID) -> ExamReport:
    exam = await get_scoped_or_404(db, Exam, exam_id, school_id, "Exam")
    result = await db.execute(
        select(
            ExamMark.student_id,
            User.name,
            func.count(ExamMark.id),
            func.coalesce(func.sum(ExamMark.marks_obtained), 0),
            func.coalesce(func.sum(ExamMark.total_marks), 0),
        )
        .join(User, User.id == ExamMark.student_id)
        .where(ExamMark.exam_id == exam.id)
        .group_by(ExamMark.student_id, User.name)
        .order_by(User.name)
    )
    rows = []
    for student_id, name, subjects, obtained, total in result.all():
        obtained, total = float(obtained), float(total)
        rows.append(
            ExamReportRow(
                student_id=student_id,
                student_name=name,
                subjects=subjects,
                marks_obtained=obtained,
                total_marks=total,
                percentage=round(obtained * 100.0 / total, 2) if total else None,
            )
        )
    return ExamReport(exam_id=exam.id, exam_name=exam.name, status=exam.status, rows=rows)
