from app.core.models.school import School
from app.core.models.academic_year import AcademicYear, Term
from app.core.models.class_model import ClassSection, SchoolClass
from app.core.models.subject import Subject
from app.core.models.student_enrollment import StudentEnrollment
from app.core.models.attendance import (
    AttendanceAuditLog,
    AttendanceEntry,
    AttendanceSession,
    session_scope_key,
)
from app.core.models.assignment import Assignment, AssignmentSubmission
from app.core.models.exam import Exam, ExamMark
from app.core.models.permission import PermissionCatalog, SubRole, SubRolePermissionGrant
from app.core.models.enrollment_application import (
    EnrollmentApplication,
    ParentChild,
    PendingStudentProfile,
)
from app.core.models.expense import Expense
from app.core.models.payment import FeeHead, Invoice, InvoiceLine, Payment, PaymentSettings
from app.core.models.staff_attendance import StaffAttendanceEntry, StaffAttendanceSession
from app.core.models.audit_log import AuditLog

__all__ = [
    "AcademicYear",
    "Assignment",
    "AssignmentSubmission",
    "AttendanceAuditLog",
    "AttendanceEntry",
    "AttendanceSession",
    "AuditLog",
    "ClassSection",
    "EnrollmentApplication",
    "Exam",
    "ExamMark",
    "Expense",
    "FeeHead",
    "Invoice",
    "InvoiceLine",
    "ParentChild",
    "Payment",
    "PaymentSettings",
    "PendingStudentProfile",
    "PermissionCatalog",
    "School",
    "SchoolClass",
    "StaffAttendanceEntry",
    "StaffAttendanceSession",
    "StudentEnrollment",
    "SubRole",
    "SubRolePermissionGrant",
    "Subject",
    "Term",
    "session_scope_key",
]
