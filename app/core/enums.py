from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    EMPLOYEE = "employee"
    STUDENT = "student"
    PARENT = "parent"


class EnrollmentStatus(str, Enum):
    active = "active"
    pending = "pending"
    promoted = "promoted"
    graduated = "graduated"
    transferred = "transferred"


class AttendanceSessionStatus(str, Enum):
    draft = "draft"
    submitted = "submitted"
    locked = "locked"


class AttendanceStatus(str, Enum):
    present = "present"
    absent = "absent"
    late = "late"
    excused = "excused"


class AssignmentStatus(str, Enum):
    draft = "draft"
    published = "published"
    closed = "closed"


class ExamStatus(str, Enum):
    draft = "draft"
    published = "published"


class ExamType(str, Enum):
    exam = "exam"
    quiz = "quiz"
    test = "test"


class ApplicationType(str, Enum):
    student_self = "student_self"
    parent_student = "parent_student"
    employee = "employee"


class ApplicationStatus(str, Enum):
    submitted = "submitted"
    under_review = "under_review"
    approved = "approved"
    rejected = "rejected"


# Application states from which a review decision can still be taken
REVIEWABLE_APPLICATION_STATUSES = (ApplicationStatus.submitted.value, ApplicationStatus.under_review.value)


class InvoiceStatus(str, Enum):
    open = "open"
    partial = "partial"
    paid = "paid"
