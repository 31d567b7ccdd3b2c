from datetime import date, datetime
from typing import Annotated, List, Literal, Optional, Union
from uuid import UUID

from pydantic import EmailStr, Field, model_validator

from app.api.v1.academic_years.schemas import AcademicYearResponse
from app.core.schemas import CamelModel


# ----- Stored application details (one variant per application type) -----

class StudentSelfDetails(CamelModel):
    type: Literal["student_self"] = "student_self"
    guardian_name: str
    guardian_contact: str
    guardian_email: str
    date_of_birth: date
    address: str
    medical_info: Optional[str] = None
    documents: List[str] = Field(default_factory=list)


class ParentStudentDetails(CamelModel):
    type: Literal["parent_student"] = "parent_student"
    child_name: str
    documents: List[str] = Field(default_factory=list)


class EmployeeDetails(CamelModel):
    type: Literal["employee"] = "employee"
    desired_sub_role: str
    custom_sub_role_name: Optional[str] = None
    experience: str
    qualifications: str
    previous_employment: Optional[str] = None
    references: Optional[str] = None
    cover_letter: Optional[str] = None
    documents: List[str] = Field(default_factory=list)


ApplicationDetails = Annotated[
    Union[StudentSelfDetails, ParentStudentDetails, EmployeeDetails],
    Field(discriminator="type"),
]


# ----- Intake requests -----

class StudentApplyRequest(CamelModel):
    school_id: UUID
    class_id: UUID
    section_id: Optional[UUID] = None
    guardian_name: str = Field(..., min_length=1, max_length=255)
    guardian_contact: str = Field(..., min_length=1, max_length=50)
    guardian_email: EmailStr
    date_of_birth: date
    address: str = Field(..., min_length=1, max_length=512)
    medical_info: Optional[str] = Field(None, max_length=2000)
    documents: List[str] = Field(default_factory=list)


class RegisterChildRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    date_of_birth: date
    previous_school: Optional[str] = Field(None, max_length=255)
    previous_class: Optional[str] = Field(None, max_length=100)
    medical_info: Optional[str] = Field(None, max_length=2000)
    documents: List[str] = Field(default_factory=list)


class ParentApplyRequest(CamelModel):
    child_id: UUID = Field(..., description="Pending student profile or linked child account of the parent")
    school_id: UUID
    class_id: UUID
    section_id: Optional[UUID] = None
    documents: List[str] = Field(default_factory=list)


class EmployeeApplyRequest(CamelModel):
    school_id: UUID
    desired_sub_role: str = Field(..., min_length=1, max_length=100)
    custom_sub_role_name: Optional[str] = Field(None, max_length=255)
    experience: str = Field(..., min_length=1)
    qualifications: str = Field(..., min_length=1)
    previous_employment: Optional[str] = None
    references: Optional[str] = None
    cover_letter: Optional[str] = None
    documents: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_custom_name(self) -> "EmployeeApplyRequest":
        if self.desired_sub_role == "other" and not (self.custom_sub_role_name or "").strip():
            raise ValueError("customSubRoleName is required when desiredSubRole is 'other'")
        return self


# ----- Responses -----

class ApplicationResponse(CamelModel):
    id: UUID
    type: str
    school_id: UUID
    applicant_user_id: UUID
    status: str
    academic_year_id: Optional[UUID] = None
    class_id: Optional[UUID] = None
    section_id: Optional[UUID] = None
    pending_student_profile_id: Optional[UUID] = None
    child_user_id: Optional[UUID] = None
    desired_sub_role_id: Optional[UUID] = None
    details: ApplicationDetails
    review_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ApplicationWithApplicant(ApplicationResponse):
    applicant_name: Optional[str] = None
    applicant_email: Optional[str] = None
    applicant_role: Optional[str] = None


class ApplicationReview(CamelModel):
    status: Literal["under_review", "approved", "rejected"]
    review_notes: Optional[str] = Field(None, max_length=2000)


class PendingProfileResponse(CamelModel):
    id: UUID
    parent_id: UUID
    full_name: str
    date_of_birth: date
    previous_school: Optional[str] = None
    previous_class: Optional[str] = None
    medical_info: Optional[str] = None
    documents: List[str] = Field(default_factory=list)
    student_user_id: Optional[UUID] = None
    created_at: datetime


class ChildItem(CamelModel):
    """A linked child account (is_active) or a pending profile awaiting approval."""

    id: UUID
    name: str
    date_of_birth: Optional[date] = None
    previous_school: Optional[str] = None
    is_active: bool
    current_school_id: Optional[UUID] = None


class SchoolListing(CamelModel):
    id: UUID
    name: str
    address: Optional[str] = None
    logo_url: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    enrollment_open: bool


class EnrollmentSettings(CamelModel):
    enrollment_open: bool
    student_applications_enabled: bool
    parent_applications_enabled: bool
    staff_applications_enabled: bool


class EnrollmentSettingsUpdate(CamelModel):
    enrollment_open: Optional[bool] = None
    student_applications_enabled: Optional[bool] = None
    parent_applications_enabled: Optional[bool] = None
    staff_applications_enabled: Optional[bool] = None


# ----- Batch operations -----

class AutoEnrollResult(CamelModel):
    student_id: UUID
    student_name: str
    status: Literal["enrolled", "already_enrolled", "error"]
    enrollment_id: Optional[UUID] = None
    class_name: Optional[str] = None
    section: Optional[str] = None
    message: Optional[str] = None


class AutoEnrollResponse(CamelModel):
    message: str
    total_orphans: int = 0
    enrolled: int = 0
    results: List[AutoEnrollResult] = Field(default_factory=list)


class PromoteRequest(CamelModel):
    target_year_id: Optional[UUID] = None


class PromotionResult(CamelModel):
    student_id: Optional[UUID] = None
    student_name: Optional[str] = None
    enrollment_id: Optional[UUID] = None
    action: Literal["promoted", "graduated", "no_next_class", "error"]
    from_grade: Optional[str] = None
    to_grade: Optional[str] = None
    new_enrollment_id: Optional[UUID] = None
    message: Optional[str] = None


class PromotionResponse(CamelModel):
    message: str
    total_processed: int
    promoted: int
    graduated: int
    results: List[PromotionResult]


class DashboardStudent(CamelModel):
    id: UUID
    name: str
    email: str
    grade: Optional[str] = None
    class_section: Optional[str] = None


class DashboardEnrollment(CamelModel):
    enrollment_id: UUID
    student_id: UUID
    student_name: Optional[str] = None
    student_email: Optional[str] = None
    class_name: Optional[str] = None
    status: str
    created_at: datetime


class ClassBreakdownRow(CamelModel):
    class_name: Optional[str] = None
    section_name: Optional[str] = None
    enrolled_count: int


class DashboardStatistics(CamelModel):
    unassigned_students: int
    pending_enrollments: int
    graduation_candidates: int
    total_active_enrollments: int


class DashboardResponse(CamelModel):
    academic_year: Optional[AcademicYearResponse] = None
    statistics: DashboardStatistics
    unassigned_students: List[DashboardStudent]
    pending_enrollments: List[DashboardEnrollment]
    graduation_candidates: List[DashboardEnrollment]
    class_breakdown: List[ClassBreakdownRow]
