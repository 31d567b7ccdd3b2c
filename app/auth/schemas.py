from datetime import datetime
from typing import FrozenSet, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from app.core.enums import UserRole
from app.core.schemas import CamelModel


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1)
    role: UserRole
    school_name: Optional[str] = Field(None, description="Admin only: creates the school and links the admin to it")
    student_id: Optional[str] = None
    employee_id: Optional[str] = None


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class RefreshRequest(CamelModel):
    refresh_token: str


class UserResponse(CamelModel):
    id: UUID
    email: str
    name: str
    role: str
    sub_role: Optional[str] = None
    school_id: Optional[UUID] = None
    student_id: Optional[str] = None
    employee_id: Optional[str] = None
    grade: Optional[str] = None
    class_section: Optional[str] = None
    verified: bool = False
    profile_completion: int = 0
    created_at: Optional[datetime] = None


class AuthResponse(CamelModel):
    user: UserResponse
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds until the access token expires


# ----- Actor -----
# Permissions students and parents hold without any grant rows.
STUDENT_PERMISSIONS: FrozenSet[str] = frozenset(
    {
        "view_dashboard",
        "view_social_feed",
        "view_announcements",
        "view_assignments",
        "submit_assignments",
        "view_grades",
        "view_attendance",
        "view_schedule",
    }
)

PARENT_PERMISSIONS: FrozenSet[str] = frozenset(
    {
        "view_dashboard",
        "view_social_feed",
        "view_announcements",
        "view_assignments",
        "view_grades",
        "view_attendance",
        "view_payments",
        "view_parent_info",
    }
)


class BaseActor(BaseModel):
    """The authenticated caller, resolved once per request."""

    id: UUID
    role: str
    school_id: Optional[UUID] = None
    name: str = ""
    email: str = ""

    class Config:
        frozen = True

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.ADMIN.value, UserRole.EMPLOYEE.value)

    def permits(self, key: str) -> bool:
        return False


class AdminActor(BaseActor):
    role: Literal["admin"] = "admin"

    def permits(self, key: str) -> bool:
        # Superuser within its own school
        return True


class EmployeeActor(BaseActor):
    role: Literal["employee"] = "employee"
    sub_role: Optional[str] = None
    grants: FrozenSet[str] = frozenset()

    def permits(self, key: str) -> bool:
        return key in self.grants


class StudentActor(BaseActor):
    role: Literal["student"] = "student"

    def permits(self, key: str) -> bool:
        return key in STUDENT_PERMISSIONS


class ParentActor(BaseActor):
    role: Literal["parent"] = "parent"

    def permits(self, key: str) -> bool:
        return key in PARENT_PERMISSIONS


Actor = Union[AdminActor, EmployeeActor, StudentActor, ParentActor]
