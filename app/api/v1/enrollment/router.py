from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import require_auth
from app.auth.rbac import check_permission, require_admin, require_roles, require_staff
from app.auth.schemas import Actor
from app.core.enums import ApplicationType
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import promotion, service
from .schemas import (
    ApplicationResponse,
    ApplicationReview,
    ApplicationWithApplicant,
    AutoEnrollResponse,
    ChildItem,
    DashboardResponse,
    EmployeeApplyRequest,
    EnrollmentSettings,
    EnrollmentSettingsUpdate,
    ParentApplyRequest,
    PendingProfileResponse,
    PromoteRequest,
    PromotionResponse,
    RegisterChildRequest,
    SchoolListing,
    StudentApplyRequest,
)

router = APIRouter(prefix="/api/enrollment", tags=["enrollment"])

# Promotion is also reachable from the student administration area
students_router = APIRouter(prefix="/api/sms/students", tags=["enrollment"])


@router.get("/schools", response_model=List[SchoolListing])
async def list_schools(
    q: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_auth),
):
    """School discovery for applicants; not bound to the caller's school."""
    return await service.list_schools(db, actor, q)


# ----- Review (school staff) -----

@router.get("/applications", response_model=List[ApplicationWithApplicant])
async def list_applications(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    return await service.list_applications(db, actor.school_id)


@router.patch("/applications/{application_id}", response_model=ApplicationResponse)
async def review_application(
    application_id: UUID,
    payload: ApplicationReview,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("manage_users")),
):
    try:
        return await service.review_application(db, actor, application_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/settings", response_model=EnrollmentSettings)
async def get_settings(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    try:
        return await service.get_settings(db, actor.school_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/settings", response_model=EnrollmentSettings)
async def update_settings(
    payload: EnrollmentSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    try:
        return await service.update_settings(db, actor.school_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ----- Student applicants -----

@router.get("/student/applications", response_model=List[ApplicationResponse])
async def list_student_applications(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("student")),
):
    return await service.list_my_applications(db, actor, ApplicationType.student_self)


@router.post("/student/apply", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED)
async def student_apply(
    payload: StudentApplyRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("student")),
):
    try:
        return await service.apply_as_student(db, actor, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ----- Parent applicants -----

@router.get("/parent/children", response_model=List[ChildItem])
async def list_children(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("parent")),
):
    return await service.list_children(db, actor)


@router.post("/parent/register-child", response_model=PendingProfileResponse, status_code=status.HTTP_201_CREATED)
async def register_child(
    payload: RegisterChildRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("parent")),
):
    return await service.register_child(db, actor, payload)


@router.get("/parent/applications", response_model=List[ApplicationResponse])
async def list_parent_applications(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("parent")),
):
    return await service.list_my_applications(db, actor, ApplicationType.parent_student)


@router.post("/parent/apply-for-child", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED)
async def apply_for_child(
    payload: ParentApplyRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("parent")),
):
    try:
        return await service.apply_for_child(db, actor, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ----- Employee applicants -----

@router.get("/employee/applications", response_model=List[ApplicationResponse])
async def list_employee_applications(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("employee")),
):
    return await service.list_my_applications(db, actor, ApplicationType.employee)


@router.post("/employee/apply", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED)
async def employee_apply(
    payload: EmployeeApplyRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("employee")),
):
    try:
        return await service.apply_as_employee(db, actor, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ----- Batch placement -----

@router.post("/auto-enroll", response_model=AutoEnrollResponse)
async def auto_enroll(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    try:
        return await promotion.auto_enroll(db, actor)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/dashboard", response_model=DashboardResponse)
async def enrollment_dashboard(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    return await promotion.enrollment_dashboard(db, actor.school_id)


@router.post("/promote", response_model=PromotionResponse)
@students_router.post("/promote", response_model=PromotionResponse)
async def promote_students(
    payload: PromoteRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    """Year-end promotion of every active enrollment in the active year into the target year."""
    try:
        return await promotion.promote_students(db, actor, payload.target_year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
