from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import check_permission
from app.auth.schemas import Actor
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import AssignmentReport, AttendanceReport, ExamReport, SummaryResponse

router = APIRouter(prefix="/api/sms/reports", tags=["reports"])


@router.get("/summary", response_model=SummaryResponse)
async def report_summary(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("view_reports")),
):
    return await service.summary(db, actor.school_id)


@router.get("/attendance", response_model=AttendanceReport)
async def attendance_report(
    academic_year_id: Optional[UUID] = Query(None, alias="academicYearId"),
    class_id: Optional[UUID] = Query(None, alias="classId"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("view_reports")),
):
    return await service.attendance_report(db, actor.school_id, academic_year_id, class_id)


@router.get("/assignments", response_model=AssignmentReport)
async def assignment_report(
    academic_year_id: Optional[UUID] = Query(None, alias="academicYearId"),
    class_id: Optional[UUID] = Query(None, alias="classId"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("view_reports")),
):
    return await service.assignment_report(db, actor.school_id, academic_year_id, class_id)


@router.get("/exams/{exam_id}", response_model=ExamReport)
async def exam_report(
    exam_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("view_reports")),
):
    try:
        return await service.exam_report(db, actor.school_id, exam_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
