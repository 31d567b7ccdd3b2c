from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import check_permission, require_admin, require_school, require_staff
from app.auth.schemas import Actor
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import (
    BulkInvoiceCreate,
    BulkInvoiceResponse,
    FeeHeadCreate,
    FeeHeadResponse,
    InvoiceCreate,
    InvoiceDetail,
    InvoiceResponse,
    PaymentCreate,
    PaymentRecorded,
    PaymentSettingsResponse,
    PaymentSettingsUpdate,
    StudentBalance,
)

router = APIRouter(prefix="/api/sms/payments", tags=["payments"])


# ----- Fee heads -----
@router.get("/fee-heads", response_model=List[FeeHeadResponse])
async def list_fee_heads(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    return await service.list_fee_heads(db, actor.school_id)


@router.post("/fee-heads", response_model=FeeHeadResponse, status_code=status.HTTP_201_CREATED)
async def create_fee_head(
    payload: FeeHeadCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("create_invoices")),
):
    try:
        return await service.create_fee_head(db, actor, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ----- Settings -----
@router.get("/settings", response_model=PaymentSettingsResponse)
async def get_settings(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    return await service.get_settings(db, actor.school_id)


@router.patch("/settings", response_model=PaymentSettingsResponse)
async def update_settings(
    payload: PaymentSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    return await service.update_settings(db, actor.school_id, payload)


# ----- Invoices -----
@router.get("/invoices", response_model=List[InvoiceResponse])
async def list_invoices(
    student_id: Optional[UUID] = Query(None, alias="studentId"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_school),
):
    try:
        return await service.list_invoices(db, actor, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/invoices", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    payload: InvoiceCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("create_invoices")),
):
    try:
        return await service.create_invoice(db, actor, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/invoices/bulk", response_model=BulkInvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_bulk_invoices(
    payload: BulkInvoiceCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("create_invoices")),
):
    try:
        return await service.create_bulk_invoices(db, actor, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/invoices/{invoice_id}", response_model=InvoiceDetail)
async def get_invoice(
    invoice_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_school),
):
    try:
        return await service.get_invoice(db, actor, invoice_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ----- Payments -----
@router.post("/payments", response_model=PaymentRecorded, status_code=status.HTTP_201_CREATED)
async def record_payment(
    payload: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(check_permission("process_payments")),
):
    try:
        return await service.record_payment(db, actor, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/students/{student_id}/balance", response_model=StudentBalance)
async def student_balance(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_school),
):
    try:
        return await service.student_balance(db, actor, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
