from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import Field

from app.core.schemas import CamelModel


class FeeHeadCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    code: Optional[str] = Field(None, max_length=50)


class FeeHeadResponse(CamelModel):
    id: UUID
    school_id: UUID
    name: str
    code: Optional[str] = None
    is_active: bool
    created_at: datetime


class PaymentSettingsUpdate(CamelModel):
    currency: Optional[str] = Field(None, min_length=3, max_length=3, description="ISO 4217 code, e.g. USD")
    methods: Optional[List[str]] = Field(None, description="Accepted payment methods; empty accepts any")


class PaymentSettingsResponse(CamelModel):
    currency: str
    methods: List[str]
    updated_at: Optional[datetime] = None


class InvoiceLineCreate(CamelModel):
    fee_head_id: Optional[UUID] = None
    description: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)


class _InvoiceFields(CamelModel):
    academic_year_id: Optional[UUID] = Field(None, description="Defaults to the active academic year")
    term_id: Optional[UUID] = None
    due_at: Optional[datetime] = None
    notes: Optional[str] = None
    lines: List[InvoiceLineCreate] = Field(..., min_length=1)


class InvoiceCreate(_InvoiceFields):
    student_id: UUID


class BulkInvoiceCreate(_InvoiceFields):
    student_ids: List[UUID] = Field(..., min_length=1)


class InvoiceResponse(CamelModel):
    id: UUID
    school_id: UUID
    academic_year_id: Optional[UUID] = None
    term_id: Optional[UUID] = None
    student_id: UUID
    student_name: Optional[str] = None
    display_name: Optional[str] = Field(None, description="Description of the first line")
    status: str
    issued_at: datetime
    due_at: Optional[datetime] = None
    notes: Optional[str] = None
    subtotal_amount: float
    total_amount: float
    paid_amount: float
    balance: float
    created_by: Optional[UUID] = None


class InvoiceLineResponse(CamelModel):
    id: UUID
    fee_head_id: Optional[UUID] = None
    description: str
    amount: float


class PaymentCreate(CamelModel):
    invoice_id: UUID
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    method: str = Field(..., min_length=1, max_length=30)
    reference: Optional[str] = Field(None, max_length=100)
    paid_at: Optional[datetime] = None


class PaymentResponse(CamelModel):
    id: UUID
    invoice_id: UUID
    student_id: UUID
    amount: float
    method: str
    reference: Optional[str] = None
    paid_at: datetime
    recorded_by: Optional[UUID] = None


class InvoiceDetail(CamelModel):
    invoice: InvoiceResponse
    lines: List[InvoiceLineResponse]
    payments: List[PaymentResponse]


class BulkInvoiceResponse(CamelModel):
    count: int
    invoices: List[InvoiceResponse]


class PaymentRecorded(CamelModel):
    payment: PaymentResponse
    invoice: InvoiceResponse


class StudentBalance(CamelModel):
    student_id: UUID
    invoiced: float
    paid: float
    balance: float
