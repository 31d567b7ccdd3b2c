from datetime import date as date_type, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import Field

from app.core.schemas import CamelModel


class ExpenseCreate(CamelModel):
    category: str = Field(..., min_length=1, max_length=100)
    title: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., ge=1, max_digits=12, decimal_places=2)
    date: Optional[date_type] = None
    notes: Optional[str] = None


class ExpenseResponse(CamelModel):
    id: UUID
    school_id: UUID
    category: str
    title: str
    amount: float
    date: date_type
    notes: Optional[str] = None
    recorded_by: Optional[UUID] = None
    created_at: datetime
