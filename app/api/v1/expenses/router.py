from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_admin, require_staff
from app.auth.schemas import Actor
from app.db.session import get_db

from . import service
from .schemas import ExpenseCreate, ExpenseResponse

router = APIRouter(prefix="/api/sms/expenses", tags=["expenses"])


@router.get("", response_model=List[ExpenseResponse])
async def list_expenses(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    return await service.list_expenses(db, actor.school_id)


@router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def create_expense(
    payload: ExpenseCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    return await service.create_expense(db, actor, payload)
