import logging
from typing import List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.schemas import Actor
from app.core.models import Expense

from .schemas import ExpenseCreate

logger = logging.getLogger(__name__)


async def list_expenses(db: AsyncSession, school_id: UUID) -> List[Expense]:
    stmt = select(Expense).where(Expense.school_id == school_id).order_by(Expense.date.desc(), Expense.created_at.desc())
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_expense(db: AsyncSession, actor: Actor, payload: ExpenseCreate) -> Expense:
    data = payload.model_dump(exclude_none=True)
    expense = Expense(school_id=actor.school_id, recorded_by=actor.id, **data)
    db.add(expense)
    await db.commit()
    await db.refresh(expense)
    logger.info("Expense %s of %s recorded for school %s", expense.id, expense.amount, actor.school_id)
    return expense
