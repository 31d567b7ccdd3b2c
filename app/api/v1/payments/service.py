import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.enrollment.audit_service import log_audit
from app.auth.models import User
from app.auth.schemas import Actor
from app.core.enums import InvoiceStatus, UserRole
from app.core.exceptions import AuthorizationError, BusinessRuleError, NotFoundError, StateConflictError
from app.core.models import AcademicYear, FeeHead, Invoice, InvoiceLine, Payment, PaymentSettings, Term
from app.core.tenant_service import get_active_year, get_child_ids, get_school_student_or_404, get_scoped_or_404

from .schemas import (
    BulkInvoiceCreate,
    BulkInvoiceResponse,
    FeeHeadCreate,
    InvoiceCreate,
    InvoiceDetail,
    InvoiceLineResponse,
    InvoiceResponse,
    PaymentCreate,
    PaymentRecorded,
    PaymentResponse,
    PaymentSettingsUpdate,
    StudentBalance,
)

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
DEFAULT_CURRENCY = "USD"
INVOICE_LIST_LIMIT = 50


def _to_decimal(value) -> Decimal:
    if value is None:
        return _ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _status_for(total: Decimal, paid: Decimal) -> str:
    if paid >= total:
        return InvoiceStatus.paid.value
    if paid > _ZERO:
        return InvoiceStatus.partial.value
    return InvoiceStatus.open.value


def _invoice_response(
    invoice: Invoice,
    student_name: Optional[str] = None,
    display_name: Optional[str] = None,
) -> InvoiceResponse:
    total = _to_decimal(invoice.total_amount)
    paid = _to_decimal(invoice.paid_amount)
    return InvoiceResponse(
        id=invoice.id,
        school_id=invoice.school_id,
        academic_year_id=invoice.academic_year_id,
        term_id=invoice.term_id,
        student_id=invoice.student_id,
        student_name=student_name,
        display_name=display_name,
        status=invoice.status,
        issued_at=invoice.issued_at,
        due_at=invoice.due_at,
        notes=invoice.notes,
        subtotal_amount=_to_decimal(invoice.subtotal_amount),
        total_amount=total,
        paid_amount=paid,
        balance=max(total - paid, _ZERO),
        created_by=invoice.created_by,
    )


async def _ensure_can_view(db: AsyncSession, actor: Actor, student_id: UUID, message: str) -> None:
    """Students see their own billing, parents their linked children, staff need view_payments."""
    if actor.role == UserRole.STUDENT.value:
        allowed = student_id == actor.id
    elif actor.role == UserRole.PARENT.value:
        allowed = student_id in await get_child_ids(db, actor.id)
    else:
        allowed = actor.permits("view_payments")
    if not allowed:
        raise AuthorizationError(message)


# ----- Fee heads -----

async def list_fee_heads(db: AsyncSession, school_id: UUID) -> List[FeeHead]:
    stmt = select(FeeHead).where(FeeHead.school_id == school_id).order_by(FeeHead.created_at.desc())
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_fee_head(db: AsyncSession, actor: Actor, payload: FeeHeadCreate) -> FeeHead:
    code = (payload.code or "").strip().upper() or None
    fee_head = FeeHead(school_id=actor.school_id, name=payload.name.strip(), code=code, is_active=True)
    db.add(fee_head)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise StateConflictError("Fee head code already exists for this school")
    await db.refresh(fee_head)
    return fee_head


# ----- Settings -----

async def _settings_row(db: AsyncSession, school_id: UUID) -> Optional[PaymentSettings]:
    result = await db.execute(select(PaymentSettings).where(PaymentSettings.school_id == school_id))
    return result.scalar_one_or_none()


async def get_settings(db: AsyncSession, school_id: UUID) -> PaymentSettings:
    """Get-or-create; a school starts with USD and no method restriction."""
    settings = await _settings_row(db, school_id)
    if settings is not None:
        return settings
    settings = PaymentSettings(school_id=school_id, currency=DEFAULT_CURRENCY, methods=[])
    db.add(settings)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        settings = await _settings_row(db, school_id)
        if settings is None:
            raise
        return settings
    await db.refresh(settings)
    return settings


async def update_settings(db: AsyncSession, school_id: UUID, payload: PaymentSettingsUpdate) -> PaymentSettings:
    settings = await get_settings(db, school_id)
    if payload.currency is not None:
        settings.currency = payload.currency.strip().upper()
    if payload.methods is not None:
        methods = [m.strip().upper() for m in payload.methods if m and m.strip()]
        settings.methods = list(dict.fromkeys(methods))
    settings.updated_at = datetime.utcnow()
    await db.commit()
    await db.refresh(settings)
    return settings


# ----- Invoices -----

async def _resolve_period(
    db: AsyncSession, school_id: UUID, academic_year_id: Optional[UUID], term_id: Optional[UUID]
) -> Tuple[Optional[UUID], Optional[UUID]]:
    if academic_year_id:
        await get_scoped_or_404(db, AcademicYear, academic_year_id, school_id, "Academic year")
    else:
        year = await get_active_year(db, school_id)
        academic_year_id = year.id if year else None
    if term_id:
        term = await get_scoped_or_404(db, Term, term_id, school_id, "Term")
        if term.academic_year_id != academic_year_id:
            raise NotFoundError("Term not found")
    return academic_year_id, term_id


async def _check_fee_heads(db: AsyncSession, school_id: UUID, fee_head_ids: Iterable[Optional[UUID]]) -> None:
    wanted = {fid for fid in fee_head_ids if fid}
    if not wanted:
        return
    result = await db.execute(
        select(FeeHead.id).where(
            FeeHead.id.in_(list(wanted)),
            FeeHead.school_id == school_id,
            FeeHead.is_active.is_(True),
        )
    )
    if set(result.scalars().all()) != wanted:
        raise NotFoundError("Fee head not found")


async def _add_invoice(
    db: AsyncSession,
    actor: Actor,
    student_id: UUID,
    academic_year_id: Optional[UUID],
    term_id: Optional[UUID],
    payload,
) -> Invoice:
    subtotal = sum((line.amount for line in payload.lines), _ZERO)
    invoice = Invoice(
        school_id=actor.school_id,
        academic_year_id=academic_year_id,
        term_id=term_id,
        student_id=student_id,
        status=InvoiceStatus.open.value,
        issued_at=datetime.utcnow(),
        due_at=payload.due_at,
        notes=payload.notes,
        subtotal_amount=subtotal,
        total_amount=subtotal,
        paid_amount=_ZERO,
        created_by=actor.id,
    )
    db.add(invoice)
    await db.flush()
    for position, line in enumerate(payload.lines):
        db.add(
            InvoiceLine(
                invoice_id=invoice.id,
                school_id=actor.school_id,
                fee_head_id=line.fee_head_id,
                description=line.description.strip(),
                amount=line.amount,
                position=position,
            )
        )
    log_audit(
        db,
        actor,
        "invoice",
        invoice.id,
        "invoice_create",
        to_status=invoice.status,
        meta={"studentId": str(student_id), "total": str(subtotal)},
    )
    return invoice


async def create_invoice(db: AsyncSession, actor: Actor, payload: InvoiceCreate) -> InvoiceResponse:
    student = await get_school_student_or_404(db, actor.school_id, payload.student_id)
    year_id, term_id = await _resolve_period(db, actor.school_id, payload.academic_year_id, payload.term_id)
    await _check_fee_heads(db, actor.school_id, (line.fee_head_id for line in payload.lines))

    invoice = await _add_invoice(db, actor, student.id, year_id, term_id, payload)
    await db.commit()
    await db.refresh(invoice)
    logger.info("Invoice %s of %s issued to student %s", invoice.id, invoice.total_amount, student.id)
    return _invoice_response(invoice, student.name, payload.lines[0].description.strip())


async def create_bulk_invoices(db: AsyncSession, actor: Actor, payload: BulkInvoiceCreate) -> BulkInvoiceResponse:
    """Same lines for every listed student, all in one transaction."""
    student_ids = list(dict.fromkeys(payload.student_ids))
    result = await db.execute(
        select(User.id, User.name).where(
            User.id.in_(student_ids),
            User.school_id == actor.school_id,
            User.role == UserRole.STUDENT.value,
        )
    )
    names = dict(result.all())
    if len(names) != len(student_ids):
        raise NotFoundError("Student not found")
    year_id, term_id = await _resolve_period(db, actor.school_id, payload.academic_year_id, payload.term_id)
    await _check_fee_heads(db, actor.school_id, (line.fee_head_id for line in payload.lines))

    invoices = [await _add_invoice(db, actor, sid, year_id, term_id, payload) for sid in student_ids]
    await db.commit()
    logger.info("%d invoices issued in bulk for school %s", len(invoices), actor.school_id)
    display_name = payload.lines[0].description.strip()
    return BulkInvoiceResponse(
        count=len(invoices),
        invoices=[_invoice_response(inv, names[inv.student_id], display_name) for inv in invoices],
    )


async def _first_line_descriptions(db: AsyncSession, invoice_ids: List[UUID]) -> Dict[UUID, str]:
    if not invoice_ids:
        return {}
    result = await db.execute(
        select(InvoiceLine.invoice_id, InvoiceLine.description)
        .where(InvoiceLine.invoice_id.in_(invoice_ids))
        .order_by(InvoiceLine.invoice_id, InvoiceLine.position)
    )
    names: Dict[UUID, str] = {}
    for invoice_id, description in result.all():
        names.setdefault(invoice_id, description)
    return names


async def list_invoices(db: AsyncSession, actor: Actor, student_id: Optional[UUID] = None) -> List[InvoiceResponse]:
    """
    Latest invoices first.
    Parent: invoices of linked children. Student: their own. Staff: the whole school (needs view_payments).
    """
    stmt = (
        select(Invoice, User.name)
        .join(User, User.id == Invoice.student_id)
        .where(Invoice.school_id == actor.school_id)
    )
    if actor.role == UserRole.PARENT.value:
        stmt = stmt.where(Invoice.student_id.in_(await get_child_ids(db, actor.id)))
    elif actor.role == UserRole.STUDENT.value:
        stmt = stmt.where(Invoice.student_id == actor.id)
    elif not actor.permits("view_payments"):
        raise AuthorizationError("Insufficient permissions")
    if student_id:
        stmt = stmt.where(Invoice.student_id == student_id)
    result = await db.execute(stmt.order_by(Invoice.issued_at.desc()).limit(INVOICE_LIST_LIMIT))
    rows = result.all()
    display_names = await _first_line_descriptions(db, [invoice.id for invoice, _ in rows])
    return [_invoice_response(invoice, name, display_names.get(invoice.id)) for invoice, name in rows]


async def get_invoice(db: AsyncSession, actor: Actor, invoice_id: UUID) -> InvoiceDetail:
    invoice = await get_scoped_or_404(db, Invoice, invoice_id, actor.school_id, "Invoice")
    await _ensure_can_view(db, actor, invoice.student_id, "Not authorized to view this invoice")

    result = await db.execute(
        select(InvoiceLine).where(InvoiceLine.invoice_id == invoice.id).order_by(InvoiceLine.position)
    )
    lines = list(result.scalars().all())
    payments = await db.execute(
        select(Payment).where(Payment.invoice_id == invoice.id).order_by(Payment.paid_at.desc())
    )
    student = await db.get(User, invoice.student_id)
    return InvoiceDetail(
        invoice=_invoice_response(invoice, student.name if student else None, lines[0].description if lines else None),
        lines=[InvoiceLineResponse.model_validate(line) for line in lines],
        payments=[PaymentResponse.model_validate(p) for p in payments.scalars().all()],
    )


# ----- Payments -----

async def _paid_total(db: AsyncSession, invoice_id: UUID) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.invoice_id == invoice_id)
    )
    return _to_decimal(result.scalar())


async def record_payment(db: AsyncSession, actor: Actor, payload: PaymentCreate) -> PaymentRecorded:
    """Record a payment against an invoice and recompute its paid amount and status."""
    # Row lock serializes concurrent payments against the same balance
    result = await db.execute(
        select(Invoice)
        .where(Invoice.id == payload.invoice_id, Invoice.school_id == actor.school_id)
        .with_for_update()
    )
    invoice = result.scalar_one_or_none()
    if not invoice:
        raise NotFoundError("Invoice not found")

    method = payload.method.strip().upper()
    settings = await _settings_row(db, actor.school_id)
    if settings is not None and settings.methods and method not in settings.methods:
        raise BusinessRuleError("Payment method is not accepted by this school")

    total = _to_decimal(invoice.total_amount)
    paid = await _paid_total(db, invoice.id)
    if payload.amount > total - paid:
        raise BusinessRuleError("Payment amount cannot exceed remaining balance")

    payment = Payment(
        school_id=actor.school_id,
        invoice_id=invoice.id,
        student_id=invoice.student_id,
        amount=payload.amount,
        method=method,
        reference=(payload.reference or "").strip() or None,
        paid_at=payload.paid_at or datetime.now(timezone.utc),
        recorded_by=actor.id,
    )
    db.add(payment)
    await db.flush()

    old_status = invoice.status
    invoice.paid_amount = paid + payload.amount
    invoice.status = _status_for(total, invoice.paid_amount)
    log_audit(
        db,
        actor,
        "invoice",
        invoice.id,
        "payment_record",
        from_status=old_status,
        to_status=invoice.status,
        meta={"paymentId": str(payment.id), "amount": str(payload.amount), "method": method},
    )
    await db.commit()
    await db.refresh(payment)
    await db.refresh(invoice)
    logger.info("Payment %s of %s recorded on invoice %s (%s)", payment.id, payment.amount, invoice.id, invoice.status)

    student = await db.get(User, invoice.student_id)
    return PaymentRecorded(
        payment=PaymentResponse.model_validate(payment),
        invoice=_invoice_response(invoice, student.name if student else None),
    )


async def student_balance(db: AsyncSession, actor: Actor, student_id: UUID) -> StudentBalance:
    await _ensure_can_view(db, actor, student_id, "Not authorized to view this student's balance")
    await get_school_student_or_404(db, actor.school_id, student_id)

    invoiced = await db.execute(
        select(func.coalesce(func.sum(Invoice.total_amount), 0)).where(
            Invoice.school_id == actor.school_id, Invoice.student_id == student_id
        )
    )
    paid = await db.execute(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.school_id == actor.school_id, Payment.student_id == student_id
        )
    )
    invoiced_total = _to_decimal(invoiced.scalar())
    paid_total = _to_decimal(paid.scalar())
    return StudentBalance(
        student_id=student_id,
        invoiced=invoiced_total,
        paid=paid_total,
        balance=max(invoiced_total - paid_total, _ZERO),
    )
