"""
Payment ledger — record, approve and reject payments against invoices.

Every write path takes the invoice row lock first (SELECT ... FOR UPDATE),
so record/approve/reject on the same invoice are serialized and balance
checks always see committed approved totals. The partial unique index on
payments(invoice_id) WHERE status = 'pending' backs the single in-flight
payment rule; losing that race surfaces as PendingPaymentExists.

Payments by an approver are approved immediately and re-project the
invoice status in the same transaction. Everyone else's stay pending and
leave the invoice untouched until an approver acts.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from payables.authorization import Actor, require_authority
from payables.errors import (
    AmountExceedsBalance,
    InvalidState,
    InvoiceArchived,
    InvoiceNotEditable,
    InvoiceNotFound,
    NotFound,
    PendingPaymentExists,
    ValidationFailed,
    service_operation,
)
from payables.models.invoice import Invoice
from payables.models.payment import Payment
from payables.schemas.payment import PaymentCreate, PaymentSummary
from payables.services import projection_service
from payables.services.outbox import AuditEvent
from payables.services.state_machine import PAYMENT_TRANSITIONS, is_valid_transition
from payables.services.tds_service import format_amount
from payables.services.unit_of_work import UnitOfWork

logger = structlog.get_logger()

# Invoice statuses owned by the invoice workflow; no payments accepted.
BLOCKED_INVOICE_STATUSES = frozenset({"pending_approval", "on_hold", "rejected"})


@dataclass
class StatusRecalculation:
    invoice_id: str
    previous_status: str
    status: str

    @property
    def changed(self) -> bool:
        return self.previous_status != self.status


def _payment_state(payment: Payment) -> dict:
    return {
        "payment_id": str(payment.id),
        "invoice_id": str(payment.invoice_id),
        "amount_paid": str(payment.amount_paid),
        "status": payment.status,
        "rejection_reason": payment.rejection_reason,
    }


async def _lock_invoice(session: AsyncSession, invoice_id) -> Invoice:
    result = await session.execute(
        select(Invoice)
        .where(Invoice.id == invoice_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    invoice = result.scalar_one_or_none()
    if not invoice:
        raise InvoiceNotFound(invoice_id)
    return invoice


async def _get_payment(session: AsyncSession, payment_id, lock: bool = False) -> Payment:
    stmt = select(Payment).where(Payment.id == payment_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(stmt)
    payment = result.scalar_one_or_none()
    if not payment:
        raise NotFound("Payment not found", {"payment_id": str(payment_id)})
    return payment


async def _lock_pending_payment(
    session: AsyncSession, payment_id, action: str
) -> tuple[Payment, Invoice]:
    """Lock invoice then payment, in that order, and require a pending payment."""
    payment = await _get_payment(session, payment_id)
    invoice = await _lock_invoice(session, payment.invoice_id)
    payment = await _get_payment(session, payment_id, lock=True)

    target = "approved" if action == "approve" else "rejected"
    if not is_valid_transition(PAYMENT_TRANSITIONS, payment.status, target):
        raise InvalidState(
            f"Payment cannot be {target}. Current status: {payment.status}",
            {"payment_id": str(payment.id), "status": payment.status},
        )
    return payment, invoice


def _ensure_accepts_payments(invoice: Invoice) -> None:
    if invoice.is_archived:
        raise InvoiceArchived(invoice.id)
    if invoice.status in BLOCKED_INVOICE_STATUSES:
        raise InvoiceNotEditable(invoice.id, invoice.status)


@service_operation
async def record_payment(
    uow: UnitOfWork,
    actor: Actor,
    invoice_id: uuid.UUID,
    amount,
    payment_date=None,
    payment_type_id: Optional[uuid.UUID] = None,
    payment_reference: Optional[str] = None,
    tds_amount_applied=None,
    tds_rounded: bool = False,
) -> Payment:
    """
    Record a payment against an invoice.

    Guards, in order: invoice exists, not archived, accepts payments, no
    other payment pending, amount within the remaining balance.
    """
    fields = {"amount_paid": amount}
    if payment_date is not None:
        fields["payment_date"] = payment_date
    try:
        data = PaymentCreate(
            **fields,
            payment_type_id=payment_type_id,
            payment_reference=payment_reference,
            tds_amount_applied=tds_amount_applied,
            tds_rounded=tds_rounded,
        )
    except ValidationError as e:
        raise ValidationFailed.from_pydantic(e) from e

    async with uow.transaction() as session:
        invoice = await _lock_invoice(session, invoice_id)
        _ensure_accepts_payments(invoice)

        if await projection_service.has_pending_payment(session, invoice.id):
            raise PendingPaymentExists(invoice.id)

        summary = await projection_service.summarize_payments(session, invoice)
        if data.amount_paid > summary.remaining_balance:
            raise AmountExceedsBalance(data.amount_paid, summary.remaining_balance)

        auto_approve = actor.is_authority
        now = datetime.utcnow()
        payment = Payment(
            invoice_id=invoice.id,
            amount_paid=data.amount_paid,
            payment_date=data.payment_date,
            payment_type_id=data.payment_type_id,
            payment_reference=data.payment_reference,
            tds_amount_applied=data.tds_amount_applied,
            tds_rounded=data.tds_rounded,
            status="approved" if auto_approve else "pending",
            created_by=actor.actor_id,
            approved_by=actor.actor_id if auto_approve else None,
            approved_at=now if auto_approve else None,
            created_at=now,
        )
        session.add(payment)
        try:
            await session.flush()
        except IntegrityError as e:
            # Another pending payment slipped in between the check and insert.
            # The failed flush expired `invoice`, so report the argument id.
            raise PendingPaymentExists(invoice_id) from e

        if auto_approve:
            await projection_service.project_invoice_status(session, invoice)

        uow.record(AuditEvent(
            action="payment_recorded",
            entity_type="payment",
            entity_id=str(payment.id),
            actor_id=actor.actor_id,
            after_state=_payment_state(payment),
            context={
                "invoice_number": invoice.invoice_number,
                "amount_display": format_amount(payment.amount_paid),
                "payment_status": payment.status,
            },
        ))

    logger.info(
        "payment_recorded",
        payment_id=str(payment.id),
        invoice_id=str(invoice.id),
        amount=str(payment.amount_paid),
        status=payment.status,
        invoice_status=invoice.status,
    )
    return payment


@service_operation
async def approve_payment(uow: UnitOfWork, actor: Actor, payment_id: uuid.UUID) -> Payment:
    require_authority(actor, "approve payments")

    async with uow.transaction() as session:
        payment, invoice = await _lock_pending_payment(session, payment_id, "approve")
        before = _payment_state(payment)

        payment.status = "approved"
        payment.approved_by = actor.actor_id
        payment.approved_at = datetime.utcnow()
        await session.flush()

        await projection_service.project_invoice_status(session, invoice)

        uow.record(AuditEvent(
            action="payment_approved",
            entity_type="payment",
            entity_id=str(payment.id),
            actor_id=actor.actor_id,
            before_state=before,
            after_state=_payment_state(payment),
            context={
                "invoice_number": invoice.invoice_number,
                "amount_display": format_amount(payment.amount_paid),
                "notify_user_id": (
                    str(payment.created_by) if payment.created_by != actor.actor_id else None
                ),
            },
        ))

    logger.info(
        "payment_approved",
        payment_id=str(payment.id),
        invoice_id=str(invoice.id),
        approved_by=str(actor.actor_id),
        invoice_status=invoice.status,
    )
    return payment


@service_operation
async def reject_payment(
    uow: UnitOfWork, actor: Actor, payment_id: uuid.UUID, reason: Optional[str] = None
) -> Payment:
    """Reject a pending payment. The invoice status is left as it is."""
    require_authority(actor, "reject payments")

    async with uow.transaction() as session:
        payment, invoice = await _lock_pending_payment(session, payment_id, "reject")
        before = _payment_state(payment)

        payment.status = "rejected"
        payment.rejection_reason = reason.strip() if reason and reason.strip() else None
        await session.flush()

        uow.record(AuditEvent(
            action="payment_rejected",
            entity_type="payment",
            entity_id=str(payment.id),
            actor_id=actor.actor_id,
            before_state=before,
            after_state=_payment_state(payment),
            context={
                "invoice_number": invoice.invoice_number,
                "amount_display": format_amount(payment.amount_paid),
                "reason": payment.rejection_reason or "No reason given",
                "notify_user_id": (
                    str(payment.created_by) if payment.created_by != actor.actor_id else None
                ),
            },
        ))

    logger.info(
        "payment_rejected",
        payment_id=str(payment.id),
        invoice_id=str(invoice.id),
        rejected_by=str(actor.actor_id),
    )
    return payment


@service_operation
async def get_payment_summary(
    uow: UnitOfWork, actor: Actor, invoice_id: uuid.UUID
) -> PaymentSummary:
    async with uow.transaction() as session:
        invoice = await session.get(Invoice, invoice_id)
        if not invoice:
            raise InvoiceNotFound(invoice_id)
        return await projection_service.summarize_payments(session, invoice)


@service_operation
async def get_payment(uow: UnitOfWork, actor: Actor, payment_id: uuid.UUID) -> Payment:
    async with uow.transaction() as session:
        return await _get_payment(session, payment_id)


@service_operation
async def list_invoice_payments(
    uow: UnitOfWork, actor: Actor, invoice_id: uuid.UUID
) -> list[Payment]:
    """All payments for an invoice, newest payment date first."""
    async with uow.transaction() as session:
        if not await session.get(Invoice, invoice_id):
            raise InvoiceNotFound(invoice_id)
        result = await session.execute(
            select(Payment)
            .where(Payment.invoice_id == invoice_id)
            .order_by(Payment.payment_date.desc(), Payment.created_at.desc())
        )
        return list(result.scalars().all())


@service_operation
async def list_pending_payments(uow: UnitOfWork, actor: Actor) -> list[Payment]:
    require_authority(actor, "view pending payments")

    async with uow.transaction() as session:
        result = await session.execute(
            select(Payment)
            .where(Payment.status == "pending")
            .order_by(Payment.created_at)
        )
        return list(result.scalars().all())


@service_operation
async def recalculate_invoice_status(
    uow: UnitOfWork, actor: Actor, invoice_id: uuid.UUID
) -> StatusRecalculation:
    """Re-run the projector for one invoice. Idempotent."""
    require_authority(actor, "recalculate invoice status")

    async with uow.transaction() as session:
        invoice = await _lock_invoice(session, invoice_id)
        previous = invoice.status
        status = await projection_service.project_invoice_status(session, invoice)
        outcome = StatusRecalculation(
            invoice_id=str(invoice.id), previous_status=previous, status=status
        )
        if outcome.changed:
            uow.record(AuditEvent(
                action="invoice_status_recalculated",
                entity_type="invoice",
                entity_id=str(invoice.id),
                actor_id=actor.actor_id,
                before_state={"status": previous},
                after_state={"status": status},
            ))

    logger.info(
        "invoice_status_recalculated",
        invoice_id=outcome.invoice_id,
        previous_status=outcome.previous_status,
        status=outcome.status,
    )
    return outcome
