"""
Invoice status projector.

An invoice's payment status is a function of its approved payments:

    total_paid >= payable         → paid
    0 < total_paid < payable      → partial
    total_paid == 0               → unpaid (overdue is kept as is)

Only invoices already in a payment-bearing status are touched; statuses
owned by the invoice workflow (pending_approval, on_hold, rejected) are
never overwritten. All functions use the caller's session (no commit).
"""

from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from payables.models.invoice import Invoice
from payables.models.payment import Payment
from payables.schemas.payment import PaymentSummary
from payables.services import tds_service

logger = structlog.get_logger()

PAYMENT_BEARING_STATUSES = frozenset({"unpaid", "partial", "paid", "overdue"})


def derive_invoice_status(
    current_status: str, payable_amount: Decimal, total_paid: Decimal
) -> str:
    """Pure status derivation. Applying it twice gives the same result."""
    if current_status not in PAYMENT_BEARING_STATUSES:
        return current_status
    if total_paid >= payable_amount:
        return "paid"
    if total_paid > 0:
        return "partial"
    if current_status == "overdue":
        return "overdue"
    return "unpaid"


async def approved_payment_totals(
    session: AsyncSession, invoice_id
) -> tuple[Decimal, int]:
    """(sum, count) of approved payments for the invoice."""
    result = await session.execute(
        select(
            func.coalesce(func.sum(Payment.amount_paid), 0),
            func.count(Payment.id),
        ).where(
            Payment.invoice_id == invoice_id,
            Payment.status == "approved",
        )
    )
    total, count = result.one()
    return Decimal(str(total or 0)), int(count or 0)


async def has_pending_payment(session: AsyncSession, invoice_id) -> bool:
    result = await session.execute(
        select(func.count(Payment.id)).where(
            Payment.invoice_id == invoice_id,
            Payment.status == "pending",
        )
    )
    return int(result.scalar() or 0) > 0


async def summarize_payments(session: AsyncSession, invoice: Invoice) -> PaymentSummary:
    total_paid, count = await approved_payment_totals(session, invoice.id)
    invoice_amount = Decimal(str(invoice.amount))
    payable = tds_service.payable_amount_for(invoice)
    remaining = tds_service.remaining_balance(payable, total_paid)
    is_fully_paid = total_paid >= payable

    return PaymentSummary(
        invoice_id=str(invoice.id),
        invoice_amount=invoice_amount,
        tds_amount=invoice_amount - payable,
        payable_amount=payable,
        total_paid=total_paid,
        remaining_balance=remaining,
        payment_count=count,
        is_fully_paid=is_fully_paid,
        is_partially_paid=total_paid > 0 and not is_fully_paid,
        has_pending_payment=await has_pending_payment(session, invoice.id),
    )


async def project_invoice_status(session: AsyncSession, invoice: Invoice) -> str:
    """Recompute and persist the invoice's payment status. Returns the status."""
    total_paid, _ = await approved_payment_totals(session, invoice.id)
    payable = tds_service.payable_amount_for(invoice)
    new_status = derive_invoice_status(invoice.status, payable, total_paid)

    if new_status != invoice.status:
        logger.info(
            "invoice_status_projected",
            invoice_id=str(invoice.id),
            old_status=invoice.status,
            new_status=new_status,
            total_paid=str(total_paid),
            payable_amount=str(payable),
        )
        invoice.status = new_status
        await session.flush()

    return new_status
