import uuid
from datetime import datetime, date
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    Boolean,
    Numeric,
    DateTime,
    Date,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from payables.database import Base


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("invoices.id"), nullable=False
    )
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    payment_type_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("payment_types.id")
    )
    payment_reference: Mapped[Optional[str]] = mapped_column(String(100))
    tds_amount_applied: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2))
    tds_rounded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("amount_paid > 0", name="chk_payment_amount"),
        CheckConstraint(
            "status IN ('pending','approved','rejected')",
            name="chk_payment_status",
        ),
        CheckConstraint(
            "status != 'approved' OR approved_at IS NOT NULL",
            name="chk_payment_approved_at",
        ),
        # At most one in-flight payment per invoice.
        Index(
            "uq_payments_one_pending_per_invoice",
            "invoice_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index("idx_payments_invoice", "invoice_id"),
        Index("idx_payments_status", "status"),
    )
