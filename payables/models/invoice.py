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
    CheckConstraint,
    Index,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from payables.database import Base


class Invoice(Base):
    """Invoice row as seen by the payment core.

    Owned by the invoice-management subsystem; the core only writes
    ``status`` through the projector.
    """

    __tablename__ = "invoices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_number: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), default="pending_approval", nullable=False
    )
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    tds_applicable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    tds_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2))
    tds_rounded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="chk_invoice_amount"),
        CheckConstraint(
            "status IN ('pending_approval','on_hold','unpaid','partial','paid',"
            "'overdue','rejected')",
            name="chk_invoice_status",
        ),
        CheckConstraint(
            "tds_percentage IS NULL OR (tds_percentage >= 0 AND tds_percentage <= 100)",
            name="chk_invoice_tds_percentage",
        ),
        Index("idx_invoices_status", "status"),
    )
