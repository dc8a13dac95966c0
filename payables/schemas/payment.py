import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from payables.config import settings


class PaymentCreate(BaseModel):
    amount_paid: Decimal = Field(..., gt=0, le=settings.MAX_PAYMENT_AMOUNT, decimal_places=2)
    payment_date: date = Field(default_factory=date.today)
    payment_type_id: Optional[uuid.UUID] = None
    payment_reference: Optional[str] = Field(None, max_length=100)
    tds_amount_applied: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    tds_rounded: bool = False

    @field_validator("payment_date")
    @classmethod
    def not_in_future(cls, v: date) -> date:
        if v > date.today():
            raise ValueError("Payment date cannot be in the future")
        return v


class PaymentSummary(BaseModel):
    invoice_id: str
    invoice_amount: Decimal
    tds_amount: Decimal
    payable_amount: Decimal
    total_paid: Decimal
    remaining_balance: Decimal
    payment_count: int
    is_fully_paid: bool
    is_partially_paid: bool
    has_pending_payment: bool
