"""
TDS (tax deducted at source) maths.

    exact  = amount * percentage / 100
    tds    = ceil(exact) when rounding is on, else exact
    payable = amount - tds

Rounding is always a ceiling: 10% of 51 is 5.10 exact, 6.00 rounded.
Everything is Decimal; floats are converted through str() on the way in.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_CEILING
from typing import Optional, Union

Number = Union[Decimal, int, float, str]

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


@dataclass
class TdsCalculation:
    tds_amount: Decimal
    payable_amount: Decimal
    exact_tds: Decimal
    is_rounded: bool


def _dec(value: Optional[Number]) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def validate_tds_percentage(percentage: Optional[Number]) -> bool:
    if percentage is None:
        return False
    return ZERO <= _dec(percentage) <= HUNDRED


def _valid_input(amount: Decimal, pct: Decimal) -> bool:
    return amount >= ZERO and ZERO <= pct <= HUNDRED


def calculate_tds(
    invoice_amount: Number, tds_percentage: Number, round_up: bool = False
) -> TdsCalculation:
    """
    Compute TDS and the payable amount for an invoice.

    Invalid input (negative amount, percentage outside [0, 100]) yields a
    zero-effect result: no TDS, payable equal to the invoice amount.
    """
    amount = _dec(invoice_amount)
    pct = _dec(tds_percentage)

    if not _valid_input(amount, pct):
        return TdsCalculation(
            tds_amount=ZERO, payable_amount=amount, exact_tds=ZERO, is_rounded=False
        )

    exact = amount * pct / HUNDRED
    tds = exact.to_integral_value(rounding=ROUND_CEILING) if round_up else exact

    return TdsCalculation(
        tds_amount=tds,
        payable_amount=amount - tds,
        exact_tds=exact,
        is_rounded=round_up and tds != exact,
    )


def remaining_balance(payable_amount: Number, total_paid: Number) -> Decimal:
    """Outstanding amount, clamped at zero."""
    return max(ZERO, _dec(payable_amount) - _dec(total_paid))


def would_tds_rounding_make_difference(
    invoice_amount: Number, tds_percentage: Number
) -> bool:
    amount, pct = _dec(invoice_amount), _dec(tds_percentage)
    if not _valid_input(amount, pct):
        return False
    exact = amount * pct / HUNDRED
    return exact != exact.to_integral_value(rounding=ROUND_CEILING)


def get_tds_rounding_difference(
    invoice_amount: Number, tds_percentage: Number
) -> Decimal:
    """How much ceiling rounding adds on top of the exact TDS (always >= 0)."""
    amount, pct = _dec(invoice_amount), _dec(tds_percentage)
    if not _valid_input(amount, pct):
        return ZERO
    exact = amount * pct / HUNDRED
    return exact.to_integral_value(rounding=ROUND_CEILING) - exact


def calculate_tds_percentage(invoice_amount: Number, tds_amount: Number) -> Decimal:
    """Reverse calculation: the percentage a given TDS amount represents."""
    amount = _dec(invoice_amount)
    if amount <= ZERO:
        return ZERO
    return (_dec(tds_amount) / amount * HUNDRED).quantize(CENT)


def payable_amount_for(invoice) -> Decimal:
    """Payable amount of an Invoice row, honouring its TDS settings."""
    if not invoice.tds_applicable or invoice.tds_percentage is None:
        return _dec(invoice.amount)
    return calculate_tds(
        invoice.amount, invoice.tds_percentage, invoice.tds_rounded
    ).payable_amount


def format_amount(amount: Number, currency: str = "") -> str:
    """Display string with thousands separators, e.g. '1,234.50'."""
    formatted = f"{_dec(amount).quantize(CENT):,.2f}"
    return f"{currency}{formatted}" if currency else formatted
