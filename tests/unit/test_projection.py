"""
Unit tests for payables/services/projection_service.py

Uses AsyncMock for the session; approved totals are patched.
Tests: derive_invoice_status (all branches, idempotence),
       project_invoice_status (writes only on change).
"""

import uuid
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from payables.services.projection_service import (
    derive_invoice_status,
    project_invoice_status,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_invoice(status: str = "unpaid", amount: str = "1000.00", tds_percentage=None):
    return SimpleNamespace(
        id=uuid.uuid4(),
        status=status,
        amount=Decimal(amount),
        tds_applicable=tds_percentage is not None,
        tds_percentage=Decimal(tds_percentage) if tds_percentage else None,
        tds_rounded=False,
    )


def _mock_session() -> AsyncMock:
    session = AsyncMock()
    session.flush = AsyncMock()
    session.add = MagicMock()
    return session


# ---------------------------------------------------------------------------
# derive_invoice_status
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "current,total,expected",
    [
        ("unpaid", "0", "unpaid"),
        ("unpaid", "400", "partial"),
        ("partial", "900", "paid"),
        ("partial", "950", "paid"),
        ("paid", "400", "partial"),
        ("overdue", "0", "overdue"),
        ("overdue", "100", "partial"),
        ("overdue", "900", "paid"),
        ("partial", "0", "unpaid"),
    ],
)
def test_derive_status(current, total, expected):
    assert derive_invoice_status(current, Decimal("900"), Decimal(total)) == expected


@pytest.mark.parametrize("current", ["pending_approval", "on_hold", "rejected"])
def test_derive_leaves_workflow_statuses_alone(current):
    assert derive_invoice_status(current, Decimal("900"), Decimal("900")) == current


@pytest.mark.parametrize(
    "current", ["unpaid", "partial", "paid", "overdue", "pending_approval"]
)
@pytest.mark.parametrize("total", ["0", "450", "900"])
def test_derive_is_idempotent(current, total):
    once = derive_invoice_status(current, Decimal("900"), Decimal(total))
    twice = derive_invoice_status(once, Decimal("900"), Decimal(total))
    assert once == twice


# ---------------------------------------------------------------------------
# project_invoice_status
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_project_writes_new_status():
    invoice = _make_invoice(status="unpaid", tds_percentage="10")
    session = _mock_session()

    with patch(
        "payables.services.projection_service.approved_payment_totals",
        AsyncMock(return_value=(Decimal("900"), 1)),
    ):
        status = await project_invoice_status(session, invoice)

    assert status == "paid"
    assert invoice.status == "paid"
    session.flush.assert_awaited_once()


@pytest.mark.asyncio
async def test_project_without_change_does_not_flush():
    invoice = _make_invoice(status="partial")
    session = _mock_session()

    with patch(
        "payables.services.projection_service.approved_payment_totals",
        AsyncMock(return_value=(Decimal("400"), 1)),
    ):
        status = await project_invoice_status(session, invoice)

    assert status == "partial"
    session.flush.assert_not_awaited()


@pytest.mark.asyncio
async def test_project_ignores_invoice_on_hold():
    invoice = _make_invoice(status="on_hold")
    session = _mock_session()

    with patch(
        "payables.services.projection_service.approved_payment_totals",
        AsyncMock(return_value=(Decimal("1000"), 2)),
    ):
        status = await project_invoice_status(session, invoice)

    assert status == "on_hold"
    assert invoice.status == "on_hold"
