"""
Unit tests for payables/schemas

Tests: per-kind payload validation through the discriminated union,
       payload dumping, PaymentCreate limits.
"""

import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError

from payables.schemas.master_data import (
    CategoryRequestData,
    InvoiceProfileRequestData,
    VendorRequestData,
    dump_request_payload,
    parse_request_payload,
)
from payables.schemas.payment import PaymentCreate


# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


def test_kind_selects_schema():
    vendor = parse_request_payload("vendor", {"name": "Acme Supplies"})
    category = parse_request_payload("category", {"name": "Travel"})
    assert isinstance(vendor, VendorRequestData)
    assert isinstance(category, CategoryRequestData)
    assert vendor.gst_exemption is False
    assert vendor.is_active is True


def test_name_is_stripped_and_required():
    assert parse_request_payload("vendor", {"name": "  Acme  "}).name == "Acme"
    with pytest.raises(ValidationError):
        parse_request_payload("vendor", {"name": "   "})
    with pytest.raises(ValidationError):
        parse_request_payload("vendor", {})


def test_unknown_fields_are_rejected():
    with pytest.raises(ValidationError):
        parse_request_payload("category", {"name": "Travel", "gst_exemption": True})


def test_unknown_kind_is_rejected():
    with pytest.raises(ValidationError):
        parse_request_payload("warehouse", {"name": "North"})


def test_length_limits():
    with pytest.raises(ValidationError):
        parse_request_payload("vendor", {"name": "x" * 256})
    with pytest.raises(ValidationError):
        parse_request_payload("vendor", {"name": "Acme", "address": "x" * 501})


def test_invoice_profile_tds_bounds():
    profile = parse_request_payload(
        "invoice_profile", {"name": "Rent", "tds_applicable": True, "tds_percentage": "10"}
    )
    assert isinstance(profile, InvoiceProfileRequestData)
    assert profile.tds_percentage == Decimal("10")
    with pytest.raises(ValidationError):
        parse_request_payload("invoice_profile", {"name": "Rent", "tds_percentage": 101})


def test_dump_omits_kind_and_empty_fields():
    entity_id = uuid.uuid4()
    data = parse_request_payload(
        "invoice_profile", {"name": "Rent", "entity_id": str(entity_id)}
    )
    dumped = dump_request_payload(data)
    assert "kind" not in dumped
    assert "vendor_id" not in dumped
    assert dumped["entity_id"] == str(entity_id)
    assert dumped["visible_to_all"] is True


# ---------------------------------------------------------------------------
# PaymentCreate
# ---------------------------------------------------------------------------


def test_payment_defaults_to_today():
    payment = PaymentCreate(amount_paid=Decimal("100"))
    assert payment.payment_date == date.today()
    assert payment.tds_rounded is False


@pytest.mark.parametrize("amount", [0, -1, "10.001", 1_000_000_000])
def test_payment_amount_limits(amount):
    with pytest.raises(ValidationError):
        PaymentCreate(amount_paid=amount)


def test_payment_date_cannot_be_in_future():
    with pytest.raises(ValidationError, match="cannot be in the future"):
        PaymentCreate(amount_paid=100, payment_date=date.today() + timedelta(days=1))
