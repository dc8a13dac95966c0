import uuid
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _RequestData(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


class VendorRequestData(_RequestData):
    kind: Literal["vendor"] = "vendor"
    name: str = Field(..., min_length=1, max_length=255)
    address: Optional[str] = Field(None, max_length=500)
    gst_exemption: bool = False
    bank_details: Optional[str] = Field(None, max_length=1000)
    is_active: bool = True


class CategoryRequestData(_RequestData):
    kind: Literal["category"] = "category"
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    is_active: bool = True


class InvoiceProfileRequestData(_RequestData):
    kind: Literal["invoice_profile"] = "invoice_profile"
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    visible_to_all: bool = True
    # Foreign keys left empty are filled from the first active record on approval.
    entity_id: Optional[uuid.UUID] = None
    vendor_id: Optional[uuid.UUID] = None
    category_id: Optional[uuid.UUID] = None
    currency_id: Optional[uuid.UUID] = None
    billing_frequency: Optional[Literal["days", "months"]] = None
    billing_frequency_value: Optional[int] = Field(None, gt=0)
    tds_applicable: bool = False
    tds_percentage: Optional[Decimal] = Field(None, ge=0, le=100)


class PaymentTypeRequestData(_RequestData):
    kind: Literal["payment_type"] = "payment_type"
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    requires_reference: bool = False
    is_active: bool = True


RequestPayload = Annotated[
    Union[
        VendorRequestData,
        CategoryRequestData,
        InvoiceProfileRequestData,
        PaymentTypeRequestData,
    ],
    Field(discriminator="kind"),
]

_payload_adapter = TypeAdapter(RequestPayload)

ENTITY_DISPLAY_NAMES = {
    "vendor": "Vendor",
    "category": "Category",
    "invoice_profile": "Invoice Profile",
    "payment_type": "Payment Type",
}


def parse_request_payload(entity_kind: str, data: dict) -> RequestPayload:
    """Validate a raw payload against the schema of its entity kind.

    The stored payload never carries the ``kind`` tag (it lives in the
    request's entity_kind column), so it is injected here.
    Raises pydantic.ValidationError.
    """
    return _payload_adapter.validate_python({**data, "kind": entity_kind})


def dump_request_payload(payload: RequestPayload) -> dict:
    return payload.model_dump(mode="json", exclude={"kind"}, exclude_none=True)


class RequestFilters(BaseModel):
    entity_kind: Optional[
        Literal["vendor", "category", "invoice_profile", "payment_type"]
    ] = None
    status: Optional[
        Literal["draft", "pending_approval", "approved", "rejected"]
    ] = None
