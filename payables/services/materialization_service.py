"""
Materialization — turn an approved request payload into a master data row.

One handler per entity kind. Handlers use the caller's session (no
commit), so the new row lives or dies with the approval transaction.
"""

from typing import Awaitable, Callable, Optional, Type

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from payables.database import Base
from payables.errors import DependencyFailure
from payables.models.master_data import (
    Category,
    Currency,
    Entity,
    InvoiceProfile,
    PaymentType,
)
from payables.models.vendor import Vendor
from payables.schemas.master_data import (
    CategoryRequestData,
    InvoiceProfileRequestData,
    PaymentTypeRequestData,
    RequestPayload,
    VendorRequestData,
)

logger = structlog.get_logger()

Handler = Callable[[AsyncSession, RequestPayload], Awaitable[Base]]


async def first_active(session: AsyncSession, model: Type[Base]) -> Optional[Base]:
    """Oldest active row of a reference table, or None."""
    result = await session.execute(
        select(model)
        .where(model.is_active == True)  # noqa: E712
        .order_by(model.created_at, model.id)
        .limit(1)
    )
    return result.scalars().first()


async def _create_vendor(session: AsyncSession, data: VendorRequestData) -> Vendor:
    vendor = Vendor(
        name=data.name,
        address=data.address,
        gst_exemption=data.gst_exemption,
        bank_details=data.bank_details,
        is_active=data.is_active,
    )
    session.add(vendor)
    return vendor


async def _create_category(session: AsyncSession, data: CategoryRequestData) -> Category:
    category = Category(
        name=data.name,
        description=data.description or "",
        is_active=data.is_active,
    )
    session.add(category)
    return category


async def _create_payment_type(
    session: AsyncSession, data: PaymentTypeRequestData
) -> PaymentType:
    payment_type = PaymentType(
        name=data.name,
        description=data.description,
        requires_reference=data.requires_reference,
        is_active=data.is_active,
    )
    session.add(payment_type)
    return payment_type


async def _default_id(session: AsyncSession, model: Type[Base], label: str):
    record = await first_active(session, model)
    if not record:
        raise DependencyFailure(
            f"No active {label} available to default the invoice profile to",
            {"missing": label},
        )
    return record.id


async def _create_invoice_profile(
    session: AsyncSession, data: InvoiceProfileRequestData
) -> InvoiceProfile:
    profile = InvoiceProfile(
        name=data.name,
        description=data.description,
        visible_to_all=data.visible_to_all,
        entity_id=data.entity_id or await _default_id(session, Entity, "entity"),
        vendor_id=data.vendor_id or await _default_id(session, Vendor, "vendor"),
        category_id=data.category_id or await _default_id(session, Category, "category"),
        currency_id=data.currency_id or await _default_id(session, Currency, "currency"),
        billing_frequency=data.billing_frequency,
        billing_frequency_value=data.billing_frequency_value,
        tds_applicable=data.tds_applicable,
        tds_percentage=data.tds_percentage,
    )
    session.add(profile)
    return profile


HANDLERS: dict[str, Handler] = {
    "vendor": _create_vendor,
    "category": _create_category,
    "invoice_profile": _create_invoice_profile,
    "payment_type": _create_payment_type,
}


async def materialize(session: AsyncSession, entity_kind: str, data: RequestPayload) -> str:
    """Create the master data row for an approved request. Returns its id."""
    handler = HANDLERS.get(entity_kind)
    if handler is None:
        raise DependencyFailure(f"Unknown entity type: {entity_kind}")

    try:
        record = await handler(session, data)
        await session.flush()
    except SQLAlchemyError as e:
        logger.error("materialization_failed", entity_kind=entity_kind, error=str(e))
        raise DependencyFailure(
            f"Failed to create {entity_kind}: {e.__class__.__name__}",
            {"entity_kind": entity_kind},
        ) from e

    logger.info("entity_materialized", entity_kind=entity_kind, entity_id=str(record.id))
    return str(record.id)
