"""
Integration tests for payables/services/approval_service.py
and payables/services/materialization_service.py

Tests: approve (materialization, admin edits, superseded links),
       reject (reason length), concurrent reviewers, invoice profile
       defaults, materialization failure, bulk operations, admin reads.
"""

import uuid
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from payables.authorization import Actor
from payables.errors import (
    DEPENDENCY_FAILURE,
    INVALID_STATE,
    NOT_FOUND,
    UNAUTHORIZED,
    VALIDATION_FAILED,
)
from payables.models.master_data import Category, Currency, Entity, InvoiceProfile
from payables.models.master_data_request import MasterDataRequest
from payables.models.vendor import Vendor
from payables.schemas.master_data import RequestFilters
from payables.services import materialization_service
from payables.services.approval_service import (
    approve_request,
    bulk_approve,
    bulk_reject,
    list_admin_requests,
    pending_request_count,
    reject_request,
)
from payables.services.request_service import create_request, resubmit_request


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _pending(uow, actor, kind="vendor", payload=None):
    result = await create_request(
        uow, actor, kind, payload or {"name": "Acme Supplies"}, submit=True
    )
    assert result.success, result.message
    return result.data


async def _count(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count(model.id)))).scalar()


@pytest.fixture
def seed_reference_data(session_factory):
    async def _seed(currency_active: bool = True) -> dict:
        rows = {
            "entity": Entity(name="Head Office"),
            "vendor": Vendor(name="Default Vendor"),
            "category": Category(name="General"),
            "currency": Currency(code="INR", name="Indian Rupee", is_active=currency_active),
        }
        async with session_factory() as session:
            async with session.begin():
                # An inactive entity must never be picked as a default
                session.add(Entity(name="Closed Branch", is_active=False))
                session.add_all(rows.values())
        return {key: row.id for key, row in rows.items()}

    return _seed


# ---------------------------------------------------------------------------
# Approve
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_approve_materializes_vendor(
    uow, standard_user, admin, reload, recorder
):
    request = await _pending(
        uow, standard_user, payload={"name": "Acme Supplies", "gst_exemption": True}
    )

    result = await approve_request(uow, admin, request.id)

    assert result.success, result.message
    approved = result.data
    assert approved.status == "approved"
    assert approved.reviewer_id == admin.actor_id
    assert approved.reviewed_at is not None

    vendor = await reload(Vendor, uuid.UUID(approved.created_entity_id))
    assert vendor.name == "Acme Supplies"
    assert vendor.gst_exemption is True
    assert recorder.actions()[-1] == "request_approved"
    assert recorder.events[-1].context["notify_user_id"] == str(standard_user.actor_id)


@pytest.mark.asyncio
async def test_admin_edits_override_payload(uow, standard_user, admin, reload):
    request = await _pending(uow, standard_user, "category", {"name": "Travl"})

    result = await approve_request(
        uow,
        admin,
        request.id,
        admin_edits={"name": "Travel"},
        admin_notes="Fixed typo",
    )

    assert result.success
    assert result.data.admin_edits == {"name": "Travel"}
    assert result.data.admin_notes == "Fixed typo"
    category = await reload(Category, uuid.UUID(result.data.created_entity_id))
    assert category.name == "Travel"


@pytest.mark.asyncio
async def test_invalid_admin_edits_keep_request_pending(
    uow, standard_user, admin, reload, session_factory
):
    request = await _pending(uow, standard_user)

    result = await approve_request(uow, admin, request.id, admin_edits={"name": ""})

    assert result.error_code == VALIDATION_FAILED
    assert (await reload(MasterDataRequest, request.id)).status == "pending_approval"
    assert await _count(session_factory, Vendor) == 0


@pytest.mark.asyncio
async def test_standard_user_cannot_approve(uow, standard_user):
    request = await _pending(uow, standard_user)
    result = await approve_request(uow, standard_user, request.id)
    assert result.error_code == UNAUTHORIZED


@pytest.mark.asyncio
async def test_second_reviewer_loses(uow, standard_user, admin, session_factory):
    request = await _pending(uow, standard_user)
    other_admin = Actor(actor_id=uuid.uuid4(), role="super_admin")

    first = await approve_request(uow, admin, request.id)
    second = await approve_request(uow, other_admin, request.id)
    late_reject = await reject_request(uow, other_admin, request.id, "Too late to reject")

    assert first.success
    assert second.error_code == INVALID_STATE
    assert second.message == "Only pending requests can be approved"
    assert late_reject.error_code == INVALID_STATE
    assert await _count(session_factory, Vendor) == 1


@pytest.mark.asyncio
async def test_approving_resubmission_supersedes_original(
    uow, standard_user, admin, reload
):
    original = await _pending(uow, standard_user)
    await reject_request(uow, admin, original.id, "Missing GST details")
    retry = await resubmit_request(
        uow, standard_user, original.id, {"name": "Acme Supplies", "gst_exemption": True}
    )

    result = await approve_request(uow, admin, retry.data.id)

    assert result.success
    stored = await reload(MasterDataRequest, original.id)
    assert stored.superseded_by_id == retry.data.id
    assert stored.status == "rejected"


# ---------------------------------------------------------------------------
# Reject
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_rejection_reason_length_boundary(uow, standard_user, admin):
    request = await _pending(uow, standard_user)

    too_short = await reject_request(uow, admin, request.id, "x" * 9)
    assert too_short.error_code == VALIDATION_FAILED
    assert too_short.message == "Rejection reason must be at least 10 characters"

    padded = await reject_request(uow, admin, request.id, "   short    ")
    assert padded.error_code == VALIDATION_FAILED

    ok = await reject_request(uow, admin, request.id, "x" * 10)
    assert ok.success
    assert ok.data.status == "rejected"
    assert ok.data.rejection_reason == "x" * 10


@pytest.mark.asyncio
async def test_cannot_reject_draft(uow, standard_user, admin):
    draft = await create_request(uow, standard_user, "vendor", {"name": "Acme"})
    result = await reject_request(uow, admin, draft.data.id, "Not ready for review")
    assert result.error_code == INVALID_STATE


# ---------------------------------------------------------------------------
# Invoice profile defaults and materialization failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_invoice_profile_gets_first_active_defaults(
    uow, standard_user, admin, seed_reference_data, reload
):
    ids = await seed_reference_data()
    request = await _pending(
        uow,
        standard_user,
        "invoice_profile",
        {"name": "Office rent", "tds_applicable": True, "tds_percentage": 10},
    )

    result = await approve_request(uow, admin, request.id)

    assert result.success, result.message
    profile = await reload(InvoiceProfile, uuid.UUID(result.data.created_entity_id))
    assert profile.entity_id == ids["entity"]
    assert profile.vendor_id == ids["vendor"]
    assert profile.category_id == ids["category"]
    assert profile.currency_id == ids["currency"]
    assert profile.tds_applicable is True


@pytest.mark.asyncio
async def test_explicit_profile_ids_win_over_defaults(
    uow, standard_user, admin, seed_reference_data, session_factory, reload
):
    await seed_reference_data()
    other_vendor = Vendor(name="Chosen Vendor")
    async with session_factory() as session:
        async with session.begin():
            session.add(other_vendor)

    request = await _pending(
        uow,
        standard_user,
        "invoice_profile",
        {"name": "Cloud hosting", "vendor_id": str(other_vendor.id)},
    )
    result = await approve_request(uow, admin, request.id)

    profile = await reload(InvoiceProfile, uuid.UUID(result.data.created_entity_id))
    assert profile.vendor_id == other_vendor.id


@pytest.mark.asyncio
async def test_missing_default_is_a_dependency_failure(
    uow, standard_user, admin, seed_reference_data, session_factory, reload
):
    await seed_reference_data(currency_active=False)
    request = await _pending(uow, standard_user, "invoice_profile", {"name": "Office rent"})

    result = await approve_request(uow, admin, request.id)

    assert result.error_code == DEPENDENCY_FAILURE
    stored = await reload(MasterDataRequest, request.id)
    assert stored.status == "pending_approval"
    assert stored.created_entity_id is None
    assert await _count(session_factory, InvoiceProfile) == 0


@pytest.mark.asyncio
async def test_database_error_during_materialization(
    uow, standard_user, admin, reload, recorder
):
    request = await _pending(uow, standard_user)
    events_before = len(recorder.events)

    async def broken(session, data):
        raise IntegrityError("INSERT INTO vendors", {}, Exception("constraint"))

    with patch.dict(materialization_service.HANDLERS, {"vendor": broken}):
        result = await approve_request(uow, admin, request.id)

    assert result.error_code == DEPENDENCY_FAILURE
    assert (await reload(MasterDataRequest, request.id)).status == "pending_approval"
    assert len(recorder.events) == events_before


# ---------------------------------------------------------------------------
# Bulk
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_bulk_approve_reports_per_item(uow, standard_user, admin, reload):
    good = await _pending(uow, standard_user)
    done = await _pending(uow, standard_user, "category", {"name": "Travel"})
    await approve_request(uow, admin, done.id)
    missing = uuid.uuid4()

    result = await bulk_approve(uow, admin, [good.id, done.id, missing])

    assert result.success
    outcomes = {item.id: item for item in result.data}
    assert outcomes[good.id].success is True
    assert outcomes[done.id].success is False
    assert outcomes[done.id].error_code == INVALID_STATE
    assert outcomes[missing].error_code == NOT_FOUND
    assert (await reload(MasterDataRequest, good.id)).status == "approved"


@pytest.mark.asyncio
async def test_bulk_reject(uow, standard_user, admin, reload):
    first = await _pending(uow, standard_user)
    second = await _pending(uow, standard_user, "payment_type", {"name": "Cheque"})

    short = await bulk_reject(uow, admin, [first.id, second.id], "too short")
    assert short.error_code == VALIDATION_FAILED
    assert (await reload(MasterDataRequest, first.id)).status == "pending_approval"

    result = await bulk_reject(uow, admin, [first.id, second.id], "Duplicate of existing record")
    assert all(item.success for item in result.data)
    assert (await reload(MasterDataRequest, second.id)).status == "rejected"


@pytest.mark.asyncio
async def test_bulk_requires_authority(uow, standard_user):
    request = await _pending(uow, standard_user)
    result = await bulk_approve(uow, standard_user, [request.id])
    assert result.error_code == UNAUTHORIZED


# ---------------------------------------------------------------------------
# Admin reads
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_admin_lists_and_counts(uow, standard_user, other_user, admin):
    await _pending(uow, standard_user)
    await _pending(uow, other_user, "category", {"name": "Travel"})
    await create_request(uow, standard_user, "vendor", {"name": "Draft only"})

    assert (await pending_request_count(uow, admin)).data == 2

    pending = (
        await list_admin_requests(uow, admin, RequestFilters(status="pending_approval"))
    ).data
    assert len(pending) == 2

    everything = (await list_admin_requests(uow, admin)).data
    assert len(everything) == 3

    denied = await pending_request_count(uow, standard_user)
    assert denied.error_code == UNAUTHORIZED
