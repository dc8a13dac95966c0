"""
Master data requests — requester side of the workflow.

Requesters create drafts, edit and submit them, and resubmit rejected
requests. A resubmission is a new request linked to the rejected one via
previous_attempt_id; the rejected request itself is never modified. Each
chain allows the initial attempt plus MAX_RESUBMISSIONS resubmissions.

Approval and rejection live in approval_service.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from payables.authorization import Actor, require_owner
from payables.config import settings
from payables.errors import (
    InvalidState,
    NotFound,
    Unauthorized,
    ValidationFailed,
    service_operation,
)
from payables.models.master_data_request import MasterDataRequest
from payables.schemas.master_data import (
    ENTITY_DISPLAY_NAMES,
    RequestFilters,
    RequestPayload,
    dump_request_payload,
    parse_request_payload,
)
from payables.services.outbox import AuditEvent
from payables.services.state_machine import (
    DELETABLE_REQUEST_STATUSES,
    EDITABLE_REQUEST_STATUSES,
    REQUEST_TRANSITIONS,
    RESUBMITTABLE_REQUEST_STATUSES,
    validate_transition,
)
from payables.services.unit_of_work import UnitOfWork

logger = structlog.get_logger()


def validate_payload(entity_kind: str, data: dict) -> RequestPayload:
    """Parse a payload for its kind, raising ValidationFailed on bad input."""
    if entity_kind not in ENTITY_DISPLAY_NAMES:
        raise ValidationFailed(
            f"Unknown entity type: {entity_kind}", {"entity_kind": entity_kind}
        )
    if not isinstance(data, dict):
        raise ValidationFailed("Request data must be an object")
    try:
        return parse_request_payload(entity_kind, data)
    except ValidationError as e:
        raise ValidationFailed.from_pydantic(e) from e


def request_state(request: MasterDataRequest) -> dict:
    return {
        "status": request.status,
        "entity_kind": request.entity_kind,
        "payload": request.payload,
        "resubmission_count": request.resubmission_count,
        "previous_attempt_id": (
            str(request.previous_attempt_id) if request.previous_attempt_id else None
        ),
        "rejection_reason": request.rejection_reason,
        "created_entity_id": request.created_entity_id,
    }


def request_context(request: MasterDataRequest, **extra) -> dict:
    """Template variables shared by request notifications."""
    context = {
        "request_id": str(request.id),
        "entity_label": ENTITY_DISPLAY_NAMES.get(request.entity_kind, request.entity_kind),
        "entity_name": (request.payload or {}).get("name", ""),
    }
    context.update(extra)
    return context


async def load_request(
    session: AsyncSession, request_id, lock: bool = False
) -> MasterDataRequest:
    stmt = select(MasterDataRequest).where(MasterDataRequest.id == request_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(stmt)
    request = result.scalar_one_or_none()
    if not request:
        raise NotFound("Request not found", {"request_id": str(request_id)})
    return request


def _require_status(request: MasterDataRequest, allowed: frozenset, action: str) -> None:
    if request.status not in allowed:
        statuses = " or ".join(sorted(allowed))
        raise InvalidState(
            f"Only {statuses} requests can be {action}",
            {"request_id": str(request.id), "status": request.status},
        )


@service_operation
async def create_request(
    uow: UnitOfWork,
    actor: Actor,
    entity_kind: str,
    payload: dict,
    submit: bool = False,
) -> MasterDataRequest:
    """Create a draft request, or submit it straight away when submit=True."""
    data = validate_payload(entity_kind, payload)

    async with uow.transaction() as session:
        request = MasterDataRequest(
            entity_kind=entity_kind,
            status="pending_approval" if submit else "draft",
            requester_id=actor.actor_id,
            payload=dump_request_payload(data),
            resubmission_count=0,
        )
        session.add(request)
        await session.flush()

        uow.record(AuditEvent(
            action="request_submitted" if submit else "request_created",
            entity_type="master_data_request",
            entity_id=str(request.id),
            actor_id=actor.actor_id,
            after_state=request_state(request),
            context=request_context(request),
        ))

    logger.info(
        "request_created",
        request_id=str(request.id),
        entity_kind=entity_kind,
        status=request.status,
        requester_id=str(actor.actor_id),
    )
    return request


@service_operation
async def update_request(
    uow: UnitOfWork, actor: Actor, request_id: uuid.UUID, payload: dict
) -> MasterDataRequest:
    async with uow.transaction() as session:
        request = await load_request(session, request_id, lock=True)
        require_owner(actor, request.requester_id, "update")
        _require_status(request, EDITABLE_REQUEST_STATUSES, "updated")

        data = validate_payload(request.entity_kind, payload)
        before = request_state(request)
        request.payload = dump_request_payload(data)
        request.updated_at = datetime.utcnow()
        await session.flush()

        uow.record(AuditEvent(
            action="request_updated",
            entity_type="master_data_request",
            entity_id=str(request.id),
            actor_id=actor.actor_id,
            before_state=before,
            after_state=request_state(request),
        ))

    logger.info("request_updated", request_id=str(request.id))
    return request


@service_operation
async def submit_request(
    uow: UnitOfWork, actor: Actor, request_id: uuid.UUID
) -> MasterDataRequest:
    async with uow.transaction() as session:
        request = await load_request(session, request_id, lock=True)
        require_owner(actor, request.requester_id, "submit")
        _require_status(request, EDITABLE_REQUEST_STATUSES, "submitted")
        validate_transition(REQUEST_TRANSITIONS, request.status, "pending_approval")

        # Drafts may predate a schema change; re-check before review.
        validate_payload(request.entity_kind, request.payload)

        before = request_state(request)
        request.status = "pending_approval"
        request.updated_at = datetime.utcnow()
        await session.flush()

        uow.record(AuditEvent(
            action="request_submitted",
            entity_type="master_data_request",
            entity_id=str(request.id),
            actor_id=actor.actor_id,
            before_state=before,
            after_state=request_state(request),
            context=request_context(request),
        ))

    logger.info("request_submitted", request_id=str(request.id))
    return request


@service_operation
async def delete_request(uow: UnitOfWork, actor: Actor, request_id: uuid.UUID) -> str:
    async with uow.transaction() as session:
        request = await load_request(session, request_id, lock=True)
        require_owner(actor, request.requester_id, "delete")
        _require_status(request, DELETABLE_REQUEST_STATUSES, "deleted")

        before = request_state(request)
        await session.delete(request)
        await session.flush()

        uow.record(AuditEvent(
            action="request_deleted",
            entity_type="master_data_request",
            entity_id=str(request_id),
            actor_id=actor.actor_id,
            before_state=before,
        ))

    logger.info("request_deleted", request_id=str(request_id))
    return str(request_id)


@service_operation
async def resubmit_request(
    uow: UnitOfWork, actor: Actor, request_id: uuid.UUID, payload: dict
) -> MasterDataRequest:
    """
    Create a new pending request from a rejected one.

    The rejected request must have resubmission_count below
    MAX_RESUBMISSIONS and must not have been resubmitted already; the
    new request carries count + 1 and points back at it through
    previous_attempt_id.
    """
    async with uow.transaction() as session:
        previous = await load_request(session, request_id, lock=True)
        require_owner(actor, previous.requester_id, "resubmit")
        _require_status(previous, RESUBMITTABLE_REQUEST_STATUSES, "resubmitted")

        if previous.resubmission_count >= settings.MAX_RESUBMISSIONS:
            raise ValidationFailed(
                "Maximum resubmission limit reached. You have used all "
                f"{settings.MAX_RESUBMISSIONS + 1} attempts "
                f"(initial + {settings.MAX_RESUBMISSIONS} resubmissions)",
                {
                    "request_id": str(previous.id),
                    "resubmission_count": previous.resubmission_count,
                },
            )

        # A rejected request spawns at most one resubmission
        existing = await session.scalar(
            select(MasterDataRequest.id).where(
                MasterDataRequest.previous_attempt_id == previous.id
            )
        )
        if existing is not None:
            raise InvalidState(
                "This request has already been resubmitted",
                {"request_id": str(previous.id), "resubmission_id": str(existing)},
            )

        data = validate_payload(previous.entity_kind, payload)
        request = MasterDataRequest(
            entity_kind=previous.entity_kind,
            status="pending_approval",
            requester_id=actor.actor_id,
            payload=dump_request_payload(data),
            resubmission_count=previous.resubmission_count + 1,
            previous_attempt_id=previous.id,
        )
        session.add(request)
        await session.flush()

        uow.record(AuditEvent(
            action="request_resubmitted",
            entity_type="master_data_request",
            entity_id=str(request.id),
            actor_id=actor.actor_id,
            after_state=request_state(request),
            context=request_context(
                request, resubmission_count=request.resubmission_count
            ),
        ))

    logger.info(
        "request_resubmitted",
        request_id=str(request.id),
        previous_attempt_id=str(previous.id),
        resubmission_count=request.resubmission_count,
    )
    return request


@service_operation
async def get_request(
    uow: UnitOfWork, actor: Actor, request_id: uuid.UUID
) -> MasterDataRequest:
    """Requesters see their own requests; approvers see all of them."""
    async with uow.transaction() as session:
        request = await load_request(session, request_id)
        if not actor.is_authority and request.requester_id != actor.actor_id:
            raise Unauthorized("You do not have access to this request")
        return request


@service_operation
async def list_user_requests(
    uow: UnitOfWork, actor: Actor, filters: Optional[RequestFilters] = None
) -> list[MasterDataRequest]:
    filters = filters or RequestFilters()
    stmt = select(MasterDataRequest).where(
        MasterDataRequest.requester_id == actor.actor_id
    )
    if filters.entity_kind:
        stmt = stmt.where(MasterDataRequest.entity_kind == filters.entity_kind)
    if filters.status:
        stmt = stmt.where(MasterDataRequest.status == filters.status)

    async with uow.transaction() as session:
        result = await session.execute(stmt.order_by(MasterDataRequest.created_at.desc()))
        return list(result.scalars().all())
