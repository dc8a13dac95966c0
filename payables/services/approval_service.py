"""
Approval authority — reviewer side of the master data request workflow.

Approve:
  lock request row → re-check pending_approval → merge admin edits over
  the payload → re-validate → materialize → stamp reviewer → mark the
  rejected predecessor (if any) as superseded. One transaction; if
  materialization fails nothing changes and the request stays pending.

Reject:
  lock request row → re-check pending_approval → store trimmed reason.

Bulk variants run each id in its own transaction and report per item.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select, func
import structlog

from payables.authorization import Actor, require_authority
from payables.config import settings
from payables.errors import (
    BulkItemResult,
    DomainError,
    InvalidState,
    ValidationFailed,
    service_operation,
)
from payables.models.master_data_request import MasterDataRequest
from payables.schemas.master_data import RequestFilters, dump_request_payload
from payables.services import materialization_service
from payables.services.outbox import AuditEvent
from payables.services.request_service import (
    load_request,
    request_context,
    request_state,
    validate_payload,
)
from payables.services.state_machine import REQUEST_TRANSITIONS, is_valid_transition
from payables.services.unit_of_work import UnitOfWork

logger = structlog.get_logger()


def _check_rejection_reason(reason: Optional[str]) -> str:
    reason = (reason or "").strip()
    if len(reason) < settings.MIN_REJECTION_REASON_LENGTH:
        raise ValidationFailed(
            f"Rejection reason must be at least "
            f"{settings.MIN_REJECTION_REASON_LENGTH} characters",
            {"length": len(reason)},
        )
    return reason


def _pending_guard(request: MasterDataRequest, target: str) -> None:
    # Re-checked under the row lock, so a concurrent reviewer loses here.
    if not is_valid_transition(REQUEST_TRANSITIONS, request.status, target):
        raise InvalidState(
            f"Only pending requests can be {target}",
            {"request_id": str(request.id), "status": request.status},
        )


async def _approve(
    uow: UnitOfWork,
    actor: Actor,
    request_id,
    admin_edits: Optional[dict] = None,
    admin_notes: Optional[str] = None,
) -> MasterDataRequest:
    require_authority(actor, "approve requests")
    if admin_edits is not None and not isinstance(admin_edits, dict):
        raise ValidationFailed("Admin edits must be an object")

    async with uow.transaction() as session:
        request = await load_request(session, request_id, lock=True)
        _pending_guard(request, "approved")

        before = request_state(request)
        merged = {**(request.payload or {}), **(admin_edits or {})}
        data = validate_payload(request.entity_kind, merged)

        created_entity_id = await materialization_service.materialize(
            session, request.entity_kind, data
        )

        now = datetime.utcnow()
        request.status = "approved"
        request.reviewer_id = actor.actor_id
        request.reviewed_at = now
        if admin_edits:
            validated = dump_request_payload(data)
            request.admin_edits = {k: validated.get(k) for k in admin_edits}
        request.admin_notes = admin_notes
        request.created_entity_id = created_entity_id
        request.updated_at = now

        if request.previous_attempt_id:
            previous = await load_request(session, request.previous_attempt_id, lock=True)
            previous.superseded_by_id = request.id
            previous.updated_at = now

        await session.flush()

        uow.record(AuditEvent(
            action="request_approved",
            entity_type="master_data_request",
            entity_id=str(request.id),
            actor_id=actor.actor_id,
            before_state=before,
            after_state=request_state(request),
            context=request_context(
                request,
                notify_user_id=str(request.requester_id),
                created_entity_id=created_entity_id,
                admin_notes=admin_notes or "",
            ),
        ))

    logger.info(
        "request_approved",
        request_id=str(request.id),
        entity_kind=request.entity_kind,
        created_entity_id=created_entity_id,
        reviewer_id=str(actor.actor_id),
        had_admin_edits=bool(admin_edits),
    )
    return request


async def _reject(
    uow: UnitOfWork, actor: Actor, request_id, reason: Optional[str]
) -> MasterDataRequest:
    require_authority(actor, "reject requests")
    reason = _check_rejection_reason(reason)

    async with uow.transaction() as session:
        request = await load_request(session, request_id, lock=True)
        _pending_guard(request, "rejected")

        before = request_state(request)
        now = datetime.utcnow()
        request.status = "rejected"
        request.rejection_reason = reason
        request.reviewer_id = actor.actor_id
        request.reviewed_at = now
        request.updated_at = now
        await session.flush()

        uow.record(AuditEvent(
            action="request_rejected",
            entity_type="master_data_request",
            entity_id=str(request.id),
            actor_id=actor.actor_id,
            before_state=before,
            after_state=request_state(request),
            context=request_context(
                request,
                notify_user_id=str(request.requester_id),
                reason=reason,
                attempts_left=max(0, settings.MAX_RESUBMISSIONS - request.resubmission_count),
            ),
        ))

    logger.info(
        "request_rejected",
        request_id=str(request.id),
        entity_kind=request.entity_kind,
        reviewer_id=str(actor.actor_id),
    )
    return request


@service_operation
async def approve_request(
    uow: UnitOfWork,
    actor: Actor,
    request_id: uuid.UUID,
    admin_edits: Optional[dict] = None,
    admin_notes: Optional[str] = None,
) -> MasterDataRequest:
    return await _approve(uow, actor, request_id, admin_edits, admin_notes)


@service_operation
async def reject_request(
    uow: UnitOfWork, actor: Actor, request_id: uuid.UUID, reason: str
) -> MasterDataRequest:
    return await _reject(uow, actor, request_id, reason)


async def _run_bulk(ids: list, operation) -> list[BulkItemResult]:
    results = []
    for request_id in ids:
        try:
            await operation(request_id)
        except DomainError as e:
            results.append(BulkItemResult(
                id=request_id, success=False, error_code=e.code, message=e.message
            ))
        else:
            results.append(BulkItemResult(id=request_id, success=True))
    return results


@service_operation
async def bulk_approve(
    uow: UnitOfWork, actor: Actor, request_ids: list[uuid.UUID]
) -> list[BulkItemResult]:
    """Approve each request independently; one failure never blocks the rest."""
    require_authority(actor, "approve requests")

    results = await _run_bulk(
        request_ids, lambda request_id: _approve(uow, actor, request_id)
    )
    logger.info(
        "bulk_approve_completed",
        total=len(results),
        succeeded=sum(1 for r in results if r.success),
    )
    return results


@service_operation
async def bulk_reject(
    uow: UnitOfWork, actor: Actor, request_ids: list[uuid.UUID], reason: str
) -> list[BulkItemResult]:
    require_authority(actor, "reject requests")
    _check_rejection_reason(reason)

    results = await _run_bulk(
        request_ids, lambda request_id: _reject(uow, actor, request_id, reason)
    )
    logger.info(
        "bulk_reject_completed",
        total=len(results),
        succeeded=sum(1 for r in results if r.success),
    )
    return results


@service_operation
async def list_admin_requests(
    uow: UnitOfWork, actor: Actor, filters: Optional[RequestFilters] = None
) -> list[MasterDataRequest]:
    """All requests, oldest pending first when filtering on pending."""
    require_authority(actor, "review requests")
    filters = filters or RequestFilters()

    stmt = select(MasterDataRequest)
    if filters.entity_kind:
        stmt = stmt.where(MasterDataRequest.entity_kind == filters.entity_kind)
    if filters.status:
        stmt = stmt.where(MasterDataRequest.status == filters.status)
    if filters.status == "pending_approval":
        stmt = stmt.order_by(MasterDataRequest.created_at)
    else:
        stmt = stmt.order_by(MasterDataRequest.created_at.desc())

    async with uow.transaction() as session:
        result = await session.execute(stmt)
        return list(result.scalars().all())


@service_operation
async def pending_request_count(uow: UnitOfWork, actor: Actor) -> int:
    require_authority(actor, "review requests")

    async with uow.transaction() as session:
        result = await session.execute(
            select(func.count(MasterDataRequest.id)).where(
                MasterDataRequest.status == "pending_approval"
            )
        )
        return int(result.scalar() or 0)
