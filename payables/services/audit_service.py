"""Audit logging service — records entity state changes."""

from typing import Optional
from datetime import datetime
import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from payables.database import AsyncSessionLocal
from payables.models.audit_log import AuditLog
from payables.services.outbox import AuditEvent

logger = structlog.get_logger()


def _to_uuid(value, field_name: str, required: bool = False) -> Optional[uuid.UUID]:
    if value is None:
        if required:
            raise ValueError(f"{field_name} is required")
        return None
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        if required:
            raise ValueError(f"{field_name} must be a valid UUID")
        logger.warning("audit_invalid_uuid", field=field_name, value=str(value))
        return None


def _compute_changed_fields(
    before: Optional[dict], after: Optional[dict]
) -> Optional[list[str]]:
    """Diff two state dicts and return list of changed field names."""
    if not before or not after:
        return None
    changed = []
    all_keys = set(before.keys()) | set(after.keys())
    for key in sorted(all_keys):
        if before.get(key) != after.get(key):
            changed.append(key)
    return changed or None


async def create_audit_log(
    session: AsyncSession,
    actor_id,
    action: str,
    entity_type: str,
    entity_id,
    before_state: Optional[dict] = None,
    after_state: Optional[dict] = None,
    created_at: Optional[datetime] = None,
) -> AuditLog:
    """
    Create an audit log entry.

    Uses session.flush() — caller owns the transaction.
    """
    audit = AuditLog(
        actor_id=_to_uuid(actor_id, "actor_id"),
        action=action,
        entity_type=entity_type,
        entity_id=_to_uuid(entity_id, "entity_id", required=True),
        before_state=before_state,
        after_state=after_state,
        changed_fields=_compute_changed_fields(before_state, after_state),
        created_at=created_at or datetime.utcnow(),
    )
    session.add(audit)
    await session.flush()

    logger.info(
        "audit_log_created",
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        actor_id=str(actor_id) if actor_id else None,
    )
    return audit


class AuditLogSink:
    """Outbox sink writing one AuditLog row per event, in its own transaction."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self.session_factory = session_factory or AsyncSessionLocal

    async def record(self, event: AuditEvent) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                await create_audit_log(
                    session,
                    actor_id=event.actor_id,
                    action=event.action,
                    entity_type=event.entity_type,
                    entity_id=event.entity_id,
                    before_state=event.before_state,
                    after_state=event.after_state,
                    created_at=event.occurred_at,
                )
