"""
Post-commit event delivery.

Operations stage AuditEvents while their transaction is open. The unit of
work releases them once the commit succeeds, or discards them on rollback,
so sinks never hear about work that did not happen. Delivery is
best-effort: a failing sink is logged and skipped.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Protocol

import structlog

logger = structlog.get_logger()


@dataclass
class AuditEvent:
    action: str
    entity_type: str
    entity_id: str
    actor_id: Optional[uuid.UUID] = None
    before_state: Optional[dict] = None
    after_state: Optional[dict] = None
    # Template variables and recipients for notifications.
    context: dict = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=datetime.utcnow)


class EventSink(Protocol):
    async def record(self, event: AuditEvent) -> None: ...


class EventOutbox:
    def __init__(self) -> None:
        self._staged: list[AuditEvent] = []
        self._released: list[AuditEvent] = []

    def stage(self, event: AuditEvent) -> None:
        self._staged.append(event)

    def release(self) -> None:
        self._released.extend(self._staged)
        self._staged.clear()

    def discard(self) -> None:
        if self._staged:
            logger.debug("outbox_discarded", count=len(self._staged))
        self._staged.clear()

    @property
    def staged(self) -> list[AuditEvent]:
        return list(self._staged)

    @property
    def released(self) -> list[AuditEvent]:
        return list(self._released)

    async def dispatch(self, sinks: Iterable[EventSink]) -> int:
        """Deliver released events to every sink. Returns deliveries made."""
        events, self._released = self._released, []
        sinks = list(sinks)
        delivered = 0
        for event in events:
            for sink in sinks:
                try:
                    await sink.record(event)
                    delivered += 1
                except Exception as e:
                    logger.warning(
                        "audit_sink_failed",
                        sink=type(sink).__name__,
                        action=event.action,
                        entity_id=event.entity_id,
                        error=str(e),
                    )
        return delivered
