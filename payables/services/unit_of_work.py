"""
Unit of work: a session and its outbox, committed or discarded together.

    uow = UnitOfWork(sinks=[AuditLogSink(), NotificationSink(send)])
    async with uow.transaction() as session:
        ...
        uow.record(AuditEvent(...))

On a clean exit the transaction commits, staged events are released and
dispatched to the sinks after the session is closed. Any exception rolls
back and drops the staged events before propagating.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payables.database import AsyncSessionLocal
from payables.services.outbox import AuditEvent, EventOutbox, EventSink


class UnitOfWork:
    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        sinks: Optional[Iterable[EventSink]] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.sinks: list[EventSink] = list(sinks or [])
        self.outbox = EventOutbox()

    def record(self, event: AuditEvent) -> None:
        self.outbox.stage(event)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    yield session
            except BaseException:
                self.outbox.discard()
                raise
            self.outbox.release()
        await self.dispatch_events()

    async def dispatch_events(self) -> int:
        return await self.outbox.dispatch(self.sinks)
