import uuid
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Import all models so Base.metadata is populated before create_all
import payables.models  # noqa: F401
from payables.authorization import Actor
from payables.database import Base
from payables.models.invoice import Invoice
from payables.services.unit_of_work import UnitOfWork

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class RecordingSink:
    """Outbox sink that keeps every delivered event in memory."""

    def __init__(self):
        self.events = []

    async def record(self, event):
        self.events.append(event)

    def actions(self) -> list[str]:
        return [e.action for e in self.events]


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def recorder():
    return RecordingSink()


@pytest.fixture
def uow(session_factory, recorder):
    return UnitOfWork(session_factory, sinks=[recorder])


@pytest.fixture
def admin():
    return Actor(actor_id=uuid.uuid4(), role="admin")


@pytest.fixture
def standard_user():
    return Actor(actor_id=uuid.uuid4(), role="standard_user")


@pytest.fixture
def other_user():
    return Actor(actor_id=uuid.uuid4(), role="standard_user")


@pytest.fixture
def make_invoice(session_factory):
    async def _make(amount: str = "1000.00", status: str = "unpaid", **kwargs) -> Invoice:
        invoice = Invoice(
            invoice_number=f"INV-{uuid.uuid4().hex[:8].upper()}",
            amount=Decimal(amount),
            status=status,
            **kwargs,
        )
        async with session_factory() as session:
            async with session.begin():
                session.add(invoice)
        return invoice

    return _make


@pytest.fixture
def reload(session_factory):
    """Fetch a fresh copy of a row, bypassing any session state."""

    async def _reload(model, row_id):
        async with session_factory() as session:
            return await session.get(model, row_id)

    return _reload
