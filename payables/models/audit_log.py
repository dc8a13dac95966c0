import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, Index, Uuid, desc
from sqlalchemy.orm import Mapped, mapped_column

from payables.database import Base, JSONDocument


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    before_state: Mapped[Optional[dict]] = mapped_column(JSONDocument)
    after_state: Mapped[Optional[dict]] = mapped_column(JSONDocument)
    changed_fields: Mapped[Optional[list]] = mapped_column(JSONDocument)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_actor", "actor_id"),
        Index("idx_audit_created", desc("created_at")),
    )
