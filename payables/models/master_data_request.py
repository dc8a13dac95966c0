import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from payables.database import Base, JSONDocument


class MasterDataRequest(Base):
    __tablename__ = "master_data_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    entity_kind: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(30), default="draft", nullable=False)
    requester_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    reviewer_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    payload: Mapped[dict] = mapped_column(JSONDocument, nullable=False)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    admin_edits: Mapped[Optional[dict]] = mapped_column(JSONDocument)
    admin_notes: Mapped[Optional[str]] = mapped_column(Text)
    resubmission_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    previous_attempt_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("master_data_requests.id")
    )
    superseded_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("master_data_requests.id")
    )
    created_entity_id: Mapped[Optional[str]] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "entity_kind IN ('vendor','category','invoice_profile','payment_type')",
            name="chk_mdr_entity_kind",
        ),
        CheckConstraint(
            "status IN ('draft','pending_approval','approved','rejected')",
            name="chk_mdr_status",
        ),
        CheckConstraint(
            "resubmission_count >= 0 AND resubmission_count <= 2",
            name="chk_mdr_resubmission_count",
        ),
        CheckConstraint(
            "status != 'approved' OR created_entity_id IS NOT NULL",
            name="chk_mdr_approved_has_entity",
        ),
        CheckConstraint(
            "status != 'rejected' OR rejection_reason IS NOT NULL",
            name="chk_mdr_rejected_has_reason",
        ),
        Index("idx_mdr_requester", "requester_id"),
        Index("idx_mdr_status", "status"),
        Index("idx_mdr_kind_status", "entity_kind", "status"),
    )
