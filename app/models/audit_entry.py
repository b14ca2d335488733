"""AuditEntry model: non-score lifecycle facts for a deal."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.session import Base
from app.db.types import JSONVariant

if TYPE_CHECKING:
    from app.models.deal import Deal


class AuditEntry(Base):
    """Accepted lifecycle transition or deal event (snoozed, archived, call_score_changed, ...)."""

    __tablename__ = "deal_audit_entries"
    __table_args__ = (Index("ix_deal_audit_entries_deal_occurred", "deal_id", "occurred_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("deals.id", ondelete="RESTRICT"), nullable=False
    )
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    details: Mapped[dict | None] = mapped_column(JSONVariant, nullable=True)

    deal: Mapped[Deal] = relationship("Deal", back_populates="audit_entries")
