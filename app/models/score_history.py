"""ScoreHistoryEntry model: append-only record of score changes."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.session import Base
from app.db.types import JSONVariant

if TYPE_CHECKING:
    from app.models.deal import Deal


class ScoreHistoryEntry(Base):
    """One recalculation that changed a deal's persisted score or state.

    Rows are immutable; the breakdown is stored as computed under config_version.
    """

    __tablename__ = "deal_score_history"
    __table_args__ = (Index("ix_deal_score_history_deal_computed", "deal_id", "computed_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("deals.id", ondelete="RESTRICT"), nullable=False
    )
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    as_of: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    confidence_score: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    state: Mapped[str] = mapped_column(String(16), nullable=False)
    trigger: Mapped[str] = mapped_column(String(64), nullable=False)
    config_version: Mapped[str] = mapped_column(String(32), nullable=False)
    breakdown: Mapped[dict] = mapped_column(JSONVariant, nullable=False)

    deal: Mapped[Deal] = relationship("Deal", back_populates="score_history")
