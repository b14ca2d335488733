"""Deal model: one sales opportunity and its current confidence score."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.session import Base
from app.db.types import JSONVariant

if TYPE_CHECKING:
    from app.models.audit_entry import AuditEntry
    from app.models.score_history import ScoreHistoryEntry


class Deal(Base):
    """Open sales opportunity scored 0-100.

    Deals are never hard-deleted; archiving is a state transition. All writes go
    through app.services.pipeline (lifecycle, deal_events, recalculate).
    """

    __tablename__ = "deals"
    __table_args__ = (
        CheckConstraint(
            "confidence_score >= 0 AND confidence_score <= 100",
            name="ck_deals_confidence_score_range",
        ),
        CheckConstraint("unanswered_outbound_count >= 0", name="ck_deals_unanswered_nonneg"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    rep_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Call score (discovery call form); all four set together
    budget_clarity: Mapped[str | None] = mapped_column(String(32), nullable=True)
    competition: Mapped[str | None] = mapped_column(String(32), nullable=True)
    engagement: Mapped[str | None] = mapped_column(String(32), nullable=True)
    plan_fit: Mapped[str | None] = mapped_column(String(32), nullable=True)
    call_scored_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    call_scored_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    predicted_tier: Mapped[str | None] = mapped_column(String(16), nullable=True)

    # Set-once milestones
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    first_email_opened_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    first_proposal_viewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    first_account_created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Communication summary
    first_reply_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_inbound_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_outbound_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    unanswered_outbound_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Invite stats (multi-invite bonus)
    total_invites: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    invites_opened: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    invites_viewed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Lifecycle
    state: Mapped[str] = mapped_column(String(16), default="active", nullable=False, index=True)
    snoozed_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    snooze_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    archive_reason: Mapped[str | None] = mapped_column(String(32), nullable=True)
    archive_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    revived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    terminal_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    terminal_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    penalty_clock_reset_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Persisted score snapshot
    confidence_score: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    score_breakdown: Mapped[dict | None] = mapped_column(JSONVariant, nullable=True)
    scored_state: Mapped[str | None] = mapped_column(String(16), nullable=True)
    last_scored_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    config_version: Mapped[str | None] = mapped_column(String(32), nullable=True)

    predicted_monthly: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), nullable=False
    )
    predicted_onetime: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), nullable=False
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    score_history: Mapped[list[ScoreHistoryEntry]] = relationship(
        "ScoreHistoryEntry",
        back_populates="deal",
        order_by="ScoreHistoryEntry.id",
        passive_deletes=True,
    )
    audit_entries: Mapped[list[AuditEntry]] = relationship(
        "AuditEntry",
        back_populates="deal",
        order_by="AuditEntry.id",
        passive_deletes=True,
    )
