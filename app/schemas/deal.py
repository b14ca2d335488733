"""Deal schemas for request/response validation.

Factor values, tiers, milestones and archive reasons are validated by the
pipeline services (422 / 409), so requests carry them as plain strings.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class CallScoreInput(BaseModel):
    """Rep's post-call assessment; all four factors are required."""

    budget_clarity: str = Field(..., description="clear | vague | unknown | no_budget")
    competition: str = Field(..., description="none | some | many")
    engagement: str = Field(..., description="high | medium | low")
    plan_fit: str = Field(..., description="strong | medium | weak | poor")


class DealCreate(BaseModel):
    """Schema for creating a deal."""

    client_id: str = Field(..., min_length=1, max_length=64)
    rep_id: Optional[str] = Field(None, max_length=64)
    title: Optional[str] = Field(None, max_length=255)
    predicted_tier: Optional[str] = None
    predicted_monthly: Decimal = Field(Decimal("0"), ge=0)
    predicted_onetime: Decimal = Field(Decimal("0"), ge=0)
    call_score: Optional[CallScoreInput] = None


class TierUpdate(BaseModel):
    predicted_tier: Optional[str] = None


class SentRequest(BaseModel):
    sent_at: Optional[datetime] = None


class MilestoneRequest(BaseModel):
    milestone: str = Field(..., description="email_opened | proposal_viewed | account_created")
    occurred_at: Optional[datetime] = None


class CommunicationRequest(BaseModel):
    direction: str = Field(..., description="inbound | outbound")
    channel: str = "email"
    occurred_at: Optional[datetime] = None


class InvitesUpdate(BaseModel):
    total_invites: int = Field(..., ge=0)
    invites_opened: int = Field(0, ge=0)
    invites_viewed: int = Field(0, ge=0)


class ExternalEventRequest(BaseModel):
    """Audit-only fact from another system (item_added, item_removed, declined, purchased)."""

    action: str
    details: Optional[dict[str, Any]] = None


class SnoozeRequest(BaseModel):
    snoozed_until: datetime
    reason: Optional[str] = Field(None, max_length=2000)


class ArchiveRequest(BaseModel):
    reason: str
    notes: Optional[str] = Field(None, max_length=4000)


class TerminalStatusRequest(BaseModel):
    status: str = Field(..., description="accepted | closed_lost")
    reason: Optional[str] = Field(None, max_length=2000)


class DealRead(BaseModel):
    """Schema for reading a deal (response)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    client_id: str
    rep_id: Optional[str] = None
    title: Optional[str] = None
    state: str
    confidence_score: int
    predicted_tier: Optional[str] = None
    predicted_monthly: Decimal
    predicted_onetime: Decimal
    budget_clarity: Optional[str] = None
    competition: Optional[str] = None
    engagement: Optional[str] = None
    plan_fit: Optional[str] = None
    sent_at: Optional[datetime] = None
    first_email_opened_at: Optional[datetime] = None
    first_proposal_viewed_at: Optional[datetime] = None
    first_account_created_at: Optional[datetime] = None
    first_reply_at: Optional[datetime] = None
    last_inbound_at: Optional[datetime] = None
    last_outbound_at: Optional[datetime] = None
    unanswered_outbound_count: int = 0
    total_invites: int = 0
    invites_opened: int = 0
    invites_viewed: int = 0
    snoozed_until: Optional[datetime] = None
    snooze_reason: Optional[str] = None
    archived_at: Optional[datetime] = None
    archive_reason: Optional[str] = None
    archive_notes: Optional[str] = None
    revived_at: Optional[datetime] = None
    terminal_at: Optional[datetime] = None
    last_scored_at: Optional[datetime] = None
    config_version: Optional[str] = None
    created_at: datetime


class ScoreBreakdownRead(BaseModel):
    """Full explanation of a deal's score."""

    model_config = ConfigDict(from_attributes=True)

    final_score: int
    confidence_fraction: float = Field(..., description="final_score / 100 as a 0-1 fraction")
    state: str
    as_of: str
    config_version: str
    base_score: float
    call_scored: bool
    predicted_tier: Optional[str] = None
    tier_multiplier: float
    adjusted_base: float
    bonuses: dict[str, float]
    penalties: dict[str, float]
    total_bonus: float
    total_penalty: float
    penalties_suppressed: bool
    override: Optional[str] = None


class HistoryEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    computed_at: datetime
    as_of: datetime
    confidence_score: int
    previous_score: Optional[int] = None
    state: str
    trigger: str
    config_version: str
    breakdown: dict[str, Any]


class AuditEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    actor_id: Optional[str] = None
    occurred_at: datetime
    details: Optional[dict[str, Any]] = None


class HistoryList(BaseModel):
    deal_id: int
    items: list[HistoryEntryRead]


class AuditList(BaseModel):
    deal_id: int
    items: list[AuditEntryRead]
