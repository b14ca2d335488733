"""Deal pipeline domains: lifecycle states, call-score factor values, archive reasons.

Scoring weights and curves are not here; they are versioned data in
app/scoring_config/versions/.
"""

from __future__ import annotations

# ── Lifecycle states ─────────────────────────────────────────────────────

STATE_ACTIVE: str = "active"
STATE_SNOOZED: str = "snoozed"
STATE_ARCHIVED: str = "archived"
STATE_ACCEPTED: str = "accepted"
STATE_CLOSED_LOST: str = "closed_lost"

DEAL_STATES: frozenset[str] = frozenset(
    {STATE_ACTIVE, STATE_SNOOZED, STATE_ARCHIVED, STATE_ACCEPTED, STATE_CLOSED_LOST}
)
TERMINAL_STATES: frozenset[str] = frozenset({STATE_ACCEPTED, STATE_CLOSED_LOST})
# Scored by the daily sweep and counted by pipeline aggregates
OPEN_STATES: frozenset[str] = frozenset({STATE_ACTIVE, STATE_SNOOZED})

# ── Call-score factors (rep's post-call assessment) ──────────────────────

CALL_FACTOR_VALUES: dict[str, tuple[str, ...]] = {
    "budget_clarity": ("clear", "vague", "unknown", "no_budget"),
    "competition": ("none", "some", "many"),
    "engagement": ("high", "medium", "low"),
    "plan_fit": ("strong", "medium", "weak", "poor"),
}
CALL_FACTORS: tuple[str, ...] = tuple(CALL_FACTOR_VALUES)

PREDICTED_TIERS: tuple[str, ...] = ("good", "better", "best")

# ── Milestones (set-once timestamps on the deal) ─────────────────────────

# milestone key -> Deal column
MILESTONE_COLUMNS: dict[str, str] = {
    "email_opened": "first_email_opened_at",
    "proposal_viewed": "first_proposal_viewed_at",
    "account_created": "first_account_created_at",
}
MILESTONES: tuple[str, ...] = tuple(MILESTONE_COLUMNS)

# ── Archive reasons ──────────────────────────────────────────────────────

ARCHIVE_REASONS: tuple[str, ...] = (
    "went_dark",
    "budget",
    "timing",
    "chose_competitor",
    "handling_in_house",
    "not_a_fit",
    "key_contact_left",
    "business_closed",
    "duplicate",
    "other",
)
ARCHIVE_REASONS_REQUIRING_NOTES: frozenset[str] = frozenset({"other"})

# ── Communications ───────────────────────────────────────────────────────

DIRECTION_INBOUND: str = "inbound"
DIRECTION_OUTBOUND: str = "outbound"
COMMUNICATION_CHANNELS: tuple[str, ...] = ("email", "sms", "chat", "call", "other")

# ── Score triggers (recorded on history entries) ─────────────────────────

TRIGGER_DAILY_SWEEP: str = "daily_sweep"
TRIGGER_MANUAL_REFRESH: str = "manual_refresh"
TRIGGER_ON_DEMAND: str = "on_demand"

# ── Audit actions ────────────────────────────────────────────────────────

AUDIT_DEAL_CREATED: str = "deal_created"
AUDIT_CALL_SCORE_CHANGED: str = "call_score_changed"
AUDIT_TIER_CHANGED: str = "tier_changed"
AUDIT_SENT: str = "sent"
AUDIT_MILESTONE_RECORDED: str = "milestone_recorded"
AUDIT_COMMUNICATION_LOGGED: str = "communication_logged"
AUDIT_INVITES_UPDATED: str = "invites_updated"
AUDIT_SNOOZED: str = "snoozed"
AUDIT_UNSNOOZED: str = "unsnoozed"
AUDIT_SNOOZE_EXPIRED: str = "snooze_expired"
AUDIT_ARCHIVED: str = "archived"
AUDIT_REVIVED: str = "revived"
AUDIT_ACCEPTED: str = "accepted"
AUDIT_CLOSED_LOST: str = "closed_lost"

# Reported by external collaborators (recommendation items, client decisions)
EXTERNAL_AUDIT_ACTIONS: frozenset[str] = frozenset(
    {"item_added", "item_removed", "declined", "purchased"}
)
