"""Deal confidence score calculator.

Pure function: (deal snapshot, as_of, config) -> ScoreBreakdown. No database
access, no wall-clock reads; all time comes from ``as_of`` so any breakdown can
be replayed bit-for-bit.

Scoring flow:
  1. Terminal override: accepted -> 100, closed_lost -> 0, nothing else runs
  2. Base score from the four call factors (or the configured default)
  3. Tier multiplier on the base
  4. Bonuses: milestones (capped), quick response, multi-invite
  5. Penalties: email not opened, proposal not viewed, silence, excessive follow-up
     (all zero while snoozed)
  6. Final score = clamp(0, 100, round(adjusted base + bonuses - penalties))
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

from app.scoring_config.loader import PenaltyRule, ScoringConfig
from app.services.pipeline.constants import (
    CALL_FACTORS,
    MILESTONE_COLUMNS,
    STATE_ACCEPTED,
    STATE_CLOSED_LOST,
    STATE_SNOOZED,
)

SECONDS_PER_HOUR: int = 3600
HOURS_PER_DAY: int = 24

BONUS_KEYS: tuple[str, ...] = (
    "email_opened",
    "proposal_viewed",
    "account_created",
    "quick_response",
    "all_invites_opened",
    "all_invites_viewed",
)
PENALTY_KEYS: tuple[str, ...] = (
    "email_not_opened",
    "proposal_not_viewed",
    "silence",
    "excessive_follow_up",
)


@dataclass(frozen=True)
class DealSnapshot:
    """Calculator inputs read from a deal at one instant."""

    deal_id: int | None
    state: str
    budget_clarity: str | None = None
    competition: str | None = None
    engagement: str | None = None
    plan_fit: str | None = None
    predicted_tier: str | None = None
    sent_at: datetime | None = None
    first_email_opened_at: datetime | None = None
    first_proposal_viewed_at: datetime | None = None
    first_account_created_at: datetime | None = None
    first_reply_at: datetime | None = None
    last_inbound_at: datetime | None = None
    last_outbound_at: datetime | None = None
    unanswered_outbound_count: int = 0
    total_invites: int = 0
    invites_opened: int = 0
    invites_viewed: int = 0
    snoozed_until: datetime | None = None
    penalty_clock_reset_at: datetime | None = None

    @property
    def call_scores(self) -> dict[str, str] | None:
        """The four call factors, or None if the call form has not been filled in."""
        values = {factor: getattr(self, factor) for factor in CALL_FACTORS}
        if any(v is None for v in values.values()):
            return None
        return values


@dataclass(frozen=True)
class ScoreBreakdown:
    """Full explanation of one computed score."""

    final_score: int
    state: str
    as_of: str
    config_version: str
    base_score: float = 0.0
    call_scored: bool = False
    predicted_tier: str | None = None
    tier_multiplier: float = 1.0
    adjusted_base: float = 0.0
    bonuses: dict[str, float] = field(default_factory=dict)
    penalties: dict[str, float] = field(default_factory=dict)
    total_bonus: float = 0.0
    total_penalty: float = 0.0
    penalties_suppressed: bool = False
    override: str | None = None

    @property
    def confidence_fraction(self) -> float:
        """final_score as a 0-1 fraction, the factor applied to predicted value."""
        return round(self.final_score / 100, 2)

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe dict; stable under json.dumps(sort_keys=True)."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScoreBreakdown:
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})


# --- Utility ---


def as_utc(value: datetime | None) -> datetime | None:
    """Return value as an aware UTC datetime (naive values are taken to be UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def hours_between(start: datetime | None, end: datetime) -> int:
    """Whole hours from start to end; 0 if start is None or after end."""
    if start is None:
        return 0
    diff = (as_utc(end) - as_utc(start)).total_seconds()
    return max(0, math.floor(diff / SECONDS_PER_HOUR))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def _reached(ts: datetime | None, as_of: datetime) -> datetime | None:
    """Return ts if the milestone was reached at or before as_of, else None."""
    ts = as_utc(ts)
    if ts is None or ts > as_of:
        return None
    return ts


def _latest(*values: datetime | None) -> datetime | None:
    present = [as_utc(v) for v in values if v is not None]
    return max(present) if present else None


def _earliest(*values: datetime | None) -> datetime | None:
    present = [as_utc(v) for v in values if v is not None]
    return min(present) if present else None


def clock_reset_point(deal: DealSnapshot, as_of: datetime) -> datetime | None:
    """Latest instant every penalty clock restarted from.

    A revival or manual unsnooze is recorded as penalty_clock_reset_at. A snooze
    that has already expired as of as_of counts as a reset at snoozed_until, even
    before the lifecycle has lazily moved the deal back to active.
    """
    reset = as_utc(deal.penalty_clock_reset_at)
    if reset is not None and reset > as_of:
        reset = None
    if deal.state == STATE_SNOOZED:
        snoozed_until = as_utc(deal.snoozed_until)
        if snoozed_until is not None and snoozed_until <= as_of:
            reset = _latest(reset, snoozed_until)
    return reset


def is_snoozed_as_of(deal: DealSnapshot, as_of: datetime) -> bool:
    snoozed_until = as_utc(deal.snoozed_until)
    return deal.state == STATE_SNOOZED and (snoozed_until is None or as_of < snoozed_until)


# --- Base score ---


def compute_base_score(deal: DealSnapshot, config: ScoringConfig) -> tuple[float, bool]:
    """Weighted sum of the four call factors mapped through config tables.

    Returns (base, call_scored). With no call score entered, base is the
    configured default. Example with v2 config:
        clear (1.0 x 25) + none (1.0 x 20) + medium (0.70 x 25) + medium (0.65 x 30) = 82
    """
    scores = deal.call_scores
    if scores is None:
        return config.default_base_score, False
    total = 0.0
    for factor in CALL_FACTORS:
        total += config.call_score_mappings[factor].get(scores[factor], 0.0) * config.call_weights[
            factor
        ]
    return total, True


def tier_multiplier(tier: str | None, config: ScoringConfig) -> float:
    if tier is None:
        return 1.0
    return config.tier_multipliers.get(tier, 1.0)


# --- Bonuses ---


def compute_milestone_bonuses(
    deal: DealSnapshot, as_of: datetime, config: ScoringConfig
) -> dict[str, float]:
    """Points per reached milestone, scaled down together if the sum exceeds the cap."""
    earned: dict[str, float] = {}
    for key, column in MILESTONE_COLUMNS.items():
        earned[key] = config.milestone_points[key] if _reached(getattr(deal, column), as_of) else 0.0
    total = sum(earned.values())
    cap = config.milestone_bonus_cap
    if total > cap:
        scale = cap / total if total else 0.0
        earned = {k: v * scale for k, v in earned.items()}
    return earned


def compute_quick_response_bonus(
    deal: DealSnapshot, as_of: datetime, config: ScoringConfig
) -> float:
    """Flat bonus when the prospect's first reply came within the threshold after sending."""
    sent_at = _reached(deal.sent_at, as_of)
    first_reply = _reached(deal.first_reply_at, as_of)
    if sent_at is None or first_reply is None or first_reply < sent_at:
        return 0.0
    response_hours = (first_reply - sent_at).total_seconds() / SECONDS_PER_HOUR
    if response_hours < config.quick_response_threshold_hours:
        return config.quick_response_bonus
    return 0.0


def compute_multi_invite_bonus(deal: DealSnapshot, config: ScoringConfig) -> dict[str, float]:
    """Bonus when every invitee hit a milestone. Single-invite deals get nothing."""
    bonus = {"all_invites_opened": 0.0, "all_invites_viewed": 0.0}
    total = deal.total_invites or 0
    if total <= 1:
        return bonus
    if (deal.invites_opened or 0) >= total:
        bonus["all_invites_opened"] = config.all_opened_bonus
    if (deal.invites_viewed or 0) >= total:
        bonus["all_invites_viewed"] = config.all_viewed_bonus
    return bonus


# --- Penalties ---


def time_penalty(
    clock_start: datetime | None,
    as_of: datetime,
    rule: PenaltyRule,
    daily_penalty: float | None = None,
) -> float:
    """rate x days past grace, capped at rule.max_penalty. 0 when the clock never started."""
    if clock_start is None:
        return 0.0
    hours = hours_between(clock_start, as_of)
    if hours <= rule.grace_period_hours:
        return 0.0
    days_past_grace = (hours - rule.grace_period_hours) / HOURS_PER_DAY
    rate = rule.daily_penalty if daily_penalty is None else daily_penalty
    return min(days_past_grace * rate, rule.max_penalty)


def compute_email_not_opened_penalty(
    deal: DealSnapshot, as_of: datetime, reset: datetime | None, config: ScoringConfig
) -> float:
    """Accrues from sending until any invitee opens the email."""
    if _reached(deal.first_email_opened_at, as_of):
        return 0.0
    sent_at = _reached(deal.sent_at, as_of)
    if sent_at is None:
        return 0.0
    return time_penalty(_latest(sent_at, reset), as_of, config.email_not_opened)


def compute_proposal_not_viewed_penalty(
    deal: DealSnapshot, as_of: datetime, reset: datetime | None, config: ScoringConfig
) -> float:
    """Accrues from first engagement (email opened or account created) until the proposal is viewed.

    Before any engagement the email_not_opened penalty covers the decay.
    """
    if _reached(deal.first_proposal_viewed_at, as_of):
        return 0.0
    anchor = _earliest(
        _reached(deal.first_email_opened_at, as_of),
        _reached(deal.first_account_created_at, as_of),
    )
    if anchor is None:
        return 0.0
    return time_penalty(_latest(anchor, reset), as_of, config.proposal_not_viewed)


def compute_silence_penalty(
    deal: DealSnapshot, as_of: datetime, reset: datetime | None, config: ScoringConfig
) -> float:
    """Accrues from the prospect's last inbound message (or sending, if none).

    Daily rate escalates once unanswered follow-ups reach the threshold.
    """
    sent_at = _reached(deal.sent_at, as_of)
    if sent_at is None:
        return 0.0
    anchor = _reached(deal.last_inbound_at, as_of) or sent_at
    rule = config.silence
    rate = rule.daily_penalty
    if (deal.unanswered_outbound_count or 0) >= rule.escalation_threshold:
        rate = rule.daily_penalty * rule.escalation_multiplier
    return time_penalty(_latest(anchor, reset), as_of, rule, daily_penalty=rate)


def compute_follow_up_penalty(deal: DealSnapshot, config: ScoringConfig) -> float:
    """Flat deduction per unanswered outbound message beyond the threshold."""
    rule = config.excessive_follow_up
    excess = max(0, (deal.unanswered_outbound_count or 0) - rule.threshold)
    return min(excess * rule.penalty_per_followup, rule.max_penalty)


# --- Main scoring function ---


def compute(deal: DealSnapshot, as_of: datetime, config: ScoringConfig) -> ScoreBreakdown:
    """Compute the confidence score for one deal as of an instant.

    Deterministic: identical (deal, as_of, config) yields an identical breakdown.
    """
    as_of = as_utc(as_of)
    as_of_iso = as_of.isoformat()

    if deal.state == STATE_ACCEPTED:
        return ScoreBreakdown(
            final_score=100,
            state=deal.state,
            as_of=as_of_iso,
            config_version=config.version,
            override=STATE_ACCEPTED,
        )
    if deal.state == STATE_CLOSED_LOST:
        return ScoreBreakdown(
            final_score=0,
            state=deal.state,
            as_of=as_of_iso,
            config_version=config.version,
            override=STATE_CLOSED_LOST,
        )

    base, call_scored = compute_base_score(deal, config)
    multiplier = tier_multiplier(deal.predicted_tier, config)
    adjusted_base = round(base * multiplier, 2)

    raw_bonuses = compute_milestone_bonuses(deal, as_of, config)
    raw_bonuses["quick_response"] = compute_quick_response_bonus(deal, as_of, config)
    raw_bonuses.update(compute_multi_invite_bonus(deal, config))
    bonuses = {key: round(raw_bonuses[key], 2) for key in BONUS_KEYS}

    suppressed = is_snoozed_as_of(deal, as_of)
    if suppressed:
        penalties = {key: 0.0 for key in PENALTY_KEYS}
    else:
        reset = clock_reset_point(deal, as_of)
        raw_penalties = {
            "email_not_opened": compute_email_not_opened_penalty(deal, as_of, reset, config),
            "proposal_not_viewed": compute_proposal_not_viewed_penalty(deal, as_of, reset, config),
            "silence": compute_silence_penalty(deal, as_of, reset, config),
            "excessive_follow_up": compute_follow_up_penalty(deal, config),
        }
        penalties = {key: round(raw_penalties[key], 2) for key in PENALTY_KEYS}

    total_bonus = round(sum(bonuses.values()), 2)
    total_penalty = round(sum(penalties.values()), 2)
    raw_score = adjusted_base + total_bonus - total_penalty
    final_score = int(clamp(round_half_up(raw_score), 0, 100))

    return ScoreBreakdown(
        final_score=final_score,
        state=deal.state,
        as_of=as_of_iso,
        config_version=config.version,
        base_score=round(base, 2),
        call_scored=call_scored,
        predicted_tier=deal.predicted_tier,
        tier_multiplier=multiplier,
        adjusted_base=adjusted_base,
        bonuses=bonuses,
        penalties=penalties,
        total_bonus=total_bonus,
        total_penalty=total_penalty,
        penalties_suppressed=suppressed,
    )
