"""Inbound deal events: creation, call scores, tier, milestones, communications, invites.

Each event validates its payload, updates the deal, appends one audit entry,
commits, and then fires an event-triggered recalculation. Events for terminal
deals are rejected; terminal scores are pinned.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import Deal, DealCommunication
from app.services.pipeline.constants import (
    AUDIT_CALL_SCORE_CHANGED,
    AUDIT_COMMUNICATION_LOGGED,
    AUDIT_DEAL_CREATED,
    AUDIT_INVITES_UPDATED,
    AUDIT_MILESTONE_RECORDED,
    AUDIT_SENT,
    AUDIT_TIER_CHANGED,
    CALL_FACTOR_VALUES,
    CALL_FACTORS,
    COMMUNICATION_CHANNELS,
    DIRECTION_INBOUND,
    DIRECTION_OUTBOUND,
    EXTERNAL_AUDIT_ACTIONS,
    MILESTONE_COLUMNS,
    PREDICTED_TIERS,
    STATE_ACTIVE,
    TERMINAL_STATES,
)
from app.services.pipeline.errors import InvalidDealEvent, LifecycleViolation
from app.services.pipeline.ledger import append_audit
from app.services.pipeline.lifecycle import load_deal, resolve_now
from app.services.pipeline.recalculate import trigger_recalculation
from app.services.pipeline.scoring_engine import as_utc

logger = logging.getLogger(__name__)


def _validate_call_scores(scores: dict[str, str]) -> dict[str, str]:
    missing = [f for f in CALL_FACTORS if not scores.get(f)]
    if missing:
        raise InvalidDealEvent(f"call score is missing factors: {missing}")
    unknown = set(scores) - set(CALL_FACTORS)
    if unknown:
        raise InvalidDealEvent(f"unknown call score factors: {sorted(unknown)}")
    for factor in CALL_FACTORS:
        if scores[factor] not in CALL_FACTOR_VALUES[factor]:
            raise InvalidDealEvent(
                f"{factor}={scores[factor]!r} is not one of {list(CALL_FACTOR_VALUES[factor])}"
            )
    return {f: scores[f] for f in CALL_FACTORS}


def _validate_tier(tier: str | None) -> str | None:
    if tier is not None and tier not in PREDICTED_TIERS:
        raise InvalidDealEvent(f"predicted_tier must be one of {list(PREDICTED_TIERS)}")
    return tier


def _load_editable(db: Session, deal_id: int, command: str) -> Deal:
    deal = load_deal(db, deal_id, for_update=True)
    if deal.state in TERMINAL_STATES:
        state = deal.state
        db.rollback()
        raise LifecycleViolation(deal_id, command, f"deal is {state}; terminal deals are closed")
    return deal


def summarize_communications(
    messages: Iterable[tuple[str, datetime]],
    sent_at: datetime | None = None,
    revived_at: datetime | None = None,
) -> dict[str, Any]:
    """Derive the scoring summary from (direction, occurred_at) pairs.

    first_reply_at is the earliest inbound at or after sent_at. The unanswered
    count is the outbound messages after the last inbound and after any revive.
    """
    sent_at = as_utc(sent_at)
    inbound: list[datetime] = []
    outbound: list[datetime] = []
    for direction, occurred_at in messages:
        if direction == DIRECTION_INBOUND:
            inbound.append(as_utc(occurred_at))
        else:
            outbound.append(as_utc(occurred_at))

    last_inbound = max(inbound, default=None)
    replies = [at for at in inbound if sent_at is not None and at >= sent_at]
    floor = max((at for at in (last_inbound, as_utc(revived_at)) if at is not None), default=None)
    return {
        "first_reply_at": min(replies, default=None),
        "last_inbound_at": last_inbound,
        "last_outbound_at": max(outbound, default=None),
        "unanswered_outbound_count": sum(1 for at in outbound if floor is None or at > floor),
    }


def refresh_communication_summary(db: Session, deal: Deal) -> None:
    """Recompute the deal's communication summary from its logged messages."""
    rows = db.execute(
        select(DealCommunication.direction, DealCommunication.occurred_at).where(
            DealCommunication.deal_id == deal.id
        )
    ).all()
    summary = summarize_communications(
        [(row.direction, row.occurred_at) for row in rows],
        sent_at=deal.sent_at,
        revived_at=deal.revived_at,
    )
    for column, value in summary.items():
        setattr(deal, column, value)


def _commit_and_rescore(db: Session, deal: Deal, trigger: str, now: datetime) -> Deal:
    db.commit()
    trigger_recalculation(db, deal.id, trigger=trigger, as_of=now)
    return deal


def create_deal(
    db: Session,
    client_id: str,
    rep_id: str | None = None,
    title: str | None = None,
    predicted_tier: str | None = None,
    predicted_monthly: Decimal | float = 0,
    predicted_onetime: Decimal | float = 0,
    call_scores: dict[str, str] | None = None,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> Deal:
    """Create an active deal and give it its first score."""
    if not client_id or not client_id.strip():
        raise InvalidDealEvent("client_id is required")
    _validate_tier(predicted_tier)
    if Decimal(str(predicted_monthly)) < 0 or Decimal(str(predicted_onetime)) < 0:
        raise InvalidDealEvent("predicted amounts must be non-negative")
    now = resolve_now(now)

    deal = Deal(
        client_id=client_id.strip(),
        rep_id=rep_id,
        title=title,
        predicted_tier=predicted_tier,
        predicted_monthly=Decimal(str(predicted_monthly)),
        predicted_onetime=Decimal(str(predicted_onetime)),
        state=STATE_ACTIVE,
        created_at=now,
    )
    if call_scores:
        for factor, value in _validate_call_scores(call_scores).items():
            setattr(deal, factor, value)
        deal.call_scored_at = now
        deal.call_scored_by = actor_id
    db.add(deal)
    db.flush()
    append_audit(
        db,
        deal.id,
        AUDIT_DEAL_CREATED,
        actor_id=actor_id,
        details={"client_id": deal.client_id, "rep_id": rep_id, "predicted_tier": predicted_tier},
        occurred_at=now,
    )
    logger.info("Created deal_id=%s client_id=%s", deal.id, deal.client_id)
    return _commit_and_rescore(db, deal, AUDIT_DEAL_CREATED, now)


def record_call_score(
    db: Session,
    deal_id: int,
    scores: dict[str, str],
    actor_id: str | None = None,
    now: datetime | None = None,
) -> Deal:
    """Save (or overwrite) the four call-score factors."""
    scores = _validate_call_scores(scores)
    now = resolve_now(now)
    deal = _load_editable(db, deal_id, "record_call_score")

    previous = {f: getattr(deal, f) for f in CALL_FACTORS}
    for factor, value in scores.items():
        setattr(deal, factor, value)
    deal.call_scored_at = now
    deal.call_scored_by = actor_id
    append_audit(
        db,
        deal.id,
        AUDIT_CALL_SCORE_CHANGED,
        actor_id=actor_id,
        details={"previous": previous, "new": scores},
        occurred_at=now,
    )
    return _commit_and_rescore(db, deal, AUDIT_CALL_SCORE_CHANGED, now)


def set_predicted_tier(
    db: Session,
    deal_id: int,
    tier: str | None,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> Deal:
    _validate_tier(tier)
    now = resolve_now(now)
    deal = _load_editable(db, deal_id, "set_predicted_tier")
    previous = deal.predicted_tier
    deal.predicted_tier = tier
    append_audit(
        db,
        deal.id,
        AUDIT_TIER_CHANGED,
        actor_id=actor_id,
        details={"previous": previous, "new": tier},
        occurred_at=now,
    )
    return _commit_and_rescore(db, deal, AUDIT_TIER_CHANGED, now)


def mark_sent(
    db: Session,
    deal_id: int,
    sent_at: datetime | None = None,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> Deal:
    """Record when the proposal went out. Set-once: a repeat is a no-op."""
    now = resolve_now(now)
    sent_at = as_utc(sent_at) or now
    deal = _load_editable(db, deal_id, "mark_sent")
    if deal.sent_at is not None:
        db.rollback()
        logger.debug("sent_at already recorded for deal_id=%s; ignoring", deal_id)
        return deal
    deal.sent_at = sent_at
    refresh_communication_summary(db, deal)
    append_audit(
        db,
        deal.id,
        AUDIT_SENT,
        actor_id=actor_id,
        details={"sent_at": sent_at.isoformat()},
        occurred_at=now,
    )
    return _commit_and_rescore(db, deal, AUDIT_SENT, now)


def record_milestone(
    db: Session,
    deal_id: int,
    milestone: str,
    occurred_at: datetime | None = None,
    now: datetime | None = None,
) -> Deal:
    """Record email_opened, proposal_viewed or account_created. First timestamp wins."""
    column = MILESTONE_COLUMNS.get(milestone)
    if column is None:
        raise InvalidDealEvent(f"milestone must be one of {list(MILESTONE_COLUMNS)}")
    now = resolve_now(now)
    occurred_at = as_utc(occurred_at) or now
    deal = _load_editable(db, deal_id, "record_milestone")
    if getattr(deal, column) is not None:
        db.rollback()
        logger.debug("Milestone %s already recorded for deal_id=%s; ignoring", milestone, deal_id)
        return deal

    setattr(deal, column, occurred_at)
    append_audit(
        db,
        deal.id,
        AUDIT_MILESTONE_RECORDED,
        details={"milestone": milestone, "occurred_at": occurred_at.isoformat()},
        occurred_at=now,
    )
    return _commit_and_rescore(db, deal, AUDIT_MILESTONE_RECORDED, now)


def log_communication(
    db: Session,
    deal_id: int,
    direction: str,
    occurred_at: datetime | None = None,
    channel: str = "email",
    actor_id: str | None = None,
    now: datetime | None = None,
) -> Deal:
    """Log an inbound or outbound message and re-derive the communication summary.

    Messages may arrive late or out of order; the summary depends only on their
    occurred_at timestamps, never on arrival order.
    """
    if direction not in (DIRECTION_INBOUND, DIRECTION_OUTBOUND):
        raise InvalidDealEvent("direction must be 'inbound' or 'outbound'")
    if channel not in COMMUNICATION_CHANNELS:
        raise InvalidDealEvent(f"channel must be one of {list(COMMUNICATION_CHANNELS)}")
    now = resolve_now(now)
    occurred_at = as_utc(occurred_at) or now
    deal = _load_editable(db, deal_id, "log_communication")

    db.add(
        DealCommunication(
            deal_id=deal.id,
            direction=direction,
            channel=channel,
            occurred_at=occurred_at,
            actor_id=actor_id,
        )
    )
    db.flush()
    refresh_communication_summary(db, deal)

    append_audit(
        db,
        deal.id,
        AUDIT_COMMUNICATION_LOGGED,
        actor_id=actor_id,
        details={
            "direction": direction,
            "channel": channel,
            "occurred_at": occurred_at.isoformat(),
            "unanswered_outbound_count": deal.unanswered_outbound_count,
        },
        occurred_at=now,
    )
    return _commit_and_rescore(db, deal, AUDIT_COMMUNICATION_LOGGED, now)


def update_invites(
    db: Session,
    deal_id: int,
    total_invites: int,
    invites_opened: int,
    invites_viewed: int,
    now: datetime | None = None,
) -> Deal:
    """Replace the invite counters reported by the proposal delivery system."""
    if min(total_invites, invites_opened, invites_viewed) < 0:
        raise InvalidDealEvent("invite counts must be non-negative")
    if invites_opened > total_invites or invites_viewed > total_invites:
        raise InvalidDealEvent("opened/viewed invites cannot exceed total_invites")
    now = resolve_now(now)
    deal = _load_editable(db, deal_id, "update_invites")
    deal.total_invites = total_invites
    deal.invites_opened = invites_opened
    deal.invites_viewed = invites_viewed
    append_audit(
        db,
        deal.id,
        AUDIT_INVITES_UPDATED,
        details={"total": total_invites, "opened": invites_opened, "viewed": invites_viewed},
        occurred_at=now,
    )
    return _commit_and_rescore(db, deal, AUDIT_INVITES_UPDATED, now)


def record_external_event(
    db: Session,
    deal_id: int,
    action: str,
    actor_id: str | None = None,
    details: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Deal:
    """Audit-only fact reported by another system (item added/removed, declined, purchased).

    Does not touch calculator inputs, so no recalculation is fired.
    """
    if action not in EXTERNAL_AUDIT_ACTIONS:
        raise InvalidDealEvent(f"action must be one of {sorted(EXTERNAL_AUDIT_ACTIONS)}")
    now = resolve_now(now)
    deal = load_deal(db, deal_id)
    append_audit(db, deal.id, action, actor_id=actor_id, details=details, occurred_at=now)
    db.commit()
    return deal
