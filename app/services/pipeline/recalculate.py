"""Per-deal recalculation.

One deal, one transaction: lock the row, apply lazy snooze expiry, compute,
and write score + history entry only when score or state changed. The
Deal.version column backs the row lock with an optimistic check, so when two
recalculations race the loser's write is discarded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.models import Deal
from app.scoring_config import ScoringConfig, load_scoring_config
from app.services.pipeline.constants import STATE_ARCHIVED, TERMINAL_STATES, TRIGGER_ON_DEMAND
from app.services.pipeline.errors import DealNotFoundError, RecalculationFailure
from app.services.pipeline.ledger import append_history
from app.services.pipeline.lifecycle import apply_snooze_expiry, load_deal, resolve_now
from app.services.pipeline.scoring_engine import DealSnapshot, ScoreBreakdown, compute

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecalculationOutcome:
    breakdown: ScoreBreakdown
    changed: bool


def snapshot_from_deal(deal: Deal) -> DealSnapshot:
    """Copy the calculator inputs off a Deal row."""
    return DealSnapshot(
        deal_id=deal.id,
        state=deal.state,
        budget_clarity=deal.budget_clarity,
        competition=deal.competition,
        engagement=deal.engagement,
        plan_fit=deal.plan_fit,
        predicted_tier=deal.predicted_tier,
        sent_at=deal.sent_at,
        first_email_opened_at=deal.first_email_opened_at,
        first_proposal_viewed_at=deal.first_proposal_viewed_at,
        first_account_created_at=deal.first_account_created_at,
        first_reply_at=deal.first_reply_at,
        last_inbound_at=deal.last_inbound_at,
        last_outbound_at=deal.last_outbound_at,
        unanswered_outbound_count=deal.unanswered_outbound_count or 0,
        total_invites=deal.total_invites or 0,
        invites_opened=deal.invites_opened or 0,
        invites_viewed=deal.invites_viewed or 0,
        snoozed_until=deal.snoozed_until,
        penalty_clock_reset_at=deal.penalty_clock_reset_at,
    )


def persisted_breakdown(deal: Deal) -> ScoreBreakdown | None:
    if not deal.score_breakdown:
        return None
    return ScoreBreakdown.from_dict(deal.score_breakdown)


def _frozen(deal: Deal) -> bool:
    """Terminal or archived deal whose score was already recorded in that state."""
    if deal.state not in TERMINAL_STATES and deal.state != STATE_ARCHIVED:
        return False
    return deal.scored_state == deal.state and bool(deal.score_breakdown)


def _breakdown_for(deal: Deal, as_of: datetime, config: ScoringConfig) -> ScoreBreakdown:
    if deal.state == STATE_ARCHIVED:
        # Archived deals keep their last score; only the recorded state changes
        previous = persisted_breakdown(deal)
        if previous is None:
            previous = compute(snapshot_from_deal(deal), as_of, config)
        return replace(previous, state=STATE_ARCHIVED, as_of=as_of.isoformat())
    return compute(snapshot_from_deal(deal), as_of, config)


def recalculate_deal(
    db: Session,
    deal_id: int,
    trigger: str = TRIGGER_ON_DEMAND,
    as_of: datetime | None = None,
    config: ScoringConfig | None = None,
) -> RecalculationOutcome:
    """Recalculate one deal and report whether anything was written.

    Raises:
        DealNotFoundError: If the deal does not exist.
        ConfigurationError: If the scoring config cannot be loaded.
        RecalculationFailure: If computing or persisting failed; the deal keeps
            its previous score.
    """
    as_of = resolve_now(as_of)
    if config is None:
        config = load_scoring_config()

    breakdown: ScoreBreakdown | None = None
    try:
        deal = load_deal(db, deal_id, for_update=True)
        apply_snooze_expiry(db, deal, as_of)

        if _frozen(deal):
            db.commit()
            return RecalculationOutcome(persisted_breakdown(deal), changed=False)

        breakdown = _breakdown_for(deal, as_of, config)
        if breakdown.final_score == deal.confidence_score and breakdown.state == deal.scored_state:
            db.commit()
            return RecalculationOutcome(breakdown, changed=False)

        previous_score = deal.confidence_score if deal.scored_state is not None else None
        deal.confidence_score = breakdown.final_score
        deal.score_breakdown = breakdown.to_dict()
        deal.scored_state = breakdown.state
        deal.last_scored_at = as_of
        deal.config_version = breakdown.config_version
        append_history(db, deal.id, breakdown, trigger, as_of, previous_score=previous_score)
        db.commit()
    except StaleDataError:
        db.rollback()
        logger.info("Concurrent recalculation already updated deal_id=%s; result discarded", deal_id)
        current = persisted_breakdown(load_deal(db, deal_id)) or breakdown
        if current is None:
            raise RecalculationFailure(deal_id, RuntimeError("concurrent update before scoring"))
        return RecalculationOutcome(current, changed=False)
    except DealNotFoundError:
        db.rollback()
        raise
    except Exception as exc:
        db.rollback()
        raise RecalculationFailure(deal_id, exc) from exc

    logger.info(
        "Recalculated deal_id=%s score=%s state=%s trigger=%s previous=%s",
        deal_id,
        breakdown.final_score,
        breakdown.state,
        trigger,
        previous_score,
    )
    return RecalculationOutcome(breakdown, changed=True)


def recalculate(
    db: Session,
    deal_id: int,
    trigger: str = TRIGGER_ON_DEMAND,
    as_of: datetime | None = None,
) -> ScoreBreakdown:
    """Synchronous, idempotent recalculation of one deal. Returns the current breakdown."""
    return recalculate_deal(db, deal_id, trigger=trigger, as_of=as_of).breakdown


def trigger_recalculation(
    db: Session,
    deal_id: int,
    trigger: str,
    as_of: datetime | None = None,
) -> ScoreBreakdown | None:
    """Event-triggered recalculation after a committed mutation.

    Never raises: the mutation already succeeded. Failures are logged so a stale
    score stays visible in logs; the daily sweep converges it.
    """
    try:
        return recalculate(db, deal_id, trigger=trigger, as_of=as_of)
    except Exception:
        logger.exception(
            "Event-triggered recalculation failed deal_id=%s trigger=%s", deal_id, trigger
        )
        return None


def get_score(db: Session, deal_id: int) -> ScoreBreakdown | None:
    """Persisted breakdown for a deal (None if it was never scored)."""
    return persisted_breakdown(load_deal(db, deal_id))
