"""Deal lifecycle state machine.

Stored states: active, snoozed, archived, accepted, closed_lost. "Revived" is
the archived -> active transition, not a state.

    active  --snooze-->        snoozed
    snoozed --unsnooze_now-->  active   (clocks reset to now)
    snoozed --expiry (lazy)--> active   (clocks reset to snoozed_until)
    active|snoozed --archive--> archived
    archived --revive-->       active   (clocks reset to now)
    active|snoozed --set_terminal_status--> accepted | closed_lost

Every command checks its guards before touching the deal; a rejected command
raises LifecycleViolation and rolls back, so nothing is written. Each accepted
transition appends exactly one audit entry in the same transaction, commits,
then fires an event-triggered recalculation.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import Deal
from app.services.pipeline.constants import (
    ARCHIVE_REASONS,
    ARCHIVE_REASONS_REQUIRING_NOTES,
    AUDIT_ARCHIVED,
    AUDIT_REVIVED,
    AUDIT_SNOOZE_EXPIRED,
    AUDIT_SNOOZED,
    AUDIT_UNSNOOZED,
    OPEN_STATES,
    STATE_ACTIVE,
    STATE_ARCHIVED,
    STATE_SNOOZED,
    TERMINAL_STATES,
)
from app.services.pipeline.errors import DealNotFoundError, InvalidDealEvent, LifecycleViolation
from app.services.pipeline.ledger import append_audit
from app.services.pipeline.scoring_engine import as_utc

logger = logging.getLogger(__name__)


def resolve_now(now: datetime | None = None) -> datetime:
    """Aware UTC 'now'; callers pass an explicit instant in tests and replays."""
    if now is None:
        return datetime.now(UTC)
    return as_utc(now)


def load_deal(db: Session, deal_id: int, for_update: bool = False) -> Deal:
    """Fetch a deal, optionally locking its row for the rest of the transaction.

    Raises:
        DealNotFoundError: If no deal has this id.
    """
    stmt = select(Deal).where(Deal.id == deal_id)
    if for_update:
        stmt = stmt.with_for_update()
    deal = db.scalars(stmt).first()
    if deal is None:
        raise DealNotFoundError(deal_id)
    return deal


def _reject(db: Session, deal: Deal, command: str, reason: str) -> LifecycleViolation:
    deal_id = deal.id
    db.rollback()
    logger.info("Lifecycle command rejected deal_id=%s command=%s: %s", deal_id, command, reason)
    return LifecycleViolation(deal_id, command, reason)


def _clear_snooze(deal: Deal) -> None:
    deal.snoozed_until = None
    deal.snooze_reason = None


def _reset_clocks(deal: Deal, at: datetime) -> None:
    current = as_utc(deal.penalty_clock_reset_at)
    if current is None or at > current:
        deal.penalty_clock_reset_at = at


def _commit_and_rescore(db: Session, deal: Deal, trigger: str, now: datetime) -> Deal:
    from app.services.pipeline.recalculate import trigger_recalculation

    db.commit()
    trigger_recalculation(db, deal.id, trigger=trigger, as_of=now)
    return deal


def apply_snooze_expiry(db: Session, deal: Deal, as_of: datetime) -> bool:
    """Move a snoozed deal back to active if its snooze ended at or before as_of.

    Penalty clocks restart at snoozed_until (the transition instant). Does not
    commit; the caller owns the transaction. Returns True if the deal changed.
    """
    if deal.state != STATE_SNOOZED:
        return False
    until = as_utc(deal.snoozed_until)
    if until is None or until > as_utc(as_of):
        return False

    reason = deal.snooze_reason
    deal.state = STATE_ACTIVE
    _reset_clocks(deal, until)
    _clear_snooze(deal)
    append_audit(
        db,
        deal.id,
        AUDIT_SNOOZE_EXPIRED,
        details={"snoozed_until": until.isoformat(), "snooze_reason": reason},
        occurred_at=until,
    )
    logger.info("Snooze expired deal_id=%s snoozed_until=%s", deal.id, until.isoformat())
    return True


def snooze(
    db: Session,
    deal_id: int,
    snoozed_until: datetime,
    reason: str | None = None,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> Deal:
    """Active -> Snoozed. Penalties are suppressed until snoozed_until, not reset."""
    now = resolve_now(now)
    deal = load_deal(db, deal_id, for_update=True)
    apply_snooze_expiry(db, deal, now)

    until = as_utc(snoozed_until)
    if deal.state != STATE_ACTIVE:
        raise _reject(db, deal, "snooze", f"deal is {deal.state}; only active deals can be snoozed")
    if until is None or until <= now:
        raise _reject(db, deal, "snooze", "snoozed_until must be in the future")

    deal.state = STATE_SNOOZED
    deal.snoozed_until = until
    deal.snooze_reason = reason.strip() if reason and reason.strip() else None
    append_audit(
        db,
        deal.id,
        AUDIT_SNOOZED,
        actor_id=actor_id,
        details={"snoozed_until": until.isoformat(), "reason": deal.snooze_reason},
        occurred_at=now,
    )
    return _commit_and_rescore(db, deal, AUDIT_SNOOZED, now)


def unsnooze_now(
    db: Session,
    deal_id: int,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> Deal:
    """Snoozed -> Active immediately; every penalty clock restarts at now."""
    now = resolve_now(now)
    deal = load_deal(db, deal_id, for_update=True)
    if deal.state != STATE_SNOOZED:
        raise _reject(db, deal, "unsnooze", f"deal is {deal.state}, not snoozed")

    previous_until = as_utc(deal.snoozed_until)
    deal.state = STATE_ACTIVE
    _reset_clocks(deal, now)
    _clear_snooze(deal)
    append_audit(
        db,
        deal.id,
        AUDIT_UNSNOOZED,
        actor_id=actor_id,
        details={"snoozed_until": previous_until.isoformat() if previous_until else None},
        occurred_at=now,
    )
    return _commit_and_rescore(db, deal, AUDIT_UNSNOOZED, now)


def archive(
    db: Session,
    deal_id: int,
    reason: str,
    notes: str | None = None,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> Deal:
    """Active|Snoozed -> Archived. Excluded from aggregates; score and history kept."""
    now = resolve_now(now)
    deal = load_deal(db, deal_id, for_update=True)
    notes = notes.strip() if notes and notes.strip() else None

    if deal.state not in OPEN_STATES:
        raise _reject(db, deal, "archive", f"deal is {deal.state}; only open deals can be archived")
    if reason not in ARCHIVE_REASONS:
        raise _reject(db, deal, "archive", f"unknown archive reason {reason!r}")
    if reason in ARCHIVE_REASONS_REQUIRING_NOTES and notes is None:
        raise _reject(db, deal, "archive", f"archive reason {reason!r} requires notes")

    previous_state = deal.state
    deal.state = STATE_ARCHIVED
    deal.archived_at = now
    deal.archive_reason = reason
    deal.archive_notes = notes
    _clear_snooze(deal)
    append_audit(
        db,
        deal.id,
        AUDIT_ARCHIVED,
        actor_id=actor_id,
        details={"reason": reason, "notes": notes, "previous_state": previous_state},
        occurred_at=now,
    )
    return _commit_and_rescore(db, deal, AUDIT_ARCHIVED, now)


def revive(
    db: Session,
    deal_id: int,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> Deal:
    """Archived -> Active on the same deal record.

    Call scores and milestones are kept; every penalty clock and the unanswered
    follow-up count restart from now.
    """
    now = resolve_now(now)
    deal = load_deal(db, deal_id, for_update=True)
    if deal.state != STATE_ARCHIVED:
        raise _reject(db, deal, "revive", f"deal is {deal.state}, not archived")

    details = {
        "archived_at": as_utc(deal.archived_at).isoformat() if deal.archived_at else None,
        "archive_reason": deal.archive_reason,
        "archive_notes": deal.archive_notes,
    }
    deal.state = STATE_ACTIVE
    deal.revived_at = now
    _reset_clocks(deal, now)
    deal.unanswered_outbound_count = 0
    deal.archived_at = None
    deal.archive_reason = None
    deal.archive_notes = None
    append_audit(db, deal.id, AUDIT_REVIVED, actor_id=actor_id, details=details, occurred_at=now)
    return _commit_and_rescore(db, deal, AUDIT_REVIVED, now)


def set_terminal_status(
    db: Session,
    deal_id: int,
    status: str,
    reason: str | None = None,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> Deal:
    """Active|Snoozed -> Accepted|ClosedLost. Terminal deals never leave this state.

    Raises:
        InvalidDealEvent: If status is not a terminal state.
        LifecycleViolation: If the deal is not open.
    """
    if status not in TERMINAL_STATES:
        raise InvalidDealEvent(f"terminal status must be one of {sorted(TERMINAL_STATES)}")
    now = resolve_now(now)
    deal = load_deal(db, deal_id, for_update=True)
    if deal.state not in OPEN_STATES:
        raise _reject(
            db, deal, "set_terminal_status", f"deal is {deal.state}; only open deals can close"
        )

    previous_state = deal.state
    deal.state = status
    deal.terminal_at = now
    deal.terminal_reason = reason.strip() if reason and reason.strip() else None
    _clear_snooze(deal)
    append_audit(
        db,
        deal.id,
        status,
        actor_id=actor_id,
        details={"previous_state": previous_state, "reason": deal.terminal_reason},
        occurred_at=now,
    )
    return _commit_and_rescore(db, deal, status, now)
