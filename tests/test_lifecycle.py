"""Tests for the deal lifecycle state machine."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from app.models import Deal
from app.services.pipeline import lifecycle
from app.services.pipeline.deal_events import create_deal, log_communication, mark_sent
from app.services.pipeline.errors import DealNotFoundError, InvalidDealEvent, LifecycleViolation
from app.services.pipeline.ledger import list_audit, list_history
from app.services.pipeline.scoring_engine import as_utc
from tests.test_constants import T0

CALL = {
    "budget_clarity": "clear",
    "competition": "none",
    "engagement": "medium",
    "plan_fit": "medium",
}


@pytest.fixture
def deal(db: Session) -> Deal:
    """Active deal created and sent 20 days before T0."""
    created = T0 - timedelta(days=20)
    d = create_deal(
        db,
        client_id="client-1",
        rep_id="rep-1",
        predicted_tier="best",
        predicted_monthly=1000,
        call_scores=CALL,
        now=created,
    )
    mark_sent(db, d.id, sent_at=created, now=created)
    return d


def _actions(db: Session, deal_id: int) -> list[str]:
    return [e.action for e in list_audit(db, deal_id)]


class TestSnooze:
    def test_snooze_active_deal(self, db: Session, deal: Deal) -> None:
        until = T0 + timedelta(days=7)
        lifecycle.snooze(db, deal.id, until, reason="on vacation", actor_id="rep-1", now=T0)

        db.refresh(deal)
        assert deal.state == "snoozed"
        assert as_utc(deal.snoozed_until) == until
        assert deal.snooze_reason == "on vacation"
        assert _actions(db, deal.id)[-1] == "snoozed"

    def test_snooze_suppresses_penalties(self, db: Session, deal: Deal) -> None:
        lifecycle.snooze(db, deal.id, T0 + timedelta(days=7), now=T0)
        db.refresh(deal)
        assert deal.score_breakdown["penalties_suppressed"] is True
        assert deal.scored_state == "snoozed"

    def test_snooze_requires_future_date(self, db: Session, deal: Deal) -> None:
        audit_before = len(list_audit(db, deal.id))
        with pytest.raises(LifecycleViolation, match="future"):
            lifecycle.snooze(db, deal.id, T0 - timedelta(hours=1), now=T0)
        db.refresh(deal)
        assert deal.state == "active"
        assert len(list_audit(db, deal.id)) == audit_before

    def test_cannot_snooze_snoozed_deal(self, db: Session, deal: Deal) -> None:
        lifecycle.snooze(db, deal.id, T0 + timedelta(days=7), now=T0)
        with pytest.raises(LifecycleViolation):
            lifecycle.snooze(db, deal.id, T0 + timedelta(days=14), now=T0 + timedelta(days=1))

    def test_expired_snooze_can_be_snoozed_again(self, db: Session, deal: Deal) -> None:
        lifecycle.snooze(db, deal.id, T0 + timedelta(days=2), now=T0)
        later = T0 + timedelta(days=3)
        lifecycle.snooze(db, deal.id, later + timedelta(days=5), now=later)
        db.refresh(deal)
        assert deal.state == "snoozed"
        assert _actions(db, deal.id)[-2:] == ["snooze_expired", "snoozed"]

    def test_unsnooze_now_resets_clocks(self, db: Session, deal: Deal) -> None:
        lifecycle.snooze(db, deal.id, T0 + timedelta(days=30), now=T0)
        woke = T0 + timedelta(days=2)
        lifecycle.unsnooze_now(db, deal.id, now=woke)

        db.refresh(deal)
        assert deal.state == "active"
        assert deal.snoozed_until is None
        assert as_utc(deal.penalty_clock_reset_at) == woke
        assert deal.score_breakdown["total_penalty"] == 0.0
        assert _actions(db, deal.id)[-1] == "unsnoozed"

    def test_unsnooze_requires_snoozed(self, db: Session, deal: Deal) -> None:
        with pytest.raises(LifecycleViolation, match="not snoozed"):
            lifecycle.unsnooze_now(db, deal.id, now=T0)


class TestLazySnoozeExpiry:
    def test_expiry_moves_deal_back_to_active(self, db: Session, deal: Deal) -> None:
        until = T0 + timedelta(days=5)
        lifecycle.snooze(db, deal.id, until, now=T0)
        db.refresh(deal)

        changed = lifecycle.apply_snooze_expiry(db, deal, until + timedelta(hours=1))
        db.commit()

        assert changed is True
        assert deal.state == "active"
        assert as_utc(deal.penalty_clock_reset_at) == until
        expired = list_audit(db, deal.id)[-1]
        assert expired.action == "snooze_expired"
        assert as_utc(expired.occurred_at) == until

    def test_no_expiry_before_snoozed_until(self, db: Session, deal: Deal) -> None:
        until = T0 + timedelta(days=5)
        lifecycle.snooze(db, deal.id, until, now=T0)
        db.refresh(deal)
        assert lifecycle.apply_snooze_expiry(db, deal, until - timedelta(minutes=1)) is False
        assert deal.state == "snoozed"

    def test_active_deal_untouched(self, db: Session, deal: Deal) -> None:
        assert lifecycle.apply_snooze_expiry(db, deal, T0) is False


class TestArchive:
    def test_archive_with_reason(self, db: Session, deal: Deal) -> None:
        lifecycle.archive(db, deal.id, "went_dark", actor_id="rep-1", now=T0)
        db.refresh(deal)
        assert deal.state == "archived"
        assert deal.archive_reason == "went_dark"
        assert as_utc(deal.archived_at) == T0
        entry = list_audit(db, deal.id)[-1]
        assert entry.action == "archived"
        assert entry.actor_id == "rep-1"

    def test_archive_keeps_last_score(self, db: Session, deal: Deal) -> None:
        score_before = deal.confidence_score
        lifecycle.archive(db, deal.id, "budget", now=T0 + timedelta(days=60))
        db.refresh(deal)
        assert deal.confidence_score == score_before
        assert deal.scored_state == "archived"

    def test_other_requires_notes(self, db: Session, deal: Deal) -> None:
        history_before = len(list_history(db, deal.id))
        audit_before = len(list_audit(db, deal.id))

        with pytest.raises(LifecycleViolation, match="requires notes"):
            lifecycle.archive(db, deal.id, "other", notes="   ", now=T0)

        db.refresh(deal)
        assert deal.state == "active"
        assert len(list_history(db, deal.id)) == history_before
        assert len(list_audit(db, deal.id)) == audit_before

    def test_other_with_notes(self, db: Session, deal: Deal) -> None:
        lifecycle.archive(db, deal.id, "other", notes="Merged into deal 42", now=T0)
        db.refresh(deal)
        assert deal.archive_notes == "Merged into deal 42"

    def test_unknown_reason_rejected(self, db: Session, deal: Deal) -> None:
        with pytest.raises(LifecycleViolation, match="unknown archive reason"):
            lifecycle.archive(db, deal.id, "bored", now=T0)

    def test_archive_snoozed_deal(self, db: Session, deal: Deal) -> None:
        lifecycle.snooze(db, deal.id, T0 + timedelta(days=7), now=T0)
        lifecycle.archive(db, deal.id, "timing", now=T0 + timedelta(days=1))
        db.refresh(deal)
        assert deal.state == "archived"
        assert deal.snoozed_until is None

    def test_cannot_archive_terminal_deal(self, db: Session, deal: Deal) -> None:
        lifecycle.set_terminal_status(db, deal.id, "accepted", now=T0)
        with pytest.raises(LifecycleViolation):
            lifecycle.archive(db, deal.id, "duplicate", now=T0)
        db.refresh(deal)
        assert deal.state == "accepted"


class TestRevive:
    def test_revive_resets_clocks_and_keeps_inputs(self, db: Session, deal: Deal) -> None:
        log_communication(db, deal.id, "outbound", occurred_at=T0 - timedelta(days=5), now=T0)
        lifecycle.archive(db, deal.id, "went_dark", now=T0)
        revived_at = T0 + timedelta(days=30)
        lifecycle.revive(db, deal.id, actor_id="rep-2", now=revived_at)

        db.refresh(deal)
        assert deal.state == "active"
        assert as_utc(deal.revived_at) == revived_at
        assert as_utc(deal.penalty_clock_reset_at) == revived_at
        assert deal.unanswered_outbound_count == 0
        assert deal.budget_clarity == "clear"
        assert deal.sent_at is not None
        assert deal.archive_reason is None
        assert deal.score_breakdown["total_penalty"] == 0.0

    def test_revive_preserves_identity_and_history(self, db: Session, deal: Deal) -> None:
        lifecycle.archive(db, deal.id, "went_dark", now=T0)
        history_before = len(list_history(db, deal.id))
        revived = lifecycle.revive(db, deal.id, now=T0 + timedelta(days=1))

        assert revived.id == deal.id
        assert db.query(Deal).count() == 1
        assert len(list_history(db, deal.id)) > history_before
        revived_entry = list_audit(db, deal.id)[-1]
        assert revived_entry.action == "revived"
        assert revived_entry.details["archive_reason"] == "went_dark"

    def test_revive_requires_archived(self, db: Session, deal: Deal) -> None:
        with pytest.raises(LifecycleViolation, match="not archived"):
            lifecycle.revive(db, deal.id, now=T0)


class TestTerminalStatus:
    def test_accept_pins_100(self, db: Session, deal: Deal) -> None:
        lifecycle.set_terminal_status(db, deal.id, "accepted", now=T0)
        db.refresh(deal)
        assert deal.state == "accepted"
        assert deal.confidence_score == 100
        assert _actions(db, deal.id)[-1] == "accepted"

    def test_closed_lost_pins_zero(self, db: Session, deal: Deal) -> None:
        lifecycle.set_terminal_status(db, deal.id, "closed_lost", reason="went with agency B", now=T0)
        db.refresh(deal)
        assert deal.confidence_score == 0
        assert deal.terminal_reason == "went with agency B"

    def test_terminal_has_no_outbound_transitions(self, db: Session, deal: Deal) -> None:
        lifecycle.set_terminal_status(db, deal.id, "closed_lost", now=T0)
        for command in (
            lambda: lifecycle.snooze(db, deal.id, T0 + timedelta(days=3), now=T0),
            lambda: lifecycle.revive(db, deal.id, now=T0),
            lambda: lifecycle.set_terminal_status(db, deal.id, "accepted", now=T0),
        ):
            with pytest.raises(LifecycleViolation):
                command()
        db.refresh(deal)
        assert deal.state == "closed_lost"

    def test_invalid_status(self, db: Session, deal: Deal) -> None:
        with pytest.raises(InvalidDealEvent):
            lifecycle.set_terminal_status(db, deal.id, "won", now=T0)

    def test_archived_deal_cannot_close(self, db: Session, deal: Deal) -> None:
        lifecycle.archive(db, deal.id, "budget", now=T0)
        with pytest.raises(LifecycleViolation):
            lifecycle.set_terminal_status(db, deal.id, "accepted", now=T0)


class TestAuditTrail:
    def test_one_audit_entry_per_transition(self, db: Session, deal: Deal) -> None:
        before = len(list_audit(db, deal.id))
        lifecycle.snooze(db, deal.id, T0 + timedelta(days=7), now=T0)
        lifecycle.unsnooze_now(db, deal.id, now=T0 + timedelta(days=1))
        lifecycle.archive(db, deal.id, "timing", now=T0 + timedelta(days=2))
        lifecycle.revive(db, deal.id, now=T0 + timedelta(days=3))
        lifecycle.set_terminal_status(db, deal.id, "accepted", now=T0 + timedelta(days=4))

        actions = _actions(db, deal.id)[before:]
        assert actions == ["snoozed", "unsnoozed", "archived", "revived", "accepted"]

    def test_unknown_deal(self, db: Session) -> None:
        with pytest.raises(DealNotFoundError):
            lifecycle.archive(db, 999999, "budget", now=T0)
