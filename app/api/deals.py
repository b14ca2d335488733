"""Deal API routes: events, lifecycle commands, score and history reads."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import DOMAIN_ERRORS, get_actor_id, get_db, http_error
from app.schemas.deal import (
    ArchiveRequest,
    AuditEntryRead,
    AuditList,
    CallScoreInput,
    CommunicationRequest,
    DealCreate,
    DealRead,
    ExternalEventRequest,
    HistoryEntryRead,
    HistoryList,
    InvitesUpdate,
    MilestoneRequest,
    ScoreBreakdownRead,
    SentRequest,
    SnoozeRequest,
    TerminalStatusRequest,
    TierUpdate,
)
from app.services.pipeline import deal_events, lifecycle
from app.services.pipeline.errors import RecalculationFailure
from app.services.pipeline.ledger import list_audit, list_history
from app.services.pipeline.recalculate import get_score, recalculate

router = APIRouter()


def _read(deal) -> DealRead:
    return DealRead.model_validate(deal)


# ── Deals ────────────────────────────────────────────────────────────


@router.post("", response_model=DealRead, status_code=201)
def api_create_deal(
    data: DealCreate,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
) -> DealRead:
    """Create a deal and compute its first score."""
    try:
        deal = deal_events.create_deal(
            db,
            client_id=data.client_id,
            rep_id=data.rep_id,
            title=data.title,
            predicted_tier=data.predicted_tier,
            predicted_monthly=data.predicted_monthly,
            predicted_onetime=data.predicted_onetime,
            call_scores=data.call_score.model_dump() if data.call_score else None,
            actor_id=actor_id,
        )
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _read(deal)


@router.get("/{deal_id}", response_model=DealRead)
def api_get_deal(deal_id: int, db: Session = Depends(get_db)) -> DealRead:
    try:
        return _read(lifecycle.load_deal(db, deal_id))
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.get("/{deal_id}/score", response_model=ScoreBreakdownRead)
def api_get_score(deal_id: int, db: Session = Depends(get_db)) -> ScoreBreakdownRead:
    """Persisted score breakdown, as last written by a recalculation."""
    try:
        breakdown = get_score(db, deal_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    if breakdown is None:
        raise HTTPException(status_code=404, detail="Deal has not been scored yet")
    return ScoreBreakdownRead.model_validate(breakdown)


@router.get("/{deal_id}/history", response_model=HistoryList)
def api_get_history(deal_id: int, db: Session = Depends(get_db)) -> HistoryList:
    """Score history, oldest first."""
    try:
        lifecycle.load_deal(db, deal_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    items = [HistoryEntryRead.model_validate(e) for e in list_history(db, deal_id)]
    return HistoryList(deal_id=deal_id, items=items)


@router.get("/{deal_id}/audit", response_model=AuditList)
def api_get_audit(deal_id: int, db: Session = Depends(get_db)) -> AuditList:
    """Audit trail, oldest first."""
    try:
        lifecycle.load_deal(db, deal_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    items = [AuditEntryRead.model_validate(e) for e in list_audit(db, deal_id)]
    return AuditList(deal_id=deal_id, items=items)


@router.post("/{deal_id}/recalculate", response_model=ScoreBreakdownRead)
def api_recalculate(deal_id: int, db: Session = Depends(get_db)) -> ScoreBreakdownRead:
    """Recalculate one deal now. Idempotent."""
    try:
        breakdown = recalculate(db, deal_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    except RecalculationFailure as exc:
        raise HTTPException(status_code=500, detail="Recalculation failed") from exc
    return ScoreBreakdownRead.model_validate(breakdown)


# ── Events ───────────────────────────────────────────────────────────


@router.put("/{deal_id}/call-score", response_model=DealRead)
def api_record_call_score(
    deal_id: int,
    data: CallScoreInput,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
) -> DealRead:
    try:
        deal = deal_events.record_call_score(db, deal_id, data.model_dump(), actor_id=actor_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _read(deal)


@router.put("/{deal_id}/tier", response_model=DealRead)
def api_set_tier(
    deal_id: int,
    data: TierUpdate,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
) -> DealRead:
    try:
        deal = deal_events.set_predicted_tier(db, deal_id, data.predicted_tier, actor_id=actor_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _read(deal)


@router.post("/{deal_id}/sent", response_model=DealRead)
def api_mark_sent(
    deal_id: int,
    data: SentRequest,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
) -> DealRead:
    try:
        deal = deal_events.mark_sent(db, deal_id, sent_at=data.sent_at, actor_id=actor_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _read(deal)


@router.post("/{deal_id}/milestones", response_model=DealRead)
def api_record_milestone(
    deal_id: int,
    data: MilestoneRequest,
    db: Session = Depends(get_db),
) -> DealRead:
    try:
        deal = deal_events.record_milestone(
            db, deal_id, data.milestone, occurred_at=data.occurred_at
        )
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _read(deal)


@router.post("/{deal_id}/communications", response_model=DealRead)
def api_log_communication(
    deal_id: int,
    data: CommunicationRequest,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
) -> DealRead:
    try:
        deal = deal_events.log_communication(
            db,
            deal_id,
            data.direction,
            occurred_at=data.occurred_at,
            channel=data.channel,
            actor_id=actor_id,
        )
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _read(deal)


@router.put("/{deal_id}/invites", response_model=DealRead)
def api_update_invites(
    deal_id: int,
    data: InvitesUpdate,
    db: Session = Depends(get_db),
) -> DealRead:
    try:
        deal = deal_events.update_invites(
            db, deal_id, data.total_invites, data.invites_opened, data.invites_viewed
        )
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _read(deal)


@router.post("/{deal_id}/audit-events", response_model=DealRead)
def api_record_external_event(
    deal_id: int,
    data: ExternalEventRequest,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
) -> DealRead:
    try:
        deal = deal_events.record_external_event(
            db, deal_id, data.action, actor_id=actor_id, details=data.details
        )
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _read(deal)


# ── Lifecycle commands ───────────────────────────────────────────────


@router.post("/{deal_id}/snooze", response_model=DealRead)
def api_snooze(
    deal_id: int,
    data: SnoozeRequest,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
) -> DealRead:
    """Snooze an active deal until a future date. 409 if the deal is not active."""
    try:
        deal = lifecycle.snooze(
            db, deal_id, data.snoozed_until, reason=data.reason, actor_id=actor_id
        )
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _read(deal)


@router.delete("/{deal_id}/snooze", response_model=DealRead)
def api_unsnooze_now(
    deal_id: int,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
) -> DealRead:
    """End a snooze immediately; penalty clocks restart now."""
    try:
        deal = lifecycle.unsnooze_now(db, deal_id, actor_id=actor_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _read(deal)


@router.post("/{deal_id}/archive", response_model=DealRead)
def api_archive(
    deal_id: int,
    data: ArchiveRequest,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
) -> DealRead:
    """Archive an open deal with a reason ('other' requires notes)."""
    try:
        deal = lifecycle.archive(db, deal_id, data.reason, notes=data.notes, actor_id=actor_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _read(deal)


@router.post("/{deal_id}/revive", response_model=DealRead)
def api_revive(
    deal_id: int,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
) -> DealRead:
    """Return an archived deal to active scoring with fresh penalty clocks."""
    try:
        deal = lifecycle.revive(db, deal_id, actor_id=actor_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _read(deal)


@router.post("/{deal_id}/terminal", response_model=DealRead)
def api_set_terminal_status(
    deal_id: int,
    data: TerminalStatusRequest,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
) -> DealRead:
    """Mark an open deal accepted (score 100) or closed_lost (score 0)."""
    try:
        deal = lifecycle.set_terminal_status(
            db, deal_id, data.status, reason=data.reason, actor_id=actor_id
        )
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _read(deal)
