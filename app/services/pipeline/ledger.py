"""Score history and audit ledger.

Append-only. Each append runs in a SAVEPOINT so a failed insert rolls back
only itself; the caller's score or state change stays in its transaction.
No update or delete operations are provided.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import AuditEntry, ScoreHistoryEntry
from app.services.pipeline.errors import LoggingFailure
from app.services.pipeline.scoring_engine import ScoreBreakdown

logger = logging.getLogger(__name__)


def _report(failure: LoggingFailure) -> None:
    logger.warning(
        "Ledger write failed deal_id=%s kind=%s: %s",
        failure.deal_id,
        failure.entry_kind,
        failure.cause,
    )


def append_history(
    db: Session,
    deal_id: int,
    breakdown: ScoreBreakdown,
    trigger: str,
    as_of: datetime,
    previous_score: int | None = None,
) -> ScoreHistoryEntry | None:
    """Append one score history entry. Returns None if the write failed."""
    db.flush()
    try:
        with db.begin_nested():
            entry = ScoreHistoryEntry(
                deal_id=deal_id,
                as_of=as_of,
                confidence_score=breakdown.final_score,
                previous_score=previous_score,
                state=breakdown.state,
                trigger=trigger,
                config_version=breakdown.config_version,
                breakdown=breakdown.to_dict(),
            )
            db.add(entry)
            db.flush()
    except SQLAlchemyError as exc:
        _report(LoggingFailure(deal_id, "history", exc))
        return None
    return entry


def append_audit(
    db: Session,
    deal_id: int,
    action: str,
    actor_id: str | None = None,
    details: dict[str, Any] | None = None,
    occurred_at: datetime | None = None,
) -> AuditEntry | None:
    """Append one audit entry. Returns None if the write failed."""
    db.flush()
    try:
        with db.begin_nested():
            entry = AuditEntry(
                deal_id=deal_id,
                action=action,
                actor_id=actor_id,
                details=details or None,
            )
            if occurred_at is not None:
                entry.occurred_at = occurred_at
            db.add(entry)
            db.flush()
    except SQLAlchemyError as exc:
        _report(LoggingFailure(deal_id, "audit", exc))
        return None
    return entry


def list_history(db: Session, deal_id: int) -> list[ScoreHistoryEntry]:
    """History entries for a deal, oldest first."""
    stmt = (
        select(ScoreHistoryEntry)
        .where(ScoreHistoryEntry.deal_id == deal_id)
        .order_by(ScoreHistoryEntry.computed_at, ScoreHistoryEntry.id)
    )
    return list(db.scalars(stmt))


def list_audit(db: Session, deal_id: int) -> list[AuditEntry]:
    """Audit entries for a deal, oldest first."""
    stmt = (
        select(AuditEntry)
        .where(AuditEntry.deal_id == deal_id)
        .order_by(AuditEntry.occurred_at, AuditEntry.id)
    )
    return list(db.scalars(stmt))
