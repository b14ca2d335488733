"""Daily sweep: recalculate every open deal once.

Invoked by an external scheduler (cron -> scripts/run_daily_sweep.py or
POST /internal/run_daily_sweep) at the configured daily_sweep_time; there is
no timer inside the app. Each deal commits or rolls back on its own, so one
failing deal never aborts the run. Creates a SweepRun record for audit.
"""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models import Deal, SweepRun
from app.scoring_config import ConfigurationError, load_scoring_config
from app.services.pipeline.constants import (
    OPEN_STATES,
    TRIGGER_DAILY_SWEEP,
    TRIGGER_MANUAL_REFRESH,
)
from app.services.pipeline.errors import RecalculationFailure
from app.services.pipeline.lifecycle import resolve_now
from app.services.pipeline.recalculate import recalculate_deal

logger = logging.getLogger(__name__)

# Diagnostics kept on the SweepRun row; the returned result carries all of them
MAX_STORED_DIAGNOSTICS = 50

RUN_TYPE_DAILY_SWEEP = "daily_sweep"
RUN_TYPE_FULL_REFRESH = "full_refresh"


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _diagnostic(deal_id: int, exc: BaseException) -> dict:
    cause = exc.cause if isinstance(exc, RecalculationFailure) else exc
    return {"deal_id": deal_id, "error_type": type(cause).__name__, "error": str(cause)}


def _open_deal_ids(db: Session) -> list[int]:
    stmt = select(Deal.id).where(Deal.state.in_(OPEN_STATES)).distinct().order_by(Deal.id)
    return list(db.scalars(stmt))


def _run(
    db: Session,
    run_type: str,
    trigger: str,
    as_of: datetime | None,
    config_version: str | None,
) -> dict:
    started = time.monotonic()
    as_of = resolve_now(as_of)

    run = SweepRun(run_type=run_type, status="running")
    db.add(run)
    db.commit()
    db.refresh(run)

    try:
        config = load_scoring_config(config_version)
    except ConfigurationError as exc:
        logger.error("%s aborted: scoring configuration invalid: %s", run_type, exc)
        run.status = "failed"
        run.error_message = str(exc)
        run.finished_at = datetime.now(UTC)
        run.duration_ms = _elapsed_ms(started)
        db.commit()
        raise

    logger.info(
        "Starting %s as_of=%s config_version=%s", run_type, as_of.isoformat(), config.version
    )
    run.config_version = config.version
    db.commit()

    processed = succeeded = skipped = failed = 0
    diagnostics: list[dict] = []

    for deal_id in _open_deal_ids(db):
        processed += 1
        try:
            outcome = recalculate_deal(db, deal_id, trigger=trigger, as_of=as_of, config=config)
        except Exception as exc:
            db.rollback()
            failed += 1
            diagnostics.append(_diagnostic(deal_id, exc))
            logger.exception("%s: recalculation failed for deal %s", run_type, deal_id)
            continue
        if outcome.changed:
            succeeded += 1
        else:
            skipped += 1

    duration_ms = _elapsed_ms(started)
    run.status = "completed"
    run.finished_at = datetime.now(UTC)
    run.processed = processed
    run.succeeded = succeeded
    run.skipped = skipped
    run.failed = failed
    run.duration_ms = duration_ms
    run.diagnostics = diagnostics[:MAX_STORED_DIAGNOSTICS] or None
    run.error_message = (
        "; ".join(f"Deal {d['deal_id']}: {d['error']}" for d in diagnostics[:10]) or None
    )
    db.commit()

    error_rate = failed / processed if processed else 0.0
    if error_rate > get_settings().sweep_error_rate_alert_threshold:
        logger.error(
            "ALERT %s error rate %.0f%% (%d/%d deals failed)",
            run_type,
            error_rate * 100,
            failed,
            processed,
        )

    logger.info(
        "%s completed: processed=%d succeeded=%d skipped=%d failed=%d duration_ms=%d",
        run_type,
        processed,
        succeeded,
        skipped,
        failed,
        duration_ms,
    )
    return {
        "status": "completed",
        "sweep_run_id": run.id,
        "config_version": config.version,
        "processed": processed,
        "succeeded": succeeded,
        "skipped": skipped,
        "failed": failed,
        "duration_ms": duration_ms,
        "diagnostics": diagnostics,
    }


def run_daily_sweep(
    db: Session,
    as_of: datetime | None = None,
    config_version: str | None = None,
) -> dict:
    """Recalculate every active or snoozed deal exactly once.

    succeeded counts deals whose score or state changed, skipped counts deals
    with nothing to write, failed counts deals whose recalculation raised.

    Raises:
        ConfigurationError: If the scoring config is missing or malformed. No deal
            is touched; the SweepRun is recorded as failed.
    """
    return _run(db, RUN_TYPE_DAILY_SWEEP, TRIGGER_DAILY_SWEEP, as_of, config_version)


def recalculate_all_active(
    db: Session,
    as_of: datetime | None = None,
    config_version: str | None = None,
) -> dict:
    """Full refresh of every open deal, e.g. after switching SCORING_CONFIG_VERSION."""
    return _run(db, RUN_TYPE_FULL_REFRESH, TRIGGER_MANUAL_REFRESH, as_of, config_version)
