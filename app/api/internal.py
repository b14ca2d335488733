"""Internal job endpoints for cron/scripts.

These endpoints are secured with a static token (X-Internal-Token header),
NOT cookie-based auth.  They are meant for automated triggers only.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_internal_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", include_in_schema=False)


@router.post("/run_daily_sweep")
def run_daily_sweep_endpoint(
    db: Session = Depends(get_db),
    _token: None = Depends(require_internal_token),
):
    """Recalculate every active and snoozed deal once.

    Returns processed/succeeded/skipped/failed counts, duration and per-deal
    diagnostics. An invalid scoring config fails the run before any deal is
    touched.
    """
    from app.services.pipeline.daily_sweep import run_daily_sweep

    try:
        return run_daily_sweep(db)
    except Exception as exc:
        logger.exception("Internal daily sweep failed")
        return {"status": "failed", "error": str(exc)}


@router.post("/recalculate_all")
def recalculate_all_endpoint(
    config_version: str | None = Query(
        None, description="Scoring config version; uses SCORING_CONFIG_VERSION if omitted"
    ),
    db: Session = Depends(get_db),
    _token: None = Depends(require_internal_token),
):
    """Full refresh of every open deal, e.g. after a scoring config change."""
    from app.services.pipeline.daily_sweep import recalculate_all_active

    try:
        return recalculate_all_active(db, config_version=config_version)
    except Exception as exc:
        logger.exception("Internal full recalculation failed")
        return {"status": "failed", "error": str(exc)}
