"""Pipeline API routes: portfolio aggregates and active scoring config."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.schemas.pipeline import PipelineAggregatesRead, ScoringConfigRead
from app.scoring_config import ConfigurationError, list_config_versions, load_scoring_config
from app.services.pipeline.aggregates import PipelineFilter, get_aggregates
from app.services.pipeline.constants import PREDICTED_TIERS

router = APIRouter()


@router.get("/aggregates", response_model=PipelineAggregatesRead)
def api_get_aggregates(
    rep_id: str | None = Query(None, max_length=64),
    client_id: str | None = Query(None, max_length=64),
    predicted_tier: str | None = Query(None),
    include_snoozed: bool = Query(True, description="Count snoozed deals (on_hold bucket)."),
    db: Session = Depends(get_db),
) -> PipelineAggregatesRead:
    """Weighted pipeline rollup over active (and optionally snoozed) deals.

    Archived, accepted and closed_lost deals are never counted. Reads persisted
    scores; no deal is recalculated.
    """
    if predicted_tier is not None and predicted_tier not in PREDICTED_TIERS:
        raise HTTPException(
            status_code=422, detail=f"predicted_tier must be one of {list(PREDICTED_TIERS)}"
        )
    aggregates = get_aggregates(
        db,
        PipelineFilter(
            rep_id=rep_id,
            client_id=client_id,
            predicted_tier=predicted_tier,
            include_snoozed=include_snoozed,
        ),
    )
    return PipelineAggregatesRead.model_validate(aggregates)


@router.get("/config", response_model=ScoringConfigRead)
def api_get_scoring_config() -> ScoringConfigRead:
    """Active scoring config version and daily sweep time."""
    try:
        config = load_scoring_config()
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=f"Scoring config invalid: {exc}") from exc
    return ScoringConfigRead(
        version=config.version,
        checksum=config.checksum,
        daily_sweep_time=config.daily_sweep_time,
        available_versions=list_config_versions(),
    )
