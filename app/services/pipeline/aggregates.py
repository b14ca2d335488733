"""Pipeline aggregates: read-side rollup of persisted deal scores.

Never recomputes a score. Only active and snoozed deals count; archived and
terminal deals are excluded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models import Deal
from app.services.pipeline.constants import STATE_ACTIVE, STATE_SNOOZED
from app.services.pipeline.lifecycle import resolve_now
from app.services.pipeline.scoring_engine import as_utc

_CENTS = Decimal("0.01")

BUCKET_CLOSING_SOON = "closing_soon"
BUCKET_IN_PIPELINE = "in_pipeline"
BUCKET_AT_RISK = "at_risk"
BUCKET_ON_HOLD = "on_hold"
BUCKETS: tuple[str, ...] = (BUCKET_CLOSING_SOON, BUCKET_IN_PIPELINE, BUCKET_AT_RISK, BUCKET_ON_HOLD)


@dataclass(frozen=True)
class PipelineFilter:
    rep_id: str | None = None
    client_id: str | None = None
    predicted_tier: str | None = None
    include_snoozed: bool = True


@dataclass
class BucketTotals:
    count: int = 0
    raw_monthly: Decimal = Decimal("0")
    weighted_monthly: Decimal = Decimal("0")


@dataclass
class PipelineAggregates:
    deal_count: int = 0
    total_raw_monthly: Decimal = Decimal("0")
    total_weighted_monthly: Decimal = Decimal("0")
    total_raw_onetime: Decimal = Decimal("0")
    total_weighted_onetime: Decimal = Decimal("0")
    average_confidence: float = 0.0
    weighted_percentage: float = 0.0
    buckets: dict[str, BucketTotals] = field(
        default_factory=lambda: {name: BucketTotals() for name in BUCKETS}
    )
    last_updated: datetime | None = None


def weighted(amount: Decimal, score: int) -> Decimal:
    """amount x score / 100, to the cent."""
    return (Decimal(amount) * Decimal(score) / Decimal(100)).quantize(_CENTS, ROUND_HALF_UP)


def classify(deal: Deal, as_of: datetime) -> str:
    """Bucket for one open deal: snoozed -> on_hold, then by score and age."""
    settings = get_settings()
    if deal.state == STATE_SNOOZED:
        return BUCKET_ON_HOLD
    if deal.confidence_score < settings.at_risk_max_score:
        return BUCKET_AT_RISK
    created = as_utc(deal.created_at)
    old_enough = created is not None and as_of - created >= timedelta(
        days=settings.closing_soon_min_age_days
    )
    if deal.confidence_score >= settings.closing_soon_min_score and old_enough:
        return BUCKET_CLOSING_SOON
    return BUCKET_IN_PIPELINE


def get_aggregates(
    db: Session,
    pipeline_filter: PipelineFilter | None = None,
    as_of: datetime | None = None,
) -> PipelineAggregates:
    """Sum raw and weighted value over open deals matching the filter."""
    pipeline_filter = pipeline_filter or PipelineFilter()
    as_of = resolve_now(as_of)

    states = [STATE_ACTIVE, STATE_SNOOZED] if pipeline_filter.include_snoozed else [STATE_ACTIVE]
    stmt = select(Deal).where(Deal.state.in_(states))
    if pipeline_filter.rep_id:
        stmt = stmt.where(Deal.rep_id == pipeline_filter.rep_id)
    if pipeline_filter.client_id:
        stmt = stmt.where(Deal.client_id == pipeline_filter.client_id)
    if pipeline_filter.predicted_tier:
        stmt = stmt.where(Deal.predicted_tier == pipeline_filter.predicted_tier)

    result = PipelineAggregates()
    score_total = 0
    for deal in db.scalars(stmt.order_by(Deal.id)):
        monthly = Decimal(deal.predicted_monthly or 0)
        onetime = Decimal(deal.predicted_onetime or 0)
        weighted_monthly = weighted(monthly, deal.confidence_score)

        result.deal_count += 1
        score_total += deal.confidence_score
        result.total_raw_monthly += monthly
        result.total_weighted_monthly += weighted_monthly
        result.total_raw_onetime += onetime
        result.total_weighted_onetime += weighted(onetime, deal.confidence_score)

        bucket = result.buckets[classify(deal, as_of)]
        bucket.count += 1
        bucket.raw_monthly += monthly
        bucket.weighted_monthly += weighted_monthly

        scored = as_utc(deal.last_scored_at)
        if scored is not None and (result.last_updated is None or scored > result.last_updated):
            result.last_updated = scored

    if result.deal_count:
        result.average_confidence = round(score_total / result.deal_count, 1)
    if result.total_raw_monthly > 0:
        result.weighted_percentage = round(
            float(result.total_weighted_monthly / result.total_raw_monthly * 100), 1
        )
    return result
