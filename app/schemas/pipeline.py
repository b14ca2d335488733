"""Pipeline aggregate and scoring config schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class BucketRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    count: int
    raw_monthly: float
    weighted_monthly: float


class PipelineAggregatesRead(BaseModel):
    """Portfolio rollup of open deals (active + snoozed)."""

    model_config = ConfigDict(from_attributes=True)

    deal_count: int
    total_raw_monthly: float
    total_weighted_monthly: float
    total_raw_onetime: float
    total_weighted_onetime: float
    average_confidence: float
    weighted_percentage: float
    buckets: dict[str, BucketRead]
    last_updated: Optional[datetime] = None


class ScoringConfigRead(BaseModel):
    version: str
    checksum: str
    daily_sweep_time: str
    available_versions: list[str]
