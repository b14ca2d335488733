"""Scoring configuration loader.

Each version of the factor tables, tier multipliers, bonuses and penalty
curves is a YAML file under versions/. Files are never edited in place once
deployed: tuning the formula means adding a new version and pointing
SCORING_CONFIG_VERSION at it, so breakdowns stored in score history remain
reproducible under the version recorded on them.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from app.scoring_config.validator import ConfigurationError, validate_scoring_config

logger = logging.getLogger(__name__)

_VERSIONS_DIR = Path(__file__).parent / "versions"

# Version identifiers: alphanumeric, underscore, hyphen, dot. Prevents path traversal.
_VERSION_PATTERN = re.compile(r"^[a-zA-Z0-9_.-]+$")


@dataclass(frozen=True)
class PenaltyRule:
    """Time-based penalty: daily_penalty per day past the grace period, capped."""

    grace_period_hours: float
    daily_penalty: float
    max_penalty: float


@dataclass(frozen=True)
class SilenceRule(PenaltyRule):
    """Silence penalty; daily rate is multiplied once unanswered follow-ups reach threshold."""

    escalation_threshold: int
    escalation_multiplier: float


@dataclass(frozen=True)
class FollowUpRule:
    """Flat deduction per unanswered outbound message beyond threshold, capped."""

    threshold: int
    penalty_per_followup: float
    max_penalty: float


@dataclass(frozen=True)
class ScoringConfig:
    """Validated, immutable scoring configuration for one version."""

    version: str
    checksum: str
    call_weights: dict[str, float]
    call_score_mappings: dict[str, dict[str, float]]
    default_base_score: float
    tier_multipliers: dict[str, float]
    milestone_points: dict[str, float]
    milestone_bonus_cap: float
    quick_response_threshold_hours: float
    quick_response_bonus: float
    all_opened_bonus: float
    all_viewed_bonus: float
    email_not_opened: PenaltyRule
    proposal_not_viewed: PenaltyRule
    silence: SilenceRule
    excessive_follow_up: FollowUpRule
    daily_sweep_time: str


def compute_config_checksum(raw: dict[str, Any]) -> str:
    """Return SHA-256 of the normalized config for drift detection."""
    canonical = json.dumps(raw, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _penalty(rule: dict[str, Any]) -> PenaltyRule:
    return PenaltyRule(
        grace_period_hours=float(rule["grace_period_hours"]),
        daily_penalty=float(rule["daily_penalty"]),
        max_penalty=float(rule["max_penalty"]),
    )


def build_scoring_config(raw: dict[str, Any]) -> ScoringConfig:
    """Validate a raw config mapping and build a ScoringConfig.

    Raises:
        ConfigurationError: If the mapping is structurally invalid.
    """
    validate_scoring_config(raw)
    penalties = raw["penalties"]
    silence = penalties["silence"]
    follow_up = penalties["excessive_follow_up"]
    milestone = raw["milestone_bonuses"]
    return ScoringConfig(
        version=raw["version"].strip(),
        checksum=compute_config_checksum(raw),
        call_weights={k: float(v) for k, v in raw["call_weights"].items()},
        call_score_mappings={
            factor: {value: float(m) for value, m in table.items()}
            for factor, table in raw["call_score_mappings"].items()
        },
        default_base_score=float(raw["default_base_score"]),
        tier_multipliers={k: float(v) for k, v in raw["tier_multipliers"].items()},
        milestone_points={k: float(v) for k, v in milestone["points"].items()},
        milestone_bonus_cap=float(milestone["max_total"]),
        quick_response_threshold_hours=float(raw["quick_response"]["threshold_hours"]),
        quick_response_bonus=float(raw["quick_response"]["bonus"]),
        all_opened_bonus=float(raw["multi_invite_bonus"]["all_opened_bonus"]),
        all_viewed_bonus=float(raw["multi_invite_bonus"]["all_viewed_bonus"]),
        email_not_opened=_penalty(penalties["email_not_opened"]),
        proposal_not_viewed=_penalty(penalties["proposal_not_viewed"]),
        silence=SilenceRule(
            grace_period_hours=float(silence["grace_period_hours"]),
            daily_penalty=float(silence["daily_penalty"]),
            max_penalty=float(silence["max_penalty"]),
            escalation_threshold=silence["escalation_threshold"],
            escalation_multiplier=float(silence["escalation_multiplier"]),
        ),
        excessive_follow_up=FollowUpRule(
            threshold=follow_up["threshold"],
            penalty_per_followup=float(follow_up["penalty_per_followup"]),
            max_penalty=float(follow_up["max_penalty"]),
        ),
        daily_sweep_time=raw["schedule"]["daily_sweep_time"],
    )


def _version_path(version: str) -> Path:
    if not version or not isinstance(version, str) or not _VERSION_PATTERN.match(version):
        raise ConfigurationError(f"scoring config version must match [a-zA-Z0-9_.-]+ (got {version!r})")
    if ".." in version:
        raise ConfigurationError("scoring config version must not contain '..'")
    return _VERSIONS_DIR / f"{version}.yaml"


@lru_cache(maxsize=8)
def load_scoring_config(version: str | None = None) -> ScoringConfig:
    """Load, validate and return the scoring config for a version.

    Args:
        version: File stem under versions/. Defaults to SCORING_CONFIG_VERSION.

    Raises:
        ConfigurationError: If the file is missing, malformed, or fails validation,
            or if its 'version' key does not match the file name.
    """
    if version is None:
        from app.config import get_settings

        version = get_settings().scoring_config_version

    path = _version_path(version)
    if not path.exists():
        raise ConfigurationError(f"scoring config version {version!r} not found at {path}")
    try:
        with path.open() as f:
            raw: dict[str, Any] = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"scoring config {version!r} YAML is malformed: {exc}") from exc

    config = build_scoring_config(raw)
    if config.version != version:
        raise ConfigurationError(
            f"scoring config file {path.name} declares version {config.version!r}"
        )
    logger.info("Loaded scoring config version=%s checksum=%s", config.version, config.checksum[:12])
    return config


def list_config_versions() -> list[str]:
    """Return the available config versions (file stems), sorted."""
    return sorted(p.stem for p in _VERSIONS_DIR.glob("*.yaml"))
