"""Scoring configuration schema validation.

Validates that a versions/<version>.yaml file has every table the calculator
reads, with numeric values in range:
- call_weights: one non-negative number per call factor
- call_score_mappings: a 0..1 multiplier for every allowed factor value
- tier_multipliers: one positive number per predicted tier
- milestone_bonuses, quick_response, multi_invite_bonus: non-negative points
- penalties: grace/rate/cap per penalty, escalation for silence, threshold for follow-ups
- schedule.daily_sweep_time: HH:MM (24h)
"""

from __future__ import annotations

import re
from typing import Any

from app.services.pipeline.constants import (
    CALL_FACTOR_VALUES,
    MILESTONES,
    PREDICTED_TIERS,
)

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

TIME_PENALTIES: tuple[str, ...] = ("email_not_opened", "proposal_not_viewed", "silence")


class ConfigurationError(ValueError):
    """Raised when scoring configuration is missing or malformed.

    Subclasses ValueError so callers can catch it via ``except ValueError``
    alongside ``FileNotFoundError`` without needing to import this class.
    """


def _require_dict(parent: dict[str, Any], key: str, path: str) -> dict[str, Any]:
    value = parent.get(key)
    if not isinstance(value, dict):
        raise ConfigurationError(f"scoring config '{path}{key}' must be a mapping")
    return value


def _require_number(
    parent: dict[str, Any],
    key: str,
    path: str,
    minimum: float = 0.0,
    maximum: float | None = None,
    strictly_positive: bool = False,
) -> float:
    value = parent.get(key)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ConfigurationError(
            f"scoring config '{path}{key}' must be a number, got {value!r}"
        )
    if strictly_positive and value <= 0:
        raise ConfigurationError(f"scoring config '{path}{key}' must be > 0, got {value}")
    if value < minimum:
        raise ConfigurationError(
            f"scoring config '{path}{key}' must be >= {minimum}, got {value}"
        )
    if maximum is not None and value > maximum:
        raise ConfigurationError(
            f"scoring config '{path}{key}' must be <= {maximum}, got {value}"
        )
    return float(value)


def _require_int(parent: dict[str, Any], key: str, path: str, minimum: int = 0) -> int:
    value = parent.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(
            f"scoring config '{path}{key}' must be an integer, got {value!r}"
        )
    if value < minimum:
        raise ConfigurationError(
            f"scoring config '{path}{key}' must be >= {minimum}, got {value}"
        )
    return value


def validate_scoring_config(config: dict[str, Any]) -> None:
    """Validate scoring config structure.

    Args:
        config: Loaded versions/<version>.yaml content.

    Raises:
        ConfigurationError: When a table is missing, incomplete, or out of range.
    """
    if not isinstance(config, dict):
        raise ConfigurationError("scoring config must be a mapping")

    version = config.get("version")
    if not isinstance(version, str) or not version.strip():
        raise ConfigurationError("scoring config must have a non-empty 'version'")

    weights = _require_dict(config, "call_weights", "")
    for factor in CALL_FACTOR_VALUES:
        _require_number(weights, factor, "call_weights.")

    mappings = _require_dict(config, "call_score_mappings", "")
    for factor, values in CALL_FACTOR_VALUES.items():
        table = _require_dict(mappings, factor, "call_score_mappings.")
        for value in values:
            _require_number(table, value, f"call_score_mappings.{factor}.", maximum=1.0)
        unknown = set(table) - set(values)
        if unknown:
            raise ConfigurationError(
                f"scoring config 'call_score_mappings.{factor}' has unknown values: "
                f"{sorted(unknown)}"
            )

    _require_number(config, "default_base_score", "", maximum=100.0)

    tiers = _require_dict(config, "tier_multipliers", "")
    for tier in PREDICTED_TIERS:
        _require_number(tiers, tier, "tier_multipliers.", strictly_positive=True)

    milestone = _require_dict(config, "milestone_bonuses", "")
    points = _require_dict(milestone, "points", "milestone_bonuses.")
    for key in MILESTONES:
        _require_number(points, key, "milestone_bonuses.points.")
    _require_number(milestone, "max_total", "milestone_bonuses.")

    quick = _require_dict(config, "quick_response", "")
    _require_number(quick, "threshold_hours", "quick_response.")
    _require_number(quick, "bonus", "quick_response.")

    multi = _require_dict(config, "multi_invite_bonus", "")
    _require_number(multi, "all_opened_bonus", "multi_invite_bonus.")
    _require_number(multi, "all_viewed_bonus", "multi_invite_bonus.")

    penalties = _require_dict(config, "penalties", "")
    for name in TIME_PENALTIES:
        rule = _require_dict(penalties, name, "penalties.")
        path = f"penalties.{name}."
        _require_number(rule, "grace_period_hours", path)
        _require_number(rule, "daily_penalty", path)
        _require_number(rule, "max_penalty", path, maximum=100.0)

    silence = penalties["silence"]
    _require_int(silence, "escalation_threshold", "penalties.silence.")
    _require_number(
        silence, "escalation_multiplier", "penalties.silence.", strictly_positive=True
    )

    follow_up = _require_dict(penalties, "excessive_follow_up", "penalties.")
    _require_int(follow_up, "threshold", "penalties.excessive_follow_up.")
    _require_number(follow_up, "penalty_per_followup", "penalties.excessive_follow_up.")
    _require_number(follow_up, "max_penalty", "penalties.excessive_follow_up.", maximum=100.0)

    schedule = _require_dict(config, "schedule", "")
    sweep_time = schedule.get("daily_sweep_time")
    if not isinstance(sweep_time, str) or not _TIME_PATTERN.match(sweep_time):
        raise ConfigurationError(
            f"scoring config 'schedule.daily_sweep_time' must be HH:MM (24h), got {sweep_time!r}"
        )
