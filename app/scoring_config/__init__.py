"""Versioned scoring configuration (factor tables, multipliers, bonuses, penalty curves)."""

from app.scoring_config.loader import (
    FollowUpRule,
    PenaltyRule,
    ScoringConfig,
    SilenceRule,
    build_scoring_config,
    list_config_versions,
    load_scoring_config,
)
from app.scoring_config.validator import ConfigurationError, validate_scoring_config

__all__ = [
    "ConfigurationError",
    "FollowUpRule",
    "PenaltyRule",
    "ScoringConfig",
    "SilenceRule",
    "build_scoring_config",
    "list_config_versions",
    "load_scoring_config",
    "validate_scoring_config",
]
