"""Tests for the versioned scoring config loader and validator."""

from __future__ import annotations

import copy
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from app.scoring_config import (
    ConfigurationError,
    ScoringConfig,
    build_scoring_config,
    list_config_versions,
    load_scoring_config,
    validate_scoring_config,
)

_VERSIONS_DIR = Path(__file__).resolve().parent.parent / "app" / "scoring_config" / "versions"


def _raw(version: str = "v2") -> dict:
    with (_VERSIONS_DIR / f"{version}.yaml").open() as f:
        return yaml.safe_load(f)


class TestLoadScoringConfig:
    """Tests for load_scoring_config."""

    def test_loads_default_version(self) -> None:
        config = load_scoring_config()
        assert isinstance(config, ScoringConfig)
        assert config.version == "v2"

    @pytest.mark.parametrize("version", ["v1", "v2"])
    def test_every_shipped_version_is_valid(self, version: str) -> None:
        config = load_scoring_config(version)
        assert config.version == version
        assert sum(config.call_weights.values()) == pytest.approx(100.0)
        assert config.tier_multipliers["good"] < 1.0 < config.tier_multipliers["best"]

    def test_cached(self) -> None:
        assert load_scoring_config("v2") is load_scoring_config("v2")

    def test_checksum_stable(self) -> None:
        first = load_scoring_config("v2").checksum
        load_scoring_config.cache_clear()
        assert load_scoring_config("v2").checksum == first

    def test_versions_differ_in_decay(self) -> None:
        v1 = load_scoring_config("v1")
        v2 = load_scoring_config("v2")
        assert v1.checksum != v2.checksum
        assert v1.silence.daily_penalty > v2.silence.daily_penalty

    def test_missing_version_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_scoring_config("v999")

    @pytest.mark.parametrize("version", ["../v2", "v2/../../etc", "", "v 2"])
    def test_rejects_path_traversal(self, version: str) -> None:
        with pytest.raises(ConfigurationError):
            load_scoring_config(version)

    def test_malformed_yaml_raises(self, tmp_path: Path) -> None:
        (tmp_path / "broken.yaml").write_text("version: broken\ncall_weights: [unclosed\n")
        with patch("app.scoring_config.loader._VERSIONS_DIR", tmp_path):
            with pytest.raises(ConfigurationError, match="malformed"):
                load_scoring_config("broken")

    def test_version_key_must_match_file_name(self, tmp_path: Path) -> None:
        raw = _raw()
        (tmp_path / "v3.yaml").write_text(yaml.safe_dump(raw))
        with patch("app.scoring_config.loader._VERSIONS_DIR", tmp_path):
            with pytest.raises(ConfigurationError, match="declares version"):
                load_scoring_config("v3")

    def test_default_version_from_settings(self) -> None:
        with patch("app.config.get_settings") as mock_settings:
            mock_settings.return_value.scoring_config_version = "v1"
            assert load_scoring_config().version == "v1"

    def test_list_config_versions(self) -> None:
        versions = list_config_versions()
        assert "v1" in versions
        assert "v2" in versions
        assert versions == sorted(versions)


class TestValidateScoringConfig:
    """Tests for validate_scoring_config."""

    def test_shipped_config_passes(self) -> None:
        validate_scoring_config(_raw())

    def test_not_a_mapping(self) -> None:
        with pytest.raises(ConfigurationError, match="mapping"):
            validate_scoring_config(["v2"])

    def test_missing_version(self) -> None:
        raw = _raw()
        raw["version"] = "  "
        with pytest.raises(ConfigurationError, match="version"):
            validate_scoring_config(raw)

    def test_missing_factor_weight(self) -> None:
        raw = _raw()
        del raw["call_weights"]["plan_fit"]
        with pytest.raises(ConfigurationError, match="call_weights.plan_fit"):
            validate_scoring_config(raw)

    def test_missing_factor_value_mapping(self) -> None:
        raw = _raw()
        del raw["call_score_mappings"]["budget_clarity"]["no_budget"]
        with pytest.raises(ConfigurationError, match="no_budget"):
            validate_scoring_config(raw)

    def test_unknown_factor_value(self) -> None:
        raw = _raw()
        raw["call_score_mappings"]["competition"]["fierce"] = 0.1
        with pytest.raises(ConfigurationError, match="unknown values"):
            validate_scoring_config(raw)

    def test_mapping_above_one(self) -> None:
        raw = _raw()
        raw["call_score_mappings"]["engagement"]["high"] = 1.5
        with pytest.raises(ConfigurationError, match="<= 1.0"):
            validate_scoring_config(raw)

    def test_negative_penalty_rate(self) -> None:
        raw = _raw()
        raw["penalties"]["silence"]["daily_penalty"] = -1
        with pytest.raises(ConfigurationError, match="penalties.silence.daily_penalty"):
            validate_scoring_config(raw)

    def test_zero_tier_multiplier(self) -> None:
        raw = _raw()
        raw["tier_multipliers"]["good"] = 0
        with pytest.raises(ConfigurationError, match="> 0"):
            validate_scoring_config(raw)

    def test_boolean_is_not_a_number(self) -> None:
        raw = _raw()
        raw["quick_response"]["bonus"] = True
        with pytest.raises(ConfigurationError, match="must be a number"):
            validate_scoring_config(raw)

    @pytest.mark.parametrize(
        "section,key",
        [("silence", "escalation_threshold"), ("excessive_follow_up", "threshold")],
    )
    @pytest.mark.parametrize("value", [2.5, 3.0, "3", True])
    def test_follow_up_thresholds_must_be_integers(self, section: str, key: str, value) -> None:
        raw = _raw()
        raw["penalties"][section][key] = value
        with pytest.raises(ConfigurationError, match="must be an integer"):
            validate_scoring_config(raw)

    def test_negative_follow_up_threshold(self) -> None:
        raw = _raw()
        raw["penalties"]["excessive_follow_up"]["threshold"] = -1
        with pytest.raises(ConfigurationError, match=">= 0"):
            validate_scoring_config(raw)

    @pytest.mark.parametrize("value", ["6am", "24:00", "6:00", None])
    def test_invalid_sweep_time(self, value) -> None:
        raw = _raw()
        raw["schedule"]["daily_sweep_time"] = value
        with pytest.raises(ConfigurationError, match="daily_sweep_time"):
            validate_scoring_config(raw)

    def test_missing_follow_up_rule(self) -> None:
        raw = _raw()
        del raw["penalties"]["excessive_follow_up"]
        with pytest.raises(ConfigurationError, match="excessive_follow_up"):
            validate_scoring_config(raw)


class TestBuildScoringConfig:
    def test_builds_typed_rules(self) -> None:
        config = build_scoring_config(_raw())
        assert config.silence.escalation_threshold == 3
        assert config.silence.escalation_multiplier == pytest.approx(1.5)
        assert config.excessive_follow_up.threshold == 3
        assert config.email_not_opened.grace_period_hours == 48.0
        assert config.milestone_bonus_cap == 8.0
        assert config.daily_sweep_time == "06:00"

    def test_checksum_tracks_content(self) -> None:
        raw = _raw()
        changed = copy.deepcopy(raw)
        changed["quick_response"]["bonus"] = 6
        assert build_scoring_config(raw).checksum != build_scoring_config(changed).checksum

    def test_config_is_immutable(self) -> None:
        config = build_scoring_config(_raw())
        with pytest.raises(AttributeError):
            config.version = "v9"  # type: ignore[misc]
