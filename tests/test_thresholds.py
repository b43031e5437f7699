"""Tests for threshold defaults, validation and merging."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from polymarket_wallet_detector.thresholds import (
    ClusteringThresholds,
    ConfigManager,
    FundingPatternThresholds,
    VolumeBaselineThresholds,
    merge_thresholds,
)


class TestFundingPatternThresholds:
    def test_defaults(self) -> None:
        t = FundingPatternThresholds()
        assert t.flash_seconds == 300
        assert t.very_fast_seconds == 3600
        assert t.fast_seconds == 86_400
        assert t.moderate_seconds == 604_800
        assert t.suspicious_threshold == 60

    def test_default_ordering_invariants(self) -> None:
        t = FundingPatternThresholds()
        assert t.flash_seconds < t.very_fast_seconds < t.fast_seconds < t.moderate_seconds
        assert t.flash_timing_score > t.very_fast_timing_score > t.fast_timing_score
        assert t.sanctioned_source_score >= t.mixer_source_score
        assert t.suspicious_threshold > t.immediate_threshold > t.quick_threshold

    @pytest.mark.parametrize(
        "overrides",
        [
            {"flash_seconds": 4000},
            {"fast_timing_score": 30.0},
            {"mixer_source_score": 60.0},
            {"quick_threshold": 50.0},
        ],
    )
    def test_rejects_broken_ordering(self, overrides: dict[str, float]) -> None:
        with pytest.raises(ValidationError):
            merge_thresholds(FundingPatternThresholds(), overrides)

    def test_rejects_unknown_field(self) -> None:
        with pytest.raises(ValidationError):
            merge_thresholds(FundingPatternThresholds(), {"flash_secs": 10})


class TestMergeThresholds:
    def test_unspecified_fields_keep_defaults(self) -> None:
        merged = merge_thresholds(ClusteringThresholds(), {"min_cluster_size": 3})
        assert merged.min_cluster_size == 3
        assert merged.temporal_window_hours == 24.0
        assert merged.high_coordination_threshold == 60.0

    def test_none_returns_defaults(self) -> None:
        defaults = VolumeBaselineThresholds()
        assert merge_thresholds(defaults, None) is defaults

    def test_result_is_frozen(self) -> None:
        merged = merge_thresholds(ClusteringThresholds(), {"min_confidence": 40.0})
        with pytest.raises(ValidationError):
            merged.min_confidence = 10.0  # type: ignore[misc]

    def test_rejects_out_of_range(self) -> None:
        with pytest.raises(ValidationError):
            merge_thresholds(ClusteringThresholds(), {"trading_similarity_threshold": 1.5})


class TestConfigManager:
    def test_base_overrides(self) -> None:
        manager = ConfigManager(clustering={"min_cluster_size": 4})
        assert manager.clustering_thresholds().min_cluster_size == 4
        assert manager.funding_thresholds() == FundingPatternThresholds()

    def test_call_overrides_layer_over_base(self) -> None:
        manager = ConfigManager(funding={"flash_seconds": 120})
        t = manager.funding_thresholds({"suspicious_threshold": 70.0})
        assert t.flash_seconds == 120
        assert t.suspicious_threshold == 70.0
        # Base is untouched.
        assert manager.funding_thresholds().suspicious_threshold == 60.0

    def test_with_overrides_returns_new_manager(self) -> None:
        base = ConfigManager()
        derived = base.with_overrides(volume={"lookback_days": 7})
        assert derived.volume_thresholds().lookback_days == 7
        assert base.volume_thresholds().lookback_days == 30

    def test_to_dict(self) -> None:
        data = ConfigManager().to_dict()
        assert set(data) == {"volume", "funding", "clustering"}
        assert data["clustering"]["shared_funding_source_points"] == 30.0
