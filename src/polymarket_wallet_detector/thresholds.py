"""Detection thresholds and the configuration manager that merges them.

Every analyzer is configured with a fully-populated, validated threshold
set. Callers supply partial overrides (a plain mapping) which are merged
field-by-field over the defaults; fields that are not mentioned keep their
default value. Unknown field names and out-of-range values raise a
pydantic ``ValidationError``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

ThresholdsT = TypeVar("ThresholdsT", bound=BaseModel)


class VolumeBaselineThresholds(BaseModel):
    """Thresholds for market volume baselines."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    lookback_days: int = Field(default=30, ge=1, le=3650)
    std_dev_multiplier: float = Field(default=2.0, gt=0.0, le=10.0)
    very_new_max_days: float = Field(default=1.0, gt=0.0)
    new_max_days: float = Field(default=7.0, gt=0.0)
    young_max_days: float = Field(default=30.0, gt=0.0)
    established_max_days: float = Field(default=90.0, gt=0.0)
    summary_top_n: int = Field(default=10, ge=1, le=1000)

    @model_validator(mode="after")
    def _check_maturity_order(self) -> VolumeBaselineThresholds:
        if not (
            self.very_new_max_days
            < self.new_max_days
            < self.young_max_days
            < self.established_max_days
        ):
            raise ValueError("maturity cut points must be strictly increasing")
        return self


class FundingPatternThresholds(BaseModel):
    """Thresholds for funding-to-first-trade pattern analysis."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Timing buckets (seconds from funding to first trade)
    flash_seconds: int = Field(default=300, ge=1)
    very_fast_seconds: int = Field(default=3600, ge=1)
    fast_seconds: int = Field(default=86_400, ge=1)
    moderate_seconds: int = Field(default=604_800, ge=1)

    # Timing sub-scores
    flash_timing_score: float = Field(default=40.0, ge=0.0, le=100.0)
    very_fast_timing_score: float = Field(default=25.0, ge=0.0, le=100.0)
    fast_timing_score: float = Field(default=10.0, ge=0.0, le=100.0)

    # Source-risk sub-scores
    sanctioned_source_score: float = Field(default=50.0, ge=0.0, le=100.0)
    mixer_source_score: float = Field(default=30.0, ge=0.0, le=100.0)
    unknown_source_score: float = Field(default=15.0, ge=0.0, le=100.0)
    unknown_source_percentage: float = Field(default=80.0, ge=0.0, le=100.0)

    # Deposit-shape sub-scores
    single_large_deposit_score: float = Field(default=15.0, ge=0.0, le=100.0)
    multiple_quick_deposits_score: float = Field(default=20.0, ge=0.0, le=100.0)
    large_deposit_threshold_usd: float = Field(default=10_000.0, ge=0.0)
    quick_deposit_window_seconds: int = Field(default=600, ge=1)

    # Pattern classification
    quick_threshold: float = Field(default=20.0, ge=0.0, le=100.0)
    immediate_threshold: float = Field(default=40.0, ge=0.0, le=100.0)
    suspicious_threshold: float = Field(default=60.0, ge=0.0, le=100.0)

    @model_validator(mode="after")
    def _check_ordering(self) -> FundingPatternThresholds:
        if not (
            self.flash_seconds
            < self.very_fast_seconds
            < self.fast_seconds
            < self.moderate_seconds
        ):
            raise ValueError("timing buckets must satisfy flash < very_fast < fast < moderate")
        if not (
            self.flash_timing_score > self.very_fast_timing_score > self.fast_timing_score
        ):
            raise ValueError("timing scores must satisfy flash > very_fast > fast")
        if self.sanctioned_source_score < self.mixer_source_score:
            raise ValueError("sanctioned_source_score must be >= mixer_source_score")
        if not (self.suspicious_threshold > self.immediate_threshold > self.quick_threshold):
            raise ValueError("pattern thresholds must satisfy suspicious > immediate > quick")
        return self


class ClusteringThresholds(BaseModel):
    """Thresholds for fresh-wallet coordination clustering."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    min_cluster_size: int = Field(default=2, ge=2, le=1000)
    temporal_window_hours: float = Field(default=24.0, gt=0.0)
    min_confidence: float = Field(default=30.0, ge=0.0, le=100.0)
    funding_similarity_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    trading_similarity_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    min_shared_markets: int = Field(default=2, ge=1)

    shared_funding_source_points: float = Field(default=30.0, ge=0.0, le=100.0)
    suspicious_funding_source_points: float = Field(default=15.0, ge=0.0, le=100.0)
    temporal_proximity_points: float = Field(default=25.0, ge=0.0, le=100.0)
    trading_pattern_points: float = Field(default=25.0, ge=0.0, le=100.0)
    shared_market_points: float = Field(default=20.0, ge=0.0, le=100.0)

    medium_coordination_threshold: float = Field(default=30.0, ge=0.0, le=100.0)
    high_coordination_threshold: float = Field(default=60.0, ge=0.0, le=100.0)
    critical_coordination_threshold: float = Field(default=80.0, ge=0.0, le=100.0)

    @model_validator(mode="after")
    def _check_ordering(self) -> ClusteringThresholds:
        if not (
            self.medium_coordination_threshold
            < self.high_coordination_threshold
            <= self.critical_coordination_threshold
        ):
            raise ValueError("coordination bands must satisfy medium < high <= critical")
        return self


def merge_thresholds(
    defaults: ThresholdsT,
    overrides: Mapping[str, Any] | BaseModel | None = None,
) -> ThresholdsT:
    """Merge partial overrides over a default threshold set.

    The merge is shallow and explicit: every field mentioned in ``overrides``
    replaces the default, every other field is kept. The result is
    re-validated so ordering invariants hold for the merged set.
    """
    if overrides is None:
        return defaults
    if isinstance(overrides, BaseModel):
        if type(overrides) is type(defaults):
            return overrides  # type: ignore[return-value]
        overrides = overrides.model_dump(exclude_unset=True)

    data = defaults.model_dump()
    data.update(dict(overrides))
    return type(defaults).model_validate(data)


class ConfigManager:
    """Holds the base threshold sets for all analyzers.

    Analyzers keep a reference to the manager they were built with and ask
    it for merged thresholds, so one manager can be shared across analyzers
    without any process-wide state.
    """

    def __init__(
        self,
        *,
        volume: VolumeBaselineThresholds | Mapping[str, Any] | None = None,
        funding: FundingPatternThresholds | Mapping[str, Any] | None = None,
        clustering: ClusteringThresholds | Mapping[str, Any] | None = None,
    ) -> None:
        self._volume = merge_thresholds(VolumeBaselineThresholds(), volume)
        self._funding = merge_thresholds(FundingPatternThresholds(), funding)
        self._clustering = merge_thresholds(ClusteringThresholds(), clustering)

    def volume_thresholds(
        self, overrides: Mapping[str, Any] | None = None
    ) -> VolumeBaselineThresholds:
        return merge_thresholds(self._volume, overrides)

    def funding_thresholds(
        self, overrides: Mapping[str, Any] | None = None
    ) -> FundingPatternThresholds:
        return merge_thresholds(self._funding, overrides)

    def clustering_thresholds(
        self, overrides: Mapping[str, Any] | None = None
    ) -> ClusteringThresholds:
        return merge_thresholds(self._clustering, overrides)

    def with_overrides(
        self,
        *,
        volume: Mapping[str, Any] | None = None,
        funding: Mapping[str, Any] | None = None,
        clustering: Mapping[str, Any] | None = None,
    ) -> ConfigManager:
        """Return a new manager with overrides layered over this one."""
        return ConfigManager(
            volume=self.volume_thresholds(volume),
            funding=self.funding_thresholds(funding),
            clustering=self.clustering_thresholds(clustering),
        )

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {
            "volume": self._volume.model_dump(),
            "funding": self._funding.model_dump(),
            "clustering": self._clustering.model_dump(),
        }
