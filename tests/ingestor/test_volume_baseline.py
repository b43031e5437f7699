"""Tests for the volume baseline calculator."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from polymarket_wallet_detector.ingestor.models import (
    BaselineWindow,
    MarketInfo,
    MarketMaturity,
    VolumeSample,
    WindowVolumeStats,
)
from polymarket_wallet_detector.ingestor.volume_baseline import (
    VolumeBaselineCalculator,
    compute_window_stats,
    get_recommended_window,
)


def _daily_samples(now: datetime, volumes: list[float]) -> list[VolumeSample]:
    """One sample per day, newest first, starting one day before ``now``."""
    return [
        VolumeSample(timestamp=now - timedelta(days=i + 1), volume=v, trade_count=2)
        for i, v in enumerate(volumes)
    ]


def _calculator(now: datetime, **kwargs) -> VolumeBaselineCalculator:
    return VolumeBaselineCalculator(clock=lambda: now, **kwargs)


def _daily_stats(average: float, std_dev: float) -> WindowVolumeStats:
    return WindowVolumeStats(
        window=BaselineWindow.DAILY,
        average_volume=average,
        std_dev=std_dev,
        data_point_count=30,
    )


class TestComputeWindowStats:
    def test_population_statistics(self, base_time: datetime) -> None:
        stats = compute_window_stats(
            BaselineWindow.DAILY, _daily_samples(base_time, [10, 20, 30, 40])
        )

        assert stats.data_point_count == 4
        assert stats.average_volume == pytest.approx(25.0)
        assert stats.median_volume == pytest.approx(25.0)
        assert stats.std_dev == pytest.approx(125**0.5)
        assert stats.min_volume == 10.0
        assert stats.max_volume == 40.0
        assert stats.total_volume == 100.0
        assert stats.percentile_25 == pytest.approx(17.5)
        assert stats.percentile_75 == pytest.approx(32.5)
        assert stats.percentile_95 == pytest.approx(38.5)
        assert stats.average_trade_count == pytest.approx(2.0)
        assert stats.coefficient_of_variation == pytest.approx(125**0.5 / 25)

    def test_samples_in_same_bucket_are_summed(self, base_time: datetime) -> None:
        samples = [
            VolumeSample(timestamp=base_time, volume=5.0),
            VolumeSample(timestamp=base_time + timedelta(minutes=10), volume=7.0),
        ]
        stats = compute_window_stats(BaselineWindow.HOURLY, samples)

        assert stats.data_point_count == 1
        assert stats.total_volume == 12.0
        assert stats.std_dev == 0.0
        assert stats.average_trade_count is None

    def test_empty(self) -> None:
        stats = compute_window_stats(BaselineWindow.WEEKLY, [])
        assert stats.is_empty
        assert stats.average_volume == 0.0
        assert stats.coefficient_of_variation == 0.0


class TestIsVolumeAnomalous:
    """Z-score band tests against a 10000 +/- 2000 daily baseline."""

    def test_at_average(self) -> None:
        anomaly = VolumeBaselineCalculator().is_volume_anomalous(
            _daily_stats(10_000, 2_000), 10_000
        )
        assert anomaly.z_score == 0.0
        assert not anomaly.is_anomalous

    def test_high(self) -> None:
        anomaly = VolumeBaselineCalculator().is_volume_anomalous(
            _daily_stats(10_000, 2_000), 15_000
        )
        assert anomaly.z_score == pytest.approx(2.5)
        assert anomaly.is_anomalous
        assert anomaly.is_high
        assert not anomaly.is_low

    def test_low(self) -> None:
        anomaly = VolumeBaselineCalculator().is_volume_anomalous(
            _daily_stats(10_000, 2_000), 5_000
        )
        assert anomaly.z_score == pytest.approx(-2.5)
        assert anomaly.is_low
        assert not anomaly.is_high

    def test_thresholds_follow_multiplier(self) -> None:
        calc = VolumeBaselineCalculator()
        stats = _daily_stats(10_000, 2_000)

        default = calc.is_volume_anomalous(stats, 15_000)
        assert default.low_threshold == pytest.approx(6_000)
        assert default.high_threshold == pytest.approx(14_000)

        wide = calc.is_volume_anomalous(stats, 15_000, std_dev_multiplier=3.0)
        assert wide.low_threshold == pytest.approx(4_000)
        assert wide.high_threshold == pytest.approx(16_000)
        assert not wide.is_anomalous

    def test_boundary_is_anomalous(self) -> None:
        anomaly = VolumeBaselineCalculator().is_volume_anomalous(
            _daily_stats(10_000, 2_000), 14_000
        )
        assert anomaly.is_high

    def test_flat_history_never_flags(self) -> None:
        anomaly = VolumeBaselineCalculator().is_volume_anomalous(_daily_stats(500, 0), 50_000)
        assert anomaly.z_score == 0.0
        assert not anomaly.is_anomalous

    def test_empty_window_never_flags(self) -> None:
        anomaly = VolumeBaselineCalculator().is_volume_anomalous(
            WindowVolumeStats(window=BaselineWindow.DAILY), 1_000
        )
        assert not anomaly.is_anomalous
        assert anomaly.high_threshold == 0.0

    def test_threshold_override_changes_default_multiplier(self) -> None:
        calc = VolumeBaselineCalculator({"std_dev_multiplier": 3.0})
        assert not calc.is_volume_anomalous(_daily_stats(10_000, 2_000), 15_000).is_anomalous


class TestCalculateBaseline:
    def test_baseline_from_samples(self, base_time: datetime) -> None:
        calc = _calculator(base_time)
        baseline = calc.calculate_baseline("m1", _daily_samples(base_time, [10, 20, 30, 40]))

        assert baseline.daily.data_point_count == 4
        assert baseline.daily.average_volume == pytest.approx(25.0)
        # Age derived from the earliest sample
        assert baseline.market_age_days == pytest.approx(4.0)
        assert baseline.maturity == MarketMaturity.NEW
        assert baseline.range_end == base_time
        assert baseline.range_start == base_time - timedelta(days=30)
        assert baseline.expires_at == base_time + timedelta(minutes=15)
        assert set(baseline.window_stats) == set(BaselineWindow)
        assert not baseline.from_cache

    def test_samples_outside_lookback_ignored(self, base_time: datetime) -> None:
        samples = _daily_samples(base_time, [10, 20]) + [
            VolumeSample(timestamp=base_time - timedelta(days=45), volume=1_000_000),
            VolumeSample(timestamp=base_time + timedelta(days=1), volume=1_000_000),
        ]
        baseline = _calculator(base_time).calculate_baseline("m1", samples)
        assert baseline.daily.max_volume == 20.0

    def test_unrequested_windows_are_zero(self, base_time: datetime) -> None:
        baseline = _calculator(base_time).calculate_baseline(
            "m1", _daily_samples(base_time, [10, 20]), [BaselineWindow.DAILY]
        )
        assert not baseline.daily.is_empty
        assert baseline.stats_for(BaselineWindow.HOURLY).is_empty

    def test_market_metadata(self, base_time: datetime) -> None:
        market = MarketInfo(
            market_id="m1",
            question="Will it rain?",
            created_at=base_time - timedelta(days=120),
            current_volume=42_000.0,
            closed=True,
        )
        baseline = _calculator(base_time).calculate_baseline(
            "m1", _daily_samples(base_time, [10]), market=market
        )
        assert baseline.maturity == MarketMaturity.MATURE
        assert baseline.question == "Will it rain?"
        assert baseline.current_volume == 42_000.0
        assert baseline.is_active is False

    def test_no_samples(self, base_time: datetime) -> None:
        baseline = _calculator(base_time).calculate_baseline("m1", [])
        assert baseline.daily.is_empty
        assert baseline.market_age_days == 0.0
        assert baseline.maturity == MarketMaturity.VERY_NEW

    def test_cache_hit_and_invalidate(self, base_time: datetime) -> None:
        calc = _calculator(base_time)
        samples = _daily_samples(base_time, [10, 20, 30])

        first = calc.calculate_baseline("m1", samples)
        second = calc.calculate_baseline("m1", samples)
        bypassed = calc.calculate_baseline("m1", samples, bypass_cache=True)

        assert not first.from_cache
        assert second.from_cache
        assert second.daily == first.daily
        assert not bypassed.from_cache
        assert calc.cache_stats()["hits"] == 1

        assert calc.invalidate_cache_entry("m1") is True
        assert calc.invalidate_cache_entry("m1") is False
        assert not calc.calculate_baseline("m1", samples).from_cache

    def test_invalidate_leaves_markets_sharing_a_prefix(self, base_time: datetime) -> None:
        calc = _calculator(base_time)
        samples = _daily_samples(base_time, [10, 20])
        calc.calculate_baseline("a", samples)
        calc.calculate_baseline("a:b", samples)

        assert calc.invalidate_cache_entry("a") is True
        assert calc.cache_stats()["size"] == 1
        assert calc.calculate_baseline("a:b", samples).from_cache

    def test_window_sets_cached_separately(self, base_time: datetime) -> None:
        calc = _calculator(base_time)
        samples = _daily_samples(base_time, [10, 20])
        calc.calculate_baseline("m1", samples, [BaselineWindow.DAILY])

        other = calc.calculate_baseline("m1", samples, [BaselineWindow.HOURLY])
        assert not other.from_cache


class TestMaturityAndWindows:
    @pytest.mark.parametrize(
        ("age", "maturity"),
        [
            (0.5, MarketMaturity.VERY_NEW),
            (1.0, MarketMaturity.NEW),
            (6.9, MarketMaturity.NEW),
            (7.0, MarketMaturity.YOUNG),
            (45.0, MarketMaturity.ESTABLISHED),
            (90.0, MarketMaturity.MATURE),
        ],
    )
    def test_classify_maturity(self, age: float, maturity: MarketMaturity) -> None:
        assert VolumeBaselineCalculator().classify_maturity(age) == maturity

    def test_recommended_windows(self) -> None:
        assert get_recommended_window(MarketMaturity.VERY_NEW) == BaselineWindow.HOURLY
        assert get_recommended_window(MarketMaturity.NEW) == BaselineWindow.FOUR_HOUR
        assert get_recommended_window(MarketMaturity.YOUNG) == BaselineWindow.DAILY
        assert get_recommended_window(MarketMaturity.ESTABLISHED) == BaselineWindow.WEEKLY
        assert get_recommended_window(MarketMaturity.MATURE) == BaselineWindow.WEEKLY

    def test_check_volume_anomaly_uses_recommended_window(self, base_time: datetime) -> None:
        calc = _calculator(base_time)
        anomaly = calc.check_volume_anomaly(
            "m1", _daily_samples(base_time, [10, 20, 30, 40]), 1_000
        )
        assert anomaly.window == BaselineWindow.FOUR_HOUR
        assert anomaly.is_high


class TestBatchAndSummary:
    def test_batch(self, base_time: datetime) -> None:
        calc = _calculator(base_time)
        batch = calc.batch_calculate_baselines(
            {
                "m1": _daily_samples(base_time, [10, 20]),
                "m2": _daily_samples(base_time, [100, 300]),
            }
        )
        assert batch.success_count == 2
        assert batch.error_count == 0
        assert batch.total_processed == 2
        assert batch.results["m2"].daily.average_volume == pytest.approx(200.0)

    def test_summary(self, base_time: datetime) -> None:
        calc = _calculator(base_time)
        markets = {
            "m1": MarketInfo(market_id="m1", question="A", current_volume=500.0),
            "m2": MarketInfo(market_id="m2", question="B", current_volume=900.0),
            "m3": MarketInfo(market_id="m3", question="C", current_volume=500.0),
        }
        batch = calc.batch_calculate_baselines(
            {
                "m1": _daily_samples(base_time, [10, 10]),
                "m2": _daily_samples(base_time, [10, 50]),
                "m3": _daily_samples(base_time, [20, 40]),
            },
            markets=markets,
        )
        summary = calc.get_summary(list(batch.results.values()), top_n=2)

        assert summary.total_markets == 3
        assert summary.total_current_volume == 1_900.0
        assert summary.average_daily_volume == pytest.approx((10 + 30 + 30) / 3)
        assert summary.median_daily_volume == pytest.approx(30.0)
        assert [r.market_id for r in summary.top_markets_by_volume] == ["m2", "m1"]
        assert [r.market_id for r in summary.most_volatile_markets] == ["m2", "m3"]

    def test_empty_summary(self) -> None:
        summary = VolumeBaselineCalculator().get_summary([])
        assert summary.total_markets == 0
        assert summary.average_daily_volume is None
        assert summary.median_daily_volume is None
        assert summary.top_markets_by_volume == ()
        assert all(n == 0 for n in summary.by_maturity.values())
