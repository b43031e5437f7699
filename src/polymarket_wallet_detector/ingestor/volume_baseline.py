"""Historical volume baselines per market.

Samples supplied by ingestion are bucketed per aggregation window
(epoch seconds floor-divided by the window length) and summarized with
population statistics. Baselines are cached per market and window set.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Any

import numpy as np

from polymarket_wallet_detector.cache import ResultCache
from polymarket_wallet_detector.ingestor.models import (
    BaselineSummary,
    BaselineWindow,
    BatchBaselineResult,
    MarketInfo,
    MarketMaturity,
    MarketVolumeBaseline,
    MarketVolumeRank,
    VolumeAnomaly,
    VolumeSample,
    WindowVolumeStats,
)
from polymarket_wallet_detector.thresholds import ConfigManager, VolumeBaselineThresholds

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 15 * 60
DEFAULT_CACHE_MAX_SIZE = 1000

ALL_WINDOWS: tuple[BaselineWindow, ...] = tuple(BaselineWindow)

_RECOMMENDED_WINDOWS: dict[MarketMaturity, BaselineWindow] = {
    MarketMaturity.VERY_NEW: BaselineWindow.HOURLY,
    MarketMaturity.NEW: BaselineWindow.FOUR_HOUR,
    MarketMaturity.YOUNG: BaselineWindow.DAILY,
    MarketMaturity.ESTABLISHED: BaselineWindow.WEEKLY,
    MarketMaturity.MATURE: BaselineWindow.WEEKLY,
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


def get_recommended_window(maturity: MarketMaturity) -> BaselineWindow:
    """Return the aggregation window best suited to a market's age."""
    return _RECOMMENDED_WINDOWS[maturity]


def compute_window_stats(
    window: BaselineWindow,
    samples: Iterable[VolumeSample],
) -> WindowVolumeStats:
    """Aggregate samples into window buckets and summarize them.

    Returns zero-valued stats when there are no samples.
    """
    bucket_seconds = int(window.duration.total_seconds())
    volumes: dict[int, float] = {}
    counts: dict[int, int] = {}
    for sample in samples:
        bucket = int(sample.timestamp.timestamp()) // bucket_seconds
        volumes[bucket] = volumes.get(bucket, 0.0) + sample.volume
        if sample.trade_count is not None:
            counts[bucket] = counts.get(bucket, 0) + sample.trade_count

    if not volumes:
        return WindowVolumeStats(window=window)

    values = np.array([volumes[b] for b in sorted(volumes)], dtype=float)
    average = float(values.mean())
    std_dev = float(values.std())
    p25, median, p75, p95 = (float(v) for v in np.percentile(values, [25, 50, 75, 95]))

    return WindowVolumeStats(
        window=window,
        average_volume=average,
        median_volume=median,
        std_dev=std_dev,
        min_volume=float(values.min()),
        max_volume=float(values.max()),
        total_volume=float(values.sum()),
        data_point_count=int(values.size),
        percentile_25=p25,
        percentile_75=p75,
        percentile_95=p95,
        average_trade_count=float(np.mean(list(counts.values()))) if counts else None,
        coefficient_of_variation=std_dev / average if average > 0 else 0.0,
    )


def check_anomaly(
    stats: WindowVolumeStats,
    observed_volume: float,
    std_dev_multiplier: float,
) -> VolumeAnomaly:
    """Test ``observed_volume`` against window stats using a z-score band."""
    if stats.is_empty:
        return VolumeAnomaly(
            window=stats.window,
            observed_volume=observed_volume,
            is_anomalous=False,
            is_high=False,
            is_low=False,
            z_score=0.0,
            low_threshold=0.0,
            high_threshold=0.0,
        )

    avg = stats.average_volume
    sd = stats.std_dev
    z_score = (observed_volume - avg) / sd if sd > 0 else 0.0
    is_high = z_score >= std_dev_multiplier
    is_low = z_score <= -std_dev_multiplier
    return VolumeAnomaly(
        window=stats.window,
        observed_volume=observed_volume,
        is_anomalous=is_high or is_low,
        is_high=is_high,
        is_low=is_low,
        z_score=z_score,
        low_threshold=avg - std_dev_multiplier * sd,
        high_threshold=avg + std_dev_multiplier * sd,
    )


class VolumeBaselineCalculator:
    """Computes and caches per-market volume baselines.

    Example:
        ```python
        calculator = VolumeBaselineCalculator()
        baseline = calculator.calculate_baseline("0xmarket", samples)
        anomaly = calculator.is_volume_anomalous(baseline, observed_volume=42_000)
        ```
    """

    def __init__(
        self,
        thresholds: VolumeBaselineThresholds | Mapping[str, Any] | None = None,
        *,
        config_manager: ConfigManager | None = None,
        cache: ResultCache[MarketVolumeBaseline] | None = None,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        cache_max_size: int = DEFAULT_CACHE_MAX_SIZE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        manager = config_manager or ConfigManager()
        if thresholds is not None:
            manager = manager.with_overrides(
                volume=thresholds.model_dump()
                if isinstance(thresholds, VolumeBaselineThresholds)
                else thresholds
            )
        self._config_manager = manager
        self._thresholds = manager.volume_thresholds()
        if cache is None:
            cache = ResultCache(ttl_seconds=cache_ttl_seconds, max_size=cache_max_size)
        self._cache: ResultCache[MarketVolumeBaseline] = cache
        self._clock = clock

    @property
    def thresholds(self) -> VolumeBaselineThresholds:
        return self._thresholds

    def get_config_manager(self) -> ConfigManager:
        return self._config_manager

    @staticmethod
    def _market_prefix(market_id: str) -> str:
        # length-prefixed so ids containing ":" cannot shadow each other
        return f"baseline:{len(market_id)}:{market_id}:"

    def _cache_key(self, market_id: str, windows: Sequence[BaselineWindow]) -> str:
        window_part = ",".join(sorted(w.value for w in windows))
        return f"{self._market_prefix(market_id)}{self._thresholds.lookback_days}:{window_part}"

    def _get_cached(self, key: str) -> MarketVolumeBaseline | None:
        try:
            return self._cache.get(key)
        except Exception as e:
            logger.warning("Failed to read cached baseline %s: %s", key, e)
            return None

    def _set_cached(self, key: str, baseline: MarketVolumeBaseline) -> None:
        try:
            self._cache.set(key, baseline)
        except Exception as e:
            logger.warning("Failed to cache baseline %s: %s", key, e)

    def classify_maturity(self, age_days: float) -> MarketMaturity:
        t = self._thresholds
        if age_days < t.very_new_max_days:
            return MarketMaturity.VERY_NEW
        if age_days < t.new_max_days:
            return MarketMaturity.NEW
        if age_days < t.young_max_days:
            return MarketMaturity.YOUNG
        if age_days < t.established_max_days:
            return MarketMaturity.ESTABLISHED
        return MarketMaturity.MATURE

    def calculate_baseline(
        self,
        market_id: str,
        samples: Iterable[VolumeSample],
        windows: Sequence[BaselineWindow] | None = None,
        *,
        market: MarketInfo | None = None,
        bypass_cache: bool = False,
    ) -> MarketVolumeBaseline:
        """Compute volume statistics for each requested window.

        Windows that were not requested carry zero-valued stats. Samples
        older than the lookback window are ignored.

        Args:
            market_id: Market identifier used for the cache key.
            samples: Historical volume samples (any order).
            windows: Windows to compute (default: all five).
            market: Optional market metadata (question, creation time, volume).
            bypass_cache: Skip the cache read (the result is still cached).
        """
        requested = tuple(dict.fromkeys(windows)) if windows else ALL_WINDOWS
        key = self._cache_key(market_id, requested)

        if not bypass_cache:
            cached = self._get_cached(key)
            if cached is not None:
                return replace(cached, from_cache=True)

        now = self._clock()
        range_start = now - timedelta(days=self._thresholds.lookback_days)
        in_range = [s for s in samples if range_start <= s.timestamp <= now]

        created_at = market.created_at if market is not None else None
        if created_at is None and in_range:
            created_at = min(s.timestamp for s in in_range)
        age_days = max(0.0, (now - created_at).total_seconds() / 86_400) if created_at else 0.0

        window_stats = {
            w: compute_window_stats(w, in_range) if w in requested else WindowVolumeStats(window=w)
            for w in ALL_WINDOWS
        }

        baseline = MarketVolumeBaseline(
            market_id=market_id,
            question=market.question if market is not None else "",
            category=market.category if market is not None else None,
            maturity=self.classify_maturity(age_days),
            market_age_days=age_days,
            is_active=market.active and not market.closed if market is not None else True,
            current_volume=market.current_volume if market is not None else 0.0,
            current_liquidity=market.current_liquidity if market is not None else None,
            window_stats=window_stats,
            range_start=range_start,
            range_end=now,
            calculated_at=now,
            expires_at=now + timedelta(seconds=self._cache.ttl_seconds),
        )
        self._set_cached(key, baseline)

        logger.debug(
            "Calculated baseline for %s: %d samples, maturity=%s",
            market_id,
            len(in_range),
            baseline.maturity.value,
        )
        return baseline

    def batch_calculate_baselines(
        self,
        inputs: Mapping[str, Iterable[VolumeSample]],
        windows: Sequence[BaselineWindow] | None = None,
        *,
        markets: Mapping[str, MarketInfo] | None = None,
        bypass_cache: bool = False,
    ) -> BatchBaselineResult:
        """Compute baselines for many markets, collecting per-market errors."""
        started = time.perf_counter()
        results: dict[str, MarketVolumeBaseline] = {}
        errors: dict[str, str] = {}
        for market_id, samples in inputs.items():
            try:
                results[market_id] = self.calculate_baseline(
                    market_id,
                    samples,
                    windows,
                    market=(markets or {}).get(market_id),
                    bypass_cache=bypass_cache,
                )
            except (ValueError, TypeError) as e:
                logger.warning("Failed to calculate baseline for %s: %s", market_id, e)
                errors[market_id] = str(e)

        return BatchBaselineResult(
            results=results,
            errors=errors,
            processing_time_ms=(time.perf_counter() - started) * 1000,
        )

    def is_volume_anomalous(
        self,
        baseline: MarketVolumeBaseline | WindowVolumeStats,
        observed_volume: float,
        window: BaselineWindow = BaselineWindow.DAILY,
        std_dev_multiplier: float | None = None,
    ) -> VolumeAnomaly:
        """Check an observed volume against a baseline window.

        A zero standard deviation yields a zero z-score, so a flat history
        never flags an anomaly.
        """
        multiplier = (
            std_dev_multiplier
            if std_dev_multiplier is not None
            else self._thresholds.std_dev_multiplier
        )
        if isinstance(baseline, WindowVolumeStats):
            stats = baseline
        else:
            stats = baseline.stats_for(window)
        return check_anomaly(stats, float(observed_volume), multiplier)

    def check_volume_anomaly(
        self,
        market_id: str,
        samples: Iterable[VolumeSample],
        observed_volume: float,
        *,
        market: MarketInfo | None = None,
        std_dev_multiplier: float | None = None,
    ) -> VolumeAnomaly:
        """Baseline a market and test a volume against its recommended window."""
        baseline = self.calculate_baseline(market_id, samples, market=market)
        window = get_recommended_window(baseline.maturity)
        return self.is_volume_anomalous(baseline, observed_volume, window, std_dev_multiplier)

    def get_recommended_window(self, maturity: MarketMaturity) -> BaselineWindow:
        return get_recommended_window(maturity)

    def get_summary(
        self,
        baselines: Sequence[MarketVolumeBaseline],
        top_n: int | None = None,
    ) -> BaselineSummary:
        """Aggregate statistics over baselines. Empty input gives zero totals."""
        n = top_n if top_n is not None else self._thresholds.summary_top_n
        by_maturity = {m: 0 for m in MarketMaturity}
        for b in baselines:
            by_maturity[b.maturity] += 1

        if not baselines:
            return BaselineSummary(
                total_markets=0,
                by_maturity=by_maturity,
                average_daily_volume=None,
                median_daily_volume=None,
                total_current_volume=0.0,
                top_markets_by_volume=(),
                most_volatile_markets=(),
            )

        daily = np.array([b.daily.average_volume for b in baselines], dtype=float)
        # sorted() is stable, ties keep input order
        by_volume = sorted(baselines, key=lambda b: b.current_volume, reverse=True)
        volatile = sorted(
            (b for b in baselines if not b.daily.is_empty),
            key=lambda b: b.daily.coefficient_of_variation,
            reverse=True,
        )

        return BaselineSummary(
            total_markets=len(baselines),
            by_maturity=by_maturity,
            average_daily_volume=float(daily.mean()),
            median_daily_volume=float(np.median(daily)),
            total_current_volume=float(sum(b.current_volume for b in baselines)),
            top_markets_by_volume=tuple(
                MarketVolumeRank(b.market_id, b.question, b.current_volume)
                for b in by_volume[:n]
            ),
            most_volatile_markets=tuple(
                MarketVolumeRank(b.market_id, b.question, b.daily.coefficient_of_variation)
                for b in volatile[:n]
            ),
        )

    def invalidate_cache_entry(self, market_id: str) -> bool:
        """Drop every cached window-set variant for a market."""
        return self._cache.delete_prefix(self._market_prefix(market_id)) > 0

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> dict[str, float | int]:
        return self._cache.stats().to_dict()
