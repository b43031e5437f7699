"""Detection engine: composition root for the three analyzers.

The engine is built once at startup from :class:`Settings` and passed to
callers; tests build their own instances. Analyzers are synchronous, so
the async helpers here fan independent per-entity work out to threads,
bounded by ``Settings.concurrency``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TypeVar

from polymarket_wallet_detector.cache import ResultCache
from polymarket_wallet_detector.config import Settings, get_settings
from polymarket_wallet_detector.detector.fresh_wallet_cluster import FreshWalletClusterAnalyzer
from polymarket_wallet_detector.detector.models import BatchClusteringResult, WalletClusteringResult
from polymarket_wallet_detector.ingestor.models import (
    BaselineWindow,
    BatchBaselineResult,
    MarketInfo,
    MarketVolumeBaseline,
    VolumeSample,
    WalletRecord,
)
from polymarket_wallet_detector.ingestor.volume_baseline import VolumeBaselineCalculator
from polymarket_wallet_detector.profiler.funding_pattern import FundingPatternAnalyzer
from polymarket_wallet_detector.profiler.models import BatchFundingPatternResult, FundingPatternResult
from polymarket_wallet_detector.thresholds import ConfigManager

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class EngineStats:
    """Counters for work done by the engine."""

    started_at: datetime | None = None
    baselines_calculated: int = 0
    wallets_profiled: int = 0
    cohorts_clustered: int = 0
    errors: int = 0
    last_error: str | None = None


@dataclass(frozen=True)
class CohortAnalysis:
    """Funding and clustering results for one wallet cohort."""

    funding: BatchFundingPatternResult
    clustering: BatchClusteringResult

    def high_coordination_wallets(self, threshold: float) -> list[WalletClusteringResult]:
        return [
            r for r in self.clustering.results.values() if r.coordination_score >= threshold
        ]


class DetectionEngine:
    """Wires the volume, funding and clustering analyzers together.

    Example:
        ```python
        engine = DetectionEngine.from_settings(get_settings())
        analysis = await engine.analyze_cohort(wallets)
        summary = engine.cluster_analyzer.get_summary(analysis.clustering)
        ```
    """

    def __init__(
        self,
        *,
        volume_calculator: VolumeBaselineCalculator,
        funding_analyzer: FundingPatternAnalyzer,
        cluster_analyzer: FreshWalletClusterAnalyzer,
        concurrency: int = 8,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.volume_calculator = volume_calculator
        self.funding_analyzer = funding_analyzer
        self.cluster_analyzer = cluster_analyzer
        self._concurrency = concurrency
        self._stats = EngineStats(started_at=datetime.now(UTC))

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        config_manager: ConfigManager | None = None,
    ) -> DetectionEngine:
        """Build an engine with caches sized from settings."""
        settings = settings or get_settings()
        manager = config_manager or ConfigManager()
        manager = manager.with_overrides(
            volume={"lookback_days": settings.volume_baseline.lookback_days},
            clustering=settings.clustering.threshold_overrides(),
        )

        engine = cls(
            volume_calculator=VolumeBaselineCalculator(
                config_manager=manager,
                cache=ResultCache(
                    ttl_seconds=settings.volume_baseline.cache_ttl_seconds,
                    max_size=settings.volume_baseline.cache_max_size,
                ),
            ),
            funding_analyzer=FundingPatternAnalyzer(
                config_manager=manager,
                cache=ResultCache(
                    ttl_seconds=settings.funding_pattern.cache_ttl_seconds,
                    max_size=settings.funding_pattern.cache_max_size,
                ),
            ),
            cluster_analyzer=FreshWalletClusterAnalyzer(
                config_manager=manager,
                cache=ResultCache(
                    ttl_seconds=settings.clustering.cache_ttl_seconds,
                    max_size=settings.clustering.cache_max_size,
                ),
            ),
            concurrency=settings.concurrency,
        )
        logger.info("Detection engine initialized (concurrency=%d)", settings.concurrency)
        return engine

    @property
    def stats(self) -> EngineStats:
        return self._stats

    @property
    def concurrency(self) -> int:
        return self._concurrency

    async def _bounded(self, jobs: Sequence[Callable[[], T]]) -> list[T | BaseException]:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def run(job: Callable[[], T]) -> T:
            async with semaphore:
                return await asyncio.to_thread(job)

        tasks: list[Awaitable[T]] = [run(job) for job in jobs]
        return await asyncio.gather(*tasks, return_exceptions=True)

    def _record_error(self, key: str, error: BaseException) -> str:
        message = f"{type(error).__name__}: {error}"
        self._stats.errors += 1
        self._stats.last_error = message
        logger.warning("Detection failed for %s: %s", key, message)
        return message

    async def calculate_baselines(
        self,
        inputs: Mapping[str, Iterable[VolumeSample]],
        windows: Sequence[BaselineWindow] | None = None,
        *,
        markets: Mapping[str, MarketInfo] | None = None,
    ) -> BatchBaselineResult:
        """Compute baselines for many markets concurrently."""
        started = time.perf_counter()
        market_ids = list(inputs)
        sample_lists = {m: list(inputs[m]) for m in market_ids}
        lookup = markets or {}

        def job_for(market_id: str) -> Callable[[], MarketVolumeBaseline]:
            return lambda: self.volume_calculator.calculate_baseline(
                market_id,
                sample_lists[market_id],
                windows,
                market=lookup.get(market_id),
            )

        outcomes = await self._bounded([job_for(m) for m in market_ids])
        results: dict[str, MarketVolumeBaseline] = {}
        errors: dict[str, str] = {}
        for market_id, outcome in zip(market_ids, outcomes, strict=True):
            if isinstance(outcome, Exception):
                errors[market_id] = self._record_error(market_id, outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results[market_id] = outcome

        self._stats.baselines_calculated += len(results)
        return BatchBaselineResult(
            results=results,
            errors=errors,
            processing_time_ms=(time.perf_counter() - started) * 1000,
        )

    async def analyze_funding_patterns(
        self,
        wallets: Sequence[WalletRecord],
    ) -> BatchFundingPatternResult:
        """Profile the funding pattern of many wallets concurrently."""
        started = time.perf_counter()

        def job_for(wallet: WalletRecord) -> Callable[[], FundingPatternResult]:
            return lambda: self.funding_analyzer.analyze_wallet(
                wallet.address,
                wallet.deposits,
                wallet.first_trade_at,
            )

        outcomes = await self._bounded([job_for(w) for w in wallets])
        results: dict[str, FundingPatternResult] = {}
        errors: dict[str, str] = {}
        for wallet, outcome in zip(wallets, outcomes, strict=True):
            if isinstance(outcome, Exception):
                errors[wallet.address] = self._record_error(wallet.address, outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results[outcome.address] = outcome

        self._stats.wallets_profiled += len(results)
        return BatchFundingPatternResult(
            results=results,
            errors=errors,
            processing_time_ms=(time.perf_counter() - started) * 1000,
        )

    async def analyze_cohort(self, wallets: Sequence[WalletRecord]) -> CohortAnalysis:
        """Profile funding per wallet, then cluster the whole cohort.

        Clustering needs cohort-wide visibility, so it runs once after all
        funding results are in.
        """
        funding = await self.analyze_funding_patterns(wallets)
        clustering = await asyncio.to_thread(
            self.cluster_analyzer.analyze_wallets,
            wallets,
            funding_results=funding.results,
        )
        self._stats.cohorts_clustered += 1

        high = sum(
            1
            for r in clustering.results.values()
            if self.cluster_analyzer.has_high_coordination(r)
        )
        logger.info(
            "Cohort analyzed: wallets=%d suspicious_funding=%d clusters=%d high_coordination=%d",
            len(wallets),
            funding.suspicious_count,
            len(clustering.clusters),
            high,
        )
        return CohortAnalysis(funding=funding, clustering=clustering)

    def clear_caches(self) -> None:
        self.volume_calculator.clear_cache()
        self.funding_analyzer.clear_cache()
        self.cluster_analyzer.clear_cache()
