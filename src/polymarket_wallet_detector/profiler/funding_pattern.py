"""Funding-to-first-trade pattern analysis.

Fresh wallets that are funded and trade almost immediately, especially
from sanctioned or mixer sources, are a classic insider signature. The
analyzer scores each wallet from independent, bounded sub-scores:

- timing: how soon after the earliest pre-trading deposit the wallet traded
- source risk: sanctioned and mixer sources (additive, not exclusive)
- deposit shape: one large deposit, or several deposits in quick succession
- unknown sources: most of the inflow from unidentified addresses
"""

from __future__ import annotations

import logging
import statistics
import time
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any

from polymarket_wallet_detector.addresses import (
    combine_amounts,
    format_amount,
    is_valid_address,
    normalize_address,
)
from polymarket_wallet_detector.cache import ResultCache
from polymarket_wallet_detector.ingestor.models import FundingDeposit, WalletRecord
from polymarket_wallet_detector.profiler.models import (
    BatchFundingPatternResult,
    FundingPatternResult,
    FundingPatternSummary,
    FundingPatternType,
    FundingRiskSummary,
    FundingTimingCategory,
)
from polymarket_wallet_detector.severity import AlertSeverity
from polymarket_wallet_detector.thresholds import ConfigManager, FundingPatternThresholds

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 5 * 60
DEFAULT_CACHE_MAX_SIZE = 1000

_RISK_ORDER = {"none": 0, "low": 1, "medium": 2, "high": 3, "critical": 4}


def classify_timing(
    seconds: float | None,
    thresholds: FundingPatternThresholds,
) -> FundingTimingCategory:
    """Bucket funding-to-trade seconds. Boundaries are exclusive upper bounds."""
    if seconds is None:
        return FundingTimingCategory.NO_TRADES
    if seconds < thresholds.flash_seconds:
        return FundingTimingCategory.FLASH
    if seconds < thresholds.very_fast_seconds:
        return FundingTimingCategory.VERY_FAST
    if seconds < thresholds.fast_seconds:
        return FundingTimingCategory.FAST
    if seconds < thresholds.moderate_seconds:
        return FundingTimingCategory.MODERATE
    return FundingTimingCategory.SLOW


def timing_score(
    category: FundingTimingCategory,
    thresholds: FundingPatternThresholds,
) -> float:
    if category is FundingTimingCategory.FLASH:
        return thresholds.flash_timing_score
    if category is FundingTimingCategory.VERY_FAST:
        return thresholds.very_fast_timing_score
    if category is FundingTimingCategory.FAST:
        return thresholds.fast_timing_score
    return 0.0


def classify_pattern(
    score: float,
    thresholds: FundingPatternThresholds,
) -> FundingPatternType:
    if score >= thresholds.suspicious_threshold:
        return FundingPatternType.SUSPICIOUS
    if score >= thresholds.immediate_threshold:
        return FundingPatternType.IMMEDIATE
    if score >= thresholds.quick_threshold:
        return FundingPatternType.QUICK
    return FundingPatternType.NORMAL


def summarize_sources(deposits: Sequence[FundingDeposit]) -> FundingRiskSummary:
    """Break down pre-trading inflow by source type."""
    if not deposits:
        return FundingRiskSummary.empty()

    total = Decimal(0)
    exchange = Decimal(0)
    mixer = Decimal(0)
    unknown = Decimal(0)
    exchange_names: dict[str, None] = {}
    mixer_names: dict[str, None] = {}
    max_risk = "none"
    for d in deposits:
        value = d.amount_usd
        total += value
        if d.is_mixer:
            mixer += value
            if d.source_name:
                mixer_names[d.source_name] = None
        elif d.is_exchange:
            exchange += value
            if d.source_name:
                exchange_names[d.source_name] = None
        else:
            unknown += value
        if _RISK_ORDER.get(d.risk_level, 0) > _RISK_ORDER[max_risk]:
            max_risk = d.risk_level

    def pct(part: Decimal) -> float:
        if total == 0:
            return 0.0
        return round(float(part * 100 / total), 2)

    return FundingRiskSummary(
        overall_risk_level=max_risk,
        has_sanctioned_source=any(d.is_sanctioned for d in deposits),
        has_mixer_source=any(d.is_mixer for d in deposits),
        exchange_percentage=pct(exchange),
        mixer_percentage=pct(mixer),
        unknown_percentage=pct(unknown),
        unique_source_count=len({d.source_address.lower() for d in deposits}),
        exchange_names=tuple(exchange_names),
        mixer_names=tuple(mixer_names),
    )


class FundingPatternAnalyzer:
    """Scores how suspiciously a wallet was funded relative to its first trade.

    Example:
        ```python
        analyzer = FundingPatternAnalyzer()
        result = analyzer.analyze_wallet(address, deposits, first_trade_at)
        if analyzer.has_suspicious_funding_pattern(result):
            ...
        ```
    """

    def __init__(
        self,
        thresholds: FundingPatternThresholds | Mapping[str, Any] | None = None,
        *,
        config_manager: ConfigManager | None = None,
        cache: ResultCache[FundingPatternResult] | None = None,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        cache_max_size: int = DEFAULT_CACHE_MAX_SIZE,
    ) -> None:
        manager = config_manager or ConfigManager()
        if thresholds is not None:
            manager = manager.with_overrides(
                funding=thresholds.model_dump()
                if isinstance(thresholds, FundingPatternThresholds)
                else thresholds
            )
        self._config_manager = manager
        self._thresholds = manager.funding_thresholds()
        if cache is None:
            cache = ResultCache(ttl_seconds=cache_ttl_seconds, max_size=cache_max_size)
        self._cache: ResultCache[FundingPatternResult] = cache

    @property
    def thresholds(self) -> FundingPatternThresholds:
        return self._thresholds

    def get_config_manager(self) -> ConfigManager:
        return self._config_manager

    def _cache_key(self, address: str) -> str:
        return f"funding:{address}"

    def _get_cached(self, address: str) -> FundingPatternResult | None:
        try:
            return self._cache.get(self._cache_key(address))
        except Exception as e:
            logger.warning("Failed to read cached funding pattern for %s: %s", address, e)
            return None

    def _set_cached(self, result: FundingPatternResult) -> None:
        try:
            self._cache.set(self._cache_key(result.address), result)
        except Exception as e:
            logger.warning("Failed to cache funding pattern for %s: %s", result.address, e)

    def analyze_wallet(
        self,
        address: str,
        deposits: Iterable[FundingDeposit],
        first_trade_at: datetime | None = None,
        *,
        thresholds: Mapping[str, Any] | None = None,
        bypass_cache: bool = False,
    ) -> FundingPatternResult:
        """Analyze the funding pattern of a single wallet.

        Args:
            address: Wallet address.
            deposits: Inbound funding transfers (any order).
            first_trade_at: Timestamp of the wallet's first trade, if any.
            thresholds: Per-call overrides. Results computed with overrides
                are neither read from nor written to the cache.
            bypass_cache: Skip the cache read.

        Raises:
            InvalidAddressError: If ``address`` is malformed.
            ValueError: If ``first_trade_at`` is naive.
        """
        normalized = normalize_address(address)
        if first_trade_at is not None and first_trade_at.tzinfo is None:
            raise ValueError("first_trade_at must be timezone-aware")

        use_cache = thresholds is None
        if use_cache and not bypass_cache:
            cached = self._get_cached(normalized)
            if cached is not None:
                return replace(cached, from_cache=True)

        t = self._config_manager.funding_thresholds(thresholds)
        result = self._compute(normalized, list(deposits), first_trade_at, t)

        if use_cache:
            self._set_cached(result)

        if result.pattern_type is not FundingPatternType.NORMAL:
            logger.info(
                "Funding pattern %s for %s: score=%.1f timing=%s",
                result.pattern_type.value,
                normalized,
                result.suspicion_score,
                result.timing_category.value,
            )
        return result

    def _compute(
        self,
        address: str,
        deposits: list[FundingDeposit],
        first_trade_at: datetime | None,
        t: FundingPatternThresholds,
    ) -> FundingPatternResult:
        ordered = sorted(deposits, key=lambda d: d.timestamp)
        if first_trade_at is not None:
            pre_trading = tuple(d for d in ordered if d.timestamp < first_trade_at)
        else:
            pre_trading = tuple(ordered)

        elapsed: float | None = None
        last_elapsed: float | None = None
        if first_trade_at is not None and pre_trading:
            elapsed = (first_trade_at - pre_trading[0].timestamp).total_seconds()
            last_elapsed = (first_trade_at - pre_trading[-1].timestamp).total_seconds()

        category = classify_timing(elapsed, t)
        risk = summarize_sources(pre_trading)
        factors, reasons = self._score(pre_trading, category, risk, t)
        score = max(0.0, min(100.0, sum(factors.values())))
        pattern = classify_pattern(score, t)

        total_amount, decimals = combine_amounts((d.amount, d.decimals) for d in pre_trading)

        return FundingPatternResult(
            address=address,
            pattern_type=pattern,
            timing_category=category,
            suspicion_score=score,
            factors=factors,
            severity=self._severity(pattern, category, risk),
            pre_trading_deposits=pre_trading,
            total_pre_trading_amount=total_amount,
            pre_trading_decimals=decimals,
            formatted_pre_trading_amount=format_amount(total_amount, decimals),
            funding_to_trade_seconds=elapsed,
            last_deposit_to_trade_seconds=last_elapsed,
            first_trade_at=first_trade_at,
            risk_summary=risk,
            flag_reasons=tuple(reasons),
        )

    def _score(
        self,
        deposits: Sequence[FundingDeposit],
        category: FundingTimingCategory,
        risk: FundingRiskSummary,
        t: FundingPatternThresholds,
    ) -> tuple[dict[str, float], list[str]]:
        factors: dict[str, float] = {
            "timing": 0.0,
            "sanctioned_source": 0.0,
            "mixer_source": 0.0,
            "large_deposit": 0.0,
            "quick_deposits": 0.0,
            "unknown_source": 0.0,
        }
        reasons: list[str] = []

        factors["timing"] = timing_score(category, t)
        if factors["timing"] > 0:
            reasons.append(f"{category.value.replace('_', '-').lower()} trading after funding")

        if risk.has_sanctioned_source:
            factors["sanctioned_source"] = t.sanctioned_source_score
            reasons.append("Funds received from sanctioned address")
        if risk.has_mixer_source:
            factors["mixer_source"] = t.mixer_source_score
            names = ", ".join(risk.mixer_names) or "unlabelled mixer"
            reasons.append(f"Funds from mixer: {names}")

        large_threshold = Decimal(str(t.large_deposit_threshold_usd))
        for d in deposits:
            if d.amount_usd >= large_threshold:
                factors["large_deposit"] = t.single_large_deposit_score
                reasons.append(
                    f"Large deposit: {format_amount(d.amount, d.decimals)} "
                    f"from {d.source_name or d.source_address[:10]}"
                )
                break

        quick_gaps = sum(
            1
            for prev, cur in zip(deposits, deposits[1:], strict=False)
            if (cur.timestamp - prev.timestamp).total_seconds() < t.quick_deposit_window_seconds
        )
        if quick_gaps:
            factors["quick_deposits"] = t.multiple_quick_deposits_score
            reasons.append(f"Multiple quick deposits: {quick_gaps + 1} deposits in rapid succession")

        if deposits and risk.unknown_percentage >= t.unknown_source_percentage:
            factors["unknown_source"] = t.unknown_source_score
            reasons.append(f"{risk.unknown_percentage}% of funds from unidentified sources")

        return factors, reasons

    @staticmethod
    def _severity(
        pattern: FundingPatternType,
        category: FundingTimingCategory,
        risk: FundingRiskSummary,
    ) -> AlertSeverity:
        if risk.has_sanctioned_source or pattern is FundingPatternType.SUSPICIOUS:
            return AlertSeverity.CRITICAL
        if category is FundingTimingCategory.FLASH and risk.has_mixer_source:
            return AlertSeverity.CRITICAL
        if category is FundingTimingCategory.FLASH or pattern is FundingPatternType.IMMEDIATE:
            return AlertSeverity.HIGH
        if pattern is FundingPatternType.QUICK:
            return AlertSeverity.MEDIUM
        return AlertSeverity.LOW

    def analyze_wallets(
        self,
        wallets: Iterable[WalletRecord],
        *,
        bypass_cache: bool = False,
    ) -> BatchFundingPatternResult:
        """Analyze many wallets. Malformed records are reported in ``errors``."""
        started = time.perf_counter()
        results: dict[str, FundingPatternResult] = {}
        errors: dict[str, str] = {}
        for wallet in wallets:
            try:
                result = self.analyze_wallet(
                    wallet.address,
                    wallet.deposits,
                    wallet.first_trade_at,
                    bypass_cache=bypass_cache,
                )
            except ValueError as e:
                logger.warning("Failed to analyze funding for %s: %s", wallet.address, e)
                errors[wallet.address] = str(e)
                continue
            results[result.address] = result

        return BatchFundingPatternResult(
            results=results,
            errors=errors,
            processing_time_ms=(time.perf_counter() - started) * 1000,
        )

    def get_summary(
        self,
        results: Iterable[FundingPatternResult] | BatchFundingPatternResult,
    ) -> FundingPatternSummary:
        """Aggregate results. Averages are None when nothing was timed."""
        if isinstance(results, BatchFundingPatternResult):
            items = list(results.results.values())
        else:
            items = list(results)

        total = len(items)
        by_pattern = {p: 0 for p in FundingPatternType}
        by_timing = {c: 0 for c in FundingTimingCategory}
        by_severity = {s: 0 for s in AlertSeverity}
        for r in items:
            by_pattern[r.pattern_type] += 1
            by_timing[r.timing_category] += 1
            by_severity[r.severity] += 1

        timed = [r.funding_to_trade_seconds for r in items if r.funding_to_trade_seconds is not None]
        suspicious = by_pattern[FundingPatternType.SUSPICIOUS]
        flash = by_timing[FundingTimingCategory.FLASH]

        def pct(n: int) -> float:
            return round(n / total * 100, 2) if total else 0.0

        return FundingPatternSummary(
            total_wallets=total,
            suspicious_count=suspicious,
            suspicious_percentage=pct(suspicious),
            flash_count=flash,
            flash_percentage=pct(flash),
            average_funding_to_trade_seconds=round(statistics.fmean(timed), 2) if timed else None,
            median_funding_to_trade_seconds=round(statistics.median(timed), 2) if timed else None,
            average_suspicion_score=(
                round(statistics.fmean(r.suspicion_score for r in items), 2) if items else None
            ),
            by_pattern_type=by_pattern,
            by_timing_category=by_timing,
            by_severity=by_severity,
        )

    def has_suspicious_funding_pattern(self, result: FundingPatternResult) -> bool:
        return result.pattern_type is FundingPatternType.SUSPICIOUS

    def has_flash_trading(self, result: FundingPatternResult) -> bool:
        return result.timing_category is FundingTimingCategory.FLASH

    def get_timing_category(self, seconds: float | None) -> FundingTimingCategory:
        return classify_timing(seconds, self._thresholds)

    def invalidate_cache_entry(self, address: str) -> bool:
        """Drop a cached result. Malformed addresses are a no-op returning False."""
        if not is_valid_address(address):
            return False
        return self._cache.delete(self._cache_key(address.lower()))

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> dict[str, float | int]:
        return self._cache.stats().to_dict()
