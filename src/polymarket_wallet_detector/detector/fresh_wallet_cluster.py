"""Coordinated fresh-wallet clustering.

Groups wallets in a cohort along three independent evidence families and
then scores each wallet by the signals it exhibits:

- funding source: wallets funded by the same source address
- temporal: wallets whose first trades land inside one time window
- trading pattern: wallets trading the same markets with similar size,
  frequency and hour-of-day profiles

Wallets that appear together in at least two of those clusters are also
grouped into a multi-factor cluster.
"""

from __future__ import annotations

import hashlib
import logging
import math
import time
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity

from polymarket_wallet_detector.addresses import (
    combine_amounts,
    format_amount,
    is_valid_address,
    normalize_address,
)
from polymarket_wallet_detector.cache import ResultCache
from polymarket_wallet_detector.detector.models import (
    BatchClusteringResult,
    ClusterCharacteristic,
    ClusterConfidenceLevel,
    ClusteringSummary,
    ClusterType,
    FundingSourceCluster,
    TemporalCluster,
    TradingPatternCluster,
    TradingPatternMetrics,
    WalletCluster,
    WalletClusteringResult,
)
from polymarket_wallet_detector.ingestor.models import DEFAULT_TOKEN_DECIMALS, WalletRecord
from polymarket_wallet_detector.profiler.models import FundingPatternResult, FundingPatternType
from polymarket_wallet_detector.severity import AlertSeverity
from polymarket_wallet_detector.thresholds import ClusteringThresholds, ConfigManager

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 5 * 60
DEFAULT_CACHE_MAX_SIZE = 500

# Weights of the pairwise trading similarity components.
MARKET_OVERLAP_WEIGHT = 0.35
SIZE_PROFILE_WEIGHT = 0.30
FREQUENCY_WEIGHT = 0.20
HOUR_PROFILE_WEIGHT = 0.15

MULTI_FACTOR_BASE_CONFIDENCE = 50.0
MULTI_FACTOR_BOOST = 1.3
CLUSTER_MEDIUM_CONFIDENCE = 50.0


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _deterministic_cluster_id(prefix: str, members: Iterable[str], salt: str = "") -> str:
    ordered = sorted({m.lower() for m in members})
    material = "|".join([salt, *ordered]).encode("utf-8")
    digest = hashlib.sha256(material).hexdigest()
    return f"{prefix}_{digest[:24]}"


def _log_similarity(a: float, b: float) -> float:
    """1.0 for equal magnitudes, 0.0 once they differ by two orders."""
    diff = abs(math.log10(max(a, 1.0)) - math.log10(max(b, 1.0)))
    return max(0.0, 1.0 - diff / 2.0)


class _UnionFind:
    def __init__(self, items: Iterable[str]) -> None:
        self._parent = {i: i for i in items}

    def find(self, x: str) -> str:
        root = x
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[x] != root:
            self._parent[x], x = root, self._parent[x]
        return root

    def union(self, a: str, b: str) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra != rb:
            # Smallest address wins so roots are stable.
            if rb < ra:
                ra, rb = rb, ra
            self._parent[rb] = ra

    def groups(self) -> list[list[str]]:
        out: dict[str, list[str]] = defaultdict(list)
        for item in self._parent:
            out[self.find(item)].append(item)
        return [sorted(g) for g in out.values()]


@dataclass(frozen=True)
class _ClusterState:
    """Everything needed to derive a per-wallet result without re-scanning."""

    clusters: tuple[WalletCluster, ...]
    funding_clusters: tuple[FundingSourceCluster, ...]
    temporal_clusters: tuple[TemporalCluster, ...]
    pattern_clusters: tuple[TradingPatternCluster, ...]
    shared_market_wallets: frozenset[str]
    thresholds: ClusteringThresholds

    def clusters_for(self, address: str) -> list[WalletCluster]:
        return [c for c in self.clusters if address in c.members]


class FreshWalletClusterAnalyzer:
    """Detects coordinated groups of fresh wallets.

    Example:
        ```python
        analyzer = FreshWalletClusterAnalyzer()
        batch = analyzer.analyze_wallets(wallet_records)
        for address, result in batch.results.items():
            if analyzer.has_high_coordination(result):
                ...
        ```
    """

    def __init__(
        self,
        thresholds: ClusteringThresholds | Mapping[str, Any] | None = None,
        *,
        config_manager: ConfigManager | None = None,
        cache: ResultCache[WalletClusteringResult] | None = None,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        cache_max_size: int = DEFAULT_CACHE_MAX_SIZE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        manager = config_manager or ConfigManager()
        if thresholds is not None:
            manager = manager.with_overrides(
                clustering=thresholds.model_dump()
                if isinstance(thresholds, ClusteringThresholds)
                else thresholds
            )
        self._config_manager = manager
        self._thresholds = manager.clustering_thresholds()
        if cache is None:
            cache = ResultCache(ttl_seconds=cache_ttl_seconds, max_size=cache_max_size)
        self._cache: ResultCache[WalletClusteringResult] = cache
        self._clock = clock
        self._state: _ClusterState | None = None

    @property
    def thresholds(self) -> ClusteringThresholds:
        return self._thresholds

    def get_config_manager(self) -> ConfigManager:
        return self._config_manager

    # ------------------------------------------------------------------
    # Cache helpers
    # ------------------------------------------------------------------

    def _cache_key(self, address: str) -> str:
        return f"cluster:{address}"

    def _get_cached(self, address: str) -> WalletClusteringResult | None:
        try:
            return self._cache.get(self._cache_key(address))
        except Exception as e:
            logger.warning("Failed to read cached clustering result for %s: %s", address, e)
            return None

    def _set_cached(self, result: WalletClusteringResult) -> None:
        try:
            self._cache.set(self._cache_key(result.address), result)
        except Exception as e:
            logger.warning("Failed to cache clustering result for %s: %s", result.address, e)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def analyze_wallets(
        self,
        wallets: Iterable[WalletRecord],
        *,
        funding_results: Mapping[str, FundingPatternResult] | None = None,
        thresholds: Mapping[str, Any] | None = None,
    ) -> BatchClusteringResult:
        """Cluster a wallet cohort and score every wallet in it.

        Args:
            wallets: Cohort to analyze. Malformed addresses are reported in
                ``errors`` and excluded.
            funding_results: Optional funding pattern results by address;
                sources whose funded wallets are mostly SUSPICIOUS are
                treated as high risk.
            thresholds: Per-call overrides. Results computed with overrides
                do not replace the cached cluster state.
        """
        started = time.perf_counter()
        t = self._config_manager.clustering_thresholds(thresholds)
        now = self._clock()

        cohort: dict[str, WalletRecord] = {}
        errors: dict[str, str] = {}
        for wallet in wallets:
            if not is_valid_address(wallet.address):
                errors[str(wallet.address)] = f"Invalid wallet address: {wallet.address!r}"
                continue
            cohort[wallet.address.lower()] = wallet

        funding_by_address = {k.lower(): v for k, v in (funding_results or {}).items()}

        funding_clusters = self._build_funding_clusters(cohort, funding_by_address, t)
        temporal_clusters = self._build_temporal_clusters(cohort, t)
        metrics = self._build_metrics(cohort)
        pattern_clusters, shared_market_wallets = self._build_pattern_clusters(metrics, t)

        clusters: list[WalletCluster] = []
        kept_funding = []
        for fc in funding_clusters:
            cluster = self._funding_wallet_cluster(fc, t, now)
            if cluster is not None:
                clusters.append(cluster)
                kept_funding.append(fc)
        kept_temporal = []
        for tc in temporal_clusters:
            cluster = self._temporal_wallet_cluster(tc, t, now)
            if cluster is not None:
                clusters.append(cluster)
                kept_temporal.append(tc)
        kept_pattern = []
        for pc in pattern_clusters:
            cluster = self._pattern_wallet_cluster(pc, t, now)
            if cluster is not None:
                clusters.append(cluster)
                kept_pattern.append(pc)
        clusters.extend(self._build_multi_factor_clusters(clusters, t, now))

        state = _ClusterState(
            clusters=tuple(clusters),
            funding_clusters=tuple(kept_funding),
            temporal_clusters=tuple(kept_temporal),
            pattern_clusters=tuple(kept_pattern),
            shared_market_wallets=frozenset(shared_market_wallets),
            thresholds=t,
        )

        results: dict[str, WalletClusteringResult] = {}
        for address in sorted(cohort):
            results[address] = self._wallet_result(address, state, now)

        if thresholds is None:
            self._state = state
            for result in results.values():
                self._set_cached(result)

        clustered = sum(1 for r in results.values() if r.is_clustered)
        logger.info(
            "Wallet clustering: wallets=%d errors=%d clusters=%d clustered_wallets=%d",
            len(cohort),
            len(errors),
            len(clusters),
            clustered,
        )
        return BatchClusteringResult(
            results=results,
            clusters=tuple(clusters),
            funding_source_clusters=tuple(kept_funding),
            temporal_clusters=tuple(kept_temporal),
            trading_pattern_clusters=tuple(kept_pattern),
            errors=errors,
            processing_time_ms=(time.perf_counter() - started) * 1000,
        )

    def analyze_wallet(self, address: str, *, bypass_cache: bool = False) -> WalletClusteringResult:
        """Return one wallet's clustering result.

        Served from the per-wallet cache when fresh, otherwise derived from
        the cluster state of the most recent batch. Wallets outside that
        batch come back unclustered.

        Raises:
            InvalidAddressError: If ``address`` is malformed.
        """
        normalized = normalize_address(address)
        if not bypass_cache:
            cached = self._get_cached(normalized)
            if cached is not None:
                return replace(cached, from_cache=True)

        state = self._state
        if state is None:
            state = _ClusterState(
                clusters=(),
                funding_clusters=(),
                temporal_clusters=(),
                pattern_clusters=(),
                shared_market_wallets=frozenset(),
                thresholds=self._thresholds,
            )
        result = self._wallet_result(normalized, state, self._clock())
        self._set_cached(result)
        return result

    def is_wallet_clustered(self, result: WalletClusteringResult) -> bool:
        return result.is_clustered

    def has_high_coordination(
        self,
        result: WalletClusteringResult,
        threshold: float | None = None,
    ) -> bool:
        limit = self._thresholds.high_coordination_threshold if threshold is None else threshold
        return result.coordination_score >= limit

    def get_summary(
        self,
        results: BatchClusteringResult | Iterable[WalletClusteringResult],
    ) -> ClusteringSummary:
        """Aggregate clustering results. Averages are None for empty input."""
        if isinstance(results, BatchClusteringResult):
            items = list(results.results.values())
            clusters = list(results.clusters)
        else:
            items = list(results)
            by_id = {c.cluster_id: c for r in items for c in r.clusters}
            clusters = list(by_id.values())

        total = len(items)
        clustered = sum(1 for r in items if r.is_clustered)
        by_type = {ct: 0 for ct in ClusterType}
        by_level = {lvl: 0 for lvl in ClusterConfidenceLevel}
        for c in clusters:
            by_type[c.cluster_type] += 1
            by_level[c.confidence_level] += 1
        sizes = [c.size for c in clusters]

        return ClusteringSummary(
            total_wallets=total,
            clustered_wallets=clustered,
            clustered_percentage=round(clustered / total * 100, 2) if total else 0.0,
            total_clusters=len(clusters),
            by_cluster_type=by_type,
            by_confidence_level=by_level,
            average_cluster_size=round(sum(sizes) / len(sizes), 1) if sizes else None,
            largest_cluster_size=max(sizes, default=0),
            average_coordination_score=(
                round(sum(r.coordination_score for r in items) / total, 2) if total else None
            ),
            high_severity_cluster_count=sum(
                1 for c in clusters if c.severity.at_least(AlertSeverity.HIGH)
            ),
        )

    def invalidate_cache_entry(self, address: str) -> bool:
        """Drop a cached result. Malformed addresses are a no-op returning False."""
        if not is_valid_address(address):
            return False
        return self._cache.delete(self._cache_key(address.lower()))

    def clear_cache(self) -> None:
        """Drop cached per-wallet results and the stored cluster state."""
        self._cache.clear()
        self._state = None

    def cache_stats(self) -> dict[str, float | int]:
        return self._cache.stats().to_dict()

    # ------------------------------------------------------------------
    # Funding-source clusters
    # ------------------------------------------------------------------

    def _build_funding_clusters(
        self,
        cohort: Mapping[str, WalletRecord],
        funding_results: Mapping[str, FundingPatternResult],
        t: ClusteringThresholds,
    ) -> list[FundingSourceCluster]:
        by_source: dict[str, dict[str, Decimal]] = defaultdict(lambda: defaultdict(Decimal))
        raw_by_source: dict[str, list[tuple[int, int]]] = defaultdict(list)
        names: dict[str, str] = {}
        risky_sources: set[str] = set()
        for address, wallet in cohort.items():
            for deposit in wallet.deposits:
                source = deposit.source_address.lower()
                if not source or source == address:
                    continue
                by_source[source][address] += deposit.amount_usd
                raw_by_source[source].append((deposit.amount, deposit.decimals))
                if deposit.source_name and source not in names:
                    names[source] = deposit.source_name
                if deposit.is_high_risk:
                    risky_sources.add(source)

        clusters: list[FundingSourceCluster] = []
        for source in sorted(by_source):
            funded = by_source[source]
            if len(funded) < t.min_cluster_size:
                continue
            members = tuple(sorted(funded))
            supplied = sum(funded.values(), Decimal(0))
            members_inflow = sum((cohort[m].total_inflow for m in members), Decimal(0))
            concentration = min(1.0, float(supplied / members_inflow)) if members_inflow else 0.0
            total_amount, decimals = combine_amounts(
                raw_by_source[source], default_decimals=DEFAULT_TOKEN_DECIMALS
            )

            flagged = sum(
                1
                for m in members
                if m in funding_results
                and funding_results[m].pattern_type is FundingPatternType.SUSPICIOUS
            )
            high_risk = source in risky_sources or flagged * 2 > len(members)

            clusters.append(
                FundingSourceCluster(
                    cluster_id=_deterministic_cluster_id("funding", members, salt=source),
                    source_address=source,
                    source_name=names.get(source),
                    funded_wallets=members,
                    total_amount=total_amount,
                    total_decimals=decimals,
                    formatted_total_amount=format_amount(total_amount, decimals),
                    funding_concentration=round(concentration, 4),
                    is_suspicious=high_risk and concentration >= t.funding_similarity_threshold,
                    source_is_high_risk=high_risk,
                )
            )
        return clusters

    def _funding_wallet_cluster(
        self,
        fc: FundingSourceCluster,
        t: ClusteringThresholds,
        now: datetime,
    ) -> WalletCluster | None:
        strength = fc.funding_concentration * 100
        confidence = self._cluster_confidence(t.shared_funding_source_points, len(fc.funded_wallets), strength)
        if confidence < t.min_confidence:
            return None
        label = fc.source_name or fc.source_address
        reasons = [f"{len(fc.funded_wallets)} wallets funded by {label}"]
        if fc.is_suspicious:
            reasons.append(f"High-risk funding source {label} supplies {strength:.0f}% of inflow")
        return WalletCluster(
            cluster_id=fc.cluster_id,
            cluster_type=ClusterType.FUNDING_SOURCE,
            members=fc.funded_wallets,
            characteristics=(
                ClusterCharacteristic(
                    kind="funding_source",
                    description=f"Shared funding source {label}",
                    value=fc.source_address,
                    signal_strength=round(strength, 2),
                ),
            ),
            confidence=confidence,
            severity=self._cluster_severity(confidence, t, suspicious=fc.is_suspicious),
            flag_reasons=tuple(reasons),
            detected_at=now,
        )

    # ------------------------------------------------------------------
    # Temporal clusters
    # ------------------------------------------------------------------

    def _build_temporal_clusters(
        self,
        cohort: Mapping[str, WalletRecord],
        t: ClusteringThresholds,
    ) -> list[TemporalCluster]:
        entries = sorted(
            (w.first_trade_at, address)
            for address, w in cohort.items()
            if w.first_trade_at is not None
        )
        if len(entries) < t.min_cluster_size:
            return []

        window = timedelta(hours=t.temporal_window_hours)
        candidates: list[list[tuple[datetime, str]]] = []
        end = 0
        for start in range(len(entries)):
            end = max(end, start)
            while end + 1 < len(entries) and entries[end + 1][0] - entries[start][0] <= window:
                end += 1
            if end - start + 1 >= t.min_cluster_size:
                candidates.append(entries[start : end + 1])

        # Largest windows first; a wallet belongs to at most one temporal cluster.
        candidates.sort(key=lambda c: (-len(c), c[0][0]))
        assigned: set[str] = set()
        clusters: list[TemporalCluster] = []
        for candidate in candidates:
            fresh = [(ts, a) for ts, a in candidate if a not in assigned]
            if len(fresh) < t.min_cluster_size:
                continue
            assigned.update(a for _, a in fresh)
            clusters.append(self._temporal_cluster(fresh, window))

        clusters.sort(key=lambda c: c.window_start)
        return clusters

    def _temporal_cluster(
        self,
        members: Sequence[tuple[datetime, str]],
        window: timedelta,
    ) -> TemporalCluster:
        times = [ts for ts, _ in members]
        gaps = [(b - a).total_seconds() for a, b in zip(times, times[1:], strict=False)]
        average_interval = sum(gaps) / len(gaps) if gaps else 0.0
        window_seconds = window.total_seconds()
        suspicion = max(0.0, min(100.0, 100.0 * (1.0 - average_interval / window_seconds)))
        wallets = tuple(a for _, a in members)
        return TemporalCluster(
            cluster_id=_deterministic_cluster_id("temporal", wallets),
            window_start=times[0],
            window_end=times[0] + window,
            wallets=wallets,
            average_interval_seconds=round(average_interval, 2),
            timing_suspicion_score=round(suspicion, 2),
        )

    def _temporal_wallet_cluster(
        self,
        tc: TemporalCluster,
        t: ClusteringThresholds,
        now: datetime,
    ) -> WalletCluster | None:
        confidence = self._cluster_confidence(
            t.temporal_proximity_points, len(tc.wallets), tc.timing_suspicion_score
        )
        if confidence < t.min_confidence:
            return None
        minutes = tc.average_interval_seconds / 60
        return WalletCluster(
            cluster_id=tc.cluster_id,
            cluster_type=ClusterType.TEMPORAL,
            members=tc.wallets,
            characteristics=(
                ClusterCharacteristic(
                    kind="first_trade_time",
                    description=f"First trades within {tc.duration_hours:g}h window",
                    value=tc.window_start.isoformat(),
                    signal_strength=tc.timing_suspicion_score,
                ),
            ),
            confidence=confidence,
            severity=self._cluster_severity(confidence, t),
            flag_reasons=(
                f"{len(tc.wallets)} wallets made first trades {minutes:.1f} min apart on average",
            ),
            detected_at=now,
        )

    # ------------------------------------------------------------------
    # Trading-pattern clusters
    # ------------------------------------------------------------------

    def _build_metrics(self, cohort: Mapping[str, WalletRecord]) -> list[TradingPatternMetrics]:
        metrics: list[TradingPatternMetrics] = []
        for address in sorted(cohort):
            trades = sorted(cohort[address].trades, key=lambda tr: tr.timestamp)
            if not trades:
                continue
            sizes = np.array([float(tr.notional) for tr in trades], dtype=float)
            gaps = [
                (b.timestamp - a.timestamp).total_seconds()
                for a, b in zip(trades, trades[1:], strict=False)
            ]
            hours = np.bincount([tr.timestamp.hour for tr in trades], minlength=24).astype(float)
            metrics.append(
                TradingPatternMetrics(
                    address=address,
                    markets=frozenset(tr.market_id for tr in trades),
                    trade_count=len(trades),
                    average_trade_size=float(sizes.mean()),
                    average_interval_seconds=sum(gaps) / len(gaps) if gaps else None,
                    buy_ratio=sum(1 for tr in trades if tr.side == "BUY") / len(trades),
                    hour_distribution=tuple(float(h) for h in hours / hours.sum()),
                )
            )
        return metrics

    @staticmethod
    def trading_similarity(
        a: TradingPatternMetrics,
        b: TradingPatternMetrics,
        hour_similarity: float | None = None,
    ) -> float:
        """Weighted similarity of two trading profiles in [0, 1]."""
        union = len(a.markets | b.markets)
        market_overlap = len(a.markets & b.markets) / union if union else 0.0
        size = _log_similarity(a.average_trade_size, b.average_trade_size)
        if a.average_interval_seconds is None and b.average_interval_seconds is None:
            frequency = 1.0
        elif a.average_interval_seconds is None or b.average_interval_seconds is None:
            frequency = 0.0
        else:
            frequency = _log_similarity(a.average_interval_seconds, b.average_interval_seconds)
        if hour_similarity is None:
            hour_similarity = float(
                cosine_similarity([a.hour_distribution], [b.hour_distribution])[0, 0]
            )
        score = (
            MARKET_OVERLAP_WEIGHT * market_overlap
            + SIZE_PROFILE_WEIGHT * size
            + FREQUENCY_WEIGHT * frequency
            + HOUR_PROFILE_WEIGHT * hour_similarity
        )
        return max(0.0, min(1.0, score))

    def _build_pattern_clusters(
        self,
        metrics: Sequence[TradingPatternMetrics],
        t: ClusteringThresholds,
    ) -> tuple[list[TradingPatternCluster], set[str]]:
        """Group wallets connected by similar trading on enough shared markets.

        Returns the clusters and the set of wallets sharing at least
        ``min_shared_markets`` markets with another wallet.
        """
        shared_market_wallets: set[str] = set()
        if len(metrics) < 2:
            return [], shared_market_wallets

        hours = cosine_similarity(np.array([m.hour_distribution for m in metrics]))
        uf = _UnionFind(m.address for m in metrics)
        edges: dict[tuple[str, str], float] = {}
        for i in range(len(metrics)):
            for j in range(i + 1, len(metrics)):
                a, b = metrics[i], metrics[j]
                if len(a.markets & b.markets) < t.min_shared_markets:
                    continue
                shared_market_wallets.update((a.address, b.address))
                similarity = self.trading_similarity(a, b, float(hours[i, j]))
                if similarity < t.trading_similarity_threshold:
                    continue
                edges[(a.address, b.address)] = similarity
                uf.union(a.address, b.address)

        by_address = {m.address: m for m in metrics}
        clusters: list[TradingPatternCluster] = []
        for group in uf.groups():
            if len(group) < t.min_cluster_size:
                continue
            members = set(group)
            sims = [s for (a, b), s in edges.items() if a in members and b in members]
            market_counts = Counter(mk for w in group for mk in by_address[w].markets)
            shared = tuple(sorted(mk for mk, n in market_counts.items() if n >= 2))
            signatures = Counter(self._pattern_signature(by_address[w]) for w in group)
            clusters.append(
                TradingPatternCluster(
                    cluster_id=_deterministic_cluster_id("pattern", group),
                    pattern_signature=signatures.most_common(1)[0][0],
                    wallets=tuple(group),
                    shared_markets=shared,
                    average_similarity=round(sum(sims) / len(sims), 4),
                    metrics=tuple(by_address[w] for w in group),
                )
            )
        return clusters, shared_market_wallets

    @staticmethod
    def _pattern_signature(m: TradingPatternMetrics) -> str:
        interval = m.average_interval_seconds
        if interval is None:
            frequency = "one-off"
        elif interval < 3600:
            frequency = "high-freq"
        elif interval < 86_400:
            frequency = "med-freq"
        else:
            frequency = "low-freq"

        if m.average_trade_size >= 10_000:
            size = "whale"
        elif m.average_trade_size >= 1_000:
            size = "large"
        elif m.average_trade_size >= 100:
            size = "medium"
        else:
            size = "small"

        if m.buy_ratio >= 0.8:
            side = "buyer"
        elif m.buy_ratio <= 0.2:
            side = "seller"
        else:
            side = "mixed"

        if len(m.markets) == 1:
            focus = "single-market"
        elif len(m.markets) <= 3:
            focus = "focused"
        else:
            focus = "diverse"
        return f"{frequency}/{size}/{side}/{focus}"

    def _pattern_wallet_cluster(
        self,
        pc: TradingPatternCluster,
        t: ClusteringThresholds,
        now: datetime,
    ) -> WalletCluster | None:
        strength = pc.average_similarity * 100
        confidence = self._cluster_confidence(t.trading_pattern_points, len(pc.wallets), strength)
        if confidence < t.min_confidence:
            return None
        characteristics = [
            ClusterCharacteristic(
                kind="trading_pattern",
                description=f"Similar trading profile {pc.pattern_signature}",
                value=pc.pattern_signature,
                signal_strength=round(strength, 2),
            )
        ]
        if pc.shared_markets:
            characteristics.append(
                ClusterCharacteristic(
                    kind="market_focus",
                    description=f"{len(pc.shared_markets)} markets traded in common",
                    value=",".join(pc.shared_markets),
                    signal_strength=round(strength, 2),
                )
            )
        return WalletCluster(
            cluster_id=pc.cluster_id,
            cluster_type=ClusterType.TRADING_PATTERN,
            members=pc.wallets,
            characteristics=tuple(characteristics),
            confidence=confidence,
            severity=self._cluster_severity(confidence, t),
            flag_reasons=(
                f"{len(pc.wallets)} wallets trade alike "
                f"({pc.average_similarity:.0%} similar) across {len(pc.shared_markets)} markets",
            ),
            detected_at=now,
        )

    # ------------------------------------------------------------------
    # Multi-factor clusters
    # ------------------------------------------------------------------

    def _build_multi_factor_clusters(
        self,
        clusters: Sequence[WalletCluster],
        t: ClusteringThresholds,
        now: datetime,
    ) -> list[WalletCluster]:
        membership: dict[str, set[str]] = defaultdict(set)
        for c in clusters:
            for m in c.members:
                membership[m].add(c.cluster_id)
        candidates = sorted(w for w, ids in membership.items() if len(ids) >= 2)
        if len(candidates) < t.min_cluster_size:
            return []

        uf = _UnionFind(candidates)
        for i, a in enumerate(candidates):
            for b in candidates[i + 1 :]:
                if len(membership[a] & membership[b]) >= 2:
                    uf.union(a, b)

        by_id = {c.cluster_id: c for c in clusters}
        out: list[WalletCluster] = []
        for group in uf.groups():
            if len(group) < t.min_cluster_size:
                continue
            common = set.intersection(*(membership[w] for w in group))
            shared_types = sorted({by_id[cid].cluster_type.value for cid in common})
            base = (
                MULTI_FACTOR_BASE_CONFIDENCE
                + min(20.0, (len(group) - 2) * 5.0)
                + 10.0 * max(0, len(common) - 2)
            )
            confidence = round(min(100.0, base * MULTI_FACTOR_BOOST), 2)
            if confidence < t.min_confidence:
                continue
            out.append(
                WalletCluster(
                    cluster_id=_deterministic_cluster_id("multi", group),
                    cluster_type=ClusterType.MULTI_FACTOR,
                    members=tuple(group),
                    characteristics=tuple(
                        ClusterCharacteristic(
                            kind="multi_factor",
                            description=f"Shared {ctype.lower().replace('_', ' ')} cluster",
                            value=ctype,
                            signal_strength=confidence,
                        )
                        for ctype in shared_types
                    ),
                    confidence=confidence,
                    severity=self._cluster_severity(confidence, t),
                    flag_reasons=(
                        f"{len(group)} wallets share membership in multiple independent clusters",
                    ),
                    detected_at=now,
                )
            )
        return out

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    @staticmethod
    def _cluster_confidence(base_points: float, size: int, strength: float) -> float:
        size_boost = min(20.0, max(0, size - 2) * 5.0)
        return round(min(100.0, base_points + size_boost + 0.5 * strength), 2)

    @staticmethod
    def _cluster_severity(
        confidence: float,
        t: ClusteringThresholds,
        *,
        suspicious: bool = False,
    ) -> AlertSeverity:
        if suspicious or confidence >= t.critical_coordination_threshold:
            return AlertSeverity.CRITICAL
        if confidence >= t.high_coordination_threshold:
            return AlertSeverity.HIGH
        if confidence >= CLUSTER_MEDIUM_CONFIDENCE:
            return AlertSeverity.MEDIUM
        return AlertSeverity.LOW

    @staticmethod
    def coordination_severity(score: float, t: ClusteringThresholds) -> AlertSeverity:
        if score >= t.critical_coordination_threshold:
            return AlertSeverity.CRITICAL
        if score >= t.high_coordination_threshold:
            return AlertSeverity.HIGH
        if score >= t.medium_coordination_threshold:
            return AlertSeverity.MEDIUM
        return AlertSeverity.LOW

    def _wallet_result(
        self,
        address: str,
        state: _ClusterState,
        now: datetime,
    ) -> WalletClusteringResult:
        t = state.thresholds
        clusters = state.clusters_for(address)

        funding = [fc for fc in state.funding_clusters if address in fc.funded_wallets]
        funding.sort(key=lambda fc: (-len(fc.funded_wallets), -fc.funding_concentration))
        temporal = next((tc for tc in state.temporal_clusters if address in tc.wallets), None)
        pattern = next((pc for pc in state.pattern_clusters if address in pc.wallets), None)

        factors: dict[str, float] = {}
        if funding:
            factors["shared_funding_source"] = t.shared_funding_source_points
        if any(fc.is_suspicious for fc in funding):
            factors["suspicious_funding_source"] = t.suspicious_funding_source_points
        if temporal is not None:
            factors["temporal_proximity"] = t.temporal_proximity_points
        if pattern is not None:
            factors["trading_pattern"] = t.trading_pattern_points
        if address in state.shared_market_wallets:
            factors["shared_markets"] = t.shared_market_points
        score = min(100.0, sum(factors.values()))

        confidences = {c.cluster_id: c.confidence for c in clusters}
        reasons: list[str] = []
        for c in clusters:
            reasons.extend(c.flag_reasons)

        return WalletClusteringResult(
            address=address,
            cluster_ids=tuple(c.cluster_id for c in clusters),
            cluster_confidences=confidences,
            overall_cluster_confidence=max(confidences.values(), default=0.0),
            coordination_score=score,
            coordination_factors=factors,
            severity=self.coordination_severity(score, t),
            funding_source_cluster=funding[0] if funding else None,
            temporal_cluster=temporal,
            trading_pattern_cluster=pattern,
            clusters=tuple(clusters),
            flag_reasons=tuple(dict.fromkeys(reasons)),
            analyzed_at=now,
        )
