"""Data models for the coordinated-wallet cluster detector."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from polymarket_wallet_detector.severity import AlertSeverity


class ClusterType(Enum):
    """Evidence family a cluster was built from."""

    FUNDING_SOURCE = "FUNDING_SOURCE"
    TEMPORAL = "TEMPORAL"
    TRADING_PATTERN = "TRADING_PATTERN"
    MULTI_FACTOR = "MULTI_FACTOR"


class ClusterConfidenceLevel(Enum):
    VERY_LOW = "VERY_LOW"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    VERY_HIGH = "VERY_HIGH"

    @classmethod
    def from_score(cls, score: float) -> ClusterConfidenceLevel:
        if score >= 90:
            return cls.VERY_HIGH
        if score >= 70:
            return cls.HIGH
        if score >= 50:
            return cls.MEDIUM
        if score >= 30:
            return cls.LOW
        return cls.VERY_LOW


@dataclass(frozen=True)
class ClusterCharacteristic:
    """A trait shared by every member of a cluster.

    Attributes:
        kind: funding_source, first_trade_time, trading_pattern or market_focus.
        description: Human-readable description of the trait.
        value: The shared value (source address, window start, signature).
        signal_strength: How strong the shared trait is (0-100).
    """

    kind: str
    description: str
    value: str
    signal_strength: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "description": self.description,
            "value": self.value,
            "signal_strength": self.signal_strength,
        }


@dataclass(frozen=True)
class WalletCluster:
    """A group of wallets sharing one or more coordination signals."""

    cluster_id: str
    cluster_type: ClusterType
    members: tuple[str, ...]
    characteristics: tuple[ClusterCharacteristic, ...]
    confidence: float
    severity: AlertSeverity
    flag_reasons: tuple[str, ...] = ()
    detected_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def confidence_level(self) -> ClusterConfidenceLevel:
        return ClusterConfidenceLevel.from_score(self.confidence)

    @property
    def is_high_confidence(self) -> bool:
        return self.confidence >= 70

    def to_dict(self) -> dict[str, Any]:
        return {
            "cluster_id": self.cluster_id,
            "cluster_type": self.cluster_type.value,
            "members": list(self.members),
            "size": self.size,
            "characteristics": [c.to_dict() for c in self.characteristics],
            "confidence": self.confidence,
            "confidence_level": self.confidence_level.value,
            "severity": self.severity.value,
            "flag_reasons": list(self.flag_reasons),
            "detected_at": self.detected_at.isoformat(),
        }


@dataclass(frozen=True)
class FundingSourceCluster:
    """Wallets funded by the same source address.

    ``total_amount`` is in raw units at ``total_decimals``, the finest token
    scale among the deposits it adds up.
    """

    cluster_id: str
    source_address: str
    source_name: str | None
    funded_wallets: tuple[str, ...]
    total_amount: int
    total_decimals: int
    formatted_total_amount: str
    funding_concentration: float
    is_suspicious: bool
    source_is_high_risk: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "cluster_id": self.cluster_id,
            "source_address": self.source_address,
            "source_name": self.source_name,
            "funded_wallets": list(self.funded_wallets),
            "total_amount": str(self.total_amount),
            "total_decimals": self.total_decimals,
            "formatted_total_amount": self.formatted_total_amount,
            "funding_concentration": self.funding_concentration,
            "is_suspicious": self.is_suspicious,
            "source_is_high_risk": self.source_is_high_risk,
        }


@dataclass(frozen=True)
class TemporalCluster:
    """Wallets whose first trades fall inside one time window."""

    cluster_id: str
    window_start: datetime
    window_end: datetime
    wallets: tuple[str, ...]
    average_interval_seconds: float
    timing_suspicion_score: float

    @property
    def duration_hours(self) -> float:
        return (self.window_end - self.window_start).total_seconds() / 3600

    def to_dict(self) -> dict[str, Any]:
        return {
            "cluster_id": self.cluster_id,
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "duration_hours": self.duration_hours,
            "wallets": list(self.wallets),
            "average_interval_seconds": self.average_interval_seconds,
            "timing_suspicion_score": self.timing_suspicion_score,
        }


@dataclass(frozen=True)
class TradingPatternMetrics:
    """Per-wallet trading profile used for similarity scoring."""

    address: str
    markets: frozenset[str]
    trade_count: int
    average_trade_size: float
    average_interval_seconds: float | None
    buy_ratio: float
    hour_distribution: tuple[float, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "markets": sorted(self.markets),
            "trade_count": self.trade_count,
            "average_trade_size": self.average_trade_size,
            "average_interval_seconds": self.average_interval_seconds,
            "buy_ratio": self.buy_ratio,
        }


@dataclass(frozen=True)
class TradingPatternCluster:
    """Wallets with near-identical trading behavior."""

    cluster_id: str
    pattern_signature: str
    wallets: tuple[str, ...]
    shared_markets: tuple[str, ...]
    average_similarity: float
    metrics: tuple[TradingPatternMetrics, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "cluster_id": self.cluster_id,
            "pattern_signature": self.pattern_signature,
            "wallets": list(self.wallets),
            "shared_markets": list(self.shared_markets),
            "average_similarity": self.average_similarity,
        }


@dataclass(frozen=True)
class WalletClusteringResult:
    """Per-wallet view over every cluster the wallet belongs to.

    ``coordination_score`` is built from the signals the wallet exhibits,
    independently of the cluster confidences.

    ``clusters`` holds the clusters named by ``cluster_ids``, in the same order.
    """

    address: str
    cluster_ids: tuple[str, ...]
    cluster_confidences: Mapping[str, float]
    overall_cluster_confidence: float
    coordination_score: float
    coordination_factors: Mapping[str, float]
    severity: AlertSeverity
    funding_source_cluster: FundingSourceCluster | None = None
    temporal_cluster: TemporalCluster | None = None
    trading_pattern_cluster: TradingPatternCluster | None = None
    clusters: tuple[WalletCluster, ...] = ()
    flag_reasons: tuple[str, ...] = ()
    from_cache: bool = False
    analyzed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        for name in ("cluster_confidences", "coordination_factors"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    @property
    def cluster_count(self) -> int:
        return len(self.cluster_ids)

    @property
    def is_clustered(self) -> bool:
        return bool(self.cluster_ids)

    @property
    def confidence_level(self) -> ClusterConfidenceLevel:
        return ClusterConfidenceLevel.from_score(self.overall_cluster_confidence)

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "cluster_ids": list(self.cluster_ids),
            "cluster_confidences": dict(self.cluster_confidences),
            "overall_cluster_confidence": self.overall_cluster_confidence,
            "confidence_level": self.confidence_level.value,
            "coordination_score": self.coordination_score,
            "coordination_factors": dict(self.coordination_factors),
            "severity": self.severity.value,
            "funding_source_cluster": (
                self.funding_source_cluster.to_dict() if self.funding_source_cluster else None
            ),
            "temporal_cluster": self.temporal_cluster.to_dict() if self.temporal_cluster else None,
            "trading_pattern_cluster": (
                self.trading_pattern_cluster.to_dict() if self.trading_pattern_cluster else None
            ),
            "flag_reasons": list(self.flag_reasons),
            "from_cache": self.from_cache,
            "analyzed_at": self.analyzed_at.isoformat(),
        }


@dataclass(frozen=True)
class BatchClusteringResult:
    """Result of clustering a wallet cohort."""

    results: dict[str, WalletClusteringResult]
    clusters: tuple[WalletCluster, ...]
    funding_source_clusters: tuple[FundingSourceCluster, ...] = ()
    temporal_clusters: tuple[TemporalCluster, ...] = ()
    trading_pattern_clusters: tuple[TradingPatternCluster, ...] = ()
    errors: dict[str, str] = field(default_factory=dict)
    processing_time_ms: float = 0.0

    @property
    def total_processed(self) -> int:
        return len(self.results) + len(self.errors)

    @property
    def clustered_count(self) -> int:
        return sum(1 for r in self.results.values() if r.is_clustered)

    def clusters_of_type(self, cluster_type: ClusterType) -> tuple[WalletCluster, ...]:
        return tuple(c for c in self.clusters if c.cluster_type is cluster_type)

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": {a: r.to_dict() for a, r in self.results.items()},
            "clusters": [c.to_dict() for c in self.clusters],
            "errors": dict(self.errors),
            "processing_time_ms": self.processing_time_ms,
        }


@dataclass(frozen=True)
class ClusteringSummary:
    """Aggregate view over per-wallet clustering results."""

    total_wallets: int
    clustered_wallets: int
    clustered_percentage: float
    total_clusters: int
    by_cluster_type: dict[ClusterType, int]
    by_confidence_level: dict[ClusterConfidenceLevel, int]
    average_cluster_size: float | None
    largest_cluster_size: int
    average_coordination_score: float | None
    high_severity_cluster_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_wallets": self.total_wallets,
            "clustered_wallets": self.clustered_wallets,
            "clustered_percentage": self.clustered_percentage,
            "total_clusters": self.total_clusters,
            "by_cluster_type": {k.value: v for k, v in self.by_cluster_type.items()},
            "by_confidence_level": {k.value: v for k, v in self.by_confidence_level.items()},
            "average_cluster_size": self.average_cluster_size,
            "largest_cluster_size": self.largest_cluster_size,
            "average_coordination_score": self.average_coordination_score,
            "high_severity_cluster_count": self.high_severity_cluster_count,
        }
