"""Data models for the funding pattern profiler."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from polymarket_wallet_detector.ingestor.models import FundingDeposit
from polymarket_wallet_detector.severity import AlertSeverity


class FundingTimingCategory(Enum):
    """How quickly a wallet traded after being funded."""

    FLASH = "FLASH"
    VERY_FAST = "VERY_FAST"
    FAST = "FAST"
    MODERATE = "MODERATE"
    SLOW = "SLOW"
    NO_TRADES = "NO_TRADES"


class FundingPatternType(Enum):
    """Pattern classification derived from the suspicion score."""

    NORMAL = "NORMAL"
    QUICK = "QUICK"
    IMMEDIATE = "IMMEDIATE"
    SUSPICIOUS = "SUSPICIOUS"


@dataclass(frozen=True)
class FundingRiskSummary:
    """Where a wallet's pre-trading funds came from."""

    overall_risk_level: str
    has_sanctioned_source: bool
    has_mixer_source: bool
    exchange_percentage: float
    mixer_percentage: float
    unknown_percentage: float
    unique_source_count: int
    exchange_names: tuple[str, ...] = ()
    mixer_names: tuple[str, ...] = ()

    @classmethod
    def empty(cls) -> FundingRiskSummary:
        return cls(
            overall_risk_level="none",
            has_sanctioned_source=False,
            has_mixer_source=False,
            exchange_percentage=0.0,
            mixer_percentage=0.0,
            unknown_percentage=0.0,
            unique_source_count=0,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_risk_level": self.overall_risk_level,
            "has_sanctioned_source": self.has_sanctioned_source,
            "has_mixer_source": self.has_mixer_source,
            "exchange_percentage": self.exchange_percentage,
            "mixer_percentage": self.mixer_percentage,
            "unknown_percentage": self.unknown_percentage,
            "unique_source_count": self.unique_source_count,
            "exchange_names": list(self.exchange_names),
            "mixer_names": list(self.mixer_names),
        }


@dataclass(frozen=True)
class FundingPatternResult:
    """Funding-to-first-trade analysis for one wallet.

    Attributes:
        address: Lowercased wallet address.
        pattern_type: Classification from the suspicion score.
        timing_category: Bucket for ``funding_to_trade_seconds``.
        funding_to_trade_seconds: Seconds from the earliest pre-trading
            deposit to the first trade, or None without a trade.
        last_deposit_to_trade_seconds: Seconds from the latest pre-trading
            deposit to the first trade, or None.
        suspicion_score: Sum of ``factors`` clipped to [0, 100].
        factors: Itemized sub-scores.
        total_pre_trading_amount: Raw units at ``pre_trading_decimals``, the
            finest token scale among the pre-trading deposits.
    """

    address: str
    pattern_type: FundingPatternType
    timing_category: FundingTimingCategory
    suspicion_score: float
    factors: Mapping[str, float]
    severity: AlertSeverity
    pre_trading_deposits: tuple[FundingDeposit, ...]
    total_pre_trading_amount: int
    pre_trading_decimals: int
    formatted_pre_trading_amount: str
    funding_to_trade_seconds: float | None
    last_deposit_to_trade_seconds: float | None
    first_trade_at: datetime | None
    risk_summary: FundingRiskSummary
    flag_reasons: tuple[str, ...] = ()
    from_cache: bool = False
    analyzed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        object.__setattr__(self, "factors", MappingProxyType(dict(self.factors)))

    @property
    def has_deposits(self) -> bool:
        return bool(self.pre_trading_deposits)

    @property
    def has_trades(self) -> bool:
        return self.first_trade_at is not None

    @property
    def is_suspicious(self) -> bool:
        return self.pattern_type is FundingPatternType.SUSPICIOUS

    @property
    def is_flash(self) -> bool:
        return self.timing_category is FundingTimingCategory.FLASH

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "pattern_type": self.pattern_type.value,
            "timing_category": self.timing_category.value,
            "suspicion_score": self.suspicion_score,
            "factors": dict(self.factors),
            "severity": self.severity.value,
            "deposit_count": len(self.pre_trading_deposits),
            "total_pre_trading_amount": str(self.total_pre_trading_amount),
            "pre_trading_decimals": self.pre_trading_decimals,
            "formatted_pre_trading_amount": self.formatted_pre_trading_amount,
            "funding_to_trade_seconds": self.funding_to_trade_seconds,
            "last_deposit_to_trade_seconds": self.last_deposit_to_trade_seconds,
            "first_trade_at": self.first_trade_at.isoformat() if self.first_trade_at else None,
            "risk_summary": self.risk_summary.to_dict(),
            "flag_reasons": list(self.flag_reasons),
            "from_cache": self.from_cache,
            "analyzed_at": self.analyzed_at.isoformat(),
        }


@dataclass(frozen=True)
class FundingPatternSummary:
    """Aggregate view over many funding pattern results."""

    total_wallets: int
    suspicious_count: int
    suspicious_percentage: float
    flash_count: int
    flash_percentage: float
    average_funding_to_trade_seconds: float | None
    median_funding_to_trade_seconds: float | None
    average_suspicion_score: float | None
    by_pattern_type: dict[FundingPatternType, int]
    by_timing_category: dict[FundingTimingCategory, int]
    by_severity: dict[AlertSeverity, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_wallets": self.total_wallets,
            "suspicious_count": self.suspicious_count,
            "suspicious_percentage": self.suspicious_percentage,
            "flash_count": self.flash_count,
            "flash_percentage": self.flash_percentage,
            "average_funding_to_trade_seconds": self.average_funding_to_trade_seconds,
            "median_funding_to_trade_seconds": self.median_funding_to_trade_seconds,
            "average_suspicion_score": self.average_suspicion_score,
            "by_pattern_type": {k.value: v for k, v in self.by_pattern_type.items()},
            "by_timing_category": {k.value: v for k, v in self.by_timing_category.items()},
            "by_severity": {k.value: v for k, v in self.by_severity.items()},
        }


@dataclass(frozen=True)
class BatchFundingPatternResult:
    """Funding pattern results for many wallets, with per-wallet failures."""

    results: dict[str, FundingPatternResult]
    errors: dict[str, str] = field(default_factory=dict)
    processing_time_ms: float = 0.0

    @property
    def total_processed(self) -> int:
        return len(self.results) + len(self.errors)

    @property
    def suspicious_count(self) -> int:
        return sum(1 for r in self.results.values() if r.is_suspicious)
