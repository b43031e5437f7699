"""Data models for ingested records and market volume baselines.

The detection core never fetches data itself. Ingestion collaborators hand it
materialized records built from these classes (``from_dict`` accepts the JSON
shapes produced by the Polymarket data API and the chain indexer).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Literal

from polymarket_wallet_detector.addresses import to_decimal_amount

DEFAULT_TOKEN_DECIMALS = 6

RiskLevel = Literal["none", "low", "medium", "high", "critical"]
_RISK_LEVELS: tuple[str, ...] = ("none", "low", "medium", "high", "critical")


def parse_timestamp(value: Any) -> datetime:
    """Parse an epoch (seconds or milliseconds), ISO string or datetime into UTC.

    Raises:
        ValueError: If the value is a naive datetime or cannot be parsed.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            raise ValueError("timestamp must be timezone-aware")
        return value.astimezone(UTC)
    if isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if isinstance(value, int | float):
        seconds = float(value)
        if seconds > 1e12:
            seconds /= 1000.0
        return datetime.fromtimestamp(seconds, tz=UTC)
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return parse_timestamp(int(text))
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    raise ValueError(f"Invalid timestamp: {value!r}")


def _require_aware(name: str, value: datetime | None) -> None:
    if value is not None and value.tzinfo is None:
        raise ValueError(f"{name} must be timezone-aware")


# ---------------------------------------------------------------------------
# Ingested records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VolumeSample:
    """Traded volume observed for a market over one sampling interval."""

    timestamp: datetime
    volume: float
    trade_count: int | None = None

    def __post_init__(self) -> None:
        _require_aware("timestamp", self.timestamp)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VolumeSample:
        trade_count = data.get("trade_count", data.get("tradeCount"))
        return cls(
            timestamp=parse_timestamp(data["timestamp"]),
            volume=float(data.get("volume", 0.0)),
            trade_count=int(trade_count) if trade_count is not None else None,
        )


@dataclass(frozen=True)
class MarketInfo:
    """Market metadata used to annotate a baseline."""

    market_id: str
    question: str = ""
    category: str | None = None
    created_at: datetime | None = None
    current_volume: float = 0.0
    current_liquidity: float | None = None
    active: bool = True
    closed: bool = False

    def __post_init__(self) -> None:
        _require_aware("created_at", self.created_at)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MarketInfo:
        created = data.get("created_at", data.get("createdAt"))
        liquidity = data.get("current_liquidity", data.get("liquidity"))
        return cls(
            market_id=str(data.get("market_id", data.get("id", ""))),
            question=str(data.get("question", "")),
            category=data.get("category"),
            created_at=parse_timestamp(created) if created else None,
            current_volume=float(data.get("current_volume", data.get("volume", 0.0)) or 0.0),
            current_liquidity=float(liquidity) if liquidity is not None else None,
            active=bool(data.get("active", True)),
            closed=bool(data.get("closed", False)),
        )


@dataclass(frozen=True)
class TradeRecord:
    """A single fill made by a wallet."""

    market_id: str
    timestamp: datetime
    size: Decimal
    price: Decimal
    side: Literal["BUY", "SELL"] = "BUY"

    def __post_init__(self) -> None:
        _require_aware("timestamp", self.timestamp)

    @property
    def notional(self) -> Decimal:
        return self.size * self.price

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TradeRecord:
        side = str(data.get("side", "BUY")).upper()
        return cls(
            market_id=str(data.get("market_id", data.get("market", ""))),
            timestamp=parse_timestamp(data["timestamp"]),
            size=Decimal(str(data.get("size", "0"))),
            price=Decimal(str(data.get("price", "0"))),
            side="SELL" if side == "SELL" else "BUY",
        )


@dataclass(frozen=True)
class FundingDeposit:
    """An inbound collateral transfer into a wallet.

    ``amount`` is in raw on-chain units and may exceed 64 bits.
    """

    source_address: str
    amount: int
    timestamp: datetime
    decimals: int = DEFAULT_TOKEN_DECIMALS
    source_name: str | None = None
    is_exchange: bool = False
    is_mixer: bool = False
    is_sanctioned: bool = False
    risk_level: RiskLevel = "none"
    tx_hash: str | None = None

    def __post_init__(self) -> None:
        _require_aware("timestamp", self.timestamp)
        if self.amount < 0:
            raise ValueError("deposit amount must be non-negative")

    @property
    def amount_usd(self) -> Decimal:
        return to_decimal_amount(self.amount, self.decimals)

    @property
    def is_unknown_source(self) -> bool:
        return not (self.is_exchange or self.is_mixer)

    @property
    def is_high_risk(self) -> bool:
        return (
            self.is_sanctioned
            or self.is_mixer
            or self.risk_level in ("high", "critical")
        )

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        *,
        default_decimals: int = DEFAULT_TOKEN_DECIMALS,
    ) -> FundingDeposit:
        risk = str(data.get("risk_level", data.get("riskLevel", "none"))).lower()
        return cls(
            source_address=str(data.get("source_address", data.get("from", ""))).lower(),
            amount=int(data["amount"]),
            timestamp=parse_timestamp(data["timestamp"]),
            decimals=int(data.get("decimals", default_decimals)),
            source_name=data.get("source_name"),
            is_exchange=bool(data.get("is_exchange", False)),
            is_mixer=bool(data.get("is_mixer", False)),
            is_sanctioned=bool(data.get("is_sanctioned", False)),
            risk_level=risk if risk in _RISK_LEVELS else "none",  # type: ignore[arg-type]
            tx_hash=data.get("tx_hash"),
        )


@dataclass(frozen=True)
class WalletRecord:
    """Everything the detectors need to know about one wallet."""

    address: str
    deposits: tuple[FundingDeposit, ...] = ()
    trades: tuple[TradeRecord, ...] = ()

    @property
    def first_trade_at(self) -> datetime | None:
        if not self.trades:
            return None
        return min(t.timestamp for t in self.trades)

    @property
    def total_inflow(self) -> Decimal:
        """Token amount received across all deposits, whatever their decimals."""
        return sum((d.amount_usd for d in self.deposits), Decimal(0))

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        *,
        default_decimals: int = DEFAULT_TOKEN_DECIMALS,
    ) -> WalletRecord:
        return cls(
            address=str(data["address"]),
            deposits=tuple(
                FundingDeposit.from_dict(d, default_decimals=default_decimals)
                for d in data.get("deposits", [])
            ),
            trades=tuple(TradeRecord.from_dict(t) for t in data.get("trades", [])),
        )


# ---------------------------------------------------------------------------
# Volume baselines
# ---------------------------------------------------------------------------


class BaselineWindow(Enum):
    """Aggregation window for volume statistics."""

    HOURLY = "HOURLY"
    FOUR_HOUR = "FOUR_HOUR"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"

    @property
    def duration(self) -> timedelta:
        return _WINDOW_DURATIONS[self]


_WINDOW_DURATIONS: dict[BaselineWindow, timedelta] = {
    BaselineWindow.HOURLY: timedelta(hours=1),
    BaselineWindow.FOUR_HOUR: timedelta(hours=4),
    BaselineWindow.DAILY: timedelta(days=1),
    BaselineWindow.WEEKLY: timedelta(days=7),
    BaselineWindow.MONTHLY: timedelta(days=30),
}


class MarketMaturity(Enum):
    """Market age bucket."""

    VERY_NEW = "VERY_NEW"
    NEW = "NEW"
    YOUNG = "YOUNG"
    ESTABLISHED = "ESTABLISHED"
    MATURE = "MATURE"


@dataclass(frozen=True)
class WindowVolumeStats:
    """Volume statistics for one aggregation window."""

    window: BaselineWindow
    average_volume: float = 0.0
    median_volume: float = 0.0
    std_dev: float = 0.0
    min_volume: float = 0.0
    max_volume: float = 0.0
    total_volume: float = 0.0
    data_point_count: int = 0
    percentile_25: float = 0.0
    percentile_75: float = 0.0
    percentile_95: float = 0.0
    average_trade_count: float | None = None
    coefficient_of_variation: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.data_point_count == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "window": self.window.value,
            "average_volume": self.average_volume,
            "median_volume": self.median_volume,
            "std_dev": self.std_dev,
            "min_volume": self.min_volume,
            "max_volume": self.max_volume,
            "total_volume": self.total_volume,
            "data_point_count": self.data_point_count,
            "percentile_25": self.percentile_25,
            "percentile_75": self.percentile_75,
            "percentile_95": self.percentile_95,
            "average_trade_count": self.average_trade_count,
            "coefficient_of_variation": self.coefficient_of_variation,
        }


@dataclass(frozen=True)
class MarketVolumeBaseline:
    """Historical volume baseline for a market."""

    market_id: str
    question: str
    category: str | None
    maturity: MarketMaturity
    market_age_days: float
    is_active: bool
    current_volume: float
    current_liquidity: float | None
    window_stats: Mapping[BaselineWindow, WindowVolumeStats]
    range_start: datetime
    range_end: datetime
    calculated_at: datetime
    expires_at: datetime
    from_cache: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "window_stats", MappingProxyType(dict(self.window_stats)))

    def stats_for(self, window: BaselineWindow) -> WindowVolumeStats:
        return self.window_stats.get(window) or WindowVolumeStats(window=window)

    @property
    def daily(self) -> WindowVolumeStats:
        return self.stats_for(BaselineWindow.DAILY)

    def to_dict(self) -> dict[str, Any]:
        return {
            "market_id": self.market_id,
            "question": self.question,
            "category": self.category,
            "maturity": self.maturity.value,
            "market_age_days": self.market_age_days,
            "is_active": self.is_active,
            "current_volume": self.current_volume,
            "current_liquidity": self.current_liquidity,
            "window_stats": {w.value: s.to_dict() for w, s in self.window_stats.items()},
            "range_start": self.range_start.isoformat(),
            "range_end": self.range_end.isoformat(),
            "calculated_at": self.calculated_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "from_cache": self.from_cache,
        }


@dataclass(frozen=True)
class VolumeAnomaly:
    """Result of testing an observed volume against a baseline window."""

    window: BaselineWindow
    observed_volume: float
    is_anomalous: bool
    is_high: bool
    is_low: bool
    z_score: float
    low_threshold: float
    high_threshold: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "window": self.window.value,
            "observed_volume": self.observed_volume,
            "is_anomalous": self.is_anomalous,
            "is_high": self.is_high,
            "is_low": self.is_low,
            "z_score": self.z_score,
            "thresholds": {"low": self.low_threshold, "high": self.high_threshold},
        }


@dataclass(frozen=True)
class MarketVolumeRank:
    """Compact market entry used in summaries."""

    market_id: str
    question: str
    value: float


@dataclass(frozen=True)
class BaselineSummary:
    """Aggregate statistics over a set of market baselines."""

    total_markets: int
    by_maturity: dict[MarketMaturity, int]
    average_daily_volume: float | None
    median_daily_volume: float | None
    total_current_volume: float
    top_markets_by_volume: tuple[MarketVolumeRank, ...]
    most_volatile_markets: tuple[MarketVolumeRank, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_markets": self.total_markets,
            "by_maturity": {m.value: n for m, n in self.by_maturity.items()},
            "average_daily_volume": self.average_daily_volume,
            "median_daily_volume": self.median_daily_volume,
            "total_current_volume": self.total_current_volume,
            "top_markets_by_volume": [
                {"market_id": r.market_id, "question": r.question, "current_volume": r.value}
                for r in self.top_markets_by_volume
            ],
            "most_volatile_markets": [
                {"market_id": r.market_id, "question": r.question, "coefficient_of_variation": r.value}
                for r in self.most_volatile_markets
            ],
        }


@dataclass(frozen=True)
class BatchBaselineResult:
    """Baselines computed for many markets, with per-market failures."""

    results: dict[str, MarketVolumeBaseline]
    errors: dict[str, str] = field(default_factory=dict)
    processing_time_ms: float = 0.0

    @property
    def total_processed(self) -> int:
        return len(self.results) + len(self.errors)

    @property
    def success_count(self) -> int:
        return len(self.results)

    @property
    def error_count(self) -> int:
        return len(self.errors)
