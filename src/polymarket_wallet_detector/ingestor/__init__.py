"""Ingested records and market volume baselines."""

from polymarket_wallet_detector.ingestor.models import (
    BaselineSummary,
    BaselineWindow,
    FundingDeposit,
    MarketInfo,
    MarketMaturity,
    MarketVolumeBaseline,
    TradeRecord,
    VolumeAnomaly,
    VolumeSample,
    WalletRecord,
    WindowVolumeStats,
)
from polymarket_wallet_detector.ingestor.volume_baseline import (
    VolumeBaselineCalculator,
    get_recommended_window,
)

__all__ = [
    "BaselineSummary",
    "BaselineWindow",
    "FundingDeposit",
    "MarketInfo",
    "MarketMaturity",
    "MarketVolumeBaseline",
    "TradeRecord",
    "VolumeAnomaly",
    "VolumeBaselineCalculator",
    "VolumeSample",
    "WalletRecord",
    "WindowVolumeStats",
    "get_recommended_window",
]
