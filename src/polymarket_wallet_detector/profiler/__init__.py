"""Wallet profiling layer - funding-to-first-trade patterns."""

from polymarket_wallet_detector.profiler.funding_pattern import FundingPatternAnalyzer
from polymarket_wallet_detector.profiler.models import (
    FundingPatternResult,
    FundingPatternSummary,
    FundingPatternType,
    FundingTimingCategory,
)

__all__ = [
    "FundingPatternAnalyzer",
    "FundingPatternResult",
    "FundingPatternSummary",
    "FundingPatternType",
    "FundingTimingCategory",
]
