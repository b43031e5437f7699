"""Anomaly detection layer - coordinated wallet clusters."""

from polymarket_wallet_detector.detector.fresh_wallet_cluster import FreshWalletClusterAnalyzer
from polymarket_wallet_detector.detector.models import (
    BatchClusteringResult,
    ClusterConfidenceLevel,
    ClusterType,
    WalletCluster,
    WalletClusteringResult,
)

__all__ = [
    "BatchClusteringResult",
    "ClusterConfidenceLevel",
    "ClusterType",
    "FreshWalletClusterAnalyzer",
    "WalletCluster",
    "WalletClusteringResult",
]
