"""Alert severity shared by the funding and clustering detectors."""

from __future__ import annotations

from enum import Enum


class AlertSeverity(Enum):
    """Severity handed to the alerting layer."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def at_least(self, other: AlertSeverity) -> bool:
        return self.rank >= other.rank


_RANKS: dict[AlertSeverity, int] = {
    AlertSeverity.LOW: 0,
    AlertSeverity.MEDIUM: 1,
    AlertSeverity.HIGH: 2,
    AlertSeverity.CRITICAL: 3,
}
