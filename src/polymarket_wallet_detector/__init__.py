"""Polymarket wallet detector - suspicious-wallet detection engine."""

__version__ = "0.1.0"
