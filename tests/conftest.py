"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from polymarket_wallet_detector.config import clear_settings_cache


@pytest.fixture
def sample_market_id() -> str:
    """Sample market ID for testing."""
    return "0x1234567890abcdef1234567890abcdef12345678"


@pytest.fixture
def base_time() -> datetime:
    return datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _fresh_settings():
    clear_settings_cache()
    yield
    clear_settings_cache()
