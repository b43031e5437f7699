"""Tests for ingested record models."""

from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from polymarket_wallet_detector.ingestor.models import (
    BaselineWindow,
    FundingDeposit,
    MarketInfo,
    TradeRecord,
    VolumeSample,
    WalletRecord,
    parse_timestamp,
)

WALLET = "0x" + "ab" * 20
SOURCE = "0x" + "cd" * 20


class TestParseTimestamp:
    """Tests for parse_timestamp."""

    def test_epoch_seconds_and_millis(self) -> None:
        expected = datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)
        assert parse_timestamp(1_700_000_000) == expected
        assert parse_timestamp(1_700_000_000_000) == expected
        assert parse_timestamp("1700000000") == expected

    def test_iso_strings(self) -> None:
        expected = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
        assert parse_timestamp("2026-03-01T12:00:00Z") == expected
        assert parse_timestamp("2026-03-01T14:00:00+02:00") == expected
        # Naive strings are read as UTC
        assert parse_timestamp("2026-03-01T12:00:00") == expected

    def test_aware_datetime_converted_to_utc(self) -> None:
        local = datetime(2026, 3, 1, 7, 0, tzinfo=timezone(timedelta(hours=-5)))
        assert parse_timestamp(local) == datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
        assert parse_timestamp(local).tzinfo == UTC

    @pytest.mark.parametrize("value", [datetime(2026, 3, 1), True, None, "not a date"])
    def test_rejects_invalid(self, value: object) -> None:
        with pytest.raises(ValueError):
            parse_timestamp(value)


class TestRecords:
    """Tests for input record dataclasses."""

    def test_naive_timestamps_rejected(self) -> None:
        with pytest.raises(ValueError, match="timezone-aware"):
            VolumeSample(timestamp=datetime(2026, 3, 1), volume=1.0)
        with pytest.raises(ValueError):
            MarketInfo(market_id="m", created_at=datetime(2026, 3, 1))

    def test_volume_sample_from_dict(self) -> None:
        sample = VolumeSample.from_dict(
            {"timestamp": "2026-03-01T00:00:00Z", "volume": "125.5", "tradeCount": 4}
        )
        assert sample.volume == 125.5
        assert sample.trade_count == 4

    def test_market_info_from_dict(self) -> None:
        info = MarketInfo.from_dict(
            {
                "id": "0xmarket",
                "question": "Will it rain?",
                "createdAt": "2026-02-01T00:00:00Z",
                "volume": 5000,
                "liquidity": "1200.5",
                "closed": True,
            }
        )
        assert info.market_id == "0xmarket"
        assert info.created_at == datetime(2026, 2, 1, tzinfo=UTC)
        assert info.current_volume == 5000.0
        assert info.current_liquidity == 1200.5
        assert info.closed is True

    def test_trade_notional(self, base_time: datetime) -> None:
        trade = TradeRecord(
            market_id="m1", timestamp=base_time, size=Decimal("100"), price=Decimal("0.45")
        )
        assert trade.notional == Decimal("45.00")

    def test_trade_from_dict_normalizes_side(self) -> None:
        trade = TradeRecord.from_dict(
            {"market": "m1", "timestamp": 1_700_000_000, "size": 10, "price": 0.5, "side": "sell"}
        )
        assert trade.side == "SELL"
        assert trade.size == Decimal("10")


class TestFundingDeposit:
    """Tests for FundingDeposit."""

    def test_amount_usd_uses_decimals(self, base_time: datetime) -> None:
        deposit = FundingDeposit(source_address=SOURCE, amount=2_500_000_000, timestamp=base_time)
        assert deposit.amount_usd == Decimal("2500")

        wei = FundingDeposit(
            source_address=SOURCE, amount=3 * 10**18, timestamp=base_time, decimals=18
        )
        assert wei.amount_usd == Decimal("3")

    def test_negative_amount_rejected(self, base_time: datetime) -> None:
        with pytest.raises(ValueError):
            FundingDeposit(source_address=SOURCE, amount=-1, timestamp=base_time)

    def test_source_flags(self, base_time: datetime) -> None:
        exchange = FundingDeposit(
            source_address=SOURCE, amount=1, timestamp=base_time, is_exchange=True
        )
        mixer = FundingDeposit(source_address=SOURCE, amount=1, timestamp=base_time, is_mixer=True)
        risky = FundingDeposit(
            source_address=SOURCE, amount=1, timestamp=base_time, risk_level="high"
        )

        assert not exchange.is_unknown_source
        assert not exchange.is_high_risk
        assert mixer.is_high_risk
        assert not mixer.is_unknown_source
        assert risky.is_high_risk
        assert risky.is_unknown_source

    def test_from_dict(self) -> None:
        deposit = FundingDeposit.from_dict(
            {
                "from": SOURCE.upper().replace("0X", "0x"),
                "amount": "1000000000000000000000000",
                "timestamp": "2026-03-01T00:00:00Z",
                "riskLevel": "CRITICAL",
            },
            default_decimals=18,
        )
        assert deposit.source_address == SOURCE
        assert deposit.amount == 10**24
        assert deposit.decimals == 18
        assert deposit.risk_level == "critical"
        assert deposit.is_high_risk


class TestWalletRecord:
    """Tests for WalletRecord."""

    def test_first_trade_and_inflow(self, base_time: datetime) -> None:
        wallet = WalletRecord(
            address=WALLET,
            deposits=(
                FundingDeposit(source_address=SOURCE, amount=5, timestamp=base_time),
                FundingDeposit(source_address=SOURCE, amount=7, timestamp=base_time),
            ),
            trades=(
                TradeRecord("m1", base_time + timedelta(hours=2), Decimal(1), Decimal("0.5")),
                TradeRecord("m2", base_time + timedelta(hours=1), Decimal(1), Decimal("0.5")),
            ),
        )
        assert wallet.first_trade_at == base_time + timedelta(hours=1)
        assert wallet.total_inflow == Decimal("0.000012")

    def test_total_inflow_mixes_token_decimals(self, base_time: datetime) -> None:
        wallet = WalletRecord(
            address=WALLET,
            deposits=(
                FundingDeposit(source_address=SOURCE, amount=5_000 * 10**6, timestamp=base_time),
                FundingDeposit(
                    source_address=SOURCE, amount=10**18, timestamp=base_time, decimals=18
                ),
            ),
        )
        assert wallet.total_inflow == Decimal("5001")

    def test_no_trades(self) -> None:
        assert WalletRecord(address=WALLET).first_trade_at is None

    def test_from_dict(self) -> None:
        wallet = WalletRecord.from_dict(
            {
                "address": WALLET,
                "deposits": [{"source_address": SOURCE, "amount": 1, "timestamp": 1_700_000_000}],
                "trades": [{"market_id": "m1", "timestamp": 1_700_000_060, "size": 1, "price": 1}],
            }
        )
        assert len(wallet.deposits) == 1
        assert wallet.first_trade_at == datetime(2023, 11, 14, 22, 14, 20, tzinfo=UTC)


def test_window_durations() -> None:
    assert BaselineWindow.HOURLY.duration == timedelta(hours=1)
    assert BaselineWindow.FOUR_HOUR.duration == timedelta(hours=4)
    assert BaselineWindow.MONTHLY.duration == timedelta(days=30)
