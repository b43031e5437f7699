"""Tests for address validation and amount formatting."""

from __future__ import annotations

from decimal import Decimal

import pytest

from polymarket_wallet_detector.addresses import (
    InvalidAddressError,
    combine_amounts,
    format_amount,
    is_valid_address,
    normalize_address,
    to_decimal_amount,
)

CHECKSUMMED = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


class TestAddressValidation:
    def test_accepts_lowercase_and_checksummed(self) -> None:
        assert is_valid_address(CHECKSUMMED.lower())
        assert is_valid_address(CHECKSUMMED)

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "0x123",
            "5aaeb6053f3e94c9b9a09f33669435e7ef1beaed",
            "0xzzzeb6053f3e94c9b9a09f33669435e7ef1beaed",
            "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAeD",
            None,
            123,
        ],
    )
    def test_rejects_malformed(self, value: object) -> None:
        assert not is_valid_address(value)

    def test_normalize_lowercases(self) -> None:
        assert normalize_address(CHECKSUMMED) == CHECKSUMMED.lower()

    def test_normalize_raises(self) -> None:
        with pytest.raises(InvalidAddressError) as exc_info:
            normalize_address("0xnope")
        assert exc_info.value.address == "0xnope"
        assert isinstance(exc_info.value, ValueError)


class TestAmounts:
    def test_to_decimal_is_exact(self) -> None:
        assert to_decimal_amount(1_234_567, 6) == Decimal("1.234567")
        assert to_decimal_amount(10**30 + 1, 18) == Decimal("1000000000000.000000000000000001")

    @pytest.mark.parametrize(
        ("amount", "decimals", "expected"),
        [
            (1_500_000, 6, "1.5"),
            (10**24, 18, "1000000"),
            (0, 6, "0"),
            (1, 18, "0"),
            (1_234_567_891, 9, "1.234567"),
        ],
    )
    def test_format_amount(self, amount: int, decimals: int, expected: str) -> None:
        assert format_amount(amount, decimals) == expected

    def test_format_amount_display_precision(self) -> None:
        assert format_amount(1_999_999, 6, display_decimals=2) == "1.99"

    def test_combine_amounts_rescales_to_finest_decimals(self) -> None:
        total, decimals = combine_amounts([(5_000 * 10**6, 6), (10**18, 18)])
        assert decimals == 18
        assert format_amount(total, decimals) == "5001"

    def test_combine_amounts_empty(self) -> None:
        assert combine_amounts([]) == (0, 6)
