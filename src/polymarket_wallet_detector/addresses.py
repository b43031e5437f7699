"""Wallet address and token amount helpers."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_DOWN, Decimal, localcontext

from web3 import Web3

DEFAULT_DISPLAY_DECIMALS = 6


class InvalidAddressError(ValueError):
    """Raised when a wallet address is not a valid EVM address."""

    def __init__(self, address: object) -> None:
        super().__init__(f"Invalid wallet address: {address!r}")
        self.address = address


def is_valid_address(address: object) -> bool:
    """Return True for a 0x-prefixed 20-byte hex address.

    Mixed-case addresses must carry a valid EIP-55 checksum.
    """
    if not isinstance(address, str) or not address.startswith("0x"):
        return False
    return bool(Web3.is_address(address))


def normalize_address(address: object) -> str:
    """Validate and lowercase an address.

    Raises:
        InvalidAddressError: If the address is malformed.
    """
    if not is_valid_address(address):
        raise InvalidAddressError(address)
    assert isinstance(address, str)
    return address.lower()


def _precision_for(amount: int, extra: int) -> int:
    return max(28, len(str(abs(amount))) + extra + 2)


def to_decimal_amount(amount: int, decimals: int) -> Decimal:
    """Convert raw on-chain units to a token amount without float rounding."""
    with localcontext() as ctx:
        ctx.prec = _precision_for(amount, decimals)
        return Decimal(amount).scaleb(-decimals)


def combine_amounts(
    amounts: Iterable[tuple[int, int]],
    *,
    default_decimals: int = 6,
) -> tuple[int, int]:
    """Add raw amounts that may use different token decimals.

    Each ``(amount, decimals)`` pair is rescaled to the finest scale present,
    so the returned ``(total, decimals)`` pair is exact.

    >>> combine_amounts([(5_000_000, 6), (10**18, 18)])
    (6000000000000000000, 18)
    """
    pairs = list(amounts)
    if not pairs:
        return 0, default_decimals
    scale = max(decimals for _, decimals in pairs)
    return sum(amount * 10 ** (scale - decimals) for amount, decimals in pairs), scale


def format_amount(
    amount: int,
    decimals: int,
    *,
    display_decimals: int = DEFAULT_DISPLAY_DECIMALS,
) -> str:
    """Format raw token units for display, truncating extra precision.

    >>> format_amount(1_500_000, 6)
    '1.5'
    >>> format_amount(10**24, 18)
    '1000000'
    """
    value = to_decimal_amount(amount, decimals)
    with localcontext() as ctx:
        ctx.prec = _precision_for(amount, display_decimals)
        truncated = value.quantize(Decimal(1).scaleb(-display_decimals), rounding=ROUND_DOWN)
    text = format(truncated, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"
