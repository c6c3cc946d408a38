"""Utility helpers shared across stablebridge core modules."""

from __future__ import annotations

import logging
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Optional, Union

from web3 import Web3

from stablebridge.config import TOKEN_DECIMALS
from stablebridge.core.errors import InvalidAmountError

BPS_DENOMINATOR = 10_000

DecimalLike = Union[str, int, Decimal]


def get_logger(name: str = "stablebridge") -> logging.Logger:
    """Return a configured logger that prints to stdout."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger


def ensure_web3_connected(web3: Web3, *, expected_chain_id: Optional[int] = None) -> None:
    """Validate that ``web3`` is connected and optionally matches the expected chain id."""
    if not web3.is_connected():
        raise ConnectionError("Failed to connect to the configured RPC endpoint")
    if expected_chain_id is not None and web3.eth.chain_id != expected_chain_id:
        raise ValueError(f"RPC chain ID mismatch: expected {expected_chain_id}, got {web3.eth.chain_id}")


def hex_to_bytes(data: str) -> bytes:
    """Convert a hex string (with or without ``0x``) to bytes."""
    data = data[2:] if data.startswith("0x") else data
    return bytes.fromhex(data)


def _to_decimal(value: DecimalLike, *, field_name: str) -> Decimal:
    if isinstance(value, float):
        raise InvalidAmountError(f"{field_name} must be a decimal string, not a float")
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise InvalidAmountError(f"{field_name} is not a number: {value!r}") from exc
    if not result.is_finite():
        raise InvalidAmountError(f"{field_name} must be finite: {value!r}")
    return result


def parse_amount(value: DecimalLike, decimals: int = TOKEN_DECIMALS) -> int:
    """Convert a human-readable token amount into integer base units.

    Rejects negative values and anything with more fractional digits than the
    token carries, so no precision is silently dropped.
    """
    amount = _to_decimal(value, field_name="amount")
    if amount < 0:
        raise InvalidAmountError(f"amount cannot be negative: {value!r}")
    with localcontext() as ctx:
        # scaleb rounds to context precision; widen it so large amounts stay exact
        ctx.prec = max(ctx.prec, len(amount.as_tuple().digits) + decimals)
        scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise InvalidAmountError(f"amount {value!r} has more than {decimals} decimal places")
    return int(scaled)


def format_amount(base_units: int, decimals: int = TOKEN_DECIMALS) -> str:
    """Render base units as a plain decimal string without trailing zeros."""
    sign = "-" if base_units < 0 else ""
    whole, frac = divmod(abs(int(base_units)), 10**decimals)
    if not frac:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{str(frac).rjust(decimals, '0').rstrip('0')}"


def format_native(wei: int, decimals: int = 18, symbol: str = "") -> str:
    """Render a native-currency amount with six significant decimals for display."""
    value = (Decimal(int(wei)) / (Decimal(10) ** decimals)).quantize(Decimal("0.000001"), rounding=ROUND_DOWN)
    return f"{value} {symbol}".strip()


def parse_slippage(value: DecimalLike) -> Decimal:
    """Validate a slippage percentage in ``[0, 100)``."""
    slippage = _to_decimal(value, field_name="slippage")
    if slippage < 0 or slippage >= 100:
        raise InvalidAmountError(f"slippage must be in [0, 100), got {value!r}")
    return slippage


def slippage_to_bps(slippage_percent: DecimalLike) -> int:
    """Convert a percentage to basis points, rounding half away from zero."""
    slippage = parse_slippage(slippage_percent)
    return int((slippage * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_min_amount(amount: int, slippage_percent: DecimalLike) -> int:
    """Return the slippage floor ``floor(amount * (10000 - bps) / 10000)``."""
    if amount < 0:
        raise InvalidAmountError(f"amount cannot be negative: {amount}")
    bps = slippage_to_bps(slippage_percent)
    min_amount = (int(amount) * (BPS_DENOMINATOR - bps)) // BPS_DENOMINATOR
    if min_amount < 0 or min_amount > amount:
        raise InvalidAmountError(f"slippage {slippage_percent} yields invalid minimum {min_amount}")
    return min_amount


def address_to_bytes32(address: str) -> bytes:
    """Left-pad a hex chain-native address to the 32-byte form used on the wire."""
    if not isinstance(address, str) or not address:
        raise InvalidAmountError(f"recipient must be a hex address, got {address!r}")
    try:
        raw = hex_to_bytes(address)
    except ValueError as exc:
        raise InvalidAmountError(f"recipient is not valid hex: {address!r}") from exc
    if not raw or len(raw) > 32:
        raise InvalidAmountError(f"recipient must be between 1 and 32 bytes, got {len(raw)}")
    return raw.rjust(32, b"\x00")


def checksum_address(value: str, field_name: str = "address") -> str:
    """Checksum an EVM address typed by a user, raising ``InvalidAmountError`` if malformed."""
    try:
        return Web3.to_checksum_address(value)
    except (TypeError, ValueError) as exc:
        raise InvalidAmountError(f"{field_name} is not a valid EVM address: {value!r}") from exc


def truncate_address(address: str, keep: int = 6) -> str:
    """Shorten an address or hash for log lines."""
    if len(address) <= 2 * keep + 2:
        return address
    return f"{address[:keep + 2]}...{address[-keep:]}"


__all__ = [
    "BPS_DENOMINATOR",
    "address_to_bytes32",
    "calculate_min_amount",
    "checksum_address",
    "ensure_web3_connected",
    "format_amount",
    "format_native",
    "get_logger",
    "hex_to_bytes",
    "parse_amount",
    "parse_slippage",
    "slippage_to_bps",
    "truncate_address",
]
