"""Canonical transfer request (``SendParam``) construction."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from stablebridge.config import TOKEN_DECIMALS, ChainDescriptor
from stablebridge.core.errors import InvalidAmountError
from stablebridge.core.options import DEFAULT_GAS_LIMIT, build_lz_receive_options, decode_lz_receive_gas
from stablebridge.core.utils import DecimalLike, address_to_bytes32, calculate_min_amount, parse_amount


@dataclass(frozen=True)
class TransferRequest:
    """Immutable ``SendParam`` for one transfer attempt.

    ``compose_msg`` and ``oft_cmd`` stay empty for simple transfers.
    """

    dst_eid: int
    to: bytes
    amount_ld: int
    min_amount_ld: int
    extra_options: bytes
    compose_msg: bytes = b""
    oft_cmd: bytes = b""

    def __post_init__(self) -> None:
        if len(self.to) != 32:
            raise InvalidAmountError(f"recipient must be 32 bytes, got {len(self.to)}")
        if self.amount_ld <= 0:
            raise InvalidAmountError(f"amount must be positive, got {self.amount_ld}")
        if not 0 <= self.min_amount_ld <= self.amount_ld:
            raise InvalidAmountError(
                f"minimum amount {self.min_amount_ld} must be between 0 and amount {self.amount_ld}"
            )
        if not self.extra_options:
            raise InvalidAmountError("destination gas options are required")

    @property
    def gas_limit(self) -> int:
        return decode_lz_receive_gas(self.extra_options)

    def as_tuple(self) -> Tuple[int, bytes, int, int, bytes, bytes, bytes]:
        """Field order of the on-chain ``SendParam`` struct."""
        return (
            self.dst_eid,
            self.to,
            self.amount_ld,
            self.min_amount_ld,
            self.extra_options,
            self.compose_msg,
            self.oft_cmd,
        )


def build_transfer_request(
    *,
    amount: DecimalLike,
    destination: ChainDescriptor,
    recipient: str,
    slippage_percent: DecimalLike = "0.5",
    gas_limit: Optional[int] = None,
    decimals: int = TOKEN_DECIMALS,
) -> TransferRequest:
    """Build a ``TransferRequest`` from user-facing inputs.

    ``amount`` and ``slippage_percent`` are decimal strings (or ``Decimal``);
    floats are refused so no binary rounding enters the base-unit maths.
    """
    amount_ld = parse_amount(amount, decimals)
    if amount_ld == 0:
        raise InvalidAmountError("amount must be greater than zero")
    min_amount_ld = calculate_min_amount(amount_ld, slippage_percent)

    return TransferRequest(
        dst_eid=destination.eid,
        to=address_to_bytes32(recipient),
        amount_ld=amount_ld,
        min_amount_ld=min_amount_ld,
        extra_options=build_lz_receive_options(DEFAULT_GAS_LIMIT if gas_limit is None else gas_limit),
    )


__all__ = ["TransferRequest", "build_transfer_request"]
