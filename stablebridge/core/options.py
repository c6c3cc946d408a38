"""Executor options encoding for the destination ``lzReceive`` call.

Type-3 options layout::

    uint16 type (3)
    uint8  worker id (1 = executor)
    uint16 option size (option type byte + payload)
    uint8  option type (1 = lzReceive)
    uint128 gas [uint128 value]
"""

from __future__ import annotations

from stablebridge.core.errors import InvalidAmountError

DEFAULT_GAS_LIMIT = 200_000

OPTIONS_TYPE_3 = 3
EXECUTOR_WORKER_ID = 1
OPTION_TYPE_LZRECEIVE = 1
MAX_UINT128 = 2**128 - 1


def build_lz_receive_options(gas_limit: int = DEFAULT_GAS_LIMIT, value: int = 0) -> bytes:
    """Encode a single executor lzReceive option with ``gas_limit`` destination gas."""
    if isinstance(gas_limit, bool) or not isinstance(gas_limit, int):
        raise InvalidAmountError(f"gas limit must be an integer, got {gas_limit!r}")
    if gas_limit <= 0 or gas_limit > MAX_UINT128:
        raise InvalidAmountError(f"gas limit must be positive and fit in uint128, got {gas_limit}")
    if value < 0 or value > MAX_UINT128:
        raise InvalidAmountError(f"lzReceive value must fit in uint128, got {value}")

    payload = gas_limit.to_bytes(16, "big")
    if value:
        payload += value.to_bytes(16, "big")
    option = bytes([OPTION_TYPE_LZRECEIVE]) + payload
    return (
        OPTIONS_TYPE_3.to_bytes(2, "big")
        + bytes([EXECUTOR_WORKER_ID])
        + len(option).to_bytes(2, "big")
        + option
    )


def decode_lz_receive_gas(options: bytes) -> int:
    """Read the gas limit back out of options built by ``build_lz_receive_options``."""
    if len(options) < 22 or int.from_bytes(options[:2], "big") != OPTIONS_TYPE_3:
        raise ValueError("Not a type-3 options payload")
    if options[2] != EXECUTOR_WORKER_ID or options[5] != OPTION_TYPE_LZRECEIVE:
        raise ValueError("First option is not an executor lzReceive option")
    return int.from_bytes(options[6:22], "big")


__all__ = ["DEFAULT_GAS_LIMIT", "build_lz_receive_options", "decode_lz_receive_gas"]
