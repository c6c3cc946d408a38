"""Bridging-contract (OFT) reads, send submission and event decoding."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

from web3 import Web3

from stablebridge.contracts import load_contract_abi
from stablebridge.core.request import TransferRequest
from stablebridge.core.rpc import ChainClient, TransactionResult

# Topic of OFTSent(bytes32 indexed guid, uint32 dstEid, address indexed fromAddress, uint256, uint256)
OFT_SENT_TOPIC = Web3.keccak(text="OFTSent(bytes32,uint32,address,uint256,uint256)")

GUID_UNAVAILABLE = "0x"


def oft_abi() -> List[Any]:
    return load_contract_abi("oft.json")


@dataclass(frozen=True)
class MessagingFee:
    native_fee: int
    lz_token_fee: int = 0

    def as_tuple(self) -> Tuple[int, int]:
        return (self.native_fee, self.lz_token_fee)


@dataclass(frozen=True)
class OFTLimit:
    min_amount_ld: int
    max_amount_ld: int


@dataclass(frozen=True)
class OFTFeeDetail:
    fee_amount_ld: int
    description: str


@dataclass(frozen=True)
class OFTReceipt:
    amount_sent_ld: int
    amount_received_ld: int


def quote_send(client: ChainClient, oft_address: str, request: TransferRequest, pay_in_lz_token: bool = False) -> MessagingFee:
    """Read the messaging fee for ``request``."""
    native_fee, lz_token_fee = client.call(oft_address, oft_abi(), "quoteSend", request.as_tuple(), pay_in_lz_token)
    return MessagingFee(native_fee=int(native_fee), lz_token_fee=int(lz_token_fee))


def quote_oft(
    client: ChainClient, oft_address: str, request: TransferRequest
) -> Tuple[OFTLimit, List[OFTFeeDetail], OFTReceipt]:
    """Read transfer limits, protocol fee line items and the receipt preview."""
    limit, fee_details, receipt = client.call(oft_address, oft_abi(), "quoteOFT", request.as_tuple())
    return (
        OFTLimit(min_amount_ld=int(limit[0]), max_amount_ld=int(limit[1])),
        [OFTFeeDetail(fee_amount_ld=int(amount), description=str(description)) for amount, description in fee_details],
        OFTReceipt(amount_sent_ld=int(receipt[0]), amount_received_ld=int(receipt[1])),
    )


def send(
    client: ChainClient,
    oft_address: str,
    request: TransferRequest,
    fee: MessagingFee,
    refund_address: str,
) -> TransactionResult:
    """Submit the transfer, paying the native messaging fee, and wait for it."""
    return client.transact(
        oft_address,
        oft_abi(),
        "send",
        request.as_tuple(),
        fee.as_tuple(),
        Web3.to_checksum_address(refund_address),
        value=fee.native_fee,
    )


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return Web3.to_bytes(hexstr=value)
    raise TypeError(f"Unsupported log field type: {type(value)!r}")


def extract_guid(receipt: Mapping[str, Any], emitter: Optional[str] = None) -> str:
    """Return the GUID from the first ``OFTSent`` log, or ``GUID_UNAVAILABLE``.

    ``emitter`` restricts the search to logs from that contract address.
    """
    emitter_lower = emitter.lower() if emitter else None
    for log in receipt.get("logs") or []:
        if emitter_lower and str(log.get("address", "")).lower() != emitter_lower:
            continue
        topics = log.get("topics") or []
        if len(topics) < 2 or _as_bytes(topics[0]) != bytes(OFT_SENT_TOPIC):
            continue
        guid = _as_bytes(topics[1])
        if len(guid) == 32:
            return Web3.to_hex(guid)
    return GUID_UNAVAILABLE


__all__ = [
    "GUID_UNAVAILABLE",
    "MessagingFee",
    "OFTFeeDetail",
    "OFTLimit",
    "OFTReceipt",
    "OFT_SENT_TOPIC",
    "extract_guid",
    "quote_oft",
    "quote_send",
    "send",
]
