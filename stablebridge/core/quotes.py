"""Quoting: on-chain fee/preview reads and the external router API."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

import requests
from web3 import Web3

from stablebridge.config import ChainDescriptor
from stablebridge.core import oft
from stablebridge.core.errors import BridgeError, NetworkTimeoutError, QuoteFailedError
from stablebridge.core.oft import MessagingFee, OFTFeeDetail, OFTLimit, OFTReceipt
from stablebridge.core.request import TransferRequest
from stablebridge.core.rpc import ChainClient
from stablebridge.core.utils import get_logger

LOGGER = get_logger("stablebridge.quotes")


@dataclass(frozen=True)
class QuoteResult:
    """Messaging fee plus protocol preview for one ``TransferRequest``."""

    messaging_fee: MessagingFee
    limit: OFTLimit
    fee_details: Sequence[OFTFeeDetail]
    receipt: OFTReceipt

    @property
    def amount_received(self) -> int:
        return self.receipt.amount_received_ld

    def within_limits(self, amount: int) -> bool:
        return self.limit.min_amount_ld <= amount <= self.limit.max_amount_ld

    def meets_floor(self, min_amount: int) -> bool:
        return self.receipt.amount_received_ld >= min_amount


class QuoteService:
    """Read-only quoting against the source chain's bridging contract."""

    def __init__(self, client: ChainClient) -> None:
        self.client = client

    def quote(self, descriptor: ChainDescriptor, request: TransferRequest) -> QuoteResult:
        """Return a consistent quote or raise ``QuoteFailedError``.

        Both reads use the same request; if either fails nothing partial is
        returned.
        """
        try:
            fee = oft.quote_send(self.client, descriptor.oft_address, request)
            limit, fee_details, receipt = oft.quote_oft(self.client, descriptor.oft_address, request)
        except (BridgeError, ValueError, TypeError) as exc:
            raise QuoteFailedError(f"Quote on {descriptor.name} failed: {exc}", cause=exc) from exc

        problem = _inconsistency(fee, limit, receipt, request)
        if problem:
            raise QuoteFailedError(f"Quote on {descriptor.name} returned inconsistent data: {problem}")

        LOGGER.info(
            "Quoted %s: nativeFee=%s lzTokenFee=%s sent=%s received=%s limits=[%s, %s]",
            descriptor.chain_key,
            fee.native_fee,
            fee.lz_token_fee,
            receipt.amount_sent_ld,
            receipt.amount_received_ld,
            limit.min_amount_ld,
            limit.max_amount_ld,
        )
        return QuoteResult(messaging_fee=fee, limit=limit, fee_details=tuple(fee_details), receipt=receipt)


def _inconsistency(fee: MessagingFee, limit: OFTLimit, receipt: OFTReceipt, request: TransferRequest) -> Optional[str]:
    if fee.native_fee < 0 or fee.lz_token_fee < 0:
        return "negative messaging fee"
    if limit.min_amount_ld > limit.max_amount_ld:
        return f"min limit {limit.min_amount_ld} above max limit {limit.max_amount_ld}"
    if receipt.amount_sent_ld > request.amount_ld:
        return f"preview sends {receipt.amount_sent_ld}, more than requested {request.amount_ld}"
    if receipt.amount_received_ld > receipt.amount_sent_ld:
        return f"preview receives {receipt.amount_received_ld}, more than sent {receipt.amount_sent_ld}"
    return None


# ---------------------------------------------------------------------------
# External router backend
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RouterStep:
    """One pre-built transaction of a router plan (``approve``, ``bridge``...)."""

    type: str
    to: str
    data: str
    value: int = 0
    description: Optional[str] = None


@dataclass(frozen=True)
class RouterQuote:
    steps: Sequence[RouterStep]
    src_amount: int
    dst_amount: int
    route: Optional[str] = None
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False)


def _parse_wei(value: Any) -> int:
    """Parse a wei value: hex when ``0x``-prefixed, decimal otherwise."""
    if isinstance(value, str):
        text = value.strip()
        return int(text, 16) if text.lower().startswith("0x") else int(text, 10)
    return int(value)


def _parse_step(step: Mapping[str, Any]) -> RouterStep:
    tx = step["transaction"]
    value = tx.get("value") or "0"
    return RouterStep(
        type=str(step.get("type", "tx")),
        to=Web3.to_checksum_address(tx["to"]),
        data=str(tx["data"]),
        value=_parse_wei(value),
        description=step.get("description"),
    )


def _is_valid_candidate(candidate: Any) -> bool:
    return (
        isinstance(candidate, Mapping)
        and not candidate.get("error")
        and bool(candidate.get("srcAmount"))
        and bool(candidate.get("dstAmount"))
        and bool(candidate.get("steps"))
    )


class RouterApiClient:
    """Client for the external router quote API."""

    def __init__(self, url: str, *, timeout: float = 15, session: Optional[requests.Session] = None) -> None:
        self.url = url
        self.timeout = timeout
        self.session = session

    def fetch_quote(
        self,
        *,
        src_token: str,
        dst_token: str,
        src_address: str,
        dst_address: str,
        src_chain_key: str,
        dst_chain_key: str,
        src_amount: int,
        dst_amount_min: int,
    ) -> RouterQuote:
        """Return the first valid candidate plan, or raise ``QuoteFailedError``."""
        params = {
            "srcToken": src_token,
            "dstToken": dst_token,
            "srcAddress": src_address,
            "dstAddress": dst_address,
            "srcChainKey": src_chain_key,
            "dstChainKey": dst_chain_key,
            "srcAmount": str(src_amount),
            "dstAmountMin": str(dst_amount_min),
        }
        getter = self.session.get if self.session is not None else requests.get
        try:
            response = getter(self.url, params=params, timeout=self.timeout)
        except requests.Timeout as exc:
            timeout = NetworkTimeoutError(f"Router API timed out: {exc}", cause=exc)
            raise QuoteFailedError(f"Router quote from {self.url} timed out", cause=timeout) from exc
        except requests.RequestException as exc:
            raise QuoteFailedError(f"Failed to fetch router quote from {self.url}: {exc}", cause=exc) from exc

        if not response.ok:
            raise QuoteFailedError(_api_error_message(response))

        try:
            payload = response.json()
        except ValueError as exc:
            raise QuoteFailedError("Router API returned invalid JSON", cause=exc) from exc

        candidates = (payload.get("quotes") or []) if isinstance(payload, Mapping) else []
        if not candidates:
            message = _nested_message(payload) or "No routes available"
            raise QuoteFailedError(f"Router returned no quotes: {message}")

        for candidate in candidates:
            if not _is_valid_candidate(candidate):
                continue
            try:
                steps = [_parse_step(step) for step in candidate["steps"]]
                quote = RouterQuote(
                    steps=tuple(steps),
                    src_amount=int(candidate["srcAmount"]),
                    dst_amount=int(candidate["dstAmount"]),
                    route=candidate.get("route"),
                    raw=candidate,
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise QuoteFailedError(f"Router quote is malformed: {exc}", cause=exc) from exc
            LOGGER.info(
                "Router quote %s -> %s: %s steps, src=%s dst=%s",
                src_chain_key,
                dst_chain_key,
                len(quote.steps),
                quote.src_amount,
                quote.dst_amount,
            )
            return quote

        first_error = next((_nested_message(c) for c in candidates if isinstance(c, Mapping) and c.get("error")), None)
        raise QuoteFailedError(f"Router returned no valid quotes: {first_error or 'No valid routes available'}")


def _nested_message(payload: Any) -> Optional[str]:
    if isinstance(payload, Mapping):
        error = payload.get("error")
        if isinstance(error, Mapping):
            return error.get("message")
        if isinstance(error, str):
            return error
    return None


def _api_error_message(response: requests.Response) -> str:
    message = f"Router API error ({response.status_code})"
    try:
        detail = _nested_message(response.json())
    except ValueError:
        detail = None
    return f"{message}: {detail}" if detail else message


__all__ = [
    "QuoteResult",
    "QuoteService",
    "RouterApiClient",
    "RouterQuote",
    "RouterStep",
]
