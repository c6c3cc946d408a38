"""Standing ERC-20 approval for the bridging contract."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from stablebridge.config import ChainDescriptor
from stablebridge.core.errors import ApprovalFailedError, BridgeError
from stablebridge.core.rpc import ChainClient
from stablebridge.core.tokens import MAX_UINT256, allowance_of, approve
from stablebridge.core.utils import get_logger

LOGGER = get_logger("stablebridge.approval")


@dataclass(frozen=True)
class ApprovalResult:
    approved: bool
    tx_hash: Optional[str] = None
    allowance: Optional[int] = None


class ApprovalManager:
    """Grant the bridging contract an allowance only when it is missing.

    Calls with an already sufficient allowance never submit a transaction, so
    repeating ``ensure_approved`` is safe. Concurrent callers for the same
    (owner, bridging contract) pair must serialise externally; two checks can
    both see the stale allowance.
    """

    def __init__(self, client: ChainClient) -> None:
        self.client = client

    def ensure_approved(self, descriptor: ChainDescriptor, owner: str, amount: int) -> ApprovalResult:
        if not descriptor.requires_approval:
            LOGGER.info("%s bridging contract (%s) needs no approval", descriptor.chain_key, descriptor.kind.value)
            return ApprovalResult(approved=False)

        try:
            allowance = allowance_of(self.client, descriptor.token_address, owner, descriptor.oft_address)
        except BridgeError as exc:
            raise ApprovalFailedError(f"Could not read allowance on {descriptor.name}: {exc}", cause=exc) from exc

        if allowance >= amount:
            LOGGER.info("Allowance %s covers amount %s; skipping approval", allowance, amount)
            return ApprovalResult(approved=False, allowance=allowance)

        LOGGER.info(
            "Allowance %s below amount %s; approving %s for max amount",
            allowance,
            amount,
            descriptor.oft_address,
        )
        try:
            result = approve(self.client, descriptor.token_address, descriptor.oft_address, MAX_UINT256)
        except BridgeError as exc:
            raise ApprovalFailedError(
                f"Approval on {descriptor.name} failed: {exc}",
                cause=exc,
                tx_hash=getattr(exc, "tx_hash", None),
            ) from exc

        return ApprovalResult(approved=True, tx_hash=result.tx_hash, allowance=MAX_UINT256)


__all__ = ["ApprovalManager", "ApprovalResult"]
