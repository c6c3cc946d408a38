"""Token balance, allowance and approval helpers."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, Sequence, Union

from web3 import Web3

from stablebridge.config import ChainDescriptor
from stablebridge.core.errors import BridgeError
from stablebridge.core.rpc import ChainClient, TransactionResult
from stablebridge.core.utils import get_logger

LOGGER = get_logger("stablebridge.tokens")

MAX_UINT256 = 2**256 - 1

ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}, {"name": "_spender", "type": "address"}],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [{"name": "_spender", "type": "address"}, {"name": "_value", "type": "uint256"}],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function",
    },
]


def balance_of(client: ChainClient, token_address: str, owner: str) -> int:
    """Fetch the ERC20 balance."""
    return int(client.call(token_address, ERC20_ABI, "balanceOf", Web3.to_checksum_address(owner)))


def allowance_of(client: ChainClient, token_address: str, owner: str, spender: str) -> int:
    """Fetch the ERC20 allowance."""
    return int(
        client.call(
            token_address,
            ERC20_ABI,
            "allowance",
            Web3.to_checksum_address(owner),
            Web3.to_checksum_address(spender),
        )
    )


def approve(client: ChainClient, token_address: str, spender: str, amount: int) -> TransactionResult:
    """Approve ``spender`` and wait for the confirmation."""
    return client.transact(token_address, ERC20_ABI, "approve", Web3.to_checksum_address(spender), amount)


def snapshot_balances(
    descriptors: Sequence[ChainDescriptor],
    owner: str,
    client_factory: Callable[[ChainDescriptor], ChainClient],
    *,
    max_workers: int = 8,
) -> Dict[ChainDescriptor, Union[int, BridgeError]]:
    """Read ``owner``'s token balance on several chains concurrently.

    Reads share no state, so each chain gets its own worker. A failing chain
    maps to its error instead of hiding the other results.
    """

    def _read(descriptor: ChainDescriptor) -> int:
        client = client_factory(descriptor)
        return balance_of(client, descriptor.token_address, owner)

    results: Dict[ChainDescriptor, Union[int, BridgeError]] = {}
    if not descriptors:
        return results

    with ThreadPoolExecutor(max_workers=min(max_workers, len(descriptors)), thread_name_prefix="balance") as pool:
        futures = {pool.submit(_read, descriptor): descriptor for descriptor in descriptors}
        for future in as_completed(futures):
            descriptor = futures[future]
            try:
                results[descriptor] = future.result()
            except BridgeError as exc:
                LOGGER.warning("Balance read failed on %s: %s", descriptor.chain_key, exc)
                results[descriptor] = exc
    return results


__all__ = ["ERC20_ABI", "MAX_UINT256", "allowance_of", "approve", "balance_of", "snapshot_balances"]
