"""Chain RPC collaborator: read-only calls and signed, confirmed submissions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

import requests
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from stablebridge.config import ChainDescriptor
from stablebridge.core.errors import NetworkTimeoutError, RpcError, TransactionRevertedError
from stablebridge.core.utils import ensure_web3_connected, get_logger

LOGGER = get_logger("stablebridge.rpc")

GAS_BUFFER_NUMERATOR = 11
GAS_BUFFER_DENOMINATOR = 10


@dataclass(frozen=True)
class TransactionResult:
    """A confirmed transaction and its receipt."""

    tx_hash: str
    receipt: Mapping[str, Any]

    @property
    def block_number(self) -> Optional[int]:
        return self.receipt.get("blockNumber")


@dataclass(frozen=True)
class GasParameters:
    """EIP-1559 gas parameters."""

    gas: int
    max_priority_fee: int
    max_fee: int


def _wrap_rpc_error(action: str, exc: Exception) -> RpcError:
    if isinstance(exc, RpcError):
        return exc
    if isinstance(exc, (requests.Timeout, TimeExhausted, TimeoutError)):
        return NetworkTimeoutError(f"{action} timed out: {exc}", cause=exc)
    if isinstance(exc, ContractLogicError):
        return TransactionRevertedError(f"{action} reverted: {exc}", cause=exc)
    return RpcError(f"{action} failed: {exc}", cause=exc)


class ChainClient:
    """Thin wrapper over one chain's ``Web3`` instance and an optional signer.

    The transfer engine only needs two capabilities from a chain: ``call`` for
    read-only contract calls and ``transact``/``send_raw`` for signed submissions
    that block until the receipt is available.
    """

    def __init__(
        self,
        web3: Web3,
        *,
        chain_id: int,
        account: Optional[LocalAccount] = None,
        receipt_timeout: float = 180,
    ) -> None:
        self.web3 = web3
        self.chain_id = chain_id
        self.account = account
        self.receipt_timeout = receipt_timeout

    @classmethod
    def for_chain(
        cls,
        descriptor: ChainDescriptor,
        *,
        account: Optional[LocalAccount] = None,
        rpc_timeout: float = 30,
        receipt_timeout: float = 180,
        web3_factory: Optional[Callable[[str, float], Web3]] = None,
    ) -> "ChainClient":
        rpc_url = descriptor.ensure_rpc_url()
        if web3_factory is not None:
            web3 = web3_factory(rpc_url, rpc_timeout)
        else:
            web3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": rpc_timeout}))
        try:
            ensure_web3_connected(web3, expected_chain_id=descriptor.chain_id)
        except (ConnectionError, ValueError) as exc:
            raise RpcError(f"{descriptor.name} RPC unusable ({rpc_url}): {exc}", cause=exc) from exc
        return cls(web3, chain_id=descriptor.chain_id, account=account, receipt_timeout=receipt_timeout)

    @property
    def address(self) -> str:
        if self.account is None:
            raise RpcError("No signing account configured for this chain")
        return self.account.address

    def contract(self, address: str, abi: Sequence[Dict[str, Any]]):
        return self.web3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    def call(self, address: str, abi: Sequence[Dict[str, Any]], fn_name: str, *args: Any) -> Any:
        """Run a read-only contract call."""
        try:
            return self.contract(address, abi).get_function_by_name(fn_name)(*args).call()
        except Exception as exc:
            raise _wrap_rpc_error(f"{fn_name}() on {address}", exc) from exc

    def native_balance(self, address: str) -> int:
        try:
            return self.web3.eth.get_balance(Web3.to_checksum_address(address))
        except Exception as exc:
            raise _wrap_rpc_error("eth_getBalance", exc) from exc

    def transact(
        self,
        address: str,
        abi: Sequence[Dict[str, Any]],
        fn_name: str,
        *args: Any,
        value: int = 0,
    ) -> TransactionResult:
        """Sign, broadcast and confirm a contract call."""
        action = f"{fn_name}() on {address}"
        try:
            fn = self.contract(address, abi).get_function_by_name(fn_name)(*args)
            gas = self._estimate_gas(lambda params: fn.estimate_gas(params), value)
            tx = fn.build_transaction(self._tx_params(gas, value))
        except Exception as exc:
            raise _wrap_rpc_error(action, exc) from exc
        return self._sign_and_confirm(tx, action)

    def send_raw(self, to: str, data: str, *, value: int = 0) -> TransactionResult:
        """Sign, broadcast and confirm a pre-built call (router backend steps)."""
        action = f"transaction to {to}"
        target = Web3.to_checksum_address(to)
        try:
            gas = self._estimate_gas(
                lambda params: self.web3.eth.estimate_gas({**params, "to": target, "data": data}),
                value,
            )
            tx = {**self._tx_params(gas, value), "to": target, "data": data}
        except Exception as exc:
            raise _wrap_rpc_error(action, exc) from exc
        return self._sign_and_confirm(tx, action)

    def _estimate_gas(self, estimate: Callable[[Dict[str, Any]], int], value: int) -> GasParameters:
        estimated = estimate({"from": self.address, "value": value})
        gas_price = self.web3.eth.gas_price
        try:
            max_priority_fee = self.web3.eth.max_priority_fee
        except Exception:  # not every RPC implements eth_maxPriorityFeePerGas
            max_priority_fee = gas_price
        return GasParameters(
            gas=estimated * GAS_BUFFER_NUMERATOR // GAS_BUFFER_DENOMINATOR,
            max_priority_fee=max_priority_fee,
            max_fee=gas_price + max_priority_fee,
        )

    def _tx_params(self, gas: GasParameters, value: int) -> Dict[str, Any]:
        return {
            "from": self.address,
            "gas": gas.gas,
            "maxFeePerGas": gas.max_fee,
            "maxPriorityFeePerGas": gas.max_priority_fee,
            "nonce": self.web3.eth.get_transaction_count(self.address),
            "chainId": self.chain_id,
            "value": value,
        }

    def _sign_and_confirm(self, tx: Dict[str, Any], action: str) -> TransactionResult:
        if self.account is None:
            raise RpcError("No signing account configured for this chain")
        try:
            signed = self.account.sign_transaction(tx)
            tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as exc:
            raise _wrap_rpc_error(f"Broadcasting {action}", exc) from exc

        tx_hex = Web3.to_hex(tx_hash)
        LOGGER.info("Broadcast %s tx=%s, awaiting confirmation", action, tx_hex)
        try:
            receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except Exception as exc:
            error = _wrap_rpc_error(f"Confirming {tx_hex}", exc)
            if error.tx_hash is None:
                error.tx_hash = tx_hex
            if isinstance(error, NetworkTimeoutError):
                LOGGER.warning("Transaction %s may still confirm later", tx_hex)
            raise error from exc

        if receipt["status"] != 1:
            LOGGER.error("Transaction %s reverted in block %s", tx_hex, receipt.get("blockNumber"))
            raise TransactionRevertedError(f"{action} reverted (tx {tx_hex})", tx_hash=tx_hex)

        LOGGER.info("Transaction %s confirmed in block %s (gasUsed=%s)", tx_hex, receipt.get("blockNumber"), receipt.get("gasUsed"))
        return TransactionResult(tx_hash=tx_hex, receipt=receipt)


__all__ = ["ChainClient", "GasParameters", "TransactionResult"]
