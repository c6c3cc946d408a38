"""
Pytest configuration and fixtures for stablebridge tests.
"""

import json
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from stablebridge.config import load_config
from stablebridge.core.errors import NetworkTimeoutError, TransactionRevertedError
from stablebridge.core.registry import ChainRegistry
from stablebridge.core.rpc import TransactionResult

SENDER = "0x9999999999999999999999999999999999999999"
RECIPIENT = "0x8888888888888888888888888888888888888888"

ETH_PYUSD_TOKEN = "0x1111111111111111111111111111111111111111"
ETH_PYUSD_OFT = "0x1212121212121212121212121212121212121212"
ARB_PYUSD_TOKEN = "0x2222222222222222222222222222222222222222"
ARB_PYUSD_OFT = "0x2323232323232323232323232323232323232323"
ARB_PYUSD0_TOKEN = "0x3333333333333333333333333333333333333333"
ARB_PYUSD0_OFT = "0x3434343434343434343434343434343434343434"
AVAX_PYUSD0_OFT = "0x4444444444444444444444444444444444444444"
SEI_PYUSD0_OFT = "0x5555555555555555555555555555555555555555"


def _chain(name, chain_id, eid, token, oft, oft_type, symbol="ETH", **extra):
    entry = {
        "name": name,
        "chainId": chain_id,
        "eid": eid,
        "tokenAddress": token,
        "oftAddress": oft,
        "oftType": oft_type,
        "decimals": 6,
        "rpcUrl": f"https://rpc.example/{name.lower()}",
        "nativeCurrency": {"symbol": symbol, "decimals": 18, "name": symbol},
        "blockExplorer": f"https://explorer.example/{name.lower()}",
    }
    entry.update(extra)
    return entry


@pytest.fixture
def config_dict() -> Dict[str, Any]:
    """Two meshes with Arbitrum as the shared bridge chain."""
    return {
        "meshes": {
            "pyusd": {
                "ethereum": _chain("Ethereum", 1, 30101, ETH_PYUSD_TOKEN, ETH_PYUSD_OFT, "OFTAdapter"),
                "arbitrum": _chain("Arbitrum", 42161, 30110, ARB_PYUSD_TOKEN, ARB_PYUSD_OFT, "NativeOFT"),
            },
            "pyusd0": {
                "arbitrum": _chain("Arbitrum", 42161, 30110, ARB_PYUSD0_TOKEN, ARB_PYUSD0_OFT, "OFTAdapter"),
                "avalanche": _chain(
                    "Avalanche", 43114, 30106, AVAX_PYUSD0_OFT, AVAX_PYUSD0_OFT, "NativeOFT", symbol="AVAX"
                ),
                "sei": _chain("Sei", 1329, 30280, SEI_PYUSD0_OFT, SEI_PYUSD0_OFT, "ProxyOFT", symbol="SEI"),
            },
        },
        "defaults": {"slippage_percent": "0.5", "gas_limit": 200000},
    }


@pytest.fixture
def config_file(tmp_path, config_dict):
    """Write the sample configuration to a temporary file."""
    path = tmp_path / "mainnet.json"
    path.write_text(json.dumps(config_dict), encoding="utf-8")
    return path


@pytest.fixture
def bridge_config(config_file):
    return load_config(config_file)


@pytest.fixture
def registry(bridge_config):
    return ChainRegistry.from_config(bridge_config)


class FakeChainClient:
    """In-memory stand-in for ``ChainClient`` that records every call."""

    def __init__(
        self,
        *,
        address: str = SENDER,
        balance: int = 0,
        allowance: int = 0,
        native_balance: int = 10**18,
        native_fee: int = 1_000_000_000_000_000,
        limits: tuple = (1, 10**15),
        fee_details: Optional[List[tuple]] = None,
        receive_ratio_bps: int = 10_000,
        logs: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        self.address = address
        self.balance = balance
        self.allowance = allowance
        self.native = native_balance
        self.native_fee = native_fee
        self.limits = limits
        self.fee_details = fee_details or []
        self.receive_ratio_bps = receive_ratio_bps
        self.logs = logs or []
        self.fail_on: Dict[str, Exception] = {}
        self.calls: List[tuple] = []
        self.transactions: List[tuple] = []

    @property
    def function_calls(self) -> List[str]:
        return [name for _, name, _ in self.calls]

    @property
    def transaction_names(self) -> List[str]:
        return [name for _, name, _, _ in self.transactions]

    def call(self, address, abi, fn_name, *args):
        self.calls.append((address, fn_name, args))
        if fn_name in self.fail_on:
            raise self.fail_on[fn_name]
        if fn_name == "balanceOf":
            return self.balance
        if fn_name == "allowance":
            return self.allowance
        if fn_name == "quoteSend":
            return (self.native_fee, 0)
        if fn_name == "quoteOFT":
            amount = args[0][2]
            received = amount * self.receive_ratio_bps // 10_000
            return (self.limits, self.fee_details, (amount, received))
        raise AssertionError(f"unexpected call {fn_name}")

    def native_balance(self, address):
        return self.native

    def _result(self) -> TransactionResult:
        tx_hash = "0x" + f"{len(self.transactions):064x}"
        return TransactionResult(tx_hash=tx_hash, receipt={"status": 1, "blockNumber": 100, "logs": self.logs})

    def transact(self, address, abi, fn_name, *args, value=0):
        if fn_name in self.fail_on:
            raise self.fail_on[fn_name]
        self.transactions.append((address, fn_name, args, value))
        if fn_name == "approve":
            self.allowance = args[1]
        return self._result()

    def send_raw(self, to, data, *, value=0):
        key = f"raw:{data}"
        if key in self.fail_on:
            raise self.fail_on[key]
        self.transactions.append((to, key, (data,), value))
        return self._result()


@pytest.fixture
def fake_client():
    return FakeChainClient(balance=1_000_000_000)


@pytest.fixture
def reverted():
    return TransactionRevertedError("execution reverted", tx_hash="0x" + "ab" * 32)


@pytest.fixture
def timed_out():
    """A broadcast transaction whose receipt never arrived."""
    return NetworkTimeoutError("Confirming 0xcd..: not mined", tx_hash="0x" + "cd" * 32)


def mock_response(status_code: int = 200, payload: Any = None, reason: str = "OK"):
    """Build a ``requests.Response`` lookalike."""
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.reason = reason
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def make_response():
    return mock_response


@pytest.fixture
def make_client():
    return FakeChainClient
