"""Config loader for the chain table and operational defaults."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, MutableMapping, Optional

from web3 import Web3

TOKEN_DECIMALS = 6
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

DEFAULT_ROUTER_QUOTE_URL = "https://stargate.finance/api/v1/quotes"
DEFAULT_STATUS_URL = "https://scan.layerzero-api.com/v1"


class ConfigError(ValueError):
    """Raised when configuration data is invalid or missing."""


class Environment(str, enum.Enum):
    """Which deployment table to load."""

    MAINNET = "mainnet"
    TESTNET = "testnet"


class AdapterKind(str, enum.Enum):
    """How the bridging contract moves tokens across chains."""

    LOCK_UNLOCK = "OFTAdapter"
    MINT_BURN_NATIVE = "NativeOFT"
    MINT_BURN_PROXY = "ProxyOFT"

    @property
    def requires_approval(self) -> bool:
        # Adapters pull the underlying token with transferFrom; mint/burn contracts burn in place.
        return self is AdapterKind.LOCK_UNLOCK

    @property
    def operation(self) -> str:
        return "lock/unlock" if self is AdapterKind.LOCK_UNLOCK else "mint/burn"


def _require_keys(data: Mapping[str, Any], keys: Iterable[str], context: str) -> None:
    missing = [key for key in keys if key not in data]
    if missing:
        raise ConfigError(f"{context} missing required keys: {', '.join(missing)}")


def _to_checksum(value: Any, *, field_name: str) -> str:
    try:
        checksum = Web3.to_checksum_address(value)
    except Exception as exc:  # web3 raises ValueError/TypeError for malformed inputs
        raise ConfigError(f"Invalid address for {field_name}: {value}") from exc
    if checksum == ZERO_ADDRESS:
        raise ConfigError(f"{field_name} is the zero address")
    return checksum


@dataclass(frozen=True)
class NativeCurrency:
    symbol: str
    decimals: int
    name: Optional[str] = None


@dataclass(frozen=True)
class ChainDescriptor:
    """One chain as seen from one bridging mesh."""

    chain_key: str
    mesh: str
    name: str
    chain_id: int
    eid: int
    token_address: str
    oft_address: str
    kind: AdapterKind
    decimals: int
    rpc_url: str
    native_currency: NativeCurrency
    block_explorer: Optional[str] = None
    approval_required: Optional[bool] = None

    @property
    def requires_approval(self) -> bool:
        """Whether the bridging contract needs a standing ERC-20 allowance."""
        if self.approval_required is not None:
            return self.approval_required
        return self.kind.requires_approval

    def ensure_rpc_url(self) -> str:
        """Return the RPC URL or raise if it is missing."""
        if not self.rpc_url:
            raise ConfigError(f"RPC URL required but not configured for {self.chain_key}")
        return self.rpc_url


@dataclass(frozen=True)
class DefaultsConfig:
    """Default operational parameters."""

    slippage_percent: Decimal = Decimal("0.5")
    gas_limit: int = 200_000
    rpc_timeout: int = 30
    receipt_timeout: int = 180
    api_timeout: int = 15


@dataclass(frozen=True)
class ApiUrlsConfig:
    """External API endpoints for the router backend and delivery status."""

    router_quote: str = DEFAULT_ROUTER_QUOTE_URL
    status: str = DEFAULT_STATUS_URL


@dataclass(frozen=True)
class BridgeConfig:
    """Typed wrapper around the loaded configuration."""

    environment: Environment
    meshes: Mapping[str, Mapping[str, ChainDescriptor]]
    defaults: DefaultsConfig
    api_urls: ApiUrlsConfig


def _rpc_override(chain_key: str, overrides: Mapping[str, str]) -> Optional[str]:
    env_key = "RPC_" + chain_key.upper().replace("-", "_")
    value = (overrides.get(env_key) or "").strip()
    return value or None


def _build_descriptor(
    mesh: str,
    chain_key: str,
    data: Any,
    overrides: Mapping[str, str],
) -> ChainDescriptor:
    context = f"meshes.{mesh}.{chain_key}"
    if not isinstance(data, Mapping):
        raise ConfigError(f"{context} must be an object")
    _require_keys(
        data,
        ["name", "chainId", "eid", "tokenAddress", "oftAddress", "oftType", "decimals", "rpcUrl", "nativeCurrency"],
        context,
    )

    try:
        kind = AdapterKind(data["oftType"])
    except ValueError as exc:
        allowed = ", ".join(k.value for k in AdapterKind)
        raise ConfigError(f"{context}.oftType must be one of {allowed}, got {data['oftType']!r}") from exc

    try:
        decimals = int(data["decimals"])
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{context}.decimals must be an integer") from exc
    if decimals != TOKEN_DECIMALS:
        raise ConfigError(f"{context}.decimals must be {TOKEN_DECIMALS}, got {decimals}")

    native = data["nativeCurrency"]
    if not isinstance(native, Mapping):
        raise ConfigError(f"{context}.nativeCurrency must be an object")
    _require_keys(native, ["symbol", "decimals"], f"{context}.nativeCurrency")

    approval_required = data.get("approvalRequired")
    if approval_required is not None and not isinstance(approval_required, bool):
        raise ConfigError(f"{context}.approvalRequired must be a boolean")

    rpc_url = _rpc_override(chain_key, overrides)
    if rpc_url is None:
        rpc_url = data["rpcUrl"]
        if not isinstance(rpc_url, str):
            raise ConfigError(f"{context}.rpcUrl must be a string, got {rpc_url!r}")
        rpc_url = rpc_url.strip()
    if not rpc_url:
        raise ConfigError(f"{context}.rpcUrl cannot be empty")

    try:
        chain_id = int(data["chainId"])
        eid = int(data["eid"])
        native_decimals = int(native["decimals"])
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{context} has a non-integer chainId, eid or native decimals") from exc

    return ChainDescriptor(
        chain_key=chain_key,
        mesh=mesh,
        name=str(data["name"]),
        chain_id=chain_id,
        eid=eid,
        token_address=_to_checksum(data["tokenAddress"], field_name=f"{context}.tokenAddress"),
        oft_address=_to_checksum(data["oftAddress"], field_name=f"{context}.oftAddress"),
        kind=kind,
        decimals=decimals,
        rpc_url=rpc_url,
        native_currency=NativeCurrency(
            symbol=str(native["symbol"]),
            decimals=native_decimals,
            name=native.get("name"),
        ),
        block_explorer=data.get("blockExplorer"),
        approval_required=approval_required,
    )


def _parse_meshes(meshes: Any, overrides: Mapping[str, str]) -> Dict[str, Dict[str, ChainDescriptor]]:
    if not isinstance(meshes, Mapping) or not meshes:
        raise ConfigError("meshes must be a non-empty object keyed by mesh id")

    result: Dict[str, Dict[str, ChainDescriptor]] = {}
    chain_ids: Dict[str, int] = {}
    for mesh, chains in meshes.items():
        if not isinstance(chains, Mapping) or not chains:
            raise ConfigError(f"meshes.{mesh} must be a non-empty object keyed by chain key")
        descriptors: Dict[str, ChainDescriptor] = {}
        for raw_key, data in chains.items():
            chain_key = str(raw_key).lower()
            if chain_key in descriptors:
                raise ConfigError(f"meshes.{mesh} lists chain {chain_key!r} more than once")
            descriptor = _build_descriptor(mesh, chain_key, data, overrides)
            known_id = chain_ids.setdefault(chain_key, descriptor.chain_id)
            if known_id != descriptor.chain_id:
                raise ConfigError(
                    f"chain {chain_key!r} has chainId {descriptor.chain_id} in mesh {mesh!r} "
                    f"but {known_id} elsewhere"
                )
            descriptors[chain_key] = descriptor
        result[str(mesh)] = descriptors
    return result


def _parse_defaults(data: Any) -> DefaultsConfig:
    if data is None:
        return DefaultsConfig()
    if not isinstance(data, Mapping):
        raise ConfigError("defaults must be an object")

    base = DefaultsConfig()
    try:
        slippage = Decimal(str(data.get("slippage_percent", base.slippage_percent)))
    except InvalidOperation as exc:
        raise ConfigError("defaults.slippage_percent must be numeric") from exc
    try:
        defaults = DefaultsConfig(
            slippage_percent=slippage,
            gas_limit=int(data.get("gas_limit", base.gas_limit)),
            rpc_timeout=int(data.get("rpc_timeout", base.rpc_timeout)),
            receipt_timeout=int(data.get("receipt_timeout", base.receipt_timeout)),
            api_timeout=int(data.get("api_timeout", base.api_timeout)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"defaults contains a non-integer value: {exc}") from exc
    if not slippage.is_finite() or slippage < 0 or slippage >= 100:
        raise ConfigError("defaults.slippage_percent must be between 0 and 100")
    if defaults.gas_limit <= 0:
        raise ConfigError("defaults.gas_limit must be positive")
    for name in ("rpc_timeout", "receipt_timeout", "api_timeout"):
        if getattr(defaults, name) <= 0:
            raise ConfigError(f"defaults.{name} must be positive")
    return defaults


def _parse_api_urls(data: Any) -> ApiUrlsConfig:
    if data is None:
        return ApiUrlsConfig()
    if not isinstance(data, Mapping):
        raise ConfigError("api_urls must be an object")
    base = ApiUrlsConfig()
    return ApiUrlsConfig(
        router_quote=str(data.get("router_quote", base.router_quote)),
        status=str(data.get("status", base.status)).rstrip("/"),
    )


def _load_json(path: Path) -> MutableMapping[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file contains invalid JSON: {path}") from exc


def load_config(
    config_path: Optional[Path] = None,
    *,
    environment: Environment = Environment.MAINNET,
    config_dir: Path = Path("config"),
    rpc_overrides: Optional[Mapping[str, str]] = None,
) -> BridgeConfig:
    """Load and validate the chain table for ``environment``.

    ``rpc_overrides`` maps ``RPC_<CHAIN_KEY>`` names to URLs; the CLI passes the
    process environment here so nothing below the boundary reads it directly.
    """
    environment = Environment(environment)
    config_path = config_path or config_dir / f"{environment.value}.json"
    data = _load_json(config_path)
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config root must be an object: {config_path}")

    _require_keys(data, ["meshes"], "config")

    return BridgeConfig(
        environment=environment,
        meshes=_parse_meshes(data["meshes"], rpc_overrides or {}),
        defaults=_parse_defaults(data.get("defaults")),
        api_urls=_parse_api_urls(data.get("api_urls")),
    )


__all__ = [
    "AdapterKind",
    "ApiUrlsConfig",
    "BridgeConfig",
    "ChainDescriptor",
    "ConfigError",
    "DefaultsConfig",
    "Environment",
    "NativeCurrency",
    "TOKEN_DECIMALS",
    "load_config",
]
