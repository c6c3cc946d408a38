"""Configuration utilities for stablebridge."""

from .loader import (
    AdapterKind,
    ApiUrlsConfig,
    BridgeConfig,
    ChainDescriptor,
    ConfigError,
    DefaultsConfig,
    Environment,
    NativeCurrency,
    TOKEN_DECIMALS,
    load_config,
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
