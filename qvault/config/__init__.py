"""
QVault Configuration

Loads vault.toml at startup.
Environment variables override TOML values.
"""

from .loader import (
    AssetSectionConfig,
    LoggingSectionConfig,
    VaultConfig,
    VaultSectionConfig,
    load_config,
)

__all__ = [
    "AssetSectionConfig",
    "LoggingSectionConfig",
    "VaultConfig",
    "VaultSectionConfig",
    "load_config",
]
