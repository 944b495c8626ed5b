"""
QVault TOML Configuration Loader

Loads vault.toml with environment variable overrides
(dataclass + from_dict + from_file + apply_env).

Environment variable mapping:
    [vault] address             → QVAULT_ADDRESS
    [vault] signers             → QVAULT_SIGNERS  (comma-separated)
    [vault] required_approvals  → QVAULT_REQUIRED_APPROVALS
    [vault] strict_approvals    → QVAULT_STRICT_APPROVALS
    [vault] auto_approve_creator → QVAULT_AUTO_APPROVE_CREATOR
    [asset] symbol              → QVAULT_ASSET_SYMBOL
    [logging] level             → QVAULT_LOG_LEVEL
    [logging] file              → QVAULT_LOG_FILE
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..constants import DEFAULT_AUTO_APPROVE_CREATOR, DEFAULT_STRICT_APPROVALS, MAX_SIGNERS
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_bool(value: str) -> bool:
    return value.strip().casefold() in {"1", "true", "yes", "on"}


# ---------------------------------------------------------------------------
# Sections: one dataclass per [section] of vault.example.toml
# ---------------------------------------------------------------------------


@dataclass
class VaultSectionConfig:
    """[vault] section."""
    address: str = "vault"
    signers: List[str] = field(default_factory=list)
    required_approvals: int = 1
    strict_approvals: bool = DEFAULT_STRICT_APPROVALS
    auto_approve_creator: bool = DEFAULT_AUTO_APPROVE_CREATOR

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VaultSectionConfig":
        return cls(
            address=data.get("address", "vault"),
            signers=list(data.get("signers", [])),
            required_approvals=data.get("required_approvals", 1),
            strict_approvals=data.get("strict_approvals", DEFAULT_STRICT_APPROVALS),
            auto_approve_creator=data.get("auto_approve_creator", DEFAULT_AUTO_APPROVE_CREATOR),
        )

    def apply_env(self) -> None:
        """Override from environment variables."""
        if v := os.environ.get("QVAULT_ADDRESS"):
            self.address = v
        if v := os.environ.get("QVAULT_SIGNERS"):
            self.signers = [s.strip() for s in v.split(",") if s.strip()]
        if v := os.environ.get("QVAULT_REQUIRED_APPROVALS"):
            try:
                self.required_approvals = int(v)
            except ValueError as e:
                raise ConfigurationError(
                    f"QVAULT_REQUIRED_APPROVALS must be an integer, got {v!r}"
                ) from e
        if v := os.environ.get("QVAULT_STRICT_APPROVALS"):
            self.strict_approvals = _parse_bool(v)
        if v := os.environ.get("QVAULT_AUTO_APPROVE_CREATOR"):
            self.auto_approve_creator = _parse_bool(v)


@dataclass
class AssetSectionConfig:
    """[asset] section."""
    symbol: str = "QRDX"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssetSectionConfig":
        return cls(symbol=data.get("symbol", "QRDX"))

    def apply_env(self) -> None:
        if v := os.environ.get("QVAULT_ASSET_SYMBOL"):
            self.symbol = v


@dataclass
class LoggingSectionConfig:
    """[logging] section."""
    level: str = "INFO"
    file: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggingSectionConfig":
        return cls(
            level=str(data.get("level", "INFO")).upper(),
            file=data.get("file", ""),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("QVAULT_LOG_LEVEL"):
            self.level = v.upper()
        if v := os.environ.get("QVAULT_LOG_FILE"):
            self.file = v


# -----------------------------------------------------------------------

@dataclass
class VaultConfig:
    """
    Unified vault configuration.

    Loads every section of vault.toml and applies environment variable
    overrides. This is the single source of truth at startup.
    """
    vault: VaultSectionConfig = field(default_factory=VaultSectionConfig)
    asset: AssetSectionConfig = field(default_factory=AssetSectionConfig)
    logging: LoggingSectionConfig = field(default_factory=LoggingSectionConfig)

    # --- factories --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VaultConfig":
        """Create VaultConfig from a parsed TOML dict."""
        return cls(
            vault=VaultSectionConfig.from_dict(data.get("vault", {})),
            asset=AssetSectionConfig.from_dict(data.get("asset", {})),
            logging=LoggingSectionConfig.from_dict(data.get("logging", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "VaultConfig":
        """
        Load configuration from a TOML file.

        Args:
            config_path: Path to vault.toml

        Returns:
            VaultConfig instance
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        try:
            with open(path, "rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.vault.apply_env()
        self.asset.apply_env()
        self.logging.apply_env()

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Returns:
            True if all valid

        Raises:
            ConfigurationError: on invalid config
        """
        if not self.vault.address:
            raise ConfigurationError("vault.address cannot be empty")
        signers = self.vault.signers
        if not signers:
            raise ConfigurationError("vault.signers cannot be empty")
        if any(not isinstance(s, str) or not s.strip() for s in signers):
            raise ConfigurationError("vault.signers must be non-empty strings")
        if len(set(signers)) != len(signers):
            raise ConfigurationError("vault.signers contains duplicates")
        if len(signers) > MAX_SIGNERS:
            raise ConfigurationError(f"vault.signers exceeds {MAX_SIGNERS} members")
        if self.vault.address in signers:
            raise ConfigurationError("vault.address cannot also be a signer")
        required = self.vault.required_approvals
        if isinstance(required, bool) or not isinstance(required, int):
            raise ConfigurationError("vault.required_approvals must be an integer")
        if not 1 <= required <= len(signers):
            raise ConfigurationError(
                f"vault.required_approvals must be between 1 and {len(signers)}, got {required}"
            )
        if not self.asset.symbol:
            raise ConfigurationError("asset.symbol cannot be empty")
        if self.logging.level not in _LOG_LEVELS:
            raise ConfigurationError(f"Invalid logging.level: {self.logging.level}")
        return True

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics and the CLI state file)."""
        return {
            "vault": {
                "address": self.vault.address,
                "signers": list(self.vault.signers),
                "required_approvals": self.vault.required_approvals,
                "strict_approvals": self.vault.strict_approvals,
                "auto_approve_creator": self.vault.auto_approve_creator,
            },
            "asset": {
                "symbol": self.asset.symbol,
            },
            "logging": {
                "level": self.logging.level,
                "file": self.logging.file,
            },
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> VaultConfig:
    """
    Load and validate vault configuration.

    Resolution order:
        1. Explicit *path* argument
        2. QVAULT_CONFIG env var
        3. ./vault.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("QVAULT_CONFIG", "vault.toml")

    cfg = VaultConfig.from_file(path)
    cfg.validate()
    return cfg
