"""
QVault Asset Collaborators

Provides:
  - AssetLedger: contract for the external value-transfer primitive
  - InMemoryAsset: ERC-20–style in-memory implementation
  - AssetTransfer / AssetError
"""

from .ledger import (
    AssetError,
    AssetLedger,
    AssetTransfer,
    InMemoryAsset,
    fund_depositor,
)

__all__ = [
    "AssetError",
    "AssetLedger",
    "AssetTransfer",
    "InMemoryAsset",
    "fund_depositor",
]
