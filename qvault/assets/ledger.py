"""
Fungible Asset Ledger

The custody engine never moves value itself. It talks to an external
fungible-asset ledger through two calls:

  - transfer(to, amount)                      — out of the vault's holdings
  - transfer_from(sender, recipient, amount)  — pulls a deposit into the vault

Both return True on success and False on a refused transfer, mirroring the
ERC-20 success flag. `InMemoryAsset` is an ERC-20–style ledger bound to a
single holder (the vault) that implements the contract for tests, the CLI
and embedding applications.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..logger import get_logger

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class AssetError(Exception):
    """Raised on malformed asset-ledger calls (not on refused transfers)."""


# ══════════════════════════════════════════════════════════════════════
#  COLLABORATOR CONTRACT
# ══════════════════════════════════════════════════════════════════════

class AssetLedger(ABC):
    """
    Value-transfer primitive consumed by the vault.

    Implementations are bound to the vault's own address: `transfer` always
    moves funds out of that address.
    """

    @abstractmethod
    def transfer(self, to: str, amount: int) -> bool:
        """Move *amount* from the bound holder to *to*."""

    @abstractmethod
    def transfer_from(self, sender: str, recipient: str, amount: int) -> bool:
        """Move *amount* from *sender* to *recipient* using an allowance."""


# ══════════════════════════════════════════════════════════════════════
#  TRANSFER RECORD
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AssetTransfer:
    """A settled movement on the in-memory ledger."""
    symbol: str
    sender: str
    recipient: str
    amount: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.symbol,
            "from": self.sender,
            "to": self.recipient,
            "amount": self.amount,
            "timestamp": self.timestamp,
        }


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise AssetError(f"Amount must be an integer, got {amount!r}")
    if amount < 0:
        raise AssetError(f"Amount cannot be negative: {amount}")


# ══════════════════════════════════════════════════════════════════════
#  IN-MEMORY ASSET
# ══════════════════════════════════════════════════════════════════════

class InMemoryAsset(AssetLedger):
    """
    ERC-20–style fungible ledger held in memory.

    State:
        balances:   address → units
        allowances: (owner, spender) → units
        frozen:     when True every transfer is refused (returns False)
    """

    def __init__(self, symbol: str, holder: str):
        if not symbol:
            raise AssetError("Asset symbol cannot be empty")
        if not holder:
            raise AssetError("Holder address cannot be empty")
        self.symbol = symbol
        self.holder = holder
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._transfers: List[AssetTransfer] = []
        self._frozen = False

    # ── Queries ───────────────────────────────────────────────────────

    def balance_of(self, address: str) -> int:
        return self._balances.get(address, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    @property
    def total_supply(self) -> int:
        return sum(self._balances.values())

    @property
    def transfers(self) -> List[AssetTransfer]:
        return list(self._transfers)

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    # ── Supply / allowances ───────────────────────────────────────────

    def mint(self, address: str, amount: int) -> None:
        """Credit *amount* new units to *address*."""
        _check_amount(amount)
        if not address:
            raise AssetError("Mint address cannot be empty")
        self._balances[address] = self.balance_of(address) + amount
        logger.debug(f"Mint: {address} +{amount} {self.symbol}")

    def approve(self, owner: str, spender: str, amount: int) -> None:
        """Set the allowance *spender* may pull from *owner*."""
        _check_amount(amount)
        self._allowances[(owner, spender)] = amount
        logger.debug(f"Approve: {owner} → {spender} allowance={amount} {self.symbol}")

    # ── Transfers ─────────────────────────────────────────────────────

    def _move(self, sender: str, recipient: str, amount: int) -> bool:
        if self._frozen:
            logger.warning(f"Transfer refused: {self.symbol} is frozen")
            return False
        if self.balance_of(sender) < amount:
            logger.warning(
                f"Transfer refused: {sender} has {self.balance_of(sender)} "
                f"{self.symbol}, needs {amount}"
            )
            return False
        self._balances[sender] = self.balance_of(sender) - amount
        self._balances[recipient] = self.balance_of(recipient) + amount
        self._transfers.append(AssetTransfer(self.symbol, sender, recipient, amount))
        logger.debug(f"Transfer: {sender} → {recipient} {amount} {self.symbol}")
        return True

    def transfer(self, to: str, amount: int) -> bool:
        _check_amount(amount)
        if not to:
            raise AssetError("Recipient cannot be empty")
        return self._move(self.holder, to, amount)

    def transfer_from(self, sender: str, recipient: str, amount: int) -> bool:
        _check_amount(amount)
        if not recipient:
            raise AssetError("Recipient cannot be empty")
        allowed = self.allowance(sender, recipient)
        if allowed < amount:
            logger.warning(
                f"transferFrom refused: allowance {sender} → {recipient} "
                f"is {allowed}, needs {amount}"
            )
            return False
        if not self._move(sender, recipient, amount):
            return False
        self._allowances[(sender, recipient)] = allowed - amount
        return True

    # ── Admin ─────────────────────────────────────────────────────────

    def freeze(self):
        """Refuse every transfer until unfrozen."""
        self._frozen = True
        logger.warning(f"Asset {self.symbol} FROZEN")

    def unfreeze(self):
        self._frozen = False
        logger.info(f"Asset {self.symbol} unfrozen")

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "holder": self.holder,
            "frozen": self._frozen,
            "balances": dict(self._balances),
            "allowances": [
                {"owner": owner, "spender": spender, "amount": amount}
                for (owner, spender), amount in self._allowances.items()
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryAsset":
        asset = cls(symbol=data["symbol"], holder=data["holder"])
        asset._frozen = bool(data.get("frozen", False))
        for address, amount in data.get("balances", {}).items():
            asset.mint(address, int(amount))
        for entry in data.get("allowances", []):
            asset.approve(entry["owner"], entry["spender"], int(entry["amount"]))
        return asset

    def __repr__(self) -> str:
        return (
            f"<InMemoryAsset {self.symbol} holder={self.holder} "
            f"holders={len(self._balances)} frozen={self._frozen}>"
        )


def fund_depositor(
    asset: InMemoryAsset,
    depositor: str,
    amount: int,
    vault_address: Optional[str] = None,
) -> None:
    """Mint *amount* to *depositor* and approve the vault to pull it."""
    asset.mint(depositor, amount)
    spender = vault_address or asset.holder
    asset.approve(depositor, spender, asset.allowance(depositor, spender) + amount)
