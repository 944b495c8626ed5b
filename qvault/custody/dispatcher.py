"""
Action Dispatcher

Applies the effect of a quorum-approved proposal to the signer registry, the
balance ledger and the external asset ledger.

Execution is split in two phases so that nothing is committed unless the
whole effect can be applied:

  precheck(proposal)  — raises before the executed flag is set
  dispatch(proposal)  — applies the effect; the only step that may still
                        fail is the external transfer, which is undone
                        locally before the error propagates
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..assets.ledger import AssetLedger
from ..exceptions import (
    ExternalTransferFailedError,
    InsufficientBalanceError,
    InvalidAmountError,
    VaultError,
)
from ..logger import get_logger
from .actions import AddSignerAction, RemoveSignerAction, TransferAction
from .balance import BalanceLedger
from .membership import SignerRegistry
from .proposals import Proposal

logger = get_logger(__name__)


@dataclass
class DispatchResult:
    """What an applied action changed."""
    proposal_id: int
    transferred: int = 0
    signers_added: List[str] = field(default_factory=list)
    signers_removed: List[str] = field(default_factory=list)
    purged_approvals: List[int] = field(default_factory=list)


class ActionDispatcher:
    """
    Total dispatch over the three action variants.

    Args:
        registry:        Signer membership registry
        ledger:          Local balance accounting
        asset:           External value-transfer collaborator
        purge_approvals: Callback(principal) → proposal ids whose approvals
                         from *principal* were dropped; called after a removal
    """

    def __init__(
        self,
        registry: SignerRegistry,
        ledger: BalanceLedger,
        asset: AssetLedger,
        purge_approvals: Optional[Callable[[str], List[int]]] = None,
    ):
        self.registry = registry
        self.ledger = ledger
        self.asset = asset
        self._purge_approvals = purge_approvals

    # ── Phase 1: checks ───────────────────────────────────────────────

    def precheck(self, proposal: Proposal) -> None:
        action = proposal.action
        if isinstance(action, TransferAction):
            if action.amount == 0:
                raise InvalidAmountError(
                    f"Proposal #{proposal.id}: transfer amount must be positive"
                )
            if not self.ledger.can_debit(action.amount):
                raise InsufficientBalanceError(
                    f"Proposal #{proposal.id}: balance {self.ledger.balance} "
                    f"< transfer amount {action.amount}"
                )
        elif isinstance(action, RemoveSignerAction):
            # Removing a non-signer is a no-op, so only a live signer is checked.
            if self.registry.is_signer(action.signer):
                self.registry.check_removal(action.signer)
        elif isinstance(action, AddSignerAction):
            pass
        else:
            raise TypeError(f"Unknown action type: {type(action).__name__}")

    # ── Phase 2: effects ──────────────────────────────────────────────

    def dispatch(self, proposal: Proposal) -> DispatchResult:
        action = proposal.action
        result = DispatchResult(proposal_id=proposal.id)

        if isinstance(action, TransferAction):
            self._transfer(proposal, action)
            result.transferred = action.amount
        elif isinstance(action, AddSignerAction):
            if self.registry.add_signer(action.signer):
                result.signers_added.append(action.signer)
        elif isinstance(action, RemoveSignerAction):
            if self.registry.is_signer(action.signer):
                self.registry.remove_signer(action.signer)
                result.signers_removed.append(action.signer)
                if self._purge_approvals is not None:
                    result.purged_approvals = self._purge_approvals(action.signer)
        else:
            raise TypeError(f"Unknown action type: {type(action).__name__}")

        return result

    def _transfer(self, proposal: Proposal, action: TransferAction) -> None:
        # Accounting first; the external call is the last step and may abort.
        self.ledger.debit(action.amount)
        try:
            ok = self.asset.transfer(action.to, action.amount)
        except VaultError as e:
            # Raised by a callback into the vault; restore and re-raise as is.
            self.ledger.credit(action.amount)
            logger.error(
                f"Proposal #{proposal.id}: transfer to {action.to} aborted by "
                f"{type(e).__name__}: {e}"
            )
            raise
        except Exception as e:
            self.ledger.credit(action.amount)
            logger.error(
                f"Proposal #{proposal.id}: transfer to {action.to} raised "
                f"{type(e).__name__}: {e}"
            )
            raise ExternalTransferFailedError(
                f"Transfer of {action.amount} to {action.to} failed: {e}"
            ) from e
        if not ok:
            self.ledger.credit(action.amount)
            logger.error(
                f"Proposal #{proposal.id}: external transfer of amount={action.amount} "
                f"to {action.to} was refused"
            )
            raise ExternalTransferFailedError(
                f"Transfer of {action.amount} to {action.to} was refused by the asset ledger"
            )
