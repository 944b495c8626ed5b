"""
Multisig Vault — Quorum Engine

A fixed-threshold, mutable-membership custody engine. A quorum of signers
must approve a proposal before anyone may execute it:

  - deposit(caller, amount)            — pull funds in via transfer_from
  - create_proposal(caller, action)    — signers only
  - approve_proposal(caller, id)       — signers only, once per signer
  - execute_proposal(caller, id)       — anyone, once quorum is met

Execution follows checks → effects → interaction: every check runs first,
the executed flag and the local debit are applied next, and the external
transfer is the final step. A failed transfer restores the debit and the
flag, so an execution either fully commits or leaves no trace.

All mutating operations are serialized by a re-entrant lock. A re-entrant
call into execute_proposal for the same id during the external transfer
sees the executed flag and fails with AlreadyExecutedError.
"""

import threading
from typing import Any, Dict, Iterable, List, Optional

from ..assets.ledger import AssetError, AssetLedger
from ..constants import (
    DEFAULT_AUTO_APPROVE_CREATOR,
    DEFAULT_STRICT_APPROVALS,
    STATE_FILE_VERSION,
)
from ..exceptions import (
    AlreadyApprovedError,
    AlreadyExecutedError,
    ExternalTransferFailedError,
    InsufficientApprovalsError,
    InvalidAmountError,
    InvalidParametersError,
    StateFileError,
    UnauthorizedError,
    VaultError,
)
from ..logger import get_logger
from .actions import Action, AddSignerAction, RemoveSignerAction, TransferAction
from .balance import BalanceLedger, check_amount
from .dispatcher import ActionDispatcher, DispatchResult
from .events import (
    DepositEvent,
    EventLog,
    ProposalApprovedEvent,
    ProposalCreatedEvent,
    ProposalExecutedEvent,
    SignerAddedEvent,
    SignerRemovedEvent,
)
from .membership import SignerRegistry
from .proposals import Proposal, ProposalStore

logger = get_logger(__name__)


class MultisigVault:
    """
    Quorum-gated custody of a single fungible asset.

    Args:
        address:            The vault's own address on the asset ledger
        signers:            Initial signer principals
        required_approvals: Quorum threshold, fixed for the vault's lifetime
        asset:              External value-transfer collaborator
        strict_approvals:   True → repeat approvals raise AlreadyApprovedError,
                            False → repeat approvals are ignored
        auto_approve_creator: record the proposer's approval at creation.
                            Off by default, so a 2-of-3 vault needs two
                            approve_proposal calls after create_proposal
    """

    def __init__(
        self,
        address: str,
        signers: Iterable[str],
        required_approvals: int,
        asset: AssetLedger,
        strict_approvals: bool = DEFAULT_STRICT_APPROVALS,
        auto_approve_creator: bool = DEFAULT_AUTO_APPROVE_CREATOR,
    ):
        if not isinstance(address, str) or not address.strip():
            raise InvalidParametersError("Vault address cannot be empty")
        if asset is None:
            raise InvalidParametersError("An asset ledger is required")

        self.address = address
        self.asset = asset
        self.strict_approvals = bool(strict_approvals)
        self.auto_approve_creator = bool(auto_approve_creator)

        self.registry = SignerRegistry(signers, required_approvals)
        self.ledger = BalanceLedger()
        self.proposals = ProposalStore()
        self.events = EventLog()
        self.dispatcher = ActionDispatcher(
            self.registry,
            self.ledger,
            asset,
            purge_approvals=self._purge_stale_approvals,
        )
        self._lock = threading.RLock()

        logger.info(
            f"Vault {address} opened: {required_approvals}-of-{self.registry.count} "
            f"signers={self.registry.signers}"
        )

    @classmethod
    def from_config(cls, config, asset: AssetLedger) -> "MultisigVault":
        """Build a vault from a validated `VaultConfig`."""
        section = config.vault
        return cls(
            address=section.address,
            signers=section.signers,
            required_approvals=section.required_approvals,
            asset=asset,
            strict_approvals=section.strict_approvals,
            auto_approve_creator=section.auto_approve_creator,
        )

    # ── Queries ───────────────────────────────────────────────────────

    @property
    def balance(self) -> int:
        return self.ledger.balance

    @property
    def required_approvals(self) -> int:
        return self.registry.required_approvals

    @property
    def signers(self) -> List[str]:
        return self.registry.signers

    @property
    def signer_count(self) -> int:
        return self.registry.count

    @property
    def proposal_count(self) -> int:
        return len(self.proposals)

    def is_signer(self, principal: str) -> bool:
        return self.registry.is_signer(principal)

    def get_proposal(self, proposal_id: int) -> Proposal:
        return self.proposals.get(proposal_id)

    def has_approved(self, proposal_id: int, principal: str) -> bool:
        return self.proposals.get(proposal_id).has_approved(principal)

    def is_executable(self, proposal_id: int) -> bool:
        """True if execute_proposal would currently pass the quorum checks."""
        proposal = self.proposals.get(proposal_id)
        return not proposal.executed and proposal.approvals >= self.required_approvals

    # ── Helpers ───────────────────────────────────────────────────────

    @staticmethod
    def _reject(error: VaultError) -> VaultError:
        logger.warning(f"REJECTED {type(error).__name__}: {error}")
        return error

    def _require_signer(self, caller: str, operation: str) -> None:
        if not self.registry.is_signer(caller):
            raise self._reject(
                UnauthorizedError(f"{caller} is not a signer and cannot {operation}")
            )

    def _purge_stale_approvals(self, principal: str) -> List[int]:
        """Drop a removed signer's approvals from every pending proposal."""
        purged = [p.id for p in self.proposals.pending() if p.revoke_approval(principal)]
        if purged:
            logger.info(
                f"Purged approvals of removed signer {principal} from proposals {purged}"
            )
        return purged

    # ── Deposit ───────────────────────────────────────────────────────

    def deposit(self, caller: str, amount: int) -> int:
        """
        Pull *amount* from *caller* into the vault and credit it.

        Returns the new custodied balance.

        Raises:
            InvalidAmountError: amount is not a positive integer
            ExternalTransferFailedError: the asset ledger refused the pull
        """
        with self._lock:
            try:
                check_amount(amount)
            except InvalidAmountError as e:
                raise self._reject(e)
            if amount == 0:
                raise self._reject(InvalidAmountError("Deposit amount must be positive"))

            try:
                ok = self.asset.transfer_from(caller, self.address, amount)
            except AssetError as e:
                raise self._reject(
                    ExternalTransferFailedError(f"Deposit from {caller} failed: {e}")
                ) from e
            if not ok:
                raise self._reject(
                    ExternalTransferFailedError(
                        f"Deposit of {amount} from {caller} was refused by the asset ledger"
                    )
                )

            new_balance = self.ledger.credit(amount)
            self.events.emit(DepositEvent(principal=caller, amount=amount))
            logger.info(f"Deposit: {caller} → {self.address} amount={amount} (balance={new_balance})")
            return new_balance

    # ── Proposals ─────────────────────────────────────────────────────

    def create_proposal(self, caller: str, action: Action) -> int:
        """
        Record a new proposal for *action*; returns its id.

        The action is stored verbatim. Amount and balance are only checked at
        execution time. The creator's approval is only implied when the
        vault was opened with auto_approve_creator.
        """
        with self._lock:
            self._require_signer(caller, "create proposals")
            if not isinstance(action, (TransferAction, AddSignerAction, RemoveSignerAction)):
                raise self._reject(
                    InvalidParametersError(f"Unsupported action: {action!r}")
                )

            proposal = self.proposals.create(action, caller)
            self.events.emit(
                ProposalCreatedEvent(
                    proposal_id=proposal.id,
                    to=action.to,
                    amount=action.amount,
                    kind=action.kind,
                    membership_target=action.membership_target,
                )
            )
            logger.info(
                f"Proposal #{proposal.id} created by {caller}: {action.kind.name} "
                f"{action.to_dict()}"
            )
            if self.auto_approve_creator:
                proposal.add_approval(caller)
                self.events.emit(ProposalApprovedEvent(proposal_id=proposal.id, approver=caller))
            return proposal.id

    def propose_transfer(self, caller: str, to: str, amount: int) -> int:
        try:
            action = TransferAction(to=to, amount=amount)
        except InvalidParametersError as e:
            raise self._reject(e)
        return self.create_proposal(caller, action)

    def propose_add_signer(self, caller: str, signer: str) -> int:
        try:
            action = AddSignerAction(signer=signer)
        except InvalidParametersError as e:
            raise self._reject(e)
        return self.create_proposal(caller, action)

    def propose_remove_signer(self, caller: str, signer: str) -> int:
        try:
            action = RemoveSignerAction(signer=signer)
        except InvalidParametersError as e:
            raise self._reject(e)
        return self.create_proposal(caller, action)

    def approve_proposal(self, caller: str, proposal_id: int) -> bool:
        """
        Record *caller*'s approval.

        Returns True when a new approval was recorded and False when a repeat
        approval was ignored (permissive mode only).
        """
        with self._lock:
            self._require_signer(caller, "approve proposals")
            try:
                proposal = self.proposals.get(proposal_id)
            except VaultError as e:
                raise self._reject(e)
            if proposal.executed:
                raise self._reject(
                    AlreadyExecutedError(f"Proposal #{proposal_id} already executed")
                )

            if not proposal.add_approval(caller):
                if self.strict_approvals:
                    raise self._reject(
                        AlreadyApprovedError(
                            f"{caller} already approved proposal #{proposal_id}"
                        )
                    )
                logger.debug(f"Repeat approval of #{proposal_id} by {caller} ignored")
                return False

            self.events.emit(ProposalApprovedEvent(proposal_id=proposal_id, approver=caller))
            logger.info(
                f"Proposal #{proposal_id} approved by {caller} "
                f"({proposal.approvals}/{self.required_approvals})"
            )
            return True

    def execute_proposal(self, caller: Optional[str], proposal_id: int) -> DispatchResult:
        """
        Apply a quorum-approved proposal. Callable by anyone.

        Raises:
            ProposalNotFoundError, AlreadyExecutedError,
            InsufficientApprovalsError, InsufficientBalanceError,
            InvalidAmountError, QuorumViolationError,
            ExternalTransferFailedError
        """
        with self._lock:
            try:
                proposal = self.proposals.get(proposal_id)
            except VaultError as e:
                raise self._reject(e)
            if proposal.executed:
                raise self._reject(
                    AlreadyExecutedError(f"Proposal #{proposal_id} already executed")
                )
            if proposal.approvals < self.required_approvals:
                raise self._reject(
                    InsufficientApprovalsError(
                        f"Proposal #{proposal_id} has {proposal.approvals} approvals, "
                        f"needs {self.required_approvals}"
                    )
                )
            try:
                self.dispatcher.precheck(proposal)
            except VaultError as e:
                raise self._reject(e)

            proposal.mark_executed()
            try:
                result = self.dispatcher.dispatch(proposal)
            except Exception:
                proposal._unmark_executed()
                raise

            action = proposal.action
            for principal in result.signers_added:
                self.events.emit(SignerAddedEvent(principal=principal))
            for principal in result.signers_removed:
                self.events.emit(SignerRemovedEvent(principal=principal))
            self.events.emit(
                ProposalExecutedEvent(
                    proposal_id=proposal.id,
                    to=action.to,
                    amount=action.amount,
                    kind=action.kind,
                    membership_target=action.membership_target,
                )
            )
            logger.info(
                f"Proposal #{proposal.id} EXECUTED by {caller or 'anonymous'}: "
                f"{action.kind.name} {action.to_dict()} (balance={self.balance}, "
                f"signers={self.signer_count})"
            )
            return result

    # ── Snapshot ──────────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "version": STATE_FILE_VERSION,
                "address": self.address,
                "strictApprovals": self.strict_approvals,
                "autoApproveCreator": self.auto_approve_creator,
                "membership": self.registry.to_dict(),
                "balance": self.balance,
                "proposals": self.proposals.to_dict(),
                "events": self.events.to_dict(),
            }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], asset: AssetLedger) -> "MultisigVault":
        """Restore a vault from `to_dict()` output."""
        if not isinstance(data, dict):
            raise StateFileError("Vault snapshot must be a JSON object")
        if data.get("version") != STATE_FILE_VERSION:
            raise StateFileError(
                f"Unsupported vault snapshot version: {data.get('version')!r}"
            )
        try:
            membership = data["membership"]
            vault = cls(
                address=data["address"],
                signers=membership["signers"],
                required_approvals=int(membership["requiredApprovals"]),
                asset=asset,
                strict_approvals=data.get("strictApprovals", DEFAULT_STRICT_APPROVALS),
                auto_approve_creator=data.get("autoApproveCreator", DEFAULT_AUTO_APPROVE_CREATOR),
            )
            vault.ledger = BalanceLedger(int(data.get("balance", 0)))
            vault.proposals = ProposalStore.from_dict(data.get("proposals", {}))
            vault.events = EventLog.from_dict(data.get("events", []))
        except StateFileError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError, VaultError) as e:
            raise StateFileError(f"Malformed vault snapshot: {e}") from e
        vault.dispatcher.ledger = vault.ledger
        return vault

    def __repr__(self) -> str:
        return (
            f"<MultisigVault {self.address} {self.required_approvals}-of-{self.signer_count} "
            f"balance={self.balance} proposals={self.proposal_count}>"
        )
