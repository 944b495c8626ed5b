"""
Multisig Vault Test Suite

Coverage:
  - Construction: signer set / threshold validation
  - Deposits: positive amounts, external pull failures
  - Proposal creation and approval (strict and permissive variants)
  - Execution: quorum, double execution, balance re-check, rollback
  - Membership actions: add / remove, quorum invariant, stale approvals
  - Reentrancy and concurrent callers
  - Snapshot round-trip
"""

import os
import sys
import threading
from unittest.mock import MagicMock

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from qvault.assets import AssetError, AssetLedger, InMemoryAsset, fund_depositor
from qvault.custody import (
    ActionKind,
    AddSignerAction,
    MultisigVault,
    ProposalState,
    RemoveSignerAction,
    TransferAction,
)
from qvault.exceptions import (
    AlreadyApprovedError,
    AlreadyExecutedError,
    ExternalTransferFailedError,
    InsufficientApprovalsError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidParametersError,
    InvalidThresholdError,
    ProposalNotFoundError,
    QuorumViolationError,
    StateFileError,
    UnauthorizedError,
    VaultError,
)


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

ALICE = "0xPQ" + "A1" * 32
BOB = "0xPQ" + "B2" * 32
CAROL = "0xPQ" + "C3" * 32
DAVE = "0xPQ" + "D4" * 32
EVE = "0xPQ" + "E5" * 32
VAULT = "0xPQ" + "00" * 32


def make_vault(signers=(ALICE, BOB, CAROL), required=2, asset=None, **kwargs):
    """Helper to open a vault backed by an in-memory asset."""
    asset = asset if asset is not None else InMemoryAsset("QRDX", VAULT)
    return MultisigVault(VAULT, signers, required, asset, **kwargs), asset


def fund(vault, asset, depositor=ALICE, amount=100):
    fund_depositor(asset, depositor, amount, vault_address=VAULT)
    return vault.deposit(depositor, amount)


def approve_all(vault, pid, *approvers):
    for principal in approvers:
        vault.approve_proposal(principal, pid)


# ══════════════════════════════════════════════════════════════════════
#  CONSTRUCTION
# ══════════════════════════════════════════════════════════════════════


class TestVaultConstruction:
    """Signer set and threshold validation."""

    def test_basic(self):
        vault, _ = make_vault()
        assert vault.signers == sorted([ALICE, BOB, CAROL])
        assert vault.signer_count == 3
        assert vault.required_approvals == 2
        assert vault.balance == 0
        assert vault.proposal_count == 0

    def test_empty_signers_raises(self):
        with pytest.raises(InvalidThresholdError, match="empty"):
            make_vault(signers=())

    def test_zero_threshold_raises(self):
        with pytest.raises(InvalidThresholdError):
            make_vault(required=0)

    def test_threshold_above_signer_count_raises(self):
        with pytest.raises(InvalidThresholdError):
            make_vault(required=4)

    def test_threshold_error_is_invalid_parameters(self):
        with pytest.raises(InvalidParametersError):
            make_vault(required=-1)

    def test_duplicate_signers_collapse(self):
        vault, _ = make_vault(signers=(ALICE, ALICE, BOB), required=2)
        assert vault.signer_count == 2

    def test_duplicates_do_not_satisfy_threshold(self):
        with pytest.raises(InvalidThresholdError):
            make_vault(signers=(ALICE, ALICE), required=2)

    def test_threshold_equal_to_count(self):
        vault, _ = make_vault(required=3)
        assert vault.required_approvals == vault.signer_count

    def test_empty_address_raises(self):
        with pytest.raises(InvalidParametersError):
            MultisigVault("", [ALICE], 1, InMemoryAsset("QRDX", VAULT))

    def test_repr(self):
        vault, _ = make_vault()
        assert "2-of-3" in repr(vault)


# ══════════════════════════════════════════════════════════════════════
#  DEPOSITS
# ══════════════════════════════════════════════════════════════════════


class TestDeposit:
    """Deposits pull funds through transfer_from before crediting."""

    def test_deposit_credits_balance(self):
        vault, asset = make_vault()
        assert fund(vault, asset, amount=100) == 100
        assert vault.balance == 100
        assert asset.balance_of(VAULT) == 100
        assert asset.balance_of(ALICE) == 0

    def test_deposit_by_non_signer_allowed(self):
        vault, asset = make_vault()
        fund(vault, asset, depositor=EVE, amount=10)
        assert vault.balance == 10

    def test_deposit_emits_event(self):
        vault, asset = make_vault()
        fund(vault, asset, amount=42)
        events = vault.events.of_type("Deposit")
        assert len(events) == 1
        assert events[0].principal == ALICE
        assert events[0].amount == 42

    def test_zero_deposit_raises(self):
        vault, asset = make_vault()
        fund_depositor(asset, ALICE, 10, vault_address=VAULT)
        with pytest.raises(InvalidAmountError):
            vault.deposit(ALICE, 0)
        assert vault.balance == 0
        assert len(vault.events) == 0

    def test_negative_deposit_raises(self):
        vault, _ = make_vault()
        with pytest.raises(InvalidParametersError):
            vault.deposit(ALICE, -5)

    def test_non_integer_deposit_raises(self):
        vault, _ = make_vault()
        with pytest.raises(InvalidAmountError):
            vault.deposit(ALICE, 1.5)

    def test_deposit_without_allowance_fails(self):
        vault, asset = make_vault()
        asset.mint(ALICE, 100)
        with pytest.raises(ExternalTransferFailedError):
            vault.deposit(ALICE, 50)
        assert vault.balance == 0
        assert asset.balance_of(ALICE) == 100
        assert vault.events.of_type("Deposit") == []

    def test_deposit_exceeding_funds_fails(self):
        vault, asset = make_vault()
        asset.mint(ALICE, 10)
        asset.approve(ALICE, VAULT, 100)
        with pytest.raises(ExternalTransferFailedError):
            vault.deposit(ALICE, 50)
        assert vault.balance == 0

    def test_deposit_asset_error_wrapped(self):
        asset = MagicMock(spec=AssetLedger)
        asset.transfer_from.side_effect = AssetError("boom")
        vault, _ = make_vault(asset=asset)
        with pytest.raises(ExternalTransferFailedError, match="boom"):
            vault.deposit(ALICE, 5)
        assert vault.balance == 0

    def test_deposit_calls_collaborator(self):
        asset = MagicMock(spec=AssetLedger)
        asset.transfer_from.return_value = True
        vault, _ = make_vault(asset=asset)
        vault.deposit(BOB, 7)
        asset.transfer_from.assert_called_once_with(BOB, VAULT, 7)
        assert vault.balance == 7


# ══════════════════════════════════════════════════════════════════════
#  CREATION & APPROVAL
# ══════════════════════════════════════════════════════════════════════


class TestProposalCreation:
    """create_proposal and the propose_* wrappers."""

    def test_ids_start_at_zero_and_increase(self):
        vault, _ = make_vault()
        assert vault.propose_transfer(ALICE, DAVE, 10) == 0
        assert vault.propose_add_signer(BOB, DAVE) == 1
        assert vault.propose_remove_signer(CAROL, ALICE) == 2
        assert vault.proposal_count == 3

    def test_non_signer_cannot_create(self):
        vault, _ = make_vault()
        with pytest.raises(UnauthorizedError):
            vault.propose_transfer(EVE, DAVE, 10)
        assert vault.proposal_count == 0
        assert len(vault.events) == 0

    def test_transfer_above_balance_allowed_at_creation(self):
        vault, _ = make_vault()
        pid = vault.propose_transfer(ALICE, DAVE, 1_000_000)
        assert vault.get_proposal(pid).action.amount == 1_000_000

    def test_zero_transfer_allowed_at_creation(self):
        vault, _ = make_vault()
        pid = vault.propose_transfer(ALICE, DAVE, 0)
        assert vault.get_proposal(pid).state == ProposalState.CREATED

    def test_negative_transfer_rejected(self):
        vault, _ = make_vault()
        with pytest.raises(InvalidParametersError):
            vault.propose_transfer(ALICE, DAVE, -1)

    def test_blank_recipient_rejected(self):
        vault, _ = make_vault()
        with pytest.raises(InvalidParametersError):
            vault.propose_transfer(ALICE, "", 5)

    def test_unsupported_action_rejected(self):
        vault, _ = make_vault()
        with pytest.raises(InvalidParametersError):
            vault.create_proposal(ALICE, {"kind": "TRANSFER"})

    def test_create_does_not_approve_by_default(self):
        vault, _ = make_vault()
        pid = vault.propose_transfer(ALICE, DAVE, 10)
        assert vault.get_proposal(pid).approvals == 0
        assert not vault.has_approved(pid, ALICE)

    def test_create_emits_event(self):
        vault, _ = make_vault()
        pid = vault.propose_remove_signer(ALICE, CAROL)
        (event,) = vault.events.of_type("ProposalCreated")
        assert event.proposal_id == pid
        assert event.kind == ActionKind.REMOVE_SIGNER
        assert event.membership_target == CAROL
        assert event.to is None
        assert event.amount == 0

    def test_auto_approve_creator(self):
        vault, _ = make_vault(auto_approve_creator=True)
        pid = vault.propose_transfer(ALICE, DAVE, 10)
        assert vault.get_proposal(pid).approvals == 1
        assert vault.has_approved(pid, ALICE)
        names = [e.name for e in vault.events]
        assert names == ["ProposalCreated", "ProposalApproved"]


class TestProposalApproval:
    """approve_proposal bookkeeping."""

    def test_approve_records_once(self):
        vault, _ = make_vault()
        pid = vault.propose_transfer(ALICE, DAVE, 10)
        assert vault.approve_proposal(BOB, pid) is True
        proposal = vault.get_proposal(pid)
        assert proposal.approvals == 1
        assert proposal.approvers == {BOB}
        assert proposal.state == ProposalState.APPROVING

    def test_strict_repeat_approval_raises(self):
        vault, _ = make_vault()
        pid = vault.propose_transfer(ALICE, DAVE, 10)
        vault.approve_proposal(BOB, pid)
        with pytest.raises(AlreadyApprovedError):
            vault.approve_proposal(BOB, pid)
        assert vault.get_proposal(pid).approvals == 1
        assert len(vault.events.of_type("ProposalApproved")) == 1

    def test_permissive_repeat_approval_ignored(self):
        vault, _ = make_vault(strict_approvals=False)
        pid = vault.propose_transfer(ALICE, DAVE, 10)
        assert vault.approve_proposal(BOB, pid) is True
        assert vault.approve_proposal(BOB, pid) is False
        assert vault.approve_proposal(BOB, pid) is False
        proposal = vault.get_proposal(pid)
        assert proposal.approvals == len(proposal.approvers) == 1
        assert len(vault.events.of_type("ProposalApproved")) == 1

    def test_approvals_match_approver_set_after_any_sequence(self):
        vault, _ = make_vault(signers=(ALICE, BOB, CAROL, DAVE), strict_approvals=False)
        pid = vault.propose_transfer(ALICE, EVE, 1)
        for principal in (ALICE, BOB, ALICE, CAROL, BOB, BOB, DAVE, ALICE):
            vault.approve_proposal(principal, pid)
            proposal = vault.get_proposal(pid)
            assert proposal.approvals == len(proposal.approvers)
        assert vault.get_proposal(pid).approvals == 4

    def test_non_signer_cannot_approve(self):
        vault, _ = make_vault()
        pid = vault.propose_transfer(ALICE, DAVE, 10)
        with pytest.raises(UnauthorizedError):
            vault.approve_proposal(EVE, pid)
        assert vault.get_proposal(pid).approvals == 0

    def test_unknown_proposal_raises(self):
        vault, _ = make_vault()
        with pytest.raises(ProposalNotFoundError):
            vault.approve_proposal(ALICE, 99)

    def test_approve_executed_raises(self):
        vault, _ = make_vault()
        pid = vault.propose_add_signer(ALICE, DAVE)
        approve_all(vault, pid, ALICE, BOB)
        vault.execute_proposal(None, pid)
        with pytest.raises(AlreadyExecutedError):
            vault.approve_proposal(CAROL, pid)
        assert vault.get_proposal(pid).approvals == 2

    def test_approval_event(self):
        vault, _ = make_vault()
        pid = vault.propose_transfer(ALICE, DAVE, 10)
        vault.approve_proposal(CAROL, pid)
        (event,) = vault.events.of_type("ProposalApproved")
        assert event.proposal_id == pid
        assert event.approver == CAROL


# ══════════════════════════════════════════════════════════════════════
#  EXECUTION: TRANSFERS
# ══════════════════════════════════════════════════════════════════════


class TestTransferExecution:
    """Transfer proposals: quorum, balance, one-shot execution."""

    def test_two_of_three_transfer(self):
        vault, asset = make_vault()
        fund(vault, asset, amount=100)
        pid = vault.propose_transfer(ALICE, DAVE, 50)
        approve_all(vault, pid, ALICE, BOB)

        result = vault.execute_proposal(EVE, pid)

        assert result.transferred == 50
        assert vault.balance == 50
        assert asset.balance_of(DAVE) == 50
        assert asset.balance_of(VAULT) == 50
        assert vault.get_proposal(pid).executed
        assert vault.get_proposal(pid).state == ProposalState.EXECUTED
        executed = vault.events.of_type("ProposalExecuted")
        assert len(executed) == 1
        assert executed[0].to == DAVE
        assert executed[0].amount == 50
        assert executed[0].kind == ActionKind.TRANSFER

    def test_creator_plus_one_with_auto_approval(self):
        vault, asset = make_vault(auto_approve_creator=True)
        fund(vault, asset, amount=100)
        pid = vault.propose_transfer(ALICE, DAVE, 50)
        vault.approve_proposal(BOB, pid)
        vault.execute_proposal(None, pid)
        assert vault.balance == 50
        assert asset.balance_of(DAVE) == 50

    def test_single_approval_insufficient(self):
        vault, asset = make_vault()
        fund(vault, asset, amount=100)
        pid = vault.propose_transfer(ALICE, DAVE, 50)
        vault.approve_proposal(ALICE, pid)
        with pytest.raises(InsufficientApprovalsError):
            vault.execute_proposal(ALICE, pid)
        assert vault.balance == 100
        assert not vault.get_proposal(pid).executed

    @pytest.mark.parametrize("caller", [ALICE, BOB, EVE, None])
    def test_insufficient_approvals_regardless_of_caller(self, caller):
        vault, asset = make_vault()
        fund(vault, asset)
        pid = vault.propose_transfer(ALICE, DAVE, 10)
        with pytest.raises(InsufficientApprovalsError):
            vault.execute_proposal(caller, pid)

    def test_execute_twice_raises(self):
        vault, asset = make_vault()
        fund(vault, asset, amount=100)
        pid = vault.propose_transfer(ALICE, DAVE, 30)
        approve_all(vault, pid, ALICE, BOB)
        vault.execute_proposal(None, pid)
        snapshot = (vault.balance, asset.balance_of(DAVE), len(vault.events))

        with pytest.raises(AlreadyExecutedError):
            vault.execute_proposal(None, pid)

        assert (vault.balance, asset.balance_of(DAVE), len(vault.events)) == snapshot

    def test_execute_unknown_raises(self):
        vault, _ = make_vault()
        with pytest.raises(ProposalNotFoundError):
            vault.execute_proposal(None, 0)

    def test_balance_rechecked_at_execution(self):
        vault, asset = make_vault()
        fund(vault, asset, amount=100)
        first = vault.propose_transfer(ALICE, DAVE, 80)
        second = vault.propose_transfer(BOB, EVE, 80)
        approve_all(vault, first, ALICE, BOB)
        approve_all(vault, second, ALICE, BOB)

        vault.execute_proposal(None, first)
        with pytest.raises(InsufficientBalanceError):
            vault.execute_proposal(None, second)

        assert vault.balance == 20
        assert not vault.get_proposal(second).executed
        assert asset.balance_of(EVE) == 0

    def test_failed_balance_check_can_be_retried_after_deposit(self):
        vault, asset = make_vault()
        pid = vault.propose_transfer(ALICE, DAVE, 40)
        approve_all(vault, pid, ALICE, BOB)
        with pytest.raises(InsufficientBalanceError):
            vault.execute_proposal(None, pid)
        fund(vault, asset, amount=40)
        vault.execute_proposal(None, pid)
        assert vault.balance == 0
        assert asset.balance_of(DAVE) == 40

    def test_zero_amount_transfer_rejected_at_execution(self):
        vault, asset = make_vault()
        fund(vault, asset, amount=10)
        pid = vault.propose_transfer(ALICE, DAVE, 0)
        approve_all(vault, pid, ALICE, BOB)
        with pytest.raises(InvalidAmountError):
            vault.execute_proposal(None, pid)
        assert not vault.get_proposal(pid).executed

    def test_exact_balance_transfer(self):
        vault, asset = make_vault()
        fund(vault, asset, amount=25)
        pid = vault.propose_transfer(ALICE, DAVE, 25)
        approve_all(vault, pid, BOB, CAROL)
        vault.execute_proposal(None, pid)
        assert vault.balance == 0

    def test_is_executable(self):
        vault, asset = make_vault()
        pid = vault.propose_transfer(ALICE, DAVE, 5)
        assert not vault.is_executable(pid)
        approve_all(vault, pid, ALICE, BOB)
        assert vault.is_executable(pid)


class TestTransferFailureAtomicity:
    """A refused external transfer leaves no observable effect."""

    def _approved_transfer(self, amount=50):
        vault, asset = make_vault()
        fund(vault, asset, amount=100)
        pid = vault.propose_transfer(ALICE, DAVE, amount)
        approve_all(vault, pid, ALICE, BOB)
        return vault, asset, pid

    def test_refused_transfer_rolls_back(self):
        vault, asset, pid = self._approved_transfer()
        events_before = len(vault.events)
        asset.freeze()

        with pytest.raises(ExternalTransferFailedError):
            vault.execute_proposal(None, pid)

        proposal = vault.get_proposal(pid)
        assert not proposal.executed
        assert proposal.executed_at is None
        assert vault.balance == 100
        assert asset.balance_of(DAVE) == 0
        assert len(vault.events) == events_before

    def test_retry_after_refusal_succeeds(self):
        vault, asset, pid = self._approved_transfer()
        asset.freeze()
        with pytest.raises(ExternalTransferFailedError):
            vault.execute_proposal(None, pid)
        asset.unfreeze()

        vault.execute_proposal(None, pid)
        assert vault.balance == 50
        assert asset.balance_of(DAVE) == 50
        assert len(vault.events.of_type("ProposalExecuted")) == 1

    def test_asset_exception_rolls_back(self):
        asset = MagicMock(spec=AssetLedger)
        asset.transfer_from.return_value = True
        asset.transfer.side_effect = AssetError("ledger offline")
        vault, _ = make_vault(asset=asset)
        vault.deposit(ALICE, 100)
        pid = vault.propose_transfer(ALICE, DAVE, 60)
        approve_all(vault, pid, ALICE, BOB)

        with pytest.raises(ExternalTransferFailedError, match="ledger offline"):
            vault.execute_proposal(None, pid)
        assert vault.balance == 100
        assert not vault.get_proposal(pid).executed

    def test_unexpected_exception_rolls_back(self):
        asset = MagicMock(spec=AssetLedger)
        asset.transfer_from.return_value = True
        asset.transfer.side_effect = RuntimeError("node connection reset")
        vault, _ = make_vault(asset=asset)
        vault.deposit(ALICE, 100)
        pid = vault.propose_transfer(ALICE, DAVE, 60)
        approve_all(vault, pid, ALICE, BOB)

        for _ in range(2):
            with pytest.raises(ExternalTransferFailedError, match="connection reset") as info:
                vault.execute_proposal(None, pid)
            assert isinstance(info.value.__cause__, RuntimeError)
            assert vault.balance == 100
            assert not vault.get_proposal(pid).executed
            assert vault.events.of_type("ProposalExecuted") == []

        asset.transfer.side_effect = None
        asset.transfer.return_value = True
        vault.execute_proposal(None, pid)
        assert vault.balance == 40
        assert asset.transfer.call_count == 3
        assert len(vault.events.of_type("ProposalExecuted")) == 1

    def test_debit_happens_before_external_call(self):
        seen = {}
        vault_ref = {}

        class RecordingAsset(AssetLedger):
            def transfer(self, to, amount):
                vault = vault_ref["vault"]
                seen["balance"] = vault.balance
                seen["executed"] = vault.get_proposal(0).executed
                return True

            def transfer_from(self, sender, recipient, amount):
                return True

        vault, _ = make_vault(asset=RecordingAsset())
        vault_ref["vault"] = vault
        vault.deposit(ALICE, 100)
        pid = vault.propose_transfer(ALICE, DAVE, 30)
        approve_all(vault, pid, ALICE, BOB)
        vault.execute_proposal(None, pid)

        assert seen == {"balance": 70, "executed": True}


class TestReentrancy:
    """The external call cannot re-enter execution of the same proposal."""

    def test_reentrant_execute_rejected(self):
        attempts = []
        vault_ref = {}

        class ReentrantAsset(AssetLedger):
            def transfer(self, to, amount):
                try:
                    vault_ref["vault"].execute_proposal(to, 0)
                except VaultError as e:
                    attempts.append(type(e))
                return True

            def transfer_from(self, sender, recipient, amount):
                return True

        vault, _ = make_vault(asset=ReentrantAsset())
        vault_ref["vault"] = vault
        vault.deposit(ALICE, 100)
        pid = vault.propose_transfer(ALICE, DAVE, 40)
        approve_all(vault, pid, ALICE, BOB)

        vault.execute_proposal(None, pid)

        assert attempts == [AlreadyExecutedError]
        assert vault.balance == 60
        assert len(vault.events.of_type("ProposalExecuted")) == 1

    def test_reentrant_error_escaping_transfer_rolls_back(self):
        vault_ref = {}
        state = {"reenter": True}

        class ReentrantAsset(AssetLedger):
            def transfer(self, to, amount):
                if state["reenter"]:
                    vault_ref["vault"].execute_proposal(to, 0)
                return True

            def transfer_from(self, sender, recipient, amount):
                return True

        vault, _ = make_vault(asset=ReentrantAsset())
        vault_ref["vault"] = vault
        vault.deposit(ALICE, 100)
        pid = vault.propose_transfer(ALICE, DAVE, 60)
        approve_all(vault, pid, ALICE, BOB)

        for _ in range(2):
            with pytest.raises(AlreadyExecutedError):
                vault.execute_proposal(None, pid)
            assert vault.balance == 100
            assert not vault.get_proposal(pid).executed
            assert vault.events.of_type("ProposalExecuted") == []

        state["reenter"] = False
        vault.execute_proposal(None, pid)
        assert vault.balance == 40
        assert len(vault.events.of_type("ProposalExecuted")) == 1


class TestConcurrentCallers:
    """Mutations behave as if serialized."""

    def test_concurrent_executions_debit_once(self):
        vault, asset = make_vault()
        fund(vault, asset, amount=100)
        pid = vault.propose_transfer(ALICE, DAVE, 60)
        approve_all(vault, pid, ALICE, BOB)

        outcomes = []
        lock = threading.Lock()
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            try:
                vault.execute_proposal(None, pid)
                result = "ok"
            except AlreadyExecutedError:
                result = "already"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("already") == 7
        assert vault.balance == 40
        assert asset.balance_of(DAVE) == 60

    def test_concurrent_approvals_not_lost(self):
        signers = [f"signer-{i}" for i in range(20)]
        vault, _ = make_vault(signers=signers, required=20)
        pid = vault.propose_add_signer(signers[0], EVE)
        barrier = threading.Barrier(len(signers))

        def worker(principal):
            barrier.wait()
            vault.approve_proposal(principal, pid)

        threads = [threading.Thread(target=worker, args=(s,)) for s in signers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        proposal = vault.get_proposal(pid)
        assert proposal.approvals == 20
        assert proposal.approvers == set(signers)


# ══════════════════════════════════════════════════════════════════════
#  EXECUTION: MEMBERSHIP
# ══════════════════════════════════════════════════════════════════════


class TestMembershipExecution:
    """AddSigner / RemoveSigner proposals."""

    def test_add_signer(self):
        vault, _ = make_vault()
        pid = vault.propose_add_signer(ALICE, DAVE)
        approve_all(vault, pid, ALICE, BOB)
        result = vault.execute_proposal(None, pid)
        assert result.signers_added == [DAVE]
        assert vault.is_signer(DAVE)
        assert vault.signer_count == 4
        names = [e.name for e in vault.events][-2:]
        assert names == ["SignerAdded", "ProposalExecuted"]

    def test_new_signer_can_act(self):
        vault, _ = make_vault()
        pid = vault.propose_add_signer(ALICE, DAVE)
        approve_all(vault, pid, ALICE, BOB)
        vault.execute_proposal(None, pid)
        other = vault.propose_transfer(DAVE, EVE, 1)
        vault.approve_proposal(DAVE, other)
        assert vault.get_proposal(other).approvals == 1

    def test_add_existing_signer_is_noop(self):
        vault, _ = make_vault()
        pid = vault.propose_add_signer(ALICE, BOB)
        approve_all(vault, pid, ALICE, BOB)
        result = vault.execute_proposal(None, pid)
        assert result.signers_added == []
        assert vault.signer_count == 3
        assert vault.get_proposal(pid).executed
        assert vault.events.of_type("SignerAdded") == []
        assert len(vault.events.of_type("ProposalExecuted")) == 1

    def test_remove_signer_then_quorum_violation(self):
        vault, _ = make_vault()
        first = vault.propose_remove_signer(ALICE, CAROL)
        approve_all(vault, first, BOB, CAROL)
        result = vault.execute_proposal(None, first)

        assert result.signers_removed == [CAROL]
        assert vault.signers == sorted([ALICE, BOB])
        assert vault.signer_count == 2
        assert not vault.is_signer(CAROL)

        second = vault.propose_remove_signer(ALICE, BOB)
        approve_all(vault, second, ALICE, BOB)
        with pytest.raises(QuorumViolationError):
            vault.execute_proposal(None, second)

        assert vault.signers == sorted([ALICE, BOB])
        assert not vault.get_proposal(second).executed
        assert vault.events.of_type("SignerRemoved")[-1].principal == CAROL
        assert len(vault.events.of_type("ProposalExecuted")) == 1

    def test_remove_when_count_equals_threshold(self):
        vault, _ = make_vault(required=3)
        pid = vault.propose_remove_signer(ALICE, CAROL)
        approve_all(vault, pid, ALICE, BOB, CAROL)
        with pytest.raises(QuorumViolationError):
            vault.execute_proposal(None, pid)
        assert vault.signer_count == 3

    def test_remove_non_signer_is_noop(self):
        vault, _ = make_vault()
        pid = vault.propose_remove_signer(ALICE, EVE)
        approve_all(vault, pid, ALICE, BOB)
        result = vault.execute_proposal(None, pid)
        assert result.signers_removed == []
        assert vault.signer_count == 3
        assert vault.get_proposal(pid).executed
        assert vault.events.of_type("SignerRemoved") == []

    def test_removed_signer_cannot_act(self):
        vault, _ = make_vault()
        pid = vault.propose_remove_signer(ALICE, CAROL)
        approve_all(vault, pid, ALICE, BOB)
        vault.execute_proposal(None, pid)
        with pytest.raises(UnauthorizedError):
            vault.propose_transfer(CAROL, DAVE, 1)
        with pytest.raises(UnauthorizedError):
            vault.approve_proposal(CAROL, 0)


class TestStaleApprovals:
    """Approvals of removed signers are purged from pending proposals."""

    def test_removed_signer_approval_purged(self):
        vault, asset = make_vault(signers=(ALICE, BOB, CAROL, DAVE))
        fund(vault, asset, amount=100)
        payout = vault.propose_transfer(ALICE, EVE, 10)
        approve_all(vault, payout, DAVE, CAROL)

        removal = vault.propose_remove_signer(ALICE, DAVE)
        approve_all(vault, removal, ALICE, BOB)
        result = vault.execute_proposal(None, removal)

        assert result.purged_approvals == [payout]
        proposal = vault.get_proposal(payout)
        assert proposal.approvers == {CAROL}
        assert proposal.approvals == 1
        with pytest.raises(InsufficientApprovalsError):
            vault.execute_proposal(None, payout)

    def test_executed_proposals_keep_their_approvers(self):
        vault, _ = make_vault(signers=(ALICE, BOB, CAROL, DAVE))
        added = vault.propose_add_signer(DAVE, EVE)
        approve_all(vault, added, DAVE, ALICE)
        vault.execute_proposal(None, added)

        removal = vault.propose_remove_signer(ALICE, DAVE)
        approve_all(vault, removal, ALICE, BOB)
        vault.execute_proposal(None, removal)

        assert vault.get_proposal(added).approvers == {DAVE, ALICE}


# ══════════════════════════════════════════════════════════════════════
#  SNAPSHOT
# ══════════════════════════════════════════════════════════════════════


class TestSnapshot:
    """to_dict / from_dict restore."""

    def test_restore_preserves_state(self):
        vault, asset = make_vault(strict_approvals=False)
        fund(vault, asset, amount=100)
        done = vault.propose_transfer(ALICE, DAVE, 30)
        approve_all(vault, done, ALICE, BOB)
        vault.execute_proposal(None, done)
        pending = vault.propose_add_signer(BOB, EVE)
        vault.approve_proposal(CAROL, pending)

        restored = MultisigVault.from_dict(vault.to_dict(), asset)

        assert restored.balance == 70
        assert restored.signers == vault.signers
        assert restored.required_approvals == 2
        assert restored.strict_approvals is False
        assert restored.get_proposal(done).executed
        assert restored.get_proposal(pending).approvers == {CAROL}
        assert len(restored.events) == len(vault.events)
        assert restored.propose_transfer(ALICE, DAVE, 1) == 2

    def test_restored_vault_keeps_enforcing(self):
        vault, asset = make_vault()
        fund(vault, asset, amount=50)
        pid = vault.propose_transfer(ALICE, DAVE, 20)
        approve_all(vault, pid, ALICE, BOB)
        vault.execute_proposal(None, pid)

        restored = MultisigVault.from_dict(vault.to_dict(), asset)
        with pytest.raises(AlreadyExecutedError):
            restored.execute_proposal(None, pid)

        other = restored.propose_transfer(ALICE, DAVE, 30)
        approve_all(restored, other, ALICE, CAROL)
        restored.execute_proposal(None, other)
        assert restored.balance == 0
        assert asset.balance_of(DAVE) == 50

    def test_bad_version_raises(self):
        vault, asset = make_vault()
        data = vault.to_dict()
        data["version"] = 99
        with pytest.raises(StateFileError):
            MultisigVault.from_dict(data, asset)

    def test_malformed_snapshot_raises(self):
        vault, asset = make_vault()
        data = vault.to_dict()
        del data["membership"]
        with pytest.raises(StateFileError):
            MultisigVault.from_dict(data, asset)

    def test_unknown_action_kind_raises(self):
        vault, asset = make_vault()
        vault.propose_transfer(ALICE, DAVE, 5)
        data = vault.to_dict()
        data["proposals"]["proposals"][0]["action"]["kind"] = "BOGUS"
        with pytest.raises(StateFileError, match="BOGUS"):
            MultisigVault.from_dict(data, asset)

    def test_invalid_membership_raises(self):
        vault, asset = make_vault()
        data = vault.to_dict()
        data["membership"]["requiredApprovals"] = 9
        with pytest.raises(StateFileError):
            MultisigVault.from_dict(data, asset)

    def test_non_object_snapshot_raises(self):
        _, asset = make_vault()
        with pytest.raises(StateFileError):
            MultisigVault.from_dict([], asset)


class TestFromConfig:

    def test_from_config(self):
        from qvault.config import VaultConfig

        config = VaultConfig.from_dict({
            "vault": {
                "address": VAULT,
                "signers": [ALICE, BOB, CAROL],
                "required_approvals": 2,
                "strict_approvals": False,
                "auto_approve_creator": True,
            },
        })
        vault = MultisigVault.from_config(config, InMemoryAsset("QRDX", VAULT))
        assert vault.required_approvals == 2
        assert vault.strict_approvals is False
        assert vault.auto_approve_creator is True
