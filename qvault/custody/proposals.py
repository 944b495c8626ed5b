"""
Proposal Records and Store

A proposal moves through three states:

    CREATED ──approve──▶ APPROVING ──execute──▶ EXECUTED

The store is an arena of proposal records keyed by a monotonically
increasing integer id starting at 0. Records are never deleted; each record
owns its own approver set.
"""

import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Iterator, List, Optional, Set

from ..constants import FIRST_PROPOSAL_ID
from ..exceptions import AlreadyExecutedError, ProposalNotFoundError
from .actions import Action, ActionKind, action_from_dict


class ProposalState(IntEnum):
    """Derived lifecycle stage."""
    CREATED = 0     # No approvals yet
    APPROVING = 1   # At least one approval, not executed
    EXECUTED = 2    # Terminal


@dataclass
class Proposal:
    """
    A pending or executed request that needs quorum approval.

    Fields:
        id:           Unique monotonic identifier
        action:       TransferAction | AddSignerAction | RemoveSignerAction
        proposer:     Signer who created the proposal
        approvers:    Principals that have approved, each at most once
        executed:     One-way flag, set when the action is applied
        created_at:   Timestamp of creation
        executed_at:  Timestamp of execution
    """
    id: int
    action: Action
    proposer: str
    approvers: Set[str] = field(default_factory=set)
    executed: bool = False
    created_at: float = field(default_factory=time.time)
    executed_at: Optional[float] = None

    # ── Properties ────────────────────────────────────────────────────

    @property
    def approvals(self) -> int:
        """Approval counter; always equal to the size of the approver set."""
        return len(self.approvers)

    @property
    def kind(self) -> ActionKind:
        return self.action.kind

    @property
    def state(self) -> ProposalState:
        if self.executed:
            return ProposalState.EXECUTED
        if self.approvers:
            return ProposalState.APPROVING
        return ProposalState.CREATED

    def has_approved(self, principal: str) -> bool:
        return principal in self.approvers

    # ── Approval bookkeeping ──────────────────────────────────────────

    def add_approval(self, principal: str) -> bool:
        """
        Record *principal*'s approval.

        Returns False if it was already recorded. Raises AlreadyExecutedError
        on an executed proposal.
        """
        if self.executed:
            raise AlreadyExecutedError(f"Proposal #{self.id} already executed")
        if principal in self.approvers:
            return False
        self.approvers.add(principal)
        return True

    def revoke_approval(self, principal: str) -> bool:
        """Drop *principal*'s approval from a pending proposal."""
        if self.executed or principal not in self.approvers:
            return False
        self.approvers.discard(principal)
        return True

    # ── Execution flag ────────────────────────────────────────────────

    def mark_executed(self) -> None:
        if self.executed:
            raise AlreadyExecutedError(f"Proposal #{self.id} already executed")
        self.executed = True
        self.executed_at = time.time()

    def _unmark_executed(self) -> None:
        # Only for rolling back an execution whose effect failed before commit.
        self.executed = False
        self.executed_at = None

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "action": self.action.to_dict(),
            "proposer": self.proposer,
            "approvers": sorted(self.approvers),
            "approvals": self.approvals,
            "executed": self.executed,
            "state": self.state.name,
            "createdAt": self.created_at,
            "executedAt": self.executed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Proposal":
        return cls(
            id=int(data["id"]),
            action=action_from_dict(data["action"]),
            proposer=data["proposer"],
            approvers=set(data.get("approvers", [])),
            executed=bool(data.get("executed", False)),
            created_at=data.get("createdAt", time.time()),
            executed_at=data.get("executedAt"),
        )

    def __repr__(self) -> str:
        return (
            f"<Proposal #{self.id} {self.kind.name} "
            f"approvals={self.approvals} executed={self.executed}>"
        )


class ProposalStore:
    """Append-only arena of proposals."""

    def __init__(self):
        self._proposals: Dict[int, Proposal] = {}
        self._next_id = FIRST_PROPOSAL_ID

    @property
    def next_id(self) -> int:
        return self._next_id

    def create(self, action: Action, proposer: str) -> Proposal:
        proposal = Proposal(id=self._next_id, action=action, proposer=proposer)
        self._proposals[proposal.id] = proposal
        self._next_id += 1
        return proposal

    def get(self, proposal_id: int) -> Proposal:
        proposal = self._proposals.get(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(f"Proposal #{proposal_id} not found")
        return proposal

    def exists(self, proposal_id: int) -> bool:
        return proposal_id in self._proposals

    def pending(self) -> List[Proposal]:
        return [p for p in self._proposals.values() if not p.executed]

    def all(self) -> List[Proposal]:
        return list(self._proposals.values())

    def __iter__(self) -> Iterator[Proposal]:
        return iter(list(self._proposals.values()))

    def __len__(self) -> int:
        return len(self._proposals)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nextId": self._next_id,
            "proposals": [p.to_dict() for p in self._proposals.values()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProposalStore":
        store = cls()
        for entry in data.get("proposals", []):
            proposal = Proposal.from_dict(entry)
            store._proposals[proposal.id] = proposal
        highest = max(store._proposals, default=FIRST_PROPOSAL_ID - 1)
        store._next_id = max(int(data.get("nextId", FIRST_PROPOSAL_ID)), highest + 1)
        return store
