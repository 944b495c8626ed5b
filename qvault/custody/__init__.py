"""
QVault Custody Core

Provides:
  - SignerRegistry                                   (membership.py)
  - BalanceLedger                                    (balance.py)
  - ActionKind / TransferAction / AddSignerAction /
    RemoveSignerAction                               (actions.py)
  - Proposal / ProposalState / ProposalStore         (proposals.py)
  - EventLog and event records                       (events.py)
  - ActionDispatcher / DispatchResult                (dispatcher.py)
  - MultisigVault                                    (engine.py)
"""

from .actions import (
    Action,
    ActionKind,
    AddSignerAction,
    RemoveSignerAction,
    TransferAction,
    action_from_dict,
)
from .balance import BalanceLedger
from .dispatcher import ActionDispatcher, DispatchResult
from .engine import MultisigVault
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
from .proposals import Proposal, ProposalState, ProposalStore

__all__ = [
    # Actions
    "Action",
    "ActionKind",
    "AddSignerAction",
    "RemoveSignerAction",
    "TransferAction",
    "action_from_dict",
    # State
    "BalanceLedger",
    "SignerRegistry",
    "Proposal",
    "ProposalState",
    "ProposalStore",
    # Events
    "DepositEvent",
    "EventLog",
    "ProposalApprovedEvent",
    "ProposalCreatedEvent",
    "ProposalExecutedEvent",
    "SignerAddedEvent",
    "SignerRemovedEvent",
    # Engine
    "ActionDispatcher",
    "DispatchResult",
    "MultisigVault",
]
