"""
Audit Events

One event is appended for every committed state transition. Events carry no
logic; they exist for external auditing and indexing. Rejected operations
append nothing.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

from ..logger import get_logger
from .actions import ActionKind

logger = get_logger(__name__)


@dataclass(frozen=True)
class DepositEvent:
    """Emitted when a deposit has been pulled in and credited."""
    principal: str
    amount: int
    timestamp: float = field(default_factory=time.time)

    name = "Deposit"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "principal": self.principal,
            "amount": self.amount,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ProposalCreatedEvent:
    proposal_id: int
    to: Optional[str]
    amount: int
    kind: ActionKind
    membership_target: Optional[str]
    timestamp: float = field(default_factory=time.time)

    name = "ProposalCreated"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "proposalId": self.proposal_id,
            "to": self.to,
            "amount": self.amount,
            "kind": self.kind.name,
            "membershipTarget": self.membership_target,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ProposalApprovedEvent:
    proposal_id: int
    approver: str
    timestamp: float = field(default_factory=time.time)

    name = "ProposalApproved"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "proposalId": self.proposal_id,
            "approver": self.approver,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ProposalExecutedEvent:
    proposal_id: int
    to: Optional[str]
    amount: int
    kind: ActionKind
    membership_target: Optional[str]
    timestamp: float = field(default_factory=time.time)

    name = "ProposalExecuted"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "proposalId": self.proposal_id,
            "to": self.to,
            "amount": self.amount,
            "kind": self.kind.name,
            "membershipTarget": self.membership_target,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class SignerAddedEvent:
    principal: str
    timestamp: float = field(default_factory=time.time)

    name = "SignerAdded"

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.name, "principal": self.principal, "timestamp": self.timestamp}


@dataclass(frozen=True)
class SignerRemovedEvent:
    principal: str
    timestamp: float = field(default_factory=time.time)

    name = "SignerRemoved"

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.name, "principal": self.principal, "timestamp": self.timestamp}


_EVENT_TYPES = {
    cls.name: cls
    for cls in (
        DepositEvent,
        ProposalCreatedEvent,
        ProposalApprovedEvent,
        ProposalExecutedEvent,
        SignerAddedEvent,
        SignerRemovedEvent,
    )
}


def event_from_dict(data: Dict[str, Any]):
    """Rebuild an event from its `to_dict()` form."""
    name = data["event"]
    ts = data.get("timestamp", time.time())
    if name == DepositEvent.name:
        return DepositEvent(data["principal"], int(data["amount"]), ts)
    if name == ProposalApprovedEvent.name:
        return ProposalApprovedEvent(int(data["proposalId"]), data["approver"], ts)
    if name in (SignerAddedEvent.name, SignerRemovedEvent.name):
        return _EVENT_TYPES[name](data["principal"], ts)
    if name in (ProposalCreatedEvent.name, ProposalExecutedEvent.name):
        return _EVENT_TYPES[name](
            int(data["proposalId"]),
            data.get("to"),
            int(data.get("amount", 0)),
            ActionKind[data["kind"]],
            data.get("membershipTarget"),
            ts,
        )
    raise ValueError(f"Unknown event type: {name!r}")


class EventLog:
    """
    Append-only, ordered audit trail.

    Subscribers are called synchronously after each append; an exception in a
    subscriber is logged and does not undo the committed transition.
    """

    def __init__(self):
        self._events: List[Any] = []
        self._subscribers: List[Callable[[int, Any], None]] = []

    def emit(self, event) -> int:
        """Append *event*; returns its sequence number."""
        seq = len(self._events)
        self._events.append(event)
        logger.debug(f"[{event.name}] seq={seq}")
        for callback in list(self._subscribers):
            try:
                callback(seq, event)
            except Exception:
                logger.exception(f"Event subscriber failed on {event.name} seq={seq}")
        return seq

    def subscribe(self, callback: Callable[[int, Any], None]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[int, Any], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def of_type(self, name: str) -> List[Any]:
        return [e for e in self._events if e.name == name]

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._events))

    def __len__(self) -> int:
        return len(self._events)

    def __getitem__(self, index):
        return self._events[index]

    def to_dict(self) -> List[Dict[str, Any]]:
        return [dict(e.to_dict(), seq=i) for i, e in enumerate(self._events)]

    @classmethod
    def from_dict(cls, data: List[Dict[str, Any]]) -> "EventLog":
        log = cls()
        log._events = [event_from_dict(entry) for entry in data]
        return log
