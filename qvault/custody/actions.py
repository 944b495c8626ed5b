"""
Proposal Actions

A proposal carries exactly one of three actions. Each variant holds only the
fields it needs, so dispatching is a total match over the variant type:

    TransferAction(to, amount)   — pay custodied units out to `to`
    AddSignerAction(signer)      — grow the signer set
    RemoveSignerAction(signer)   — shrink the signer set
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional, Union

from ..exceptions import InvalidParametersError
from .balance import check_amount


class ActionKind(IntEnum):
    """Action tag carried in events and snapshots."""
    TRANSFER = 0
    ADD_SIGNER = 1
    REMOVE_SIGNER = 2


def _require_principal(value: Any, field_name: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise InvalidParametersError(f"{field_name} must be a non-empty principal, got {value!r}")


@dataclass(frozen=True)
class TransferAction:
    """Move `amount` custodied units to `to`. Zero is accepted here and refused at execution."""
    to: str
    amount: int

    def __post_init__(self):
        _require_principal(self.to, "to")
        check_amount(self.amount)

    @property
    def kind(self) -> ActionKind:
        return ActionKind.TRANSFER

    @property
    def membership_target(self) -> Optional[str]:
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.name, "to": self.to, "amount": self.amount}


@dataclass(frozen=True)
class AddSignerAction:
    signer: str

    def __post_init__(self):
        _require_principal(self.signer, "signer")

    @property
    def kind(self) -> ActionKind:
        return ActionKind.ADD_SIGNER

    @property
    def to(self) -> Optional[str]:
        return None

    @property
    def amount(self) -> int:
        return 0

    @property
    def membership_target(self) -> Optional[str]:
        return self.signer

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.name, "signer": self.signer}


@dataclass(frozen=True)
class RemoveSignerAction:
    signer: str

    def __post_init__(self):
        _require_principal(self.signer, "signer")

    @property
    def kind(self) -> ActionKind:
        return ActionKind.REMOVE_SIGNER

    @property
    def to(self) -> Optional[str]:
        return None

    @property
    def amount(self) -> int:
        return 0

    @property
    def membership_target(self) -> Optional[str]:
        return self.signer

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.name, "signer": self.signer}


Action = Union[TransferAction, AddSignerAction, RemoveSignerAction]


def action_from_dict(data: Dict[str, Any]) -> Action:
    """Rebuild an action from its `to_dict()` form."""
    try:
        kind = ActionKind[data["kind"]]
    except KeyError as e:
        raise InvalidParametersError(f"Unknown action kind: {data.get('kind')!r}") from e

    if kind == ActionKind.TRANSFER:
        return TransferAction(to=data.get("to"), amount=data.get("amount"))
    if kind == ActionKind.ADD_SIGNER:
        return AddSignerAction(signer=data.get("signer"))
    return RemoveSignerAction(signer=data.get("signer"))
