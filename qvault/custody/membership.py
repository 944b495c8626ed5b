"""
Signer Membership Registry

Tracks the principals allowed to create and approve proposals and the fixed
approval threshold. The registry guarantees

    1 ≤ required_approvals ≤ |signers|

at all times: construction rejects sets that violate it and removals that
would break it raise QuorumViolationError.
"""

from typing import Any, Dict, Iterable, List, Set

from ..constants import MAX_SIGNERS
from ..exceptions import (
    InvalidParametersError,
    InvalidThresholdError,
    NotAuthorizedSignerError,
    QuorumViolationError,
)
from ..logger import get_logger

logger = get_logger(__name__)


def _check_principal(principal: str) -> str:
    if not isinstance(principal, str) or not principal.strip():
        raise InvalidParametersError(f"Invalid principal: {principal!r}")
    return principal


class SignerRegistry:
    """
    Set of current signers plus the quorum threshold.

    Mutated only by the action dispatcher when an AddSigner / RemoveSigner
    proposal executes.
    """

    def __init__(self, signers: Iterable[str], required_approvals: int):
        seed: Set[str] = set()
        for principal in signers:
            try:
                seed.add(_check_principal(principal))
            except InvalidParametersError as e:
                raise InvalidThresholdError(str(e)) from e

        if not seed:
            raise InvalidThresholdError("Signer set cannot be empty")
        if len(seed) > MAX_SIGNERS:
            raise InvalidThresholdError(
                f"Signer set has {len(seed)} members, maximum is {MAX_SIGNERS}"
            )
        if isinstance(required_approvals, bool) or not isinstance(required_approvals, int):
            raise InvalidThresholdError(
                f"required_approvals must be an integer, got {required_approvals!r}"
            )
        if not 1 <= required_approvals <= len(seed):
            raise InvalidThresholdError(
                f"required_approvals must be between 1 and {len(seed)}, "
                f"got {required_approvals}"
            )

        self._signers = seed
        self._required = required_approvals

    # ── Queries ───────────────────────────────────────────────────────

    @property
    def required_approvals(self) -> int:
        return self._required

    @property
    def count(self) -> int:
        return len(self._signers)

    @property
    def signers(self) -> List[str]:
        return sorted(self._signers)

    def is_signer(self, principal: str) -> bool:
        return principal in self._signers

    def __contains__(self, principal: str) -> bool:
        return self.is_signer(principal)

    def __len__(self) -> int:
        return len(self._signers)

    # ── Mutations ─────────────────────────────────────────────────────

    def add_signer(self, principal: str) -> bool:
        """
        Add *principal* to the signer set.

        Returns False (and changes nothing) if it is already a signer.
        """
        _check_principal(principal)
        if principal in self._signers:
            return False
        if len(self._signers) >= MAX_SIGNERS:
            raise InvalidParametersError(
                f"Signer set is full ({MAX_SIGNERS} members)"
            )
        self._signers.add(principal)
        logger.info(f"Signer added: {principal} (count={self.count})")
        return True

    def check_removal(self, principal: str) -> None:
        """Raise if *principal* cannot be removed right now."""
        if principal not in self._signers:
            raise NotAuthorizedSignerError(f"{principal} is not a signer")
        if len(self._signers) - 1 < self._required:
            raise QuorumViolationError(
                f"Removing {principal} would leave {len(self._signers) - 1} "
                f"signers, below the threshold of {self._required}"
            )

    def remove_signer(self, principal: str) -> None:
        """
        Remove *principal* from the signer set.

        Raises:
            NotAuthorizedSignerError: principal is not a signer
            QuorumViolationError: removal would drop the count below threshold
        """
        self.check_removal(principal)
        self._signers.discard(principal)
        logger.info(f"Signer removed: {principal} (count={self.count})")

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signers": self.signers,
            "requiredApprovals": self._required,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SignerRegistry":
        return cls(data["signers"], int(data["requiredApprovals"]))

    def __repr__(self) -> str:
        return f"<SignerRegistry {self._required}-of-{self.count}>"
