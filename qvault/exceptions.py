"""
QVault Exceptions

Custom exception classes for the custody engine. Every failure is raised
synchronously from the operation that was attempted; nothing is retried.
"""


class VaultError(Exception):
    """Base exception for QVault."""
    pass


class UnauthorizedError(VaultError):
    """Caller is not a current signer."""
    pass


class InvalidParametersError(VaultError):
    """Operation arguments are structurally invalid."""
    pass


class InvalidThresholdError(InvalidParametersError):
    """Signer set or approval threshold is invalid at construction."""
    pass


class InvalidAmountError(InvalidParametersError):
    """Amount is zero, negative or not an integer."""
    pass


class ProposalNotFoundError(VaultError):
    """No proposal exists with the given id."""
    pass


class AlreadyExecutedError(VaultError):
    """Proposal has already been executed."""
    pass


class AlreadyApprovedError(VaultError):
    """Signer has already approved this proposal."""
    pass


class InsufficientApprovalsError(VaultError):
    """Proposal has fewer approvals than the quorum threshold."""
    pass


class InsufficientBalanceError(VaultError):
    """Custodied balance is lower than the requested debit."""
    pass


class NotAuthorizedSignerError(VaultError):
    """Removal target is not a current signer."""
    pass


class QuorumViolationError(VaultError):
    """Removing a signer would leave fewer signers than the threshold."""
    pass


class ExternalTransferFailedError(VaultError):
    """The external asset ledger refused or failed a transfer."""
    pass


class ConfigurationError(VaultError):
    """Configuration error."""
    pass


class StateFileError(VaultError):
    """Vault snapshot could not be read or written."""
    pass
