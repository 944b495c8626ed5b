"""
QVault Package

Quorum-gated custody of a single fungible asset.

Core imports are lazily loaded so that importing a submodule does not pull
in the CLI. For direct module access, import from submodules:

    from qvault.custody import MultisigVault, TransferAction
    from qvault.assets import InMemoryAsset
    from qvault.exceptions import QuorumViolationError
"""

__version__ = "1.0.0"


# Lazy imports to avoid loading everything at package import
def __getattr__(name):
    """Lazy module loading."""
    if name == 'MultisigVault':
        from .custody.engine import MultisigVault
        return MultisigVault
    elif name == 'InMemoryAsset':
        from .assets.ledger import InMemoryAsset
        return InMemoryAsset
    elif name == 'VaultError':
        from .exceptions import VaultError
        return VaultError
    elif name == 'load_config':
        from .config import load_config
        return load_config
    raise AttributeError(f"module 'qvault' has no attribute {name!r}")

__all__ = ['MultisigVault', 'InMemoryAsset', 'VaultError', 'load_config']
