"""QVault command line tools."""
