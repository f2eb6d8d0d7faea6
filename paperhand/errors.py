class PaperhandError(Exception):
    """Base error for the tracker engine."""


class StoreError(PaperhandError):
    """The store could not complete a read or write."""


class WalletNotConfiguredError(PaperhandError):
    """The user has no wallet setting for the requested operation."""
