"""
Error taxonomy for the document access viewer.
Not-found is always represented as None by the store; these exceptions cover
permission failures, I/O failures, and the rewrite service boundary.
"""


class DocVaultError(Exception):
    """Base class for all docvault errors."""


class PermissionDeniedError(DocVaultError):
    """A non-owner wallet attempted a role-management operation."""

    def __init__(self, address: str, operation: str):
        self.address = address
        self.operation = operation
        super().__init__(f"Wallet {address} is not permitted to {operation}")


class StoreError(DocVaultError):
    """The role store could not complete a read or write."""


class RewriteError(DocVaultError):
    """The semantic rewrite service failed to produce a paraphrase."""


class RewriteUnavailableError(RewriteError):
    """The semantic rewrite service is not configured or not reachable."""


class RewriteTimeoutError(RewriteError):
    """The semantic rewrite service did not answer in time."""
