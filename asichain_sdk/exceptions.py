"""
Exceptions for the ASI chain SDK.

Node transport errors live in :mod:`asichain_sdk.node.exceptions`; they share
the :class:`AsiChainError` base so callers can catch everything the SDK raises
with a single ``except`` clause.
"""
from typing import Optional


class AsiChainError(Exception):
    """Base exception for all SDK errors"""
    pass


class SigningError(AsiChainError):
    """Raised when a deploy cannot be signed, usually because the key is malformed"""
    pass


class DeployFailed(AsiChainError):
    """
    Raised when a deploy could not be submitted.

    ``reason`` carries the node's own error text when the node was reached,
    so it can be shown to the user as-is.
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Deploy failed: {reason}")


class AccountLockedError(AsiChainError):
    """Raised when the key provider cannot unlock the sending account"""

    def __init__(self, account_id: str, message: Optional[str] = None):
        self.account_id = account_id
        super().__init__(
            message or "Account is locked. Please provide password or unlock account first."
        )
