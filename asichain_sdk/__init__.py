"""
ASI chain SDK - sign, submit and track transactions on ASI (RChain-family) networks.
"""
from .balance import BalanceCache, BalanceFetcher
from .client import KeyProvider, WalletClient
from .config import Network, NetworkConfig, Settings
from .confirmation import ConfirmationResolver
from .exceptions import AccountLockedError, AsiChainError, DeployFailed, SigningError
from .ledger import JsonFileStore, MemoryStore, PendingLedger
from .models import (
    Account,
    CompletedResult,
    ConfirmationResult,
    Deploy,
    ErroredResult,
    PendingResult,
    PendingTransactionEntry,
    SignedDeploy,
    TransactionKind,
    TransactionRecord,
)
from .node import (
    ApiError,
    IndexerClient,
    IndexerUnavailable,
    NetworkError,
    NodeClient,
    NodeRole,
    RequestError,
    TransportError,
)
from .polling import PollingOrchestrator, PollingState
from .signer import address_from_private_key, sign, verify
from .submitter import DeploySubmitter
from .utils import format_balance, to_atomic, to_display
from .version import __version__

__all__ = [
    "WalletClient",
    "KeyProvider",
    "Network",
    "NetworkConfig",
    "Settings",
    "Account",
    "Deploy",
    "SignedDeploy",
    "PendingTransactionEntry",
    "TransactionKind",
    "TransactionRecord",
    "ConfirmationResult",
    "PendingResult",
    "CompletedResult",
    "ErroredResult",
    "NodeClient",
    "NodeRole",
    "IndexerClient",
    "BalanceCache",
    "BalanceFetcher",
    "DeploySubmitter",
    "ConfirmationResolver",
    "PendingLedger",
    "MemoryStore",
    "JsonFileStore",
    "PollingOrchestrator",
    "PollingState",
    "sign",
    "verify",
    "address_from_private_key",
    "to_atomic",
    "to_display",
    "format_balance",
    "AsiChainError",
    "SigningError",
    "DeployFailed",
    "AccountLockedError",
    "ApiError",
    "RequestError",
    "TransportError",
    "NetworkError",
    "IndexerUnavailable",
    "__version__",
]
