"""
Exceptions for the node and indexer clients.

Callers branch on these classes, never on raw ``requests`` exceptions.
"""
from enum import Enum
from typing import Any, Optional

from ..exceptions import AsiChainError


class TransportKind(str, Enum):
    """
    Why a request never got a usable answer from the remote side.

    CORS covers every "blocked by security policy" condition: TLS failures,
    mixed content (secure origin talking to a plain-http endpoint).
    """
    NETWORK = "network"
    CORS = "cors"
    TIMEOUT = "timeout"


class NodeError(AsiChainError):
    """Base exception for node-related errors."""
    pass


class ApiError(NodeError):
    """Raised when the node was reached but rejected the request."""

    def __init__(self, status: int, body: Any):
        self.status = status
        self.body = body
        super().__init__(f"RNode API Error: {status} - {body}")


class RequestError(NodeError):
    """Raised when a request could not be built or sent for local reasons."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"Request Error: {message}")


class TransportError(NodeError):
    """Raised when the endpoint could not be reached at all."""

    kind = TransportKind.NETWORK

    def __init__(self, endpoint: str, message: Optional[str] = None):
        self.endpoint = endpoint
        super().__init__(message or f"Network Error: Unable to connect to {endpoint}")


class NetworkError(TransportError):
    """Node unreachable: DNS failure, refused connection, reset."""
    kind = TransportKind.NETWORK


class CorsError(TransportError):
    """Request blocked by TLS or mixed-content policy."""
    kind = TransportKind.CORS


class NodeTimeoutError(TransportError):
    """Request exceeded its fixed timeout."""
    kind = TransportKind.TIMEOUT


class IndexerUnavailable(AsiChainError):
    """
    Raised when the indexer cannot answer a query.

    This is never user-visible on its own: the confirmation resolver reacts
    to it by scanning recent blocks instead.
    """

    def __init__(self, reason: str, transport: Optional[TransportError] = None):
        self.reason = reason
        self.transport = transport
        super().__init__(f"Indexer unavailable: {reason}")

    @property
    def is_transport_failure(self) -> bool:
        return self.transport is not None
