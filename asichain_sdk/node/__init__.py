"""
Node module for the ASI chain SDK.

This module talks to the chain: the RNode web API (validator, read-only and
admin nodes) and the GraphQL indexer.
"""
from .client import NodeClient
from .exceptions import (
    ApiError,
    CorsError,
    IndexerUnavailable,
    NetworkError,
    NodeError,
    NodeTimeoutError,
    RequestError,
    TransportError,
    TransportKind,
)
from .indexer import IndexerClient
from .routing import NodeRole, resolve_route

__all__ = ['NodeClient', 'IndexerClient', 'NodeRole', 'resolve_route',
           'NodeError', 'ApiError', 'RequestError', 'TransportError', 'TransportKind',
           'NetworkError', 'CorsError', 'NodeTimeoutError', 'IndexerUnavailable']
