"""
HEARTH Remote - Authoritative Store Abstraction

Subscribable owner-scoped document collections: an embedded in-memory
store and an HTTP store built on requests.
"""

from .remote_store import (
    COLLECTIONS,
    InMemoryRemoteStore,
    RemoteStore,
    RemoteStoreError,
    RemoteUnavailableError,
    Subscription,
)
from .http_store import HttpRemoteStore

__all__ = [
    'COLLECTIONS',
    'InMemoryRemoteStore',
    'RemoteStore',
    'RemoteStoreError',
    'RemoteUnavailableError',
    'Subscription',
    'HttpRemoteStore',
]
