"""
Remote session stores.

The remote store is the only resource shared between devices. Each backend
stamps writes with its own server timestamp.

Example:
    >>> from session_sync.remote import CosmosConfig, CosmosSessionStore
    >>> store = CosmosSessionStore(CosmosConfig.from_environment())
"""

from .base import RemoteSessionStore
from .cosmos import CosmosAuthMethod, CosmosConfig, CosmosSessionStore
from .memory import InMemorySessionStore

__all__ = [
    "RemoteSessionStore",
    "CosmosSessionStore",
    "CosmosConfig",
    "CosmosAuthMethod",
    "InMemorySessionStore",
]
