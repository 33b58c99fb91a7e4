"""
Session identities across tab and shared storage scopes
"""

from .storage import (
    KeyValueStore,
    MemoryStore,
    JsonFileStore,
    ResilientStore,
    StorageNotifier,
    NotifyingStore,
)
from .identity_store import SessionIdentityStore, ConnectChoice
from .browser_context import Origin, BrowserContext

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "ResilientStore",
    "StorageNotifier",
    "NotifyingStore",
    "SessionIdentityStore",
    "ConnectChoice",
    "Origin",
    "BrowserContext",
]
