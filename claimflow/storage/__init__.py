"""Storage backends: one DocumentStore protocol, two implementations."""

from claimflow.storage.base import (
    ClaimNotFoundError,
    DocumentStore,
    RunNotFoundError,
    StoreConflictError,
)
from claimflow.storage.memory import InMemoryStore
from claimflow.storage.sqlite import SqliteStore

__all__ = [
    "ClaimNotFoundError",
    "DocumentStore",
    "InMemoryStore",
    "RunNotFoundError",
    "SqliteStore",
    "StoreConflictError",
]
