"""
Transactional document store.

This module provides:
- Collections of schemaless documents addressed by slash paths
- Optimistic multi-document transactions with conflict retry
- Increment-style field writes for shared counters
"""

from .retry import RetryConfig
from .store import (
    DocumentStore,
    DocumentSnapshot,
    Transaction,
    Increment,
    collection_path,
    DocumentStoreError,
    DocumentNotFoundError,
    DocumentExistsError,
    ReadAfterWriteError,
    TransactionConflictError,
    TransactionAbortedError,
)

__all__ = [
    "RetryConfig",
    "DocumentStore",
    "DocumentSnapshot",
    "Transaction",
    "Increment",
    "collection_path",
    "DocumentStoreError",
    "DocumentNotFoundError",
    "DocumentExistsError",
    "ReadAfterWriteError",
    "TransactionConflictError",
    "TransactionAbortedError",
]
