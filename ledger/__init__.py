"""
Token Wallet Ledger

This module provides:
- One active wallet per user with a versioned balance
- Immutable, append-only transaction records (ADD / DEDUCT)
- Idempotent add and deduct flows keyed by a caller-supplied idempotency key
- Inline wallet credits for other engines sharing the same transaction
- Transaction history queries
"""

from .models import (
    TransactionType,
    TransactionStatus,
    TransactionRecord,
    TransactionResult,
    InsufficientBalance,
    Wallet,
)
from .service import (
    LedgerService,
    LedgerServiceError,
    InvalidAmountError,
    MissingIdempotencyKeyError,
    WalletNotFoundError,
    WalletExistsError,
    TransactionNotFoundError,
    ReservedIdempotencyKeyError,
    IdempotencyKeyInUseError,
)

__all__ = [
    "TransactionType",
    "TransactionStatus",
    "TransactionRecord",
    "TransactionResult",
    "InsufficientBalance",
    "Wallet",
    "LedgerService",
    "LedgerServiceError",
    "InvalidAmountError",
    "MissingIdempotencyKeyError",
    "WalletNotFoundError",
    "WalletExistsError",
    "TransactionNotFoundError",
    "ReservedIdempotencyKeyError",
    "IdempotencyKeyInUseError",
]
