"""
Flyer Reward Lottery

This module provides:
- Pool sizing from a flyer's declared budget
- Randomized, bounded rewards with last-claimant settlement
- Idempotent per-user claims inside a single optimistic transaction
- Typed claim outcomes: Claimed, AlreadyClaimed, PoolDepleted
"""

from .models import (
    LotteryPool,
    ClaimRecord,
    Claimed,
    AlreadyClaimed,
    PoolDepleted,
    ClaimOutcome,
)
from .pool import PoolParameters, compute_pool_parameters, calculate_reward
from .service import LotteryService, LotteryError, PoolNotProvisionedError

__all__ = [
    "LotteryPool",
    "ClaimRecord",
    "Claimed",
    "AlreadyClaimed",
    "PoolDepleted",
    "ClaimOutcome",
    "PoolParameters",
    "compute_pool_parameters",
    "calculate_reward",
    "LotteryService",
    "LotteryError",
    "PoolNotProvisionedError",
]
