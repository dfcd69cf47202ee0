"""
Backoff policy for re-running optimistic transactions after a write conflict.
"""
import random
from dataclasses import dataclass
from typing import Optional


@dataclass
class RetryConfig:
    """Configuration for transaction retry behavior"""
    max_attempts: int = 5
    base_delay: float = 0.01
    max_delay: float = 0.5
    exponential_base: float = 2.0
    jitter: bool = True


def calculate_delay(attempt: int, config: RetryConfig, rng: Optional[random.Random] = None) -> float:
    """Calculate delay for exponential backoff with jitter"""
    delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    delay = min(delay, config.max_delay)

    if config.jitter:
        # Spread out transactions that collided on the same document
        delay *= 0.5 + (rng or random).random() * 0.5

    return delay
