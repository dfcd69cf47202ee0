"""
Budget arithmetic for flyer lottery pools.

A declared budget is spread over an assumed distribution overhead to size
the number of rewarded claimants; the part of the budget that is actually
paid out (``lotteryMoney``) then depletes claim by claim.
"""
import random
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_FLOOR
from typing import Any, Dict

LOTTERY = "lottery"

SPREADING_COEFFICIENT = Decimal("0.6")
LOTTERY_FACTOR = 20
EVENT_COST_PERCENT = Decimal("0.2")
EVENT_USAGE_PERCENT = Decimal("0.8")
REWARD_FLUCTUATION = Decimal("0.5")

CENT = Decimal("0.01")


@dataclass(frozen=True)
class PoolParameters:
    pool: Decimal
    final_pool: Decimal
    max_users: int
    event_money: Decimal
    lottery_money: Decimal
    avg_money_per_user: Decimal


def claims_collection(flyer_id: str) -> str:
    return f"{LOTTERY}/{flyer_id}/claims"


def compute_pool_parameters(pool: Any) -> PoolParameters:
    budget = pool if isinstance(pool, Decimal) else Decimal(str(pool))
    if not budget.is_finite() or budget <= 0:
        raise ValueError(f"Pool budget must be positive, got {pool!r}")

    final_pool = budget / SPREADING_COEFFICIENT
    max_users = int(final_pool // LOTTERY_FACTOR)
    event_money = budget * (1 - EVENT_COST_PERCENT)
    lottery_money = event_money * EVENT_USAGE_PERCENT
    avg_money_per_user = lottery_money / max_users if max_users else Decimal("0")

    return PoolParameters(
        pool=budget,
        final_pool=final_pool,
        max_users=max_users,
        event_money=event_money,
        lottery_money=lottery_money,
        avg_money_per_user=avg_money_per_user,
    )


def new_pool_document(flyer_id: str, params: PoolParameters, now: datetime) -> Dict[str, Any]:
    return {
        "flyerId": flyer_id,
        "pool": params.pool,
        "spreadingCoefficient": SPREADING_COEFFICIENT,
        "lotteryFactor": LOTTERY_FACTOR,
        "eventCostPercent": EVENT_COST_PERCENT,
        "eventUsagePercent": EVENT_USAGE_PERCENT,
        "finalPool": params.final_pool,
        "maxUsers": params.max_users,
        "eventMoney": params.event_money,
        "lotteryMoney": params.lottery_money,
        "claims": 0,
        "remaining": params.lottery_money,
        "status": "active",
        "createdAt": now,
        "updatedAt": now,
    }


def is_depleted(claims: int, max_users: int, remaining: Decimal) -> bool:
    return claims >= max_users or remaining <= 0


def calculate_reward(
    claims: int,
    max_users: int,
    remaining: Decimal,
    avg_money_per_user: Decimal,
    rng: random.Random,
) -> Decimal:
    """
    Reward for the claimant arriving after ``claims`` satisfied claims.

    The last eligible claimant takes whatever is left so the pool always
    empties. Everyone else draws uniformly around the average, floored to
    cents and never above what remains.
    """
    if claims == max_users - 1:
        return remaining

    low = max(Decimal("0"), avg_money_per_user * REWARD_FLUCTUATION)
    high = min(remaining, avg_money_per_user * (1 + REWARD_FLUCTUATION))
    drawn = Decimal(rng.uniform(float(low), float(high)))
    reward = drawn.quantize(CENT, rounding=ROUND_FLOOR)
    if reward > remaining:
        reward = remaining
    return reward
