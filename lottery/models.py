from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from common.schemas import CamelModel, Money


class LotteryPool(CamelModel):
    flyer_id: str
    pool: Money
    spreading_coefficient: Decimal
    lottery_factor: int
    event_cost_percent: Decimal
    event_usage_percent: Decimal
    final_pool: Money
    max_users: int
    event_money: Money
    lottery_money: Money
    claims: int
    remaining: Money
    status: str = "active"
    created_at: datetime
    updated_at: Optional[datetime] = None


class ClaimRecord(CamelModel):
    user_id: str
    flyer_id: str
    reward: Money
    claimed_at: datetime
    claim_number: int
    remaining_after: Money


@dataclass(frozen=True)
class Claimed:
    claim: ClaimRecord
    avg_money_per_user: Decimal
    max_users: int


@dataclass(frozen=True)
class AlreadyClaimed:
    claim: ClaimRecord
    avg_money_per_user: Decimal
    max_users: int


@dataclass(frozen=True)
class PoolDepleted:
    flyer_id: str
    avg_money_per_user: Decimal
    max_users: int


ClaimOutcome = Union[Claimed, AlreadyClaimed, PoolDepleted]


class LotteryResponse(CamelModel):
    success: bool
    message: str
    user_id: Optional[str] = None
    flyer_id: Optional[str] = None
    reward: Optional[Money] = None
    claimed_at: Optional[datetime] = None
    claim_number: Optional[int] = None
    remaining_after: Optional[Money] = None
    avg_money_per_user: Money
    max_users: int

    @classmethod
    def from_outcome(cls, outcome: ClaimOutcome) -> "LotteryResponse":
        if isinstance(outcome, PoolDepleted):
            return cls(
                success=False,
                message="All lottery rewards have been claimed",
                avg_money_per_user=outcome.avg_money_per_user,
                max_users=outcome.max_users,
            )

        message = "Already claimed" if isinstance(outcome, AlreadyClaimed) else "Lottery reward claimed"
        return cls(
            success=True,
            message=message,
            **outcome.claim.model_dump(),
            avg_money_per_user=outcome.avg_money_per_user,
            max_users=outcome.max_users,
        )
