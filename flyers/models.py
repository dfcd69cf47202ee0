from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import Field, ConfigDict
from pydantic.alias_generators import to_camel

from common.schemas import CamelModel, Money

FLYERS = "flyers"


class FlyerType(str, Enum):
    LEAFLET = "leaflet"
    QUERY = "query"
    QR = "qr"


class TargetBudget(CamelModel):
    budget: Money = Field(..., gt=0, description="Declared pool size in currency units")

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class CreateFlyerRequest(CamelModel):
    type: FlyerType
    target_budget: TargetBudget
    data: Dict[str, Any] = Field(default_factory=dict, description="Creative payload")

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "type": "leaflet",
                "targetBudget": {"budget": 5000},
                "data": {"title": "Spring sale", "description": "20% off everything"},
            }
        },
    )


class Flyer(CamelModel):
    flyer_id: str
    type: FlyerType
    company_id: Optional[str] = None
    status: str = "active"
    target_budget: TargetBudget
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class CreateFlyerResponse(CamelModel):
    success: bool = True
    flyer_id: str
    type: FlyerType
    message: str
    data: Flyer


class CompanyStatistics(CamelModel):
    company_id: str
    year: int
    month: int
    claim_count: int = 0
    total_reward: Money = Decimal("0")
    flyer_count: int = 0
    total_max_users: int = 0
    total_event_money: Money = Decimal("0")
    created_at: datetime
    updated_at: datetime


def flyer_budget(flyer: Dict[str, Any]) -> Optional[Decimal]:
    """Declared budget of a stored flyer document, or None when absent or unusable."""
    target = flyer.get("targetBudget")
    if not isinstance(target, dict) or target.get("budget") is None:
        return None
    try:
        budget = Decimal(str(target["budget"]))
    except (InvalidOperation, ValueError):
        return None
    if not budget.is_finite() or budget <= 0:
        return None
    return budget
