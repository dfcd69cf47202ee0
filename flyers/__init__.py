"""
Flyer campaigns: creation of the flyer and its paired lottery pool, plus
the per-company monthly statistics rollup.
"""

from .errors import FlyerError, FlyerNotFoundError, FlyerBudgetMissingError
from .models import FlyerType, TargetBudget, CreateFlyerRequest, Flyer, CompanyStatistics
from .statistics import get_month_statistics, month_key
from .service import FlyerService

__all__ = [
    "FlyerError",
    "FlyerNotFoundError",
    "FlyerBudgetMissingError",
    "FlyerType",
    "TargetBudget",
    "CreateFlyerRequest",
    "Flyer",
    "CompanyStatistics",
    "get_month_statistics",
    "month_key",
    "FlyerService",
]
