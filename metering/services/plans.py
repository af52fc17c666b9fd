"""
Plan catalog - static limits for each subscription tier
"""
import calendar
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Union

from ..models.subscription import PlanType

UNLIMITED = -1


@dataclass(frozen=True)
class PlanLimits:
    name: str
    emails_per_month: int
    ai_replies_limit: int
    emails_received_limit: int
    stores: int
    trial_days: Optional[int] = None

    def __post_init__(self):
        for field_name in ("emails_per_month", "ai_replies_limit", "emails_received_limit", "stores"):
            value = getattr(self, field_name)
            if value != UNLIMITED and value <= 0:
                raise ValueError(f"{self.name}: {field_name} must be positive or {UNLIMITED}, got {value}")
        if self.trial_days is not None and self.trial_days <= 0:
            raise ValueError(f"{self.name}: trial_days must be positive, got {self.trial_days}")


# Pricing is currency-dependent and lives in pricing.py
PLAN_LIMITS: Dict[PlanType, PlanLimits] = {
    PlanType.TRIAL: PlanLimits(
        name="Free Trial",
        emails_per_month=100,
        ai_replies_limit=100,
        emails_received_limit=500,
        stores=1,
        trial_days=7,
    ),
    PlanType.STARTER: PlanLimits(
        name="Starter",
        emails_per_month=500,
        ai_replies_limit=500,
        emails_received_limit=2500,
        stores=1,
    ),
    PlanType.GROWTH: PlanLimits(
        name="Growth",
        emails_per_month=2500,
        ai_replies_limit=2500,
        emails_received_limit=10000,
        stores=3,
    ),
    PlanType.PRO: PlanLimits(
        name="Pro",
        emails_per_month=10000,
        ai_replies_limit=10000,
        emails_received_limit=50000,
        stores=10,
    ),
    PlanType.ENTERPRISE: PlanLimits(
        name="Enterprise",
        emails_per_month=UNLIMITED,
        ai_replies_limit=UNLIMITED,
        emails_received_limit=UNLIMITED,
        stores=UNLIMITED,
    ),
}


def get_plan_limits(plan_type: Union[PlanType, str]) -> PlanLimits:
    return PLAN_LIMITS[PlanType(plan_type)]


def is_unlimited(value: int) -> bool:
    return value == UNLIMITED


def add_months(moment: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping to the last day of the target month."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)
