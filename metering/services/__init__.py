from .plans import PLAN_LIMITS, UNLIMITED, PlanLimits, get_plan_limits
from .usage_service import UsageService

__all__ = [
    "PLAN_LIMITS",
    "UNLIMITED",
    "PlanLimits",
    "UsageService",
    "get_plan_limits",
]
