from .usage import (
    LimitCheckResult,
    PlanCatalog,
    PlanLimitsView,
    PlanView,
    TrialInfo,
    UsageHistoryEntry,
    UsageSummary,
)

__all__ = [
    "LimitCheckResult",
    "PlanCatalog",
    "PlanLimitsView",
    "PlanView",
    "TrialInfo",
    "UsageHistoryEntry",
    "UsageSummary",
]
