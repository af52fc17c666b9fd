from .user import User
from .subscription import PlanType, Subscription, SubscriptionStatus, UsageRecord

__all__ = [
    "PlanType",
    "Subscription",
    "SubscriptionStatus",
    "UsageRecord",
    "User",
]
