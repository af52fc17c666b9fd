"""
Domain exceptions raised by the metering service.
"""


class MeteringError(Exception):
    """Base exception for metering operations."""
    pass


class SubscriptionNotFoundError(MeteringError):
    """Subscription disappeared between lookup and use."""

    def __init__(self, subscription_id: int):
        self.subscription_id = subscription_id
        super().__init__(f"Subscription not found: {subscription_id}")


class UsageRecordNotFoundError(MeteringError):
    """Expired trial subscription has no usage record to fall back on."""

    def __init__(self, subscription_id: int):
        self.subscription_id = subscription_id
        super().__init__(f"Usage record not found for expired trial: {subscription_id}")


class TrialExpiredError(MeteringError):
    """Business-rule rejection: the trial is over and the action needs a paid plan."""

    def __init__(self, action: str):
        self.action = action
        self.message = f"Trial expired. Cannot {action} more emails."
        super().__init__(self.message)
