# metering/schemas/usage.py
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

class TrialInfo(BaseModel):
    is_trial: bool = Field(..., description="Whether the subscription is on the trial plan")
    expired: bool = Field(..., description="Whether the trial period has ended")
    ends_at: Optional[datetime] = Field(None, description="Trial end (trial plans only)")
    days_remaining: Optional[int] = Field(None, description="Whole days left in the trial (trial plans only)")

class LimitCheckResult(BaseModel):
    allowed: bool = Field(..., description="Whether one more unit of usage is permitted")
    current: int = Field(..., description="Usage so far in the current period")
    limit: int = Field(..., description="Plan cap for the period (-1 = unlimited)")
    percentage: float = Field(..., description="Share of the cap used, rounded to 2 decimals")
    remaining: int = Field(..., description="Units left in the period (-1 = unlimited)")
    plan_type: str = Field(..., description="Plan tier")
    trial: TrialInfo

class UsageSummary(BaseModel):
    plan_type: str
    plan_name: str
    status: str

    # Emails sent
    emails_sent: int
    email_limit: int
    email_usage_percentage: float
    emails_remaining: int
    can_send_email: bool

    # AI suggestions
    ai_suggestions: int
    ai_limit: int
    ai_usage_percentage: float
    ai_remaining: int
    can_use_ai: bool

    # Emails received
    emails_received: int
    emails_received_limit: int

    stores_limit: int
    period_start: datetime
    period_end: datetime
    trial: TrialInfo

    # Pricing
    currency: str
    price: int = Field(..., description="Plan price in the requested currency (-1 = custom)")

class UsageHistoryEntry(BaseModel):
    period_start: datetime
    period_end: datetime
    emails_sent: int
    emails_received: int
    ai_suggestions: int

class PlanLimitsView(BaseModel):
    emails_per_month: int
    ai_replies: int
    emails_received: int
    stores: int

class PlanView(BaseModel):
    type: str
    name: str
    price: int
    formatted_price: str
    currency: str
    limits: PlanLimitsView
    trial_days: Optional[int] = None

class PlanCatalog(BaseModel):
    currency: str
    plans: List[PlanView]
