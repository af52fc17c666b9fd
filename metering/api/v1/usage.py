from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional
from ..dependencies import get_current_user, get_usage_service
from ...core.exceptions import MeteringError, SubscriptionNotFoundError, TrialExpiredError, UsageRecordNotFoundError
from ...models.user import User
from ...schemas.usage import LimitCheckResult, PlanCatalog, UsageHistoryEntry, UsageSummary
from ...services.pricing import Currency, detect_currency, list_plans
from ...services.usage_service import UsageService
import enum
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/usage", tags=["usage"])

class UsageKind(str, enum.Enum):
    SEND = "send"
    RECEIVE = "receive"
    AI = "ai"

def _raise_for_metering_error(error: MeteringError, user_id: int):
    if isinstance(error, TrialExpiredError):
        raise HTTPException(
            status_code=402,
            detail=f"{error.message} Please upgrade your plan to continue."
        )
    if isinstance(error, (SubscriptionNotFoundError, UsageRecordNotFoundError)):
        logger.error(f"Usage data missing for user {user_id}: {error}")
        raise HTTPException(status_code=404, detail=str(error))
    raise HTTPException(status_code=500, detail="Usage metering failed")

@router.get("/summary", response_model=UsageSummary)
async def get_usage_summary(
    currency: Optional[Currency] = Query(None, description="Billing currency for the plan price"),
    current_user: User = Depends(get_current_user),
    usage_service: UsageService = Depends(get_usage_service)
):
    """Get current period usage against plan limits"""
    user_id = current_user.id
    try:
        return await usage_service.get_usage_summary(user_id, currency=currency.value if currency else None)
    except MeteringError as e:
        _raise_for_metering_error(e, user_id)

@router.get("/history", response_model=List[UsageHistoryEntry])
async def get_usage_history(
    current_user: User = Depends(get_current_user),
    usage_service: UsageService = Depends(get_usage_service)
):
    """Get usage for the most recent billing periods"""
    return await usage_service.get_usage_history(current_user.id)

@router.get("/limits/{kind}", response_model=LimitCheckResult)
async def check_limit(
    kind: UsageKind,
    current_user: User = Depends(get_current_user),
    usage_service: UsageService = Depends(get_usage_service)
):
    """Check whether one more send/receive/AI action is allowed"""
    user_id = current_user.id
    checks = {
        UsageKind.SEND: usage_service.can_send_email,
        UsageKind.RECEIVE: usage_service.can_receive_email,
        UsageKind.AI: usage_service.can_use_ai,
    }
    try:
        return await checks[kind](user_id)
    except MeteringError as e:
        _raise_for_metering_error(e, user_id)

@router.post("/events/{kind}")
async def record_usage(
    kind: UsageKind,
    current_user: User = Depends(get_current_user),
    usage_service: UsageService = Depends(get_usage_service)
):
    """Record one sent email, received email or AI suggestion"""
    user_id = current_user.id
    increments = {
        UsageKind.SEND: usage_service.increment_email_sent,
        UsageKind.RECEIVE: usage_service.increment_email_received,
        UsageKind.AI: usage_service.increment_ai_suggestion,
    }
    try:
        record = await increments[kind](user_id)
    except MeteringError as e:
        _raise_for_metering_error(e, user_id)

    return {
        "success": True,
        "period_start": record.period_start,
        "period_end": record.period_end,
        "emails_sent": record.emails_sent,
        "emails_received": record.emails_received,
        "ai_suggestions": record.ai_suggestions
    }

@router.get("/plans", response_model=PlanCatalog)
async def get_plans(
    currency: Optional[Currency] = Query(None, description="Billing currency for plan prices"),
    country: Optional[str] = Query(None, description="ISO country code used when no currency is given")
):
    """Get available plans with prices"""
    billing_currency = detect_currency(country=country, preferred=currency.value if currency else None)
    return {
        "currency": billing_currency.value,
        "plans": list_plans(billing_currency)
    }
