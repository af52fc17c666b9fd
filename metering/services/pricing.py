"""
Pricing - currency detection and per-currency plan prices
"""
import enum
from typing import Any, Dict, List, Optional, Union

from ..core.config import settings
from ..models.subscription import PlanType
from .plans import PLAN_LIMITS

CUSTOM_PRICE = -1


class Currency(str, enum.Enum):
    INR = "INR"
    USD = "USD"


PLAN_PRICING: Dict[PlanType, Dict[Currency, int]] = {
    PlanType.TRIAL: {Currency.USD: 0, Currency.INR: 0},
    PlanType.STARTER: {Currency.USD: 29, Currency.INR: 999},
    PlanType.GROWTH: {Currency.USD: 99, Currency.INR: 2999},
    PlanType.PRO: {Currency.USD: 299, Currency.INR: 9999},
    PlanType.ENTERPRISE: {Currency.USD: CUSTOM_PRICE, Currency.INR: CUSTOM_PRICE},
}

_INDIAN_COUNTRIES = {"IN", "India"}


def detect_currency(country: Optional[str] = None, preferred: Optional[str] = None) -> Currency:
    """Pick the billing currency for a visitor.

    An explicit preference always wins; otherwise Indian visitors are billed in
    INR and everyone else in the configured default currency.
    """
    if preferred in (Currency.INR.value, Currency.USD.value):
        return Currency(preferred)

    if country and country in _INDIAN_COUNTRIES:
        return Currency.INR

    return Currency(settings.DEFAULT_CURRENCY)


def get_plan_price(plan_type: Union[PlanType, str], currency: Union[Currency, str]) -> int:
    try:
        pricing = PLAN_PRICING[PlanType(plan_type)]
    except ValueError:
        return 0
    return pricing[Currency(currency)]


def get_currency_symbol(currency: Union[Currency, str]) -> str:
    return "₹" if Currency(currency) == Currency.INR else "$"


def _group_indian(value: int) -> str:
    digits = str(value)
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_price(price: int, currency: Union[Currency, str]) -> str:
    if price < 0:
        return "Custom"
    currency = Currency(currency)
    if currency == Currency.INR:
        return f"{get_currency_symbol(currency)}{_group_indian(price)}"
    return f"{get_currency_symbol(currency)}{price:,}"


def list_plans(currency: Union[Currency, str]) -> List[Dict[str, Any]]:
    """Plan catalog with prices in the requested currency, cheapest tier first."""
    currency = Currency(currency)
    plans = []
    for plan_type, limits in PLAN_LIMITS.items():
        price = get_plan_price(plan_type, currency)
        plans.append({
            "type": plan_type.value,
            "name": limits.name,
            "price": price,
            "formatted_price": format_price(price, currency),
            "currency": currency.value,
            "limits": {
                "emails_per_month": limits.emails_per_month,
                "ai_replies": limits.ai_replies_limit,
                "emails_received": limits.emails_received_limit,
                "stores": limits.stores,
            },
            "trial_days": limits.trial_days,
        })
    return plans
