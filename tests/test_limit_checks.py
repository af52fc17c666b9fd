"""
Limit check tests for sending, receiving and AI suggestions.
"""
import pytest

from conftest import create_subscription, set_counters
from metering.models import PlanType
from metering.services.plans import PLAN_LIMITS, UNLIMITED
from metering.services.usage_service import round_percentage


async def current_record_id(service, user_id):
    subscription = await service.ensure_subscription(user_id)
    return (await service.get_current_usage_record(subscription.id)).id


class TestRoundPercentage:

    def test_rounds_half_up_to_two_decimals(self):
        assert round_percentage(1, 800) == 0.13
        assert round_percentage(1, 3) == 33.33
        assert round_percentage(2, 3) == 66.67

    def test_full_and_over(self):
        assert round_percentage(500, 500) == 100.0
        assert round_percentage(750, 500) == 150.0


@pytest.mark.asyncio
class TestCanSendEmail:
    """Send gate against emails_per_month."""

    async def test_fresh_trial_is_allowed(self, service, user):
        check = await service.can_send_email(user.id)

        limit = PLAN_LIMITS[PlanType.TRIAL].emails_per_month
        assert check.allowed is True
        assert check.current == 0
        assert check.limit == limit
        assert check.remaining == limit
        assert check.percentage == 0.0
        assert check.plan_type == PlanType.TRIAL.value

    async def test_blocked_at_limit(self, service, db, user):
        await create_subscription(db, user.id, PlanType.STARTER)
        record_id = await current_record_id(service, user.id)
        await set_counters(db, record_id, emails_sent=PLAN_LIMITS[PlanType.STARTER].emails_per_month)

        check = await service.can_send_email(user.id)

        assert check.allowed is False
        assert check.percentage == 100.0
        assert check.remaining == 0

    async def test_trial_blocked_at_limit(self, service, db, user):
        record_id = await current_record_id(service, user.id)
        await set_counters(db, record_id, emails_sent=PLAN_LIMITS[PlanType.TRIAL].emails_per_month)

        check = await service.can_send_email(user.id)

        assert check.allowed is False
        assert check.remaining == 0

    async def test_allowed_one_below_limit(self, service, db, user):
        await create_subscription(db, user.id, PlanType.STARTER)
        record_id = await current_record_id(service, user.id)
        limit = PLAN_LIMITS[PlanType.STARTER].emails_per_month
        await set_counters(db, record_id, emails_sent=limit - 1)

        check = await service.can_send_email(user.id)

        assert check.allowed is True
        assert check.remaining == 1

    async def test_enterprise_is_unlimited(self, service, db, user):
        await create_subscription(db, user.id, PlanType.ENTERPRISE)
        record_id = await current_record_id(service, user.id)
        await set_counters(db, record_id, emails_sent=5_000_000)

        check = await service.can_send_email(user.id)

        assert check.allowed is True
        assert check.limit == UNLIMITED
        assert check.remaining == UNLIMITED
        assert check.percentage == 0.0
        assert check.current == 5_000_000


@pytest.mark.asyncio
class TestOtherGates:
    """Receive and AI gates read their own counters and caps."""

    async def test_receive_uses_received_limit(self, service, db, user):
        await create_subscription(db, user.id, PlanType.GROWTH)
        record_id = await current_record_id(service, user.id)
        limit = PLAN_LIMITS[PlanType.GROWTH].emails_received_limit
        await set_counters(db, record_id, emails_received=limit, emails_sent=0)

        assert (await service.can_receive_email(user.id)).allowed is False
        assert (await service.can_send_email(user.id)).allowed is True

    async def test_ai_uses_ai_limit(self, service, db, user):
        await create_subscription(db, user.id, PlanType.PRO)
        record_id = await current_record_id(service, user.id)
        await set_counters(db, record_id, ai_suggestions=2500)

        check = await service.can_use_ai(user.id)

        assert check.limit == PLAN_LIMITS[PlanType.PRO].ai_replies_limit
        assert check.current == 2500
        assert check.percentage == 25.0
        assert check.allowed is True


@pytest.mark.asyncio
class TestTrialInfo:
    """Trial metadata attached to every check."""

    async def test_days_remaining_on_fresh_trial(self, service, user):
        check = await service.can_send_email(user.id)

        assert check.trial.is_trial is True
        assert check.trial.expired is False
        assert check.trial.days_remaining == 7

    async def test_days_remaining_rounds_up(self, service, clock, user):
        await service.ensure_subscription(user.id)
        clock.advance(days=2, hours=12)

        check = await service.can_send_email(user.id)

        assert check.trial.days_remaining == 5

    async def test_expired_trial_is_blocked(self, service, clock, user):
        await service.increment_email_sent(user.id)
        clock.advance(days=8)

        for gate in (service.can_send_email, service.can_receive_email, service.can_use_ai):
            check = await gate(user.id)
            assert check.allowed is False
            assert check.remaining == 0
            assert check.trial.expired is True
            assert check.trial.days_remaining == 0

    async def test_expired_trial_still_reports_usage(self, service, clock, user):
        await service.increment_email_sent(user.id)
        clock.advance(days=8)

        check = await service.can_send_email(user.id)

        assert check.current == 1
        assert check.percentage == round_percentage(1, PLAN_LIMITS[PlanType.TRIAL].emails_per_month)

    async def test_paid_plan_has_no_trial_details(self, service, db, user):
        await create_subscription(db, user.id, PlanType.STARTER)

        check = await service.can_send_email(user.id)

        assert check.trial.is_trial is False
        assert check.trial.ends_at is None
        assert check.trial.days_remaining is None
