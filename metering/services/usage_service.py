"""
Usage Service - subscription lifecycle, billing periods and usage metering
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional, Tuple, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import utcnow
from ..core.exceptions import SubscriptionNotFoundError, TrialExpiredError, UsageRecordNotFoundError
from ..models.subscription import PlanType, Subscription, SubscriptionStatus, UsageRecord
from ..schemas.usage import LimitCheckResult, TrialInfo, UsageHistoryEntry, UsageSummary
from .plans import PLAN_LIMITS, UNLIMITED, PlanLimits, add_months, get_plan_limits, is_unlimited
from .pricing import detect_currency, get_plan_price

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 6
SECONDS_PER_DAY = 24 * 60 * 60

T = TypeVar("T")


def round_percentage(current: int, limit: int) -> float:
    """Share of ``limit`` used, in percent, rounded half-up to two decimals."""
    return math.floor(current * 10000 / limit + 0.5) / 100


def trial_state(plan_type: PlanType, period_end: datetime, now: datetime) -> TrialInfo:
    is_trial = plan_type == PlanType.TRIAL
    expired = is_trial and now > period_end
    days_remaining = 0
    if is_trial and not expired:
        days_remaining = max(0, math.ceil((period_end - now).total_seconds() / SECONDS_PER_DAY))
    return TrialInfo(
        is_trial=is_trial,
        expired=expired,
        ends_at=period_end if is_trial else None,
        days_remaining=days_remaining if is_trial else None,
    )


def meter(current: int, limit: int, trial: TrialInfo) -> Tuple[bool, float, int]:
    """Return (allowed, percentage, remaining) for one counter against its cap."""
    if is_unlimited(limit):
        return True, 0.0, UNLIMITED
    trial_over = trial.is_trial and trial.expired
    allowed = current < limit and not trial_over
    remaining = 0 if trial_over else max(0, limit - current)
    return allowed, round_percentage(current, limit), remaining


@dataclass(frozen=True)
class UsagePeriod:
    """The usage record in effect for a subscription, plus the subscription
    state it was resolved against."""

    subscription_id: int
    plan_type: PlanType
    status: str
    record: UsageRecord
    trial: TrialInfo

    @property
    def limits(self) -> PlanLimits:
        return get_plan_limits(self.plan_type)


class UsageService:
    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self._clock = clock

    def _now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Subscription lifecycle
    # ------------------------------------------------------------------

    async def ensure_subscription(self, user_id: int) -> Subscription:
        """Get the user's subscription, starting a trial on first access"""
        now = self._now()
        existing = await self._get_subscription_for_user(user_id)

        if existing is not None:
            if (
                existing.plan_type == PlanType.TRIAL.value
                and existing.status == SubscriptionStatus.ACTIVE.value
                and now > existing.current_period_end
            ):
                existing.status = SubscriptionStatus.EXPIRED.value
                await self.db.commit()
                logger.info(f"Trial expired for user {user_id} (subscription {existing.id})")
            return existing

        trial_days = PLAN_LIMITS[PlanType.TRIAL].trial_days
        subscription = Subscription(
            user_id=user_id,
            plan_type=PlanType.TRIAL.value,
            status=SubscriptionStatus.ACTIVE.value,
            current_period_start=now,
            current_period_end=now + timedelta(days=trial_days),
        )
        return await self._insert_or_refetch(
            subscription, lambda: self._get_subscription_for_user(user_id)
        )

    async def expire_trials(self) -> int:
        """Mark every active trial whose period has ended as expired"""
        now = self._now()
        result = await self.db.execute(
            update(Subscription)
            .where(
                Subscription.plan_type == PlanType.TRIAL.value,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.current_period_end < now,
            )
            .values(status=SubscriptionStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Billing periods
    # ------------------------------------------------------------------

    async def get_current_usage_record(self, subscription_id: int) -> UsageRecord:
        """Get the usage record for the billing period the subscription is in now"""
        period = await self._resolve_period(subscription_id)
        return period.record

    async def _resolve_period(self, subscription_id: int) -> UsagePeriod:
        subscription = await self._get_subscription(subscription_id)
        if subscription is None:
            raise SubscriptionNotFoundError(subscription_id)

        now = self._now()
        plan_type = PlanType(subscription.plan_type)
        status = subscription.status
        period_start = subscription.current_period_start
        period_end = subscription.current_period_end
        trial = trial_state(plan_type, period_end, now)

        if period_start <= now <= period_end:
            record = await self._find_or_create_record(subscription_id, period_start, period_end)
        elif plan_type == PlanType.TRIAL:
            # Trials never roll over: keep reading the last record they had
            if status == SubscriptionStatus.ACTIVE.value and await self._mark_trial_expired(subscription_id):
                status = SubscriptionStatus.EXPIRED.value
            record = await self._get_latest_record(subscription_id)
            if record is None:
                raise UsageRecordNotFoundError(subscription_id)
        else:
            # The subscription's own bounds are left as they are; only the
            # usage record moves into the next monthly period.
            next_start = period_end
            next_end = add_months(next_start, 1)
            record = await self._find_or_create_record(subscription_id, next_start, next_end)

        return UsagePeriod(
            subscription_id=subscription_id,
            plan_type=plan_type,
            status=status,
            record=record,
            trial=trial,
        )

    async def _mark_trial_expired(self, subscription_id: int) -> bool:
        # Savepoint: a failure undoes only this update, never the caller's session state
        try:
            async with self.db.begin_nested():
                await self.db.execute(
                    update(Subscription)
                    .where(
                        Subscription.id == subscription_id,
                        Subscription.status == SubscriptionStatus.ACTIVE.value,
                    )
                    .values(status=SubscriptionStatus.EXPIRED.value)
                    .execution_options(synchronize_session=False)
                )
        except SQLAlchemyError as e:
            logger.warning(f"Failed to mark trial subscription {subscription_id} as expired: {e}")
            return False
        await self.db.commit()
        return True

    async def _find_or_create_record(
        self, subscription_id: int, period_start: datetime, period_end: datetime
    ) -> UsageRecord:
        record = await self._find_record(subscription_id, period_start)
        if record is not None:
            return record

        record = UsageRecord(
            subscription_id=subscription_id,
            period_start=period_start,
            period_end=period_end,
            emails_sent=0,
            emails_received=0,
            ai_suggestions=0,
        )
        return await self._insert_or_refetch(
            record, lambda: self._find_record(subscription_id, period_start)
        )

    async def _insert_or_refetch(self, instance: T, refetch: Callable[[], Awaitable[Optional[T]]]) -> T:
        """Insert a row guarded by a unique constraint.

        A unique violation means a concurrent request created the same row
        first; that row is returned instead.
        """
        self.db.add(instance)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            existing = await refetch()
            if existing is None:
                raise
            logger.info(f"Concurrent create of {type(instance).__name__} detected, using existing row")
            return existing
        return instance

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    async def increment_email_sent(self, user_id: int) -> UsageRecord:
        """Increment email sent count"""
        return await self._increment(user_id, "emails_sent", trial_guard="send")

    async def increment_email_received(self, user_id: int) -> UsageRecord:
        """Increment email received count"""
        return await self._increment(user_id, "emails_received", trial_guard="receive")

    async def increment_ai_suggestion(self, user_id: int) -> UsageRecord:
        """Increment AI suggestion count"""
        # No expired-trial guard here, unlike the email counters
        return await self._increment(user_id, "ai_suggestions")

    async def _increment(self, user_id: int, counter: str, trial_guard: Optional[str] = None) -> UsageRecord:
        subscription = await self.ensure_subscription(user_id)
        if (
            trial_guard
            and subscription.plan_type == PlanType.TRIAL.value
            and subscription.status == SubscriptionStatus.EXPIRED.value
        ):
            raise TrialExpiredError(trial_guard)

        period = await self._resolve_period(subscription.id)
        record_id = period.record.id

        # Single UPDATE ... SET col = col + 1 so concurrent requests never lose a count
        column = getattr(UsageRecord, counter)
        await self.db.execute(
            update(UsageRecord)
            .where(UsageRecord.id == record_id)
            .values(**{counter: column + 1})
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return await self._get_record(record_id)

    # ------------------------------------------------------------------
    # Limit checks
    # ------------------------------------------------------------------

    async def can_send_email(self, user_id: int) -> LimitCheckResult:
        """Check if user can send email based on plan limits"""
        return await self._check_limit(user_id, "emails_per_month", "emails_sent")

    async def can_receive_email(self, user_id: int) -> LimitCheckResult:
        """Check if user can receive another inbound email"""
        return await self._check_limit(user_id, "emails_received_limit", "emails_received")

    async def can_use_ai(self, user_id: int) -> LimitCheckResult:
        """Check if user can generate another AI reply suggestion"""
        return await self._check_limit(user_id, "ai_replies_limit", "ai_suggestions")

    async def _check_limit(self, user_id: int, limit_field: str, counter_field: str) -> LimitCheckResult:
        subscription = await self.ensure_subscription(user_id)
        period = await self._resolve_period(subscription.id)

        limit = getattr(period.limits, limit_field)
        current = getattr(period.record, counter_field)
        allowed, percentage, remaining = meter(current, limit, period.trial)

        return LimitCheckResult(
            allowed=allowed,
            current=current,
            limit=limit,
            percentage=percentage,
            remaining=remaining,
            plan_type=period.plan_type.value,
            trial=period.trial,
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def get_usage_summary(self, user_id: int, currency: Optional[str] = None) -> UsageSummary:
        """Get usage summary for a user"""
        subscription = await self.ensure_subscription(user_id)
        period = await self._resolve_period(subscription.id)
        limits = period.limits
        record = period.record

        can_send, email_percentage, emails_remaining = meter(
            record.emails_sent, limits.emails_per_month, period.trial
        )
        can_use_ai, ai_percentage, ai_remaining = meter(
            record.ai_suggestions, limits.ai_replies_limit, period.trial
        )
        billing_currency = detect_currency(preferred=currency)

        return UsageSummary(
            plan_type=period.plan_type.value,
            plan_name=limits.name,
            status=period.status,
            emails_sent=record.emails_sent,
            email_limit=limits.emails_per_month,
            email_usage_percentage=email_percentage,
            emails_remaining=emails_remaining,
            can_send_email=can_send,
            ai_suggestions=record.ai_suggestions,
            ai_limit=limits.ai_replies_limit,
            ai_usage_percentage=ai_percentage,
            ai_remaining=ai_remaining,
            can_use_ai=can_use_ai,
            emails_received=record.emails_received,
            emails_received_limit=limits.emails_received_limit,
            stores_limit=limits.stores,
            period_start=record.period_start,
            period_end=record.period_end,
            trial=period.trial,
            currency=billing_currency.value,
            price=get_plan_price(period.plan_type, billing_currency),
        )

    async def get_usage_history(self, user_id: int) -> List[UsageHistoryEntry]:
        """Get usage history (last 6 billing periods)"""
        subscription = await self.ensure_subscription(user_id)

        result = await self.db.execute(
            select(UsageRecord)
            .where(UsageRecord.subscription_id == subscription.id)
            .order_by(UsageRecord.period_start.desc())
            .limit(HISTORY_LIMIT)
            .execution_options(populate_existing=True)
        )

        return [
            UsageHistoryEntry(
                period_start=r.period_start,
                period_end=r.period_end,
                emails_sent=r.emails_sent,
                emails_received=r.emails_received,
                ai_suggestions=r.ai_suggestions,
            )
            for r in result.scalars().all()
        ]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def _get_subscription(self, subscription_id: int) -> Optional[Subscription]:
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.id == subscription_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_subscription_for_user(self, user_id: int) -> Optional[Subscription]:
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_record(self, record_id: int) -> UsageRecord:
        result = await self.db.execute(
            select(UsageRecord)
            .where(UsageRecord.id == record_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def _find_record(self, subscription_id: int, period_start: datetime) -> Optional[UsageRecord]:
        result = await self.db.execute(
            select(UsageRecord)
            .where(
                UsageRecord.subscription_id == subscription_id,
                UsageRecord.period_start == period_start,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_latest_record(self, subscription_id: int) -> Optional[UsageRecord]:
        result = await self.db.execute(
            select(UsageRecord)
            .where(UsageRecord.subscription_id == subscription_id)
            .order_by(UsageRecord.period_start.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
