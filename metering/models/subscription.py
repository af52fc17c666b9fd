# metering/models/subscription.py
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..core.database import Base, UTCDateTime
import enum

class PlanType(str, enum.Enum):
    TRIAL = "TRIAL"
    STARTER = "STARTER"
    GROWTH = "GROWTH"
    PRO = "PRO"
    ENTERPRISE = "ENTERPRISE"

class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELED = "canceled"
    PAST_DUE = "past_due"

class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, unique=True)

    # Subscription Details
    plan_type = Column(String, nullable=False, default=PlanType.TRIAL.value)
    status = Column(String, nullable=False, default=SubscriptionStatus.ACTIVE.value)  # active, expired, canceled, past_due

    # Billing Period
    current_period_start = Column(UTCDateTime, nullable=False)
    current_period_end = Column(UTCDateTime, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    usage_records = relationship("UsageRecord", back_populates="subscription", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("current_period_end > current_period_start", name="ck_subscriptions_period_order"),
    )

    def __repr__(self):
        return f"<Subscription user={self.user_id} plan={self.plan_type} status={self.status}>"

class UsageRecord(Base):
    __tablename__ = "usage_records"

    id = Column(Integer, primary_key=True, index=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id"), nullable=False)

    # Tracking period
    period_start = Column(UTCDateTime, nullable=False)
    period_end = Column(UTCDateTime, nullable=False)

    # Usage counts
    emails_sent = Column(Integer, nullable=False, default=0)
    emails_received = Column(Integer, nullable=False, default=0)
    ai_suggestions = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    subscription = relationship("Subscription", back_populates="usage_records")

    __table_args__ = (
        UniqueConstraint("subscription_id", "period_start", name="uq_usage_records_subscription_period"),
        CheckConstraint("emails_sent >= 0", name="ck_usage_records_emails_sent"),
        CheckConstraint("emails_received >= 0", name="ck_usage_records_emails_received"),
        CheckConstraint("ai_suggestions >= 0", name="ck_usage_records_ai_suggestions"),
        Index("idx_usage_records_subscription_period", "subscription_id", "period_start"),
    )

    def __repr__(self):
        return f"<UsageRecord subscription={self.subscription_id} period={self.period_start}>"
