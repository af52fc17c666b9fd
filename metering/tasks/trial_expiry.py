"""
Trial Expiry Tasks - periodic sweep that closes out finished trials
"""
from celery import Celery
import asyncio
import logging

from metering.core.config import settings
from sqlalchemy.pool import NullPool

from metering.core.database import build_engine, build_sessionmaker
from metering.services.usage_service import UsageService

logger = logging.getLogger(__name__)

# Initialize Celery
celery_app = Celery(
    'metering_tasks',
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_routes={
        'metering.tasks.trial_expiry.*': {'queue': 'billing'},
    },
    beat_schedule={
        'expire-trials': {
            'task': 'metering.tasks.trial_expiry.expire_trials',
            'schedule': float(settings.TRIAL_SWEEP_INTERVAL_SECONDS),
        },
    },
)

async def sweep_expired_trials(session_factory=None) -> int:
    # Every task run gets its own event loop, so pooled connections can't be reused
    engine = None
    if session_factory is None:
        engine = build_engine(settings.DATABASE_URL, poolclass=NullPool)
        session_factory = build_sessionmaker(engine)
    try:
        async with session_factory() as db:
            return await UsageService(db).expire_trials()
    finally:
        if engine is not None:
            await engine.dispose()

@celery_app.task(bind=True, max_retries=3)
def expire_trials(self):
    """
    Mark every active trial subscription past its period end as expired
    """
    try:
        expired = asyncio.run(sweep_expired_trials())
        logger.info(f"Trial sweep expired {expired} subscription(s)")
        return {'expired': expired, 'status': 'completed'}

    except Exception as exc:
        logger.warning(f"Trial sweep failed, retrying: {exc}")
        # Retry with exponential backoff
        raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))
