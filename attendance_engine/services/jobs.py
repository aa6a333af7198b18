"""
Scheduled jobs: end-of-day auto checkout and the periodic provider sync.

Jobs run on an ``AsyncIOScheduler`` started by the app lifespan. Each run
opens its own session and is recorded in the operation log with
``trigger='scheduled'``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from attendance_engine.core.config import settings
from attendance_engine.core.exceptions import ProviderError
from attendance_engine.db.session import async_session_factory
from attendance_engine.models.operation_log import TRIGGER_SCHEDULED
from attendance_engine.services.operations import BatchResult
from attendance_engine.services.policy import load_policy, local_today, parse_hhmm
from attendance_engine.services.provider import ProviderClient, sync_from_provider
from attendance_engine.services.scope import DateScope
from attendance_engine.services.sweeper import run_auto_checkout

logger = logging.getLogger(__name__)

JOB_AUTO_CHECKOUT = "auto_checkout"
JOB_PROVIDER_SYNC = "provider_sync"


async def scheduled_auto_checkout(
    session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
) -> BatchResult:
    """Close today's open entries at the default checkout time."""
    async with session_factory() as db:
        policy = await load_policy(db)
        return await run_auto_checkout(
            db, DateScope.build(local_today()), policy, trigger=TRIGGER_SCHEDULED
        )


async def scheduled_provider_sync(
    session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
    client_factory: Callable[[], ProviderClient] = ProviderClient,
) -> BatchResult | None:
    """Pull yesterday and today from the provider and ingest them.

    Returns None when the provider call fails; the failure is already in the
    operation log and the next run covers the same days again.
    """
    today = local_today()
    scope = DateScope.build(today - timedelta(days=1), today)
    async with session_factory() as db:
        policy = await load_policy(db)
        async with client_factory() as client:
            try:
                return await sync_from_provider(
                    db, client, scope, policy, trigger=TRIGGER_SCHEDULED
                )
            except ProviderError as e:
                logger.error("Scheduled provider sync failed: %s", e.message)
                return None


def build_scheduler() -> AsyncIOScheduler:
    """Scheduler with the configured jobs registered; not started."""
    scheduler = AsyncIOScheduler(
        timezone=settings.TIMEZONE,
        job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 3600},
    )
    run_at = parse_hhmm(settings.AUTO_CHECKOUT_RUN_AT)
    scheduler.add_job(
        scheduled_auto_checkout,
        "cron",
        hour=run_at.hour,
        minute=run_at.minute,
        id=JOB_AUTO_CHECKOUT,
    )
    if settings.PROVIDER_SYNC_ENABLED:
        scheduler.add_job(
            scheduled_provider_sync,
            "interval",
            minutes=settings.PROVIDER_SYNC_INTERVAL_MINUTES,
            id=JOB_PROVIDER_SYNC,
        )
    else:
        logger.info("Provider sync job disabled (set PROVIDER_SYNC_ENABLED=true to enable)")
    return scheduler
