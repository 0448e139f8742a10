"""Background workers using APScheduler.

Runs periodic billing maintenance:
- Billing period rollover and reset for plans past their period end (hourly)
- Expiry of hour packs and rollover records (daily)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import select

logger = logging.getLogger(__name__)

_scheduler: AsyncIOScheduler | None = None


def start_scheduler() -> None:
    """Start the background task scheduler."""
    global _scheduler
    if _scheduler is not None:
        return

    _scheduler = AsyncIOScheduler()

    _scheduler.add_job(
        run_billing_period_rollover,
        "interval",
        hours=1,
        id="billing_period_rollover",
        replace_existing=True,
    )

    # Expiry sweep: daily at 5 AM UTC
    _scheduler.add_job(
        run_expiry_sweep,
        "cron",
        hour=5,
        minute=0,
        id="hour_expiry_daily",
        replace_existing=True,
    )

    _scheduler.start()
    logger.info("Background scheduler started")


def stop_scheduler() -> None:
    """Stop the background task scheduler."""
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Background scheduler stopped")


async def run_billing_period_rollover(now: datetime | None = None) -> int:
    """Close out every active plan whose billing period has ended.

    Returns the number of plans that were rolled into a new period.
    """
    from clientdesk.billing.tracker import process_monthly_rollover, reset_billing_period
    from clientdesk.db.session import async_session_factory
    from clientdesk.models.db import MaintenancePlan

    now = now or datetime.now(timezone.utc)
    logger.info("Starting scheduled billing period rollover")

    processed = 0
    async with async_session_factory() as session:
        result = await session.execute(
            select(MaintenancePlan.id).where(
                MaintenancePlan.status == "ACTIVE",
                MaintenancePlan.stripe_subscription_id.is_not(None),
                MaintenancePlan.current_period_end.is_not(None),
                MaintenancePlan.current_period_end < now,
            )
            .order_by(MaintenancePlan.current_period_end)
        )
        plan_ids = result.scalars().all()

        # Rollback expires the identity map; load plans one at a time.
        for plan_id in plan_ids:
            try:
                plan = await session.get(MaintenancePlan, plan_id)
                await process_monthly_rollover(session, plan, now)
                reset_billing_period(plan, now)
                await session.commit()
                processed += 1
            except Exception:
                logger.exception("Billing period rollover failed for plan %s", plan_id)
                await session.rollback()

    logger.info("Billing period rollover finished: %d plan(s)", processed)
    return processed


async def run_expiry_sweep(now: datetime | None = None) -> tuple[int, int]:
    """Deactivate expired hour packs and rollover records."""
    from clientdesk.billing.tracker import expire_hour_packs, expire_rollover_records
    from clientdesk.db.session import async_session_factory

    async with async_session_factory() as session:
        try:
            packs = await expire_hour_packs(session, now)
            rollovers = await expire_rollover_records(session, now)
            await session.commit()
        except Exception:
            logger.exception("Expiry sweep failed")
            await session.rollback()
            return 0, 0

    logger.info("Expired %d hour pack(s) and %d rollover record(s)", packs, rollovers)
    return packs, rollovers
