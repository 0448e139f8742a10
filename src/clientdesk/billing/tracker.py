"""Database-backed hours tracking for maintenance plans.

Loads plan state, applies the pure rules in :mod:`clientdesk.billing.hours`
and writes the resulting mutations back through the caller's session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clientdesk.billing.hours import (
    PENDING_CHANGE_REQUEST_STATUSES,
    PENDING_REQUEST_STATUSES,
    HoursBalance,
    add_months,
    compute_hours_balance,
    pending_request_hours,
    plan_deduction,
    rollover_amount,
)
from clientdesk.billing.tiers import TIERS, TierConfig, get_tier
from clientdesk.models.db import (
    ChangeRequest,
    HourPack,
    MaintenanceLog,
    MaintenancePlan,
    ProjectRequest,
    RolloverRecord,
)

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_tier(plan: MaintenancePlan) -> TierConfig:
    """The plan's tier config; unknown or legacy tiers are billed as ESSENTIALS."""
    tier = get_tier(plan.tier)
    if tier is None:
        logger.warning("Plan %s has unknown tier %r, treating it as ESSENTIALS", plan.id, plan.tier)
        return TIERS["ESSENTIALS"]
    return tier


# ── Loading ───────────────────────────────────────────────────────────────────


async def load_active_packs(
    session: AsyncSession, plan_id, now: datetime | None = None
) -> list[HourPack]:
    now = now or _now()
    result = await session.execute(
        select(HourPack)
        .where(
            HourPack.plan_id == plan_id,
            HourPack.is_active.is_(True),
            or_(
                HourPack.never_expires.is_(True),
                HourPack.expires_at.is_(None),
                HourPack.expires_at > now,
            ),
        )
        .order_by(HourPack.expires_at.asc())
    )
    return list(result.scalars().all())


async def load_live_rollovers(
    session: AsyncSession, plan_id, now: datetime | None = None
) -> list[RolloverRecord]:
    now = now or _now()
    result = await session.execute(
        select(RolloverRecord)
        .where(
            RolloverRecord.plan_id == plan_id,
            RolloverRecord.is_expired.is_(False),
            RolloverRecord.used_at.is_(None),
            RolloverRecord.expires_at > now,
        )
        .order_by(RolloverRecord.expires_at.asc())
    )
    return list(result.scalars().all())


async def billable_hours_in_period(
    session: AsyncSession, plan: MaintenancePlan, now: datetime | None = None
) -> float:
    """Sum billable log hours inside the plan's current billing period."""
    now = now or _now()
    start = plan.current_period_start or plan.created_at
    end = plan.current_period_end or now
    result = await session.execute(
        select(func.coalesce(func.sum(MaintenanceLog.hours_spent), 0.0)).where(
            MaintenanceLog.plan_id == plan.id,
            MaintenanceLog.billable.is_(True),
            MaintenanceLog.performed_at >= start,
            MaintenanceLog.performed_at <= end,
        )
    )
    return float(result.scalar_one() or 0.0)


async def pending_hours_for(
    session: AsyncSession, plan: MaintenancePlan, user_id=None
) -> float:
    project_requests: list[ProjectRequest] = []
    if user_id is not None:
        result = await session.execute(
            select(ProjectRequest).where(
                ProjectRequest.user_id == user_id,
                ProjectRequest.status.in_(PENDING_REQUEST_STATUSES),
            )
        )
        project_requests = list(result.scalars().all())

    result = await session.execute(
        select(ChangeRequest).where(
            ChangeRequest.project_id == plan.project_id,
            ChangeRequest.status.in_(PENDING_CHANGE_REQUEST_STATUSES),
        )
    )
    change_requests = list(result.scalars().all())
    return pending_request_hours(project_requests, change_requests)


async def get_hours_balance(
    session: AsyncSession,
    plan: MaintenancePlan,
    user_id=None,
    now: datetime | None = None,
) -> HoursBalance:
    """Compute a plan's balance, degrading gracefully on query failures.

    The best-effort queries run in savepoints so that a failure does not
    abort the surrounding transaction.
    """
    now = now or _now()
    tier = resolve_tier(plan)

    if tier.is_unlimited:
        monthly_used = plan.support_hours_used or 0.0
    else:
        try:
            async with session.begin_nested():
                monthly_used = await billable_hours_in_period(session, plan, now)
        except Exception as exc:
            logger.warning(
                "[Hours] Failed to sum maintenance logs for plan %s, using stored usage: %s",
                plan.id,
                exc,
            )
            monthly_used = plan.support_hours_used or 0.0

    packs = await load_active_packs(session, plan.id, now)
    rollovers = await load_live_rollovers(session, plan.id, now)

    try:
        async with session.begin_nested():
            pending = await pending_hours_for(session, plan, user_id)
    except Exception as exc:
        logger.warning("[Hours] Failed to estimate pending hours for plan %s: %s", plan.id, exc)
        pending = 0.0

    return compute_hours_balance(
        plan, tier, monthly_used, packs, rollovers, now, pending_hours=pending
    )


# ── Deduction ─────────────────────────────────────────────────────────────────


@dataclass
class DeductionResult:
    success: bool
    hours_deducted: float = 0.0
    from_rollover: float = 0.0
    from_monthly: float = 0.0
    from_packs: float = 0.0
    overage_hours: float = 0.0
    used_grace_period: bool = False
    error: str | None = None
    log_ids: list[str] = field(default_factory=list)


async def deduct_hours(
    session: AsyncSession,
    plan: MaintenancePlan,
    hours: float,
    description: str,
    performed_by: str | None = None,
    now: datetime | None = None,
) -> DeductionResult:
    """Spend *hours* against a plan and write a maintenance log entry."""
    if hours <= 0:
        return DeductionResult(success=False, error="Hours must be greater than zero")

    now = now or _now()
    tier = resolve_tier(plan)

    if tier.is_unlimited:
        plan.support_hours_used = (plan.support_hours_used or 0.0) + hours
        log = MaintenanceLog(
            plan_id=plan.id,
            hours_spent=hours,
            description=description,
            performed_by=performed_by,
            source="monthly",
            performed_at=now,
        )
        session.add(log)
        await session.flush()
        return DeductionResult(
            success=True, hours_deducted=hours, from_monthly=hours, log_ids=[str(log.id)]
        )

    used = plan.support_hours_used or 0.0
    if plan.current_period_end is not None and plan.current_period_end < now:
        used = 0.0
    monthly_remaining = max(0.0, tier.support_hours_included - used)

    rollovers = await load_live_rollovers(session, plan.id, now)
    packs = await load_active_packs(session, plan.id, now)
    allocation = plan_deduction(
        hours,
        monthly_remaining,
        rollovers,
        packs,
        on_demand_enabled=plan.on_demand_enabled,
        grace_period_used=plan.grace_period_used,
        now=now,
    )
    if not allocation.allowed:
        logger.info("[Hours] Deduction of %.2fh refused for plan %s", hours, plan.id)
        return DeductionResult(
            success=False, overage_hours=allocation.overage_hours, error=allocation.reason
        )

    for part in allocation.allocations:
        if part.source == "rollover":
            part.item.hours_remaining -= part.hours
            if part.item.hours_remaining <= 0:
                part.item.hours_remaining = 0
                part.item.used_at = now
        elif part.source == "pack":
            part.item.hours_remaining -= part.hours
            if part.item.hours_remaining <= 0:
                part.item.hours_remaining = 0
                part.item.is_active = False
                part.item.used_at = now

    from_rollover = allocation.hours_from("rollover")
    plan.rollover_hours = max(0.0, (plan.rollover_hours or 0.0) - from_rollover)
    plan.support_hours_used = used + allocation.hours_from("monthly") + allocation.overage_hours
    if allocation.uses_grace_period:
        plan.grace_period_used = True

    log = MaintenanceLog(
        plan_id=plan.id,
        hours_spent=hours,
        description=description,
        performed_by=performed_by,
        source=allocation.allocations[-1].source if allocation.allocations else "monthly",
        overage=allocation.overage_hours > 0,
        performed_at=now,
    )
    session.add(log)
    await session.flush()

    logger.info(
        "[Hours] Deducted %.2fh from plan %s (rollover=%.2f monthly=%.2f packs=%.2f overage=%.2f)",
        hours,
        plan.id,
        from_rollover,
        allocation.hours_from("monthly"),
        allocation.hours_from("pack"),
        allocation.overage_hours,
    )
    return DeductionResult(
        success=True,
        hours_deducted=hours,
        from_rollover=from_rollover,
        from_monthly=allocation.hours_from("monthly"),
        from_packs=allocation.hours_from("pack"),
        overage_hours=allocation.overage_hours,
        used_grace_period=allocation.uses_grace_period,
        log_ids=[str(log.id)],
    )


# ── Billing period maintenance ────────────────────────────────────────────────


@dataclass
class RolloverResult:
    rolled_over: float = 0.0
    expired: float = 0.0
    record_id: str | None = None


async def process_monthly_rollover(
    session: AsyncSession, plan: MaintenancePlan, now: datetime | None = None
) -> RolloverResult:
    """Expire stale rollover and carry this period's unused hours forward."""
    now = now or _now()
    tier = resolve_tier(plan)
    result = RolloverResult()
    if tier.is_unlimited or not tier.rollover_enabled or not plan.rollover_enabled:
        return result

    stale = await session.execute(
        select(RolloverRecord).where(
            RolloverRecord.plan_id == plan.id,
            RolloverRecord.is_expired.is_(False),
            RolloverRecord.expires_at <= now,
        )
    )
    for record in stale.scalars().all():
        result.expired += record.hours_remaining or 0.0
        record.is_expired = True

    live = await load_live_rollovers(session, plan.id, now)
    current = sum(r.hours_remaining for r in live)

    amount = rollover_amount(
        tier.support_hours_included, plan.support_hours_used or 0.0, current, tier.rollover_cap
    )
    if amount > 0:
        period_start = plan.current_period_start or now
        record = RolloverRecord(
            plan_id=plan.id,
            hours=amount,
            hours_remaining=amount,
            source_month=period_start.strftime("%Y-%m"),
            expires_at=now + timedelta(days=tier.rollover_expiry_days),
        )
        session.add(record)
        await session.flush()
        result.rolled_over = amount
        result.record_id = str(record.id)
        current += amount

    plan.rollover_hours = current
    logger.info(
        "[Rollover] Plan %s: rolled over %.2fh, expired %.2fh, balance %.2fh",
        plan.id,
        result.rolled_over,
        result.expired,
        current,
    )
    return result


def reset_billing_period(plan: MaintenancePlan, now: datetime | None = None) -> None:
    """Zero usage counters and open a new one-month billing period."""
    now = now or _now()
    plan.support_hours_used = 0.0
    plan.change_requests_used = 0
    plan.requests_today = 0
    plan.current_period_start = now
    plan.current_period_end = add_months(now, 1)


async def expire_hour_packs(session: AsyncSession, now: datetime | None = None) -> int:
    """Deactivate packs past their expiry date. Returns the number expired."""
    now = now or _now()
    result = await session.execute(
        update(HourPack)
        .where(
            HourPack.is_active.is_(True),
            HourPack.never_expires.is_(False),
            HourPack.expires_at.is_not(None),
            HourPack.expires_at <= now,
        )
        .values(is_active=False)
    )
    return result.rowcount or 0


async def expire_rollover_records(session: AsyncSession, now: datetime | None = None) -> int:
    now = now or _now()
    result = await session.execute(
        update(RolloverRecord)
        .where(RolloverRecord.is_expired.is_(False), RolloverRecord.expires_at <= now)
        .values(is_expired=True)
    )
    return result.rowcount or 0


# ── Change request gate ───────────────────────────────────────────────────────


@dataclass
class ChangeRequestCheck:
    allowed: bool
    reason: str | None = None
    requires_payment: bool = False
    requires_approval: bool = False


def can_submit_change_request(
    plan: MaintenancePlan, balance: HoursBalance, now: datetime | None = None
) -> ChangeRequestCheck:
    """Decide whether a client may open another change request right now."""
    now = now or _now()
    if balance.is_unlimited:
        return ChangeRequestCheck(allowed=True)

    if balance.change_requests_remaining <= 0 and not plan.on_demand_enabled:
        return ChangeRequestCheck(
            allowed=False,
            reason="Monthly change request limit reached. Purchase an hour pack or enable on-demand billing.",
            requires_payment=True,
        )

    if balance.at_limit and not plan.on_demand_enabled:
        if not plan.grace_period_used:
            return ChangeRequestCheck(
                allowed=True,
                reason="You are out of hours. This request will use your one-time grace period.",
                requires_approval=True,
            )
        return ChangeRequestCheck(
            allowed=False,
            reason="No support hours remaining. Purchase an hour pack to continue.",
            requires_payment=True,
        )

    if plan.on_demand_enabled:
        same_day = (
            plan.last_request_date is not None
            and plan.last_request_date.date() == now.date()
        )
        if same_day and (plan.requests_today or 0) >= plan.daily_request_limit:
            return ChangeRequestCheck(
                allowed=False,
                reason=f"Daily request limit of {plan.daily_request_limit} reached. Try again tomorrow.",
            )

    return ChangeRequestCheck(allowed=True)


def record_change_request(plan: MaintenancePlan, now: datetime | None = None) -> None:
    """Bump the quota counters after a change request is accepted."""
    now = now or _now()
    if plan.last_request_date is None or plan.last_request_date.date() != now.date():
        plan.requests_today = 0
    plan.requests_today = (plan.requests_today or 0) + 1
    plan.last_request_date = now
    plan.change_requests_used = (plan.change_requests_used or 0) + 1
