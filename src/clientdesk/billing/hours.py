"""Pure support-hours arithmetic.

Nothing here touches the database: callers load plans, packs and rollover
records and pass them in. Objects are read by attribute, so ORM rows and
simple namespaces both work.
"""

from __future__ import annotations

import calendar
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable

from clientdesk.billing.tiers import GRACE_PERIOD_MAX_OVERAGE_HOURS, UNLIMITED, TierConfig

EXPIRING_SOON_DAYS = 30

PENDING_REQUEST_STATUSES = ("DRAFT", "SUBMITTED", "REVIEWING", "NEEDS_INFO", "APPROVED")
PENDING_CHANGE_REQUEST_STATUSES = ("pending", "approved", "in_progress")


@dataclass
class ExpiringItem:
    id: str
    hours: float
    expires_at: datetime
    days_until_expiry: int


@dataclass
class HoursBalance:
    monthly_included: float
    monthly_used: float
    monthly_remaining: float
    rollover_total: float
    pack_hours_total: float
    total_available: float
    estimated_hours_pending: float
    estimated_remaining: float
    is_unlimited: bool
    is_new_billing_period: bool
    at_limit: bool
    change_requests_included: int
    change_requests_used: int
    change_requests_remaining: int
    rollover_expiring_soon: list[ExpiringItem] = field(default_factory=list)
    packs_expiring_soon: list[ExpiringItem] = field(default_factory=list)

    @property
    def overage_hours(self) -> float:
        if self.is_unlimited:
            return 0.0
        return max(0.0, self.monthly_used - self.monthly_included)


def add_months(dt: datetime, months: int) -> datetime:
    """Shift *dt* by whole months, clamping to the last day of short months."""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def days_until(expires_at: datetime, now: datetime) -> int:
    return math.ceil((expires_at - now).total_seconds() / 86400)


def is_live_pack(pack: Any, now: datetime) -> bool:
    if not pack.is_active or (pack.hours_remaining or 0) <= 0:
        return False
    return pack.never_expires or pack.expires_at is None or pack.expires_at > now


def is_live_rollover(record: Any, now: datetime) -> bool:
    if record.is_expired or record.used_at is not None:
        return False
    return record.expires_at > now and (record.hours_remaining or 0) > 0


def expiring_soon(items: Iterable[Any], now: datetime) -> list[ExpiringItem]:
    """Items expiring within the next 1-30 days (rounded up)."""
    result = []
    for item in items:
        if getattr(item, "never_expires", False) or item.expires_at is None:
            continue
        days = days_until(item.expires_at, now)
        if 1 <= days <= EXPIRING_SOON_DAYS:
            result.append(
                ExpiringItem(
                    id=str(item.id),
                    hours=item.hours_remaining,
                    expires_at=item.expires_at,
                    days_until_expiry=days,
                )
            )
    return result


def pending_request_hours(project_requests: Iterable[Any], change_requests: Iterable[Any]) -> float:
    """Hours already promised to open work that has not been deducted yet."""
    total = 0.0
    for req in project_requests:
        if req.status not in PENDING_REQUEST_STATUSES or req.hours_deducted:
            continue
        if req.estimated_hours and req.estimated_hours > 0:
            total += req.estimated_hours
    for cr in change_requests:
        if cr.status not in PENDING_CHANGE_REQUEST_STATUSES or cr.hours_deducted:
            continue
        if cr.actual_hours and cr.actual_hours > 0:
            total += cr.actual_hours
        elif cr.estimated_hours and cr.estimated_hours > 0:
            total += cr.estimated_hours
    return total


def compute_hours_balance(
    plan: Any,
    tier: TierConfig,
    monthly_used: float,
    packs: Iterable[Any],
    rollovers: Iterable[Any],
    now: datetime,
    pending_hours: float = 0.0,
) -> HoursBalance:
    """Derive the client-facing balance for a plan."""
    live_packs = [p for p in packs if is_live_pack(p, now)]
    live_rollovers = [r for r in rollovers if is_live_rollover(r, now)]

    unlimited = tier.is_unlimited
    included = tier.support_hours_included
    is_new_period = plan.current_period_end is not None and plan.current_period_end < now
    effective_used = 0.0 if is_new_period else monthly_used

    if unlimited:
        monthly_remaining = UNLIMITED
    else:
        monthly_remaining = max(0.0, included - effective_used)

    if live_rollovers:
        rollover_total = sum(r.hours_remaining for r in live_rollovers)
    else:
        rollover_total = plan.rollover_hours or 0.0
    pack_total = sum(p.hours_remaining for p in live_packs)

    if unlimited:
        total_available = UNLIMITED
        estimated_remaining = UNLIMITED
    else:
        total_available = monthly_remaining + rollover_total + pack_total
        estimated_remaining = max(0.0, total_available - pending_hours)

    cr_included = tier.change_requests_included
    cr_used = plan.change_requests_used or 0
    if cr_included == UNLIMITED:
        cr_remaining = UNLIMITED
    else:
        cr_remaining = max(0, cr_included - cr_used)

    return HoursBalance(
        monthly_included=included,
        monthly_used=effective_used,
        monthly_remaining=monthly_remaining,
        rollover_total=rollover_total,
        pack_hours_total=pack_total,
        total_available=total_available,
        estimated_hours_pending=pending_hours,
        estimated_remaining=estimated_remaining,
        is_unlimited=unlimited,
        is_new_billing_period=is_new_period,
        at_limit=not unlimited and total_available <= 0,
        change_requests_included=cr_included,
        change_requests_used=cr_used,
        change_requests_remaining=cr_remaining,
        rollover_expiring_soon=expiring_soon(live_rollovers, now),
        packs_expiring_soon=expiring_soon(live_packs, now),
    )


# ── Deduction planning ────────────────────────────────────────────────────────


@dataclass
class Allocation:
    source: str  # rollover | monthly | pack | overage
    hours: float
    item: Any = None


@dataclass
class DeductionPlan:
    allowed: bool
    allocations: list[Allocation] = field(default_factory=list)
    overage_hours: float = 0.0
    uses_grace_period: bool = False
    reason: str | None = None

    def hours_from(self, source: str) -> float:
        return sum(a.hours for a in self.allocations if a.source == source)


def _pack_order(pack: Any) -> tuple:
    # Expiring packs first (soonest first), never-expiring packs last.
    if pack.never_expires or pack.expires_at is None:
        return (1, 0.0)
    return (0, pack.expires_at.timestamp())


def plan_deduction(
    hours: float,
    monthly_remaining: float,
    rollovers: Iterable[Any],
    packs: Iterable[Any],
    on_demand_enabled: bool,
    grace_period_used: bool,
    now: datetime,
) -> DeductionPlan:
    """Allocate *hours* across available sources in FIFO order.

    Order: rollover (soonest expiry), monthly allowance, expiring packs,
    never-expiring packs, then overage. Overage is permitted with on-demand
    billing, or once per plan up to the grace allowance.
    """
    remaining = hours
    allocations: list[Allocation] = []

    for record in sorted(
        (r for r in rollovers if is_live_rollover(r, now)), key=lambda r: r.expires_at
    ):
        if remaining <= 0:
            break
        take = min(remaining, record.hours_remaining)
        allocations.append(Allocation("rollover", take, record))
        remaining -= take

    if remaining > 0 and monthly_remaining > 0:
        take = min(remaining, monthly_remaining)
        allocations.append(Allocation("monthly", take))
        remaining -= take

    for pack in sorted((p for p in packs if is_live_pack(p, now)), key=_pack_order):
        if remaining <= 0:
            break
        take = min(remaining, pack.hours_remaining)
        allocations.append(Allocation("pack", take, pack))
        remaining -= take

    if remaining <= 0:
        return DeductionPlan(allowed=True, allocations=allocations)

    if on_demand_enabled:
        allocations.append(Allocation("overage", remaining))
        return DeductionPlan(allowed=True, allocations=allocations, overage_hours=remaining)

    if not grace_period_used and remaining <= GRACE_PERIOD_MAX_OVERAGE_HOURS:
        allocations.append(Allocation("overage", remaining))
        return DeductionPlan(
            allowed=True,
            allocations=allocations,
            overage_hours=remaining,
            uses_grace_period=True,
        )

    return DeductionPlan(
        allowed=False,
        overage_hours=remaining,
        reason=(
            f"Insufficient hours: {remaining:g} hour(s) over the available balance. "
            "Purchase an hour pack or enable on-demand billing."
        ),
    )


def rollover_amount(
    included: float, used: float, current_rollover: float, cap: float
) -> float:
    """Unused monthly hours that may be carried forward under *cap*."""
    if included == UNLIMITED:
        return 0.0
    unused = max(0.0, included - used)
    room = max(0.0, cap - current_rollover)
    return min(unused, room)
