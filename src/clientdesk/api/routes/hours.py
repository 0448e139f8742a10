"""Client support-hours balance and hour-pack checkout routes."""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clientdesk.api.deps import get_db, get_stripe_gateway, require_user
from clientdesk.auth.access import accessible_projects_clause, get_access_context
from clientdesk.billing.checkout import create_hour_pack_checkout
from clientdesk.billing.hours import ExpiringItem, HoursBalance, compute_hours_balance
from clientdesk.billing.stripe_gateway import StripeGateway
from clientdesk.billing.tiers import UNLIMITED, TierConfig
from clientdesk.billing.tracker import get_hours_balance, load_active_packs, resolve_tier
from clientdesk.models.db import CLOSED_PROJECT_STATUSES, HourPack, MaintenancePlan, Project
from clientdesk.models.schemas import CurrentUser, HourPackCheckoutRequest

logger = logging.getLogger(__name__)

router = APIRouter()

EMPTY_BALANCE: dict[str, Any] = {
    "tier": None,
    "monthlyHours": 0,
    "totalHours": 0,
    "hourPacks": 0,
    "rolloverHours": 0,
    "hourPacksList": [],
}


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _expiring(items: list[ExpiringItem]) -> list[dict[str, Any]]:
    return [
        {
            "id": item.id,
            "hours": item.hours,
            "expiresAt": _iso(item.expires_at),
            "daysUntilExpiry": item.days_until_expiry,
        }
        for item in items
    ]


def _pack_entry(pack: HourPack) -> dict[str, Any]:
    return {
        "id": str(pack.id),
        "packType": pack.pack_type,
        "hours": pack.hours,
        "hoursRemaining": pack.hours_remaining,
        "cost": pack.cost,
        "purchasedAt": _iso(pack.purchased_at),
        "expiresAt": _iso(pack.expires_at),
        "neverExpires": pack.never_expires,
    }


def balance_payload(
    plan: MaintenancePlan,
    tier: TierConfig,
    balance: HoursBalance,
    packs: list[HourPack],
) -> dict[str, Any]:
    """Serialize a balance, including the legacy keys older clients read."""
    return {
        "monthlyIncluded": balance.monthly_included,
        "monthlyUsed": balance.monthly_used,
        "monthlyRemaining": balance.monthly_remaining,
        "rolloverTotal": balance.rollover_total,
        "rolloverExpiringSoon": _expiring(balance.rollover_expiring_soon),
        "packHoursTotal": balance.pack_hours_total,
        "packHoursExpiringSoon": _expiring(balance.packs_expiring_soon),
        "totalAvailable": balance.total_available,
        "estimatedHoursPending": balance.estimated_hours_pending,
        "estimatedRemaining": balance.estimated_remaining,
        "isUnlimited": balance.is_unlimited,
        "atLimit": balance.at_limit,
        "isOverage": bool(plan.grace_period_used),
        "overageHours": balance.overage_hours,
        "changeRequestsIncluded": balance.change_requests_included,
        "changeRequestsUsed": balance.change_requests_used,
        "changeRequestsRemaining": balance.change_requests_remaining,
        "tierName": tier.name,
        "periodEnd": _iso(plan.current_period_end),
        "onDemandEnabled": bool(plan.on_demand_enabled),
        "paymentRequired": False,
        # Legacy fields
        "tier": tier.id,
        "monthlyHours": balance.monthly_included,
        "hourPacks": balance.pack_hours_total,
        "rolloverHours": balance.rollover_total,
        "totalHours": balance.total_available,
        "hourPacksList": [_pack_entry(p) for p in packs],
        "totalSpentOnPacks": sum(p.cost or 0 for p in packs),
        "changeRequestsAllowed": balance.change_requests_included,
    }


async def find_client_plan(session: AsyncSession, user: CurrentUser) -> MaintenancePlan | None:
    """The plan of the user's most recently updated open project."""
    ctx = await get_access_context(session, user.id, user.email)
    if ctx.is_empty:
        return None
    result = await session.execute(
        select(MaintenancePlan)
        .join(Project, Project.id == MaintenancePlan.project_id)
        .where(
            accessible_projects_clause(ctx),
            Project.status.not_in(CLOSED_PROJECT_STATUSES),
        )
        .order_by(Project.updated_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


@router.get("/client/hours")
async def get_client_hours(
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    """Current support-hours balance for the signed-in client."""
    plan = await find_client_plan(session, user)
    if plan is None:
        return dict(EMPTY_BALANCE)

    now = datetime.now(timezone.utc)
    tier = resolve_tier(plan)
    packs = await load_active_packs(session, plan.id, now)

    if not plan.stripe_subscription_id:
        balance = compute_hours_balance(plan, tier, 0.0, packs, [], now)
        total = UNLIMITED if tier.is_unlimited else balance.monthly_included + balance.pack_hours_total
        balance = dataclasses.replace(
            balance,
            rollover_total=0.0,
            total_available=total,
            estimated_remaining=total,
            at_limit=False,
        )
        payload = balance_payload(plan, tier, balance, packs)
        payload.update(
            paymentRequired=True,
            hasCheckoutSession=bool(plan.stripe_checkout_session_id),
            message=f"Complete payment to activate your {tier.name} plan.",
        )
        return payload

    balance = await get_hours_balance(session, plan, user_id=user.id, now=now)
    return balance_payload(plan, tier, balance, packs)


@router.post("/checkout/hour-pack")
async def checkout_hour_pack(
    data: HourPackCheckoutRequest,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    """Create a Stripe checkout session for a one-time hour pack."""
    return await create_hour_pack_checkout(session, gateway, user, data.packId)
