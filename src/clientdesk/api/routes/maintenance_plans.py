"""Maintenance-plan tier management routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from clientdesk.api.deps import get_current_user, get_db, get_stripe_gateway
from clientdesk.billing.checkout import change_tier
from clientdesk.billing.stripe_gateway import StripeGateway
from clientdesk.models.schemas import CurrentUser, TierUpdateRequest

router = APIRouter()


@router.post("/client/maintenance-plans/update-tier")
async def update_tier(
    data: TierUpdateRequest | None = None,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser | None = Depends(get_current_user),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    """Move the client's plan to another tier through a subscription checkout."""
    return await change_tier(session, gateway, user, data.tier if data else None)
