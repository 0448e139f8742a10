"""Checkout orchestration for tier changes and hour-pack purchases.

Steps run as sequential statements on the request session; a failure in a
later step can leave earlier updates in place (for example a cancelled
subscription with no replacement checkout yet). Best-effort steps log and
continue.
"""

from __future__ import annotations

import logging
from typing import Any

import stripe
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clientdesk.api.errors import APIError
from clientdesk.auth.access import accessible_projects_clause, get_access_context
from clientdesk.billing.stripe_gateway import StripeGateway, describe_stripe_error
from clientdesk.billing.tiers import TIER_IDS, HourPackConfig, TierConfig, get_hour_pack, get_tier
from clientdesk.config import settings
from clientdesk.models.db import MaintenancePlan, Organization, Project, User
from clientdesk.models.schemas import CurrentUser

logger = logging.getLogger(__name__)

SUBSCRIPTION_CHECKOUT_TYPE = "maintenance-plan-subscription"
HOUR_PACK_CHECKOUT_TYPE = "hour-pack"


def apply_tier(plan: MaintenancePlan, tier: TierConfig) -> None:
    """Copy a tier's price and allowances onto a plan row."""
    plan.tier = tier.id
    plan.monthly_price = tier.monthly_price
    plan.support_hours_included = tier.support_hours_included
    plan.change_requests_included = tier.change_requests_included
    plan.rollover_enabled = tier.rollover_enabled
    plan.rollover_cap = tier.rollover_cap


async def resolve_user(session: AsyncSession, current: CurrentUser | None) -> User:
    """Load the signed-in user's row, by id then by email."""
    if current is None:
        raise APIError(401, "Unauthorized")
    if not current.email:
        raise APIError(400, "User email is required")

    user = None
    if current.id is not None:
        user = await session.get(User, current.id)
    if user is None:
        result = await session.execute(select(User).where(User.email == current.email.lower()))
        user = result.scalar_one_or_none()
    if user is None:
        logger.error("User not found in database: id=%s email=%s", current.id, current.email)
        raise APIError(
            404,
            "User not found",
            message="Your account may not be fully set up. Please contact support if this issue persists.",
        )
    return user


async def _find_or_create_plan(
    session: AsyncSession, user: User, tier: TierConfig
) -> tuple[MaintenancePlan, Project]:
    ctx = await get_access_context(session, user.id, user.email)
    if ctx.is_empty:
        raise APIError(404, "No accessible projects found")

    result = await session.execute(
        select(MaintenancePlan, Project)
        .join(Project, Project.id == MaintenancePlan.project_id)
        .where(accessible_projects_clause(ctx))
        .order_by(MaintenancePlan.created_at.desc())
        .limit(1)
    )
    row = result.first()
    if row is not None:
        plan, project = row
        if project.organization_id is None:
            logger.error("[TIER UPDATE] Project missing organization: %s", project.id)
            raise APIError(500, "Project organization not found")
        return plan, project

    result = await session.execute(
        select(Project)
        .where(accessible_projects_clause(ctx))
        .order_by(Project.created_at.asc())
        .limit(1)
    )
    project = result.scalar_one_or_none()
    if project is None:
        raise APIError(404, "No accessible project found")
    if project.organization_id is None:
        logger.error("[TIER UPDATE] Project missing organization: %s", project.id)
        raise APIError(500, "Project organization not found")

    plan = MaintenancePlan(project_id=project.id, status="PAUSED")
    apply_tier(plan, tier)
    session.add(plan)
    await session.flush()
    logger.info("[TIER UPDATE] Created maintenance plan %s for project %s", plan.id, project.id)
    return plan, project


async def ensure_stripe_customer(
    session: AsyncSession,
    gateway: StripeGateway,
    user: User,
    organization: Organization,
    project: Project | None = None,
) -> str:
    """Reuse the org's (or project's) Stripe customer or create one."""
    customer_id = organization.stripe_customer_id or (project.stripe_customer_id if project else None)
    if customer_id:
        return customer_id

    try:
        customer = await gateway.create_customer(
            email=user.email,
            name=user.name or organization.name,
            metadata={
                "userId": str(user.id),
                "organizationId": str(organization.id),
                "projectId": str(project.id) if project else "",
            },
        )
    except stripe.StripeError as exc:
        logger.error("Stripe customer creation failed: %s", exc)
        raise APIError(
            500,
            f"Failed to create customer: {exc.user_message or exc}",
            details=str(exc),
            code=type(exc).__name__,
        ) from exc

    customer_id = customer["id"]
    organization.stripe_customer_id = customer_id
    if project is not None:
        project.stripe_customer_id = customer_id
    try:
        await session.flush()
    except SQLAlchemyError as exc:
        logger.warning("Failed to save Stripe customer ID %s: %s", customer_id, exc)
    return customer_id


def _subscription_line_item(tier: TierConfig, plan: MaintenancePlan) -> dict[str, Any]:
    if tier.stripe_price_id:
        return {"price": tier.stripe_price_id, "quantity": 1}
    logger.info("[TIER UPDATE] No Stripe price configured for %s, using inline price_data", tier.id)
    return {
        "price_data": {
            "currency": "usd",
            "product_data": {
                "name": f"{tier.name} - Monthly Subscription",
                "description": tier.description,
                "metadata": {"tier": tier.id, "maintenancePlanId": str(plan.id)},
            },
            "unit_amount": tier.monthly_price,
            "recurring": {"interval": "month"},
        },
        "quantity": 1,
    }


async def change_tier(
    session: AsyncSession,
    gateway: StripeGateway,
    current: CurrentUser | None,
    tier_id: str | None,
) -> dict[str, Any]:
    """Switch a client's maintenance plan to *tier_id* via Stripe checkout."""
    if not gateway.configured:
        logger.error("[TIER UPDATE] STRIPE_SECRET_KEY is not configured")
        raise APIError(
            500,
            "Payment system not configured",
            details="STRIPE_SECRET_KEY environment variable is missing",
        )

    user = await resolve_user(session, current)

    if not tier_id or tier_id.upper() not in TIER_IDS:
        raise APIError(400, "Invalid tier. Must be ESSENTIALS, DIRECTOR, or COO")
    tier = get_tier(tier_id)

    plan, project = await _find_or_create_plan(session, user, tier)

    if plan.tier == tier.id and plan.stripe_subscription_id:
        raise APIError(
            400,
            "You are already on this tier",
            success=True,
            message=f"You are already subscribed to {tier.name}",
        )

    if plan.tier != tier.id:
        if plan.stripe_subscription_id:
            try:
                await gateway.cancel_subscription(plan.stripe_subscription_id)
                logger.info("[TIER UPDATE] Cancelled subscription %s", plan.stripe_subscription_id)
            except stripe.StripeError as exc:
                logger.warning("[TIER UPDATE] Failed to cancel old subscription: %s", exc)
        logger.info("[TIER UPDATE] Plan %s: %s -> %s", plan.id, plan.tier, tier.id)
        apply_tier(plan, tier)
        plan.stripe_subscription_id = None
        plan.status = "PAUSED"
    else:
        apply_tier(plan, tier)
        plan.status = "PAUSED"
    await session.flush()

    organization = await session.get(Organization, project.organization_id)
    if organization is None:
        raise APIError(500, "Project organization not found")
    customer_id = await ensure_stripe_customer(session, gateway, user, organization, project)

    base_url = settings.absolute_base_url
    metadata = {
        "type": SUBSCRIPTION_CHECKOUT_TYPE,
        "maintenancePlanId": str(plan.id),
        "tier": tier.id,
        "userId": str(user.id),
        "organizationId": str(project.organization_id),
        "projectId": str(project.id),
    }
    try:
        checkout = await gateway.create_checkout_session(
            customer=customer_id,
            mode="subscription",
            line_items=[_subscription_line_item(tier, plan)],
            success_url=f"{base_url}/client/hours?tier-updated=true&session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base_url}/client/hours?tier-update-cancelled=true",
            metadata=metadata,
            subscription_data={
                "metadata": {k: v for k, v in metadata.items() if k not in ("type", "userId")}
            },
        )
    except stripe.StripeError as exc:
        logger.error(
            "[TIER UPDATE] Stripe checkout session creation failed: %s (code=%s)",
            exc,
            exc.code,
        )
        message, config_error = describe_stripe_error(exc)
        if config_error:
            raise APIError(
                500,
                message,
                details=str(exc),
                message="The payment system is not properly configured. Please contact support.",
            ) from exc
        raise APIError(
            500, message, details=str(exc), code=type(exc).__name__, message=message
        ) from exc

    checkout_url = checkout["url"]
    if not checkout_url:
        logger.error("[TIER UPDATE] Checkout session created but no URL returned")
        raise APIError(500, "Failed to create checkout session. Please try again or contact support.")

    plan.stripe_checkout_session_id = checkout["id"]
    plan.status = "PAUSED"
    try:
        await session.flush()
    except SQLAlchemyError as exc:
        logger.warning("[TIER UPDATE] Failed to store checkout session on plan %s: %s", plan.id, exc)

    return {
        "success": True,
        "requiresPayment": True,
        "checkoutUrl": checkout_url,
        "message": f"Please complete payment to switch to {tier.name}",
    }


async def create_hour_pack_checkout(
    session: AsyncSession,
    gateway: StripeGateway,
    current: CurrentUser | None,
    pack_id: str | None,
) -> dict[str, Any]:
    """Start a one-time payment checkout for an hour pack."""
    if not gateway.configured:
        logger.error("[Hour Pack Checkout] STRIPE_SECRET_KEY is not configured")
        raise APIError(500, "Payment system not configured")
    if current is None:
        raise APIError(401, "Unauthorized")

    pack: HourPackConfig | None = get_hour_pack(pack_id)
    if pack is None:
        raise APIError(400, "Invalid pack ID")

    user = await resolve_user(session, current)
    ctx = await get_access_context(session, user.id, user.email)

    project = None
    organization = None
    if not ctx.is_empty:
        result = await session.execute(
            select(Project)
            .where(accessible_projects_clause(ctx))
            .order_by(Project.created_at.desc())
            .limit(1)
        )
        project = result.scalar_one_or_none()
    if project is not None and project.organization_id is not None:
        organization = await session.get(Organization, project.organization_id)

    customer_id = None
    if organization is not None:
        customer_id = await ensure_stripe_customer(session, gateway, user, organization, project)

    expiration = str(pack.expiration_days) if pack.expiration_days else "never"
    validity = (
        f" (valid for {pack.expiration_days} days)" if pack.expiration_days else " (never expires)"
    )
    base_url = settings.absolute_base_url
    params: dict[str, Any] = {
        "mode": "payment",
        "payment_method_types": ["card"],
        "line_items": [
            {
                "price_data": {
                    "currency": "usd",
                    "product_data": {
                        "name": f"Hour Pack - {pack.name}",
                        "description": f"{pack.hours:g} support hours{validity}",
                    },
                    "unit_amount": pack.price,
                },
                "quantity": 1,
            }
        ],
        "success_url": f"{base_url}/client/hours/success?pack={pack.id}&session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{base_url}/client/hours?canceled=true",
        "metadata": {
            "type": HOUR_PACK_CHECKOUT_TYPE,
            "packId": pack.id,
            "hours": f"{pack.hours:g}",
            "expirationDays": expiration,
            "userId": str(user.id),
            "organizationId": str(organization.id) if organization else "",
            "projectId": str(project.id) if project else "",
        },
    }
    if customer_id:
        params["customer"] = customer_id
    else:
        params["customer_email"] = user.email

    try:
        checkout = await gateway.create_checkout_session(**params)
    except stripe.StripeError as exc:
        logger.error("[Hour Pack Checkout] Stripe error: %s", exc)
        message, config_error = describe_stripe_error(exc)
        if config_error:
            raise APIError(500, message, details=str(exc)) from exc
        raise APIError(
            500,
            "Failed to create checkout session",
            message=exc.user_message or "Payment processing error. Please try again or contact support.",
            details=str(exc),
        ) from exc

    return {"success": True, "url": checkout["url"], "sessionId": checkout["id"]}
