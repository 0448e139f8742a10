"""Stripe webhook API route."""

from __future__ import annotations

import logging

import stripe
from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from clientdesk.api.deps import get_db, get_stripe_gateway
from clientdesk.api.errors import APIError
from clientdesk.billing.stripe_gateway import StripeGateway
from clientdesk.billing.webhooks import dispatch_event

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None),
    session: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    """Receive Stripe events, verified against the webhook secret."""
    if not stripe_signature:
        raise APIError(400, "Missing stripe-signature header")
    if not gateway.webhook_secret:
        logger.error("[Stripe] STRIPE_WEBHOOK_SECRET is not configured")
        raise APIError(500, "Webhook secret not configured")

    payload = await request.body()
    try:
        event = gateway.construct_event(payload, stripe_signature)
    except (ValueError, stripe.SignatureVerificationError) as exc:
        logger.warning("[Stripe] Webhook signature verification failed: %s", exc)
        raise APIError(400, "Invalid signature", details=str(exc)) from exc

    logger.info("[Stripe] Received %s (%s)", event["type"], event.get("id"))
    try:
        handled = await dispatch_event(session, event)
    except Exception:
        logger.exception("[Stripe] Failed to process %s", event["type"])
        raise

    return {"received": True, "handled": handled}
