"""Thin async wrapper around the Stripe SDK.

The SDK is synchronous; calls run in Starlette's threadpool so they do not
block the event loop. Responses are Stripe objects, read with item access
(``obj["id"]``) so plain dicts can stand in for them.
"""

from __future__ import annotations

import logging
from typing import Any

import stripe
from starlette.concurrency import run_in_threadpool

from clientdesk.config import settings

logger = logging.getLogger(__name__)


class StripeGateway:
    """Payments provider client bound to one API key."""

    def __init__(self, api_key: str | None = None, webhook_secret: str | None = None):
        self.api_key = api_key if api_key is not None else settings.stripe_secret_key
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.stripe_webhook_secret
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def create_customer(self, email: str, name: str | None, metadata: dict[str, str]) -> Any:
        logger.info("Creating Stripe customer for %s", email)
        return await run_in_threadpool(
            stripe.Customer.create,
            api_key=self.api_key,
            email=email,
            name=name,
            metadata=metadata,
        )

    async def cancel_subscription(self, subscription_id: str) -> Any:
        logger.info("Cancelling Stripe subscription %s", subscription_id)
        return await run_in_threadpool(
            stripe.Subscription.cancel, subscription_id, api_key=self.api_key
        )

    async def create_checkout_session(self, **params: Any) -> Any:
        logger.info(
            "Creating Stripe checkout session: mode=%s type=%s",
            params.get("mode"),
            (params.get("metadata") or {}).get("type"),
        )
        return await run_in_threadpool(
            stripe.checkout.Session.create, api_key=self.api_key, **params
        )

    def construct_event(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Verify a webhook signature and parse the event into plain dicts.

        Raises ``stripe.SignatureVerificationError`` or ``ValueError``.
        """
        event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        return event.to_dict()


_gateway: StripeGateway | None = None


def get_stripe_gateway() -> StripeGateway:
    """Get or create the process-wide gateway (FastAPI dependency)."""
    global _gateway
    if _gateway is None:
        _gateway = StripeGateway()
    return _gateway


def describe_stripe_error(exc: stripe.StripeError) -> tuple[str, bool]:
    """Map a Stripe exception to a client-safe message.

    Returns ``(message, is_configuration_error)``.
    """
    if isinstance(exc, stripe.AuthenticationError) or exc.code == "api_key_expired":
        return "Payment system configuration error", True
    if isinstance(exc, stripe.InvalidRequestError):
        if exc.code == "resource_missing":
            return "Invalid payment configuration. Please contact support.", False
        if exc.param:
            return f"Invalid {exc.param}. Please contact support.", False
    elif isinstance(exc, stripe.APIError):
        return "Payment service temporarily unavailable. Please try again.", False
    return "Failed to create checkout session", False
