"""Stripe webhook event handlers.

Each handler receives the event's ``data.object`` and applies it to the
database. Handlers are idempotent so Stripe retries are harmless.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clientdesk.billing.checkout import HOUR_PACK_CHECKOUT_TYPE, SUBSCRIPTION_CHECKOUT_TYPE
from clientdesk.billing.tiers import get_hour_pack
from clientdesk.billing.tracker import reset_billing_period
from clientdesk.models.db import HourPack, Invoice, MaintenancePlan, Payment, Project

logger = logging.getLogger(__name__)

Handler = Callable[[AsyncSession, dict[str, Any]], Awaitable[None]]

SUBSCRIPTION_STATUS_MAP = {
    "active": "ACTIVE",
    "trialing": "ACTIVE",
    "past_due": "PAST_DUE",
    "unpaid": "PAST_DUE",
    "canceled": "CANCELLED",
    "incomplete_expired": "CANCELLED",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_uuid(value: Any) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def _from_timestamp(value: Any) -> datetime | None:
    return datetime.fromtimestamp(int(value), tz=timezone.utc) if value else None


async def _plan_for_subscription(session: AsyncSession, obj: dict[str, Any]) -> MaintenancePlan | None:
    result = await session.execute(
        select(MaintenancePlan).where(MaintenancePlan.stripe_subscription_id == obj.get("id"))
    )
    plan = result.scalar_one_or_none()
    if plan is None:
        plan_id = _as_uuid((obj.get("metadata") or {}).get("maintenancePlanId"))
        if plan_id is not None:
            plan = await session.get(MaintenancePlan, plan_id)
    return plan


async def _invoice_for(session: AsyncSession, obj: dict[str, Any]) -> Invoice | None:
    result = await session.execute(select(Invoice).where(Invoice.stripe_invoice_id == obj.get("id")))
    invoice = result.scalar_one_or_none()
    if invoice is None:
        invoice_id = _as_uuid((obj.get("metadata") or {}).get("invoiceId"))
        if invoice_id is not None:
            invoice = await session.get(Invoice, invoice_id)
    return invoice


# ── Checkout ──────────────────────────────────────────────────────────────────


async def _activate_subscription(session: AsyncSession, obj: dict[str, Any], metadata: dict) -> None:
    plan_id = _as_uuid(metadata.get("maintenancePlanId"))
    plan = await session.get(MaintenancePlan, plan_id) if plan_id else None
    if plan is None:
        logger.warning("[Stripe] Subscription checkout %s has no matching plan", obj.get("id"))
        return

    plan.stripe_subscription_id = obj.get("subscription")
    plan.stripe_checkout_session_id = obj.get("id")
    plan.status = "ACTIVE"
    reset_billing_period(plan)

    project = await session.get(Project, plan.project_id)
    if project is not None:
        project.stripe_subscription_id = plan.stripe_subscription_id
        project.maintenance_status = "ACTIVE"
        if obj.get("customer") and not project.stripe_customer_id:
            project.stripe_customer_id = obj.get("customer")
    logger.info("[Stripe] Activated %s plan %s", plan.tier, plan.id)


async def _grant_hour_pack(session: AsyncSession, obj: dict[str, Any], metadata: dict) -> None:
    existing = await session.execute(
        select(HourPack.id).where(HourPack.stripe_payment_id == obj.get("id"))
    )
    if existing.first() is not None:
        logger.info("[Stripe] Hour pack for checkout %s already granted", obj.get("id"))
        return

    pack = get_hour_pack(metadata.get("packId"))
    if pack is None:
        logger.warning("[Stripe] Unknown hour pack %r in checkout %s", metadata.get("packId"), obj.get("id"))
        return

    plan = None
    project_id = _as_uuid(metadata.get("projectId"))
    if project_id is not None:
        result = await session.execute(
            select(MaintenancePlan).where(MaintenancePlan.project_id == project_id)
        )
        plan = result.scalar_one_or_none()
    if plan is None:
        logger.warning("[Stripe] No maintenance plan for hour pack checkout %s", obj.get("id"))
        return

    now = _now()
    session.add(
        HourPack(
            plan_id=plan.id,
            pack_type=pack.id,
            hours=pack.hours,
            hours_remaining=pack.hours,
            cost=obj.get("amount_total") or pack.price,
            purchased_at=now,
            expires_at=None if pack.never_expires else now + timedelta(days=pack.expiration_days),
            never_expires=pack.never_expires,
            is_active=True,
            stripe_payment_id=obj.get("id"),
        )
    )
    logger.info("[Stripe] Granted %s pack (%gh) to plan %s", pack.id, pack.hours, plan.id)


async def handle_checkout_completed(session: AsyncSession, obj: dict[str, Any]) -> None:
    metadata = obj.get("metadata") or {}
    kind = metadata.get("type")
    if kind == SUBSCRIPTION_CHECKOUT_TYPE:
        await _activate_subscription(session, obj, metadata)
    elif kind == HOUR_PACK_CHECKOUT_TYPE:
        await _grant_hour_pack(session, obj, metadata)
    elif metadata.get("invoiceId"):
        invoice = await session.get(Invoice, _as_uuid(metadata["invoiceId"]))
        if invoice is None:
            logger.warning("[Stripe] Checkout for unknown invoice %s", metadata["invoiceId"])
            return
        if invoice.status != "PAID":
            invoice.status = "PAID"
            invoice.paid_at = _now()
            session.add(
                Payment(
                    invoice_id=invoice.id,
                    amount=obj.get("amount_total") or invoice.amount,
                    stripe_payment_intent_id=obj.get("payment_intent"),
                )
            )
    else:
        logger.info("[Stripe] Checkout %s has no handled metadata type", obj.get("id"))


# ── Invoices ──────────────────────────────────────────────────────────────────


async def handle_invoice_paid(session: AsyncSession, obj: dict[str, Any]) -> None:
    invoice = await _invoice_for(session, obj)
    if invoice is not None and invoice.status != "PAID":
        invoice.status = "PAID"
        invoice.paid_at = _now()
        session.add(
            Payment(
                invoice_id=invoice.id,
                amount=obj.get("amount_paid") or invoice.amount,
                currency=obj.get("currency") or "usd",
                stripe_payment_intent_id=obj.get("payment_intent"),
            )
        )

    subscription_id = obj.get("subscription")
    if subscription_id:
        result = await session.execute(
            select(MaintenancePlan).where(MaintenancePlan.stripe_subscription_id == subscription_id)
        )
        plan = result.scalar_one_or_none()
        if plan is not None and plan.status != "ACTIVE":
            plan.status = "ACTIVE"


async def handle_invoice_payment_failed(session: AsyncSession, obj: dict[str, Any]) -> None:
    invoice = await _invoice_for(session, obj)
    if invoice is None:
        return
    if invoice.due_date is not None and invoice.due_date < _now():
        invoice.status = "OVERDUE"
    logger.warning("[Stripe] Payment failed for invoice %s", invoice.number)


async def handle_invoice_finalized(session: AsyncSession, obj: dict[str, Any]) -> None:
    invoice = await _invoice_for(session, obj)
    if invoice is not None and invoice.status == "DRAFT":
        invoice.status = "SENT"
        invoice.sent_at = _now()


async def handle_invoice_voided(session: AsyncSession, obj: dict[str, Any]) -> None:
    invoice = await _invoice_for(session, obj)
    if invoice is not None:
        invoice.status = "CANCELLED"


# ── Subscriptions ─────────────────────────────────────────────────────────────


async def handle_subscription_updated(session: AsyncSession, obj: dict[str, Any]) -> None:
    plan = await _plan_for_subscription(session, obj)
    if plan is None:
        return
    plan.stripe_subscription_id = obj.get("id")
    status = SUBSCRIPTION_STATUS_MAP.get(obj.get("status") or "")
    if status:
        plan.status = status
    period_end = _from_timestamp(obj.get("current_period_end"))
    if period_end is not None:
        plan.current_period_end = period_end
        plan.current_period_start = _from_timestamp(obj.get("current_period_start")) or plan.current_period_start


async def handle_subscription_deleted(session: AsyncSession, obj: dict[str, Any]) -> None:
    plan = await _plan_for_subscription(session, obj)
    if plan is None:
        return
    plan.status = "CANCELLED"
    plan.stripe_subscription_id = None
    project = await session.get(Project, plan.project_id)
    if project is not None:
        project.stripe_subscription_id = None
        project.maintenance_status = "CANCELLED"
    logger.info("[Stripe] Subscription cancelled for plan %s", plan.id)


EVENT_HANDLERS: dict[str, Handler] = {
    "checkout.session.completed": handle_checkout_completed,
    "invoice.paid": handle_invoice_paid,
    "invoice.payment_failed": handle_invoice_payment_failed,
    "invoice.finalized": handle_invoice_finalized,
    "invoice.voided": handle_invoice_voided,
    "customer.subscription.created": handle_subscription_updated,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
}


async def dispatch_event(session: AsyncSession, event: dict[str, Any]) -> bool:
    """Apply an event. Returns False for event types we ignore."""
    handler = EVENT_HANDLERS.get(event["type"])
    if handler is None:
        logger.info("[Stripe] Ignoring event type %s", event["type"])
        return False
    await handler(session, event["data"]["object"])
    await session.flush()
    return True
