"""Tests for the Stripe webhook endpoint and event handlers."""

from __future__ import annotations

import json
import time

import pytest
import stripe
from sqlalchemy import select

from clientdesk.billing.stripe_gateway import StripeGateway
from clientdesk.models.db import HourPack, Invoice, Payment

URL = "/api/webhooks/stripe"
WEBHOOK_SECRET = "whsec_clientdesk_test"


def _event(event_type: str, obj: dict) -> dict:
    return {"id": "evt_test", "type": event_type, "data": {"object": obj}}


async def _post(client, event: dict, signature: str = "valid"):
    return await client.post(
        URL,
        content=json.dumps(event),
        headers={"stripe-signature": signature, "content-type": "application/json"},
    )


class TestSignature:
    """Requests must carry a valid Stripe signature."""

    @pytest.mark.asyncio
    async def test_missing_signature(self, client):
        response = await client.post(URL, content="{}")
        assert response.status_code == 400
        assert response.json()["error"] == "Missing stripe-signature header"

    @pytest.mark.asyncio
    async def test_invalid_signature(self, client):
        response = await _post(client, _event("invoice.paid", {}), signature="forged")
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid signature"

    @pytest.mark.asyncio
    async def test_secret_not_configured(self, client, stripe_gateway):
        stripe_gateway.webhook_secret = ""
        response = await _post(client, _event("invoice.paid", {}))
        assert response.status_code == 500

    @pytest.mark.asyncio
    async def test_unknown_event_is_acknowledged(self, client):
        response = await _post(client, _event("customer.created", {"id": "cus_1"}))
        assert response.status_code == 200
        assert response.json() == {"received": True, "handled": False}


class TestCheckoutCompleted:
    """Tests for checkout.session.completed."""

    @pytest.mark.asyncio
    async def test_hour_pack_granted_once(self, client, seed_client, db_session):
        account = await seed_client()
        event = _event(
            "checkout.session.completed",
            {
                "id": "cs_pack_1",
                "amount_total": 65000,
                "metadata": {
                    "type": "hour-pack",
                    "packId": "MEDIUM",
                    "projectId": str(account.project.id),
                },
            },
        )

        first = await _post(client, event)
        replay = await _post(client, event)

        assert first.json()["handled"] is True
        assert replay.status_code == 200
        packs = (await db_session.execute(select(HourPack))).scalars().all()
        assert len(packs) == 1
        pack = packs[0]
        assert pack.plan_id == account.plan.id
        assert pack.hours == 10
        assert pack.hours_remaining == 10
        assert pack.cost == 65000
        assert pack.expires_at is not None
        assert not pack.never_expires

    @pytest.mark.asyncio
    async def test_premium_pack_never_expires(self, client, seed_client, db_session):
        account = await seed_client()
        await _post(
            client,
            _event(
                "checkout.session.completed",
                {
                    "id": "cs_pack_2",
                    "metadata": {
                        "type": "hour-pack",
                        "packId": "PREMIUM",
                        "projectId": str(account.project.id),
                    },
                },
            ),
        )

        pack = (await db_session.execute(select(HourPack))).scalar_one()
        assert pack.never_expires
        assert pack.expires_at is None
        assert pack.cost == 85000

    @pytest.mark.asyncio
    async def test_subscription_checkout_activates_plan(self, client, seed_client):
        account = await seed_client(subscribed=False)
        plan = account.plan
        plan.support_hours_used = 4.0

        response = await _post(
            client,
            _event(
                "checkout.session.completed",
                {
                    "id": "cs_sub_1",
                    "subscription": "sub_new",
                    "customer": "cus_new",
                    "metadata": {
                        "type": "maintenance-plan-subscription",
                        "maintenancePlanId": str(plan.id),
                        "tier": "ESSENTIALS",
                    },
                },
            ),
        )

        assert response.json()["handled"] is True
        assert plan.status == "ACTIVE"
        assert plan.stripe_subscription_id == "sub_new"
        assert plan.support_hours_used == 0
        assert account.project.stripe_subscription_id == "sub_new"
        assert account.project.maintenance_status == "ACTIVE"
        assert account.project.stripe_customer_id == "cus_new"

    @pytest.mark.asyncio
    async def test_invoice_checkout_records_payment(self, client, seed_client, db_session):
        account = await seed_client()
        invoice = Invoice(
            organization_id=account.org.id,
            number="INV-1001",
            title="Launch",
            amount=250000,
            status="SENT",
        )
        db_session.add(invoice)
        await db_session.flush()

        await _post(
            client,
            _event(
                "checkout.session.completed",
                {"id": "cs_inv", "payment_intent": "pi_1", "metadata": {"invoiceId": str(invoice.id)}},
            ),
        )

        assert invoice.status == "PAID"
        assert invoice.paid_at is not None
        payment = (await db_session.execute(select(Payment))).scalar_one()
        assert payment.amount == 250000
        assert payment.stripe_payment_intent_id == "pi_1"


class TestInvoiceAndSubscriptionEvents:
    """Tests for invoice.* and customer.subscription.* events."""

    @pytest.mark.asyncio
    async def test_invoice_lifecycle(self, client, seed_client, db_session):
        account = await seed_client()
        invoice = Invoice(
            organization_id=account.org.id,
            number="INV-1002",
            title="Retainer",
            amount=50000,
            stripe_invoice_id="in_123",
        )
        db_session.add(invoice)
        await db_session.flush()

        await _post(client, _event("invoice.finalized", {"id": "in_123"}))
        assert invoice.status == "SENT"
        assert invoice.sent_at is not None

        await _post(client, _event("invoice.voided", {"id": "in_123"}))
        assert invoice.status == "CANCELLED"

    @pytest.mark.asyncio
    async def test_invoice_paid_reactivates_plan(self, client, seed_client):
        account = await seed_client()
        account.plan.status = "PAST_DUE"

        await _post(client, _event("invoice.paid", {"id": "in_sub", "subscription": "sub_existing"}))

        assert account.plan.status == "ACTIVE"

    @pytest.mark.asyncio
    async def test_subscription_updated_maps_status(self, client, seed_client):
        account = await seed_client()

        await _post(
            client,
            _event(
                "customer.subscription.updated",
                {
                    "id": "sub_existing",
                    "status": "past_due",
                    "current_period_start": 1790000000,
                    "current_period_end": 1792592000,
                },
            ),
        )

        assert account.plan.status == "PAST_DUE"
        assert int(account.plan.current_period_end.timestamp()) == 1792592000

    @pytest.mark.asyncio
    async def test_subscription_deleted_cancels_plan(self, client, seed_client):
        account = await seed_client()
        account.project.stripe_subscription_id = "sub_existing"

        await _post(client, _event("customer.subscription.deleted", {"id": "sub_existing"}))

        assert account.plan.status == "CANCELLED"
        assert account.plan.stripe_subscription_id is None
        assert account.project.stripe_subscription_id is None
        assert account.project.maintenance_status == "CANCELLED"


def _sign(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signature = stripe.WebhookSignature._compute_signature(f"{timestamp}.{payload}", secret)
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def signed_gateway(client):
    """Route webhooks through the real SDK signature check."""
    from clientdesk.api.deps import get_stripe_gateway
    from clientdesk.main import app

    gateway = StripeGateway(api_key="sk_test_unused", webhook_secret=WEBHOOK_SECRET)
    app.dependency_overrides[get_stripe_gateway] = lambda: gateway
    return gateway


class TestSignedEvents:
    """Events verified by the Stripe SDK reach the handlers as plain dicts."""

    def test_construct_event_returns_dict(self):
        gateway = StripeGateway(api_key="sk_test_unused", webhook_secret=WEBHOOK_SECRET)
        payload = json.dumps(
            {
                "id": "evt_1",
                "object": "event",
                "type": "invoice.voided",
                "data": {"object": {"id": "in_9", "object": "invoice", "metadata": {"invoiceId": "x"}}},
            }
        )

        event = gateway.construct_event(payload.encode(), _sign(payload))

        assert type(event) is dict
        assert event["data"]["object"].get("metadata") == {"invoiceId": "x"}

    @pytest.mark.asyncio
    async def test_signed_invoice_voided(self, client, signed_gateway, seed_client, db_session):
        account = await seed_client()
        invoice = Invoice(
            organization_id=account.org.id,
            number="INV-2001",
            title="Hosting",
            amount=12000,
            status="SENT",
            stripe_invoice_id="in_signed",
        )
        db_session.add(invoice)
        await db_session.flush()
        payload = json.dumps(
            {
                "id": "evt_signed",
                "object": "event",
                "type": "invoice.voided",
                "data": {"object": {"id": "in_signed", "object": "invoice", "metadata": {}}},
            }
        )

        response = await client.post(
            URL,
            content=payload,
            headers={"stripe-signature": _sign(payload), "content-type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True, "handled": True}
        assert invoice.status == "CANCELLED"

    @pytest.mark.asyncio
    async def test_signed_subscription_deleted(self, client, signed_gateway, seed_client):
        account = await seed_client()
        payload = json.dumps(
            {
                "id": "evt_sub",
                "object": "event",
                "type": "customer.subscription.deleted",
                "data": {
                    "object": {
                        "id": "sub_existing",
                        "object": "subscription",
                        "status": "canceled",
                        "metadata": {"maintenancePlanId": str(account.plan.id)},
                    }
                },
            }
        )

        response = await client.post(
            URL,
            content=payload,
            headers={"stripe-signature": _sign(payload), "content-type": "application/json"},
        )

        assert response.status_code == 200
        assert account.plan.status == "CANCELLED"

    @pytest.mark.asyncio
    async def test_payload_altered_after_signing(self, client, signed_gateway):
        signed = json.dumps(_event("invoice.paid", {"id": "in_1"}))
        altered = json.dumps(_event("invoice.paid", {"id": "in_2"}))

        response = await client.post(
            URL,
            content=altered,
            headers={"stripe-signature": _sign(signed), "content-type": "application/json"},
        )

        assert response.status_code == 400
