"""Shared test fixtures for the ClientDesk test suite."""

from __future__ import annotations

import os

# Settings are read at import time; point them at SQLite before anything loads.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["CLIENTDESK_ENV"] = "test"
os.environ["OWNER_EMAILS"] = ""

import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
import stripe
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from clientdesk.billing.checkout import apply_tier
from clientdesk.billing.stripe_gateway import StripeGateway
from clientdesk.billing.tiers import get_tier
from clientdesk.llm.base import LLMResponse
from clientdesk.models.db import (
    Base,
    MaintenancePlan,
    Organization,
    OrganizationMember,
    Project,
    User,
)
from clientdesk.models.schemas import CurrentUser


class FakeStripeGateway(StripeGateway):
    """Records calls instead of talking to Stripe."""

    def __init__(self, configured: bool = True, webhook_secret: str = "whsec_test"):
        super().__init__(api_key="sk_test_fake" if configured else "", webhook_secret=webhook_secret)
        self.calls: list[tuple[str, dict]] = []
        self.checkout_error: Exception | None = None

    async def create_customer(self, email, name, metadata):
        self.calls.append(("create_customer", {"email": email, "name": name, "metadata": metadata}))
        return {"id": "cus_test123"}

    async def cancel_subscription(self, subscription_id):
        self.calls.append(("cancel_subscription", {"id": subscription_id}))
        return {"id": subscription_id, "status": "canceled"}

    async def create_checkout_session(self, **params):
        self.calls.append(("create_checkout_session", params))
        if self.checkout_error is not None:
            raise self.checkout_error
        return {"id": "cs_test_123", "url": "https://checkout.stripe.test/cs_test_123"}

    def construct_event(self, payload, signature):
        if signature != "valid":
            raise stripe.SignatureVerificationError("No signatures found", signature)
        return json.loads(payload)

    def called(self, name: str) -> list[dict]:
        return [params for call, params in self.calls if call == name]


class AuthState:
    """Mutable holder for the user the API should treat as signed in."""

    user: CurrentUser | None = None


# ── Database ──────────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def seed_client(db_session, now):
    """Factory creating a user, organization, project and maintenance plan."""

    async def _seed(
        tier: str = "ESSENTIALS",
        subscribed: bool = True,
        email: str = "client@example.com",
        with_plan: bool = True,
        role: str = "CLIENT",
    ) -> SimpleNamespace:
        user = User(email=email, name="Casey Client", role=role)
        org = Organization(name="Riverside Recovery", slug=f"riverside-{email.split('@')[0]}")
        db_session.add_all([user, org])
        await db_session.flush()
        db_session.add(OrganizationMember(organization_id=org.id, user_id=user.id, role="OWNER"))
        project = Project(organization_id=org.id, name="Riverside Website", status="ACTIVE")
        db_session.add(project)
        await db_session.flush()

        plan = None
        if with_plan:
            plan = MaintenancePlan(project_id=project.id, status="ACTIVE" if subscribed else "PAUSED")
            apply_tier(plan, get_tier(tier))
            plan.current_period_start = now - timedelta(days=5)
            plan.current_period_end = now + timedelta(days=25)
            if subscribed:
                plan.stripe_subscription_id = "sub_existing"
            db_session.add(plan)
            await db_session.flush()

        current = CurrentUser(id=user.id, email=user.email, name=user.name, role=role, claims={})
        return SimpleNamespace(user=user, org=org, project=project, plan=plan, current=current)

    return _seed


# ── Application ───────────────────────────────────────────────────────────────


@pytest.fixture
def stripe_gateway():
    return FakeStripeGateway()


@pytest.fixture
def auth_state():
    return AuthState()


@pytest.fixture
def mock_llm():
    """Create a mock LLM that returns predictable responses."""
    llm = AsyncMock()
    llm.model = "test-model"
    llm.available = True
    llm.complete.return_value = LLMResponse(
        content="We have three maintenance plans.",
        model="test-model",
        usage={"prompt_tokens": 10, "completion_tokens": 20},
    )
    return llm


@pytest_asyncio.fixture
async def client(db_session, stripe_gateway, auth_state, mock_llm):
    """HTTP client over the ASGI app with storage, auth and Stripe overridden."""
    from clientdesk.api.deps import get_current_user, get_db, get_stripe_gateway
    from clientdesk.api.routes.chat import get_chat_assistant
    from clientdesk.assistant.chat import ChatAssistant
    from clientdesk.main import app

    async def _db():
        yield db_session

    async def _current_user():
        return auth_state.user

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_current_user] = _current_user
    app.dependency_overrides[get_stripe_gateway] = lambda: stripe_gateway
    app.dependency_overrides[get_chat_assistant] = lambda: ChatAssistant(llm=mock_llm)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
