"""Tests for session claim refresh, redirects and the access context."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from clientdesk.auth.access import get_access_context
from clientdesk.auth.session import refresh_token_claims, safe_redirect
from clientdesk.config import settings
from clientdesk.db.retry import is_connection_error, retry_database_operation
from clientdesk.models.db import Account, Lead, Project, User


class TestRefreshTokenClaims:
    """Tests for refresh_token_claims."""

    @pytest.mark.asyncio
    async def test_database_values_win_over_update(self, db_session):
        user = User(
            email="pat@example.com",
            role="STAFF",
            name="Pat",
            tos_accepted_at=datetime.now(timezone.utc),
            password_hash="x",
        )
        db_session.add(user)
        await db_session.flush()

        claims = await refresh_token_claims(
            db_session,
            {"email": "Pat@Example.com", "role": "CLIENT", "picture": "big"},
            update={"role": "CEO", "tosAccepted": False, "profileDone": True},
        )

        assert claims["role"] == "STAFF"
        assert claims["tosAccepted"] is True
        assert claims["profileDone"] is False
        assert claims["needsPassword"] is False
        assert claims["sub"] == str(user.id)
        assert "picture" not in claims

    @pytest.mark.asyncio
    async def test_owner_email_promoted(self, db_session, monkeypatch):
        monkeypatch.setattr(settings, "owner_emails", "founder@example.com")
        user = User(email="founder@example.com", role="CLIENT")
        db_session.add(user)
        await db_session.flush()

        claims = await refresh_token_claims(db_session, {"email": "founder@example.com"})

        assert claims["role"] == "CEO"
        assert claims["tosAccepted"] and claims["profileDone"] and claims["emailVerified"]
        assert user.role == "CEO"

    @pytest.mark.asyncio
    async def test_google_account_marks_email_verified(self, db_session):
        user = User(email="g@example.com")
        db_session.add(user)
        await db_session.flush()
        db_session.add(Account(user_id=user.id, provider="google", provider_account_id="123"))
        await db_session.flush()

        claims = await refresh_token_claims(db_session, {"email": "g@example.com"})

        assert claims["emailVerified"] is True
        assert claims["needsPassword"] is True

    @pytest.mark.asyncio
    async def test_unknown_user_gets_defaults(self, db_session):
        claims = await refresh_token_claims(db_session, {"email": "new@example.com", "tosAccepted": "yes"})
        assert claims["role"] == "CLIENT"
        assert claims["tosAccepted"] is False

    @pytest.mark.asyncio
    async def test_database_failure_keeps_session(self, db_session):
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        with patch("clientdesk.auth.session.retry_database_operation", failing):
            claims = await refresh_token_claims(
                db_session, {"email": "pat@example.com", "role": "BOARD", "profileDone": True}
            )
        assert claims["role"] == "BOARD"
        assert claims["profileDone"] is True
        assert claims["tosAccepted"] is False

    @pytest.mark.asyncio
    async def test_posted_role_ignored_without_user_row(self, db_session):
        claims = await refresh_token_claims(
            db_session, {"email": "gone@example.com", "role": "CLIENT"}, update={"role": "CEO"}
        )
        assert claims["role"] == "CLIENT"

    @pytest.mark.asyncio
    async def test_posted_role_ignored_when_database_fails(self, db_session):
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        with patch("clientdesk.auth.session.retry_database_operation", failing):
            claims = await refresh_token_claims(
                db_session,
                {"email": "pat@example.com", "role": "CLIENT"},
                update={"role": "CEO", "profileDone": True},
            )
        assert claims["role"] == "CLIENT"
        assert claims["profileDone"] is True


class TestSafeRedirect:
    """Tests for safe_redirect."""

    BASE = "https://portal.example.org"

    @pytest.mark.parametrize(
        "url,expected",
        [
            (None, "https://portal.example.org"),
            ("/client/hours", "https://portal.example.org/client/hours"),
            ("https://portal.example.org/admin", "https://portal.example.org/admin"),
            ("https://evil.example.com/", "https://portal.example.org"),
            ("//evil.example.com", "https://portal.example.org"),
        ],
    )
    def test_redirects(self, url, expected):
        assert safe_redirect(url, self.BASE) == expected


class TestRetryDatabaseOperation:
    """Tests for retry_database_operation."""

    @pytest.mark.asyncio
    async def test_connection_error_retried(self):
        op = AsyncMock(side_effect=[OperationalError("select 1", {}, Exception("ECONNREFUSED")), "ok"])
        with patch("clientdesk.db.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await retry_database_operation(op) == "ok"
        assert op.await_count == 2
        sleep.assert_awaited_once_with(0.5)

    @pytest.mark.asyncio
    async def test_other_errors_raise_immediately(self):
        op = AsyncMock(side_effect=ValueError("bad input"))
        with pytest.raises(ValueError):
            await retry_database_operation(op)
        assert op.await_count == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self):
        op = AsyncMock(side_effect=ConnectionError("connection reset"))
        with patch("clientdesk.db.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(ConnectionError):
                await retry_database_operation(op, retries=3)
        assert op.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]

    def test_is_connection_error(self):
        assert is_connection_error(Exception("Can't reach database server at db:5432"))
        assert not is_connection_error(KeyError("id"))


class TestAccessContext:
    """Tests for get_access_context."""

    @pytest.mark.asyncio
    async def test_memberships_and_lead_projects(self, db_session, seed_client):
        account = await seed_client()
        lead = Lead(name="Casey", email="client@example.com")
        db_session.add(lead)
        await db_session.flush()
        other = Project(name="From lead", lead_id=lead.id)
        db_session.add(other)
        await db_session.flush()

        ctx = await get_access_context(db_session, account.user.id, "Client@Example.com")

        assert ctx.organization_ids == [account.org.id]
        assert ctx.lead_project_ids == [other.id]
        assert not ctx.is_empty

    @pytest.mark.asyncio
    async def test_empty_for_stranger(self, db_session):
        ctx = await get_access_context(db_session, None, "nobody@example.com")
        assert ctx.is_empty
