"""Tests for role helpers and signed session tokens."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from clientdesk.auth.roles import dashboard_url, is_admin, is_client, is_staff_or_admin, normalize_role
from clientdesk.auth.tokens import decode_session_token, encode_session_token
from clientdesk.config import settings


class TestRoles:
    """Tests for role normalization and routing."""

    @pytest.mark.parametrize(
        "role,expected",
        [(None, "CLIENT"), ("", "CLIENT"), ("ceo", "CEO"), ("Board", "BOARD"), ("WIZARD", "CLIENT")],
    )
    def test_normalize_role(self, role, expected):
        assert normalize_role(role) == expected

    def test_predicates(self):
        assert is_admin("CFO")
        assert not is_admin("STAFF")
        assert is_staff_or_admin("outreach")
        assert not is_staff_or_admin("BOARD")
        assert is_client(None)

    @pytest.mark.parametrize(
        "role,url",
        [("ADMIN", "/admin"), ("CEO", "/admin"), ("BOARD", "/board"), ("ALUMNI", "/community"), ("CLIENT", "/client")],
    )
    def test_dashboard_url(self, role, url):
        assert dashboard_url(role) == url

    def test_staff_are_sent_to_client_dashboard(self):
        assert dashboard_url("FRONTEND") == "/client"


class TestSessionTokens:
    """Tests for encode_session_token / decode_session_token."""

    def test_round_trip_drops_picture(self):
        token = encode_session_token(
            {"sub": "u1", "email": "a@example.com", "role": "CLIENT", "picture": "data:image/png;base64,AAAA"}
        )
        claims = decode_session_token(token)
        assert claims["sub"] == "u1"
        assert claims["email"] == "a@example.com"
        assert "picture" not in claims
        assert claims["exp"] - claims["iat"] == settings.session_days * 86400

    def test_tampered_token_rejected(self):
        token = encode_session_token({"sub": "u1"})
        forged = jwt.encode({"sub": "u1", "role": "CEO"}, "another-secret", algorithm="HS256")
        assert decode_session_token(forged) is None
        assert decode_session_token("not-a-token") is None
        assert decode_session_token(token) is not None

    def test_expired_token_rejected(self):
        issued = datetime.now(timezone.utc) - timedelta(days=settings.session_days + 1)
        token = encode_session_token({"sub": "u1"}, now=issued)
        assert decode_session_token(token) is None
