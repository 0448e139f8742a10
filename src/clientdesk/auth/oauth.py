"""Google OAuth (authorization-code flow) and account linking."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import urlencode

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clientdesk.config import settings
from clientdesk.models.db import Account, User

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


class OAuthError(Exception):
    """The provider rejected the exchange or returned unusable data."""


@dataclass
class GoogleProfile:
    sub: str
    email: str
    name: str | None
    email_verified: bool
    access_token: str
    refresh_token: str | None = None
    expires_at: int | None = None


def redirect_uri() -> str:
    # Must match the URI registered with Google exactly.
    return f"{settings.absolute_base_url}/api/auth/callback/google"


def authorization_url(state: str) -> str:
    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": redirect_uri(),
        "response_type": "code",
        "scope": "openid email profile",
        "state": state,
        "access_type": "offline",
        "prompt": "select_account",
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def exchange_code(code: str, client: httpx.AsyncClient | None = None) -> GoogleProfile:
    """Trade an authorization code for tokens and the user's profile."""
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=15.0)
    try:
        token_resp = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": settings.google_client_id,
                "client_secret": settings.google_client_secret,
                "redirect_uri": redirect_uri(),
                "grant_type": "authorization_code",
            },
        )
        if token_resp.status_code != 200:
            raise OAuthError(f"Token exchange failed ({token_resp.status_code}): {token_resp.text}")
        tokens = token_resp.json()

        info_resp = await client.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {tokens['access_token']}"},
        )
        if info_resp.status_code != 200:
            raise OAuthError(f"Userinfo request failed ({info_resp.status_code})")
        info = info_resp.json()
    except httpx.HTTPError as exc:
        raise OAuthError(f"Could not reach Google: {exc}") from exc
    finally:
        if owns_client:
            await client.aclose()

    if not info.get("email"):
        raise OAuthError("Google profile has no email address")

    expires_in = tokens.get("expires_in")
    return GoogleProfile(
        sub=str(info["sub"]),
        email=info["email"].lower(),
        name=info.get("name"),
        email_verified=bool(info.get("email_verified")),
        access_token=tokens["access_token"],
        refresh_token=tokens.get("refresh_token"),
        expires_at=int(datetime.now(timezone.utc).timestamp()) + int(expires_in) if expires_in else None,
    )


async def link_google_account(session: AsyncSession, profile: GoogleProfile) -> User:
    """Find or create the user for *profile* and attach the Google account.

    Existing users are matched by email so a password account and a Google
    sign-in with the same address share one user.
    """
    now = datetime.now(timezone.utc)
    result = await session.execute(select(User).where(User.email == profile.email))
    user = result.scalar_one_or_none()

    if user is None:
        is_owner = profile.email in settings.owner_email_list
        user = User(
            email=profile.email,
            name=profile.name,
            role="CEO" if is_owner else "CLIENT",
            email_verified_at=now,
            tos_accepted_at=now if is_owner else None,
            profile_done_at=now if is_owner else None,
        )
        session.add(user)
        await session.flush()
        logger.info("Created user %s from Google sign-in", profile.email)

    result = await session.execute(
        select(Account).where(
            Account.provider == "google", Account.provider_account_id == profile.sub
        )
    )
    account = result.scalar_one_or_none()
    if account is None:
        account = Account(user_id=user.id, provider="google", provider_account_id=profile.sub)
        session.add(account)
        logger.info("Linked Google account to user %s", user.id)
    elif account.user_id != user.id:
        raise OAuthError("This Google account is linked to a different user")

    account.access_token = profile.access_token
    account.refresh_token = profile.refresh_token or account.refresh_token
    account.expires_at = profile.expires_at
    if user.email_verified_at is None:
        user.email_verified_at = now
    await session.flush()
    return user
