"""Session claim refresh.

Claims in the session cookie are a cache. On every authenticated request
they are rebuilt from the database so that role changes and onboarding
progress take effect immediately. When the database is unreachable the
cached values are kept so active sessions survive an outage. Lookups run in
savepoints so a failed query leaves the request's transaction usable.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urljoin, urlparse

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clientdesk.auth.roles import DEFAULT_ROLE, normalize_role
from clientdesk.config import settings
from clientdesk.db.retry import retry_database_operation
from clientdesk.models.db import Account, User

logger = logging.getLogger(__name__)

FLAG_CLAIMS = ("tosAccepted", "profileDone", "questionnaireCompleted", "emailVerified", "needsPassword")


def _fill_defaults(claims: dict[str, Any]) -> dict[str, Any]:
    """Fill only the claims that are missing or malformed."""
    if not isinstance(claims.get("role"), str) or not claims.get("role"):
        claims["role"] = DEFAULT_ROLE
    for flag in FLAG_CLAIMS:
        if not isinstance(claims.get(flag), bool):
            claims[flag] = False
    return claims


def _claims_from_user(claims: dict[str, Any], user: User) -> dict[str, Any]:
    claims["sub"] = str(user.id)
    claims["role"] = normalize_role(user.role)
    claims["tosAccepted"] = user.tos_accepted_at is not None
    claims["profileDone"] = user.profile_done_at is not None
    claims["questionnaireCompleted"] = user.questionnaire_completed_at is not None
    claims["emailVerified"] = user.email_verified_at is not None
    claims["needsPassword"] = not user.password_hash
    if user.name:
        claims["name"] = user.name
    return claims


async def refresh_token_claims(
    session: AsyncSession,
    claims: dict[str, Any],
    update: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Rebuild session claims from the database.

    ``update`` carries values posted by onboarding pages. They are merged
    first, but anything stored in the database wins. A posted ``role`` is
    ignored: roles are only ever read from the user row.
    """
    claims = dict(claims)
    claims.pop("picture", None)
    claims.pop("image", None)

    email = (claims.get("email") or "").lower()
    if not email:
        logger.warning("Session refresh without an email, using default claims")
        return _fill_defaults(claims)

    if update:
        if update.get("name"):
            claims["name"] = update["name"]
        for flag in FLAG_CLAIMS:
            if flag in update:
                claims[flag] = bool(update[flag])

    try:
        user = await retry_database_operation(
            lambda: _load_user(session, email)
        )
        if user is None:
            # OAuth sign-in may not have created the row yet.
            claims["role"] = DEFAULT_ROLE
            return _fill_defaults(claims)

        now = datetime.now(timezone.utc)
        has_google = await retry_database_operation(
            lambda: _has_provider_account(session, user.id, "google")
        )
        async with session.begin_nested():
            if has_google and user.email_verified_at is None:
                user.email_verified_at = now

            if email in settings.owner_email_list:
                user.role = "CEO"
                user.tos_accepted_at = user.tos_accepted_at or now
                user.profile_done_at = user.profile_done_at or now
                user.email_verified_at = user.email_verified_at or now

        return _claims_from_user(claims, user)
    except Exception as exc:
        logger.error("Failed to refresh session claims for %s: %s", email, exc)
        return _fill_defaults(claims)


async def _load_user(session: AsyncSession, email: str) -> User | None:
    async with session.begin_nested():
        result = await session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()


async def _has_provider_account(session: AsyncSession, user_id, provider: str) -> bool:
    async with session.begin_nested():
        result = await session.execute(
            select(Account.id).where(Account.user_id == user_id, Account.provider == provider)
        )
        return result.first() is not None


def safe_redirect(url: str | None, base_url: str | None = None) -> str:
    """Restrict a post-login redirect to the application's own origin."""
    base = (base_url or settings.absolute_base_url).rstrip("/")
    if not url:
        return base
    if url.startswith("/") and not url.startswith("//"):
        return urljoin(base + "/", url.lstrip("/"))
    target = urlparse(url)
    origin = urlparse(base)
    if (target.scheme, target.netloc) == (origin.scheme, origin.netloc):
        return url
    return base
