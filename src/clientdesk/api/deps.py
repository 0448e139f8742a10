"""FastAPI dependency injection helpers."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable, Iterable

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from clientdesk.api.errors import APIError
from clientdesk.auth.roles import ADMIN_ROLES, BOARD_ROLES, STAFF_ROLES, normalize_role
from clientdesk.auth.session import refresh_token_claims
from clientdesk.auth.tokens import SESSION_COOKIE, decode_session_token
from clientdesk.billing.stripe_gateway import StripeGateway
from clientdesk.billing.stripe_gateway import get_stripe_gateway as _get_stripe_gateway
from clientdesk.db.session import get_session
from clientdesk.models.schemas import CurrentUser

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async for session in get_session():
        yield session


def get_stripe_gateway() -> StripeGateway:
    return _get_stripe_gateway()


def read_session_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = None,
) -> str | None:
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(SESSION_COOKIE)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
    session: AsyncSession = Depends(get_db),
) -> CurrentUser | None:
    """Resolve the session cookie (or bearer token) into a refreshed user.

    Returns None for anonymous requests; use :func:`require_user` when a
    route needs a signed-in caller.
    """
    token = read_session_token(request, credentials)
    if not token:
        return None
    claims = decode_session_token(token)
    if claims is None:
        return None

    claims = await refresh_token_claims(session, claims)
    request.state.session_claims = claims
    return CurrentUser(
        id=claims.get("sub"),
        email=claims.get("email"),
        name=claims.get("name"),
        role=normalize_role(claims.get("role")),
        claims=claims,
    )


async def require_user(
    user: CurrentUser | None = Depends(get_current_user),
) -> CurrentUser:
    if user is None:
        raise APIError(401, "Unauthorized")
    return user


def require_roles(roles: Iterable[str]) -> Callable:
    """Build a dependency that admits only the given roles (401/403 otherwise)."""
    allowed = frozenset(roles)

    async def _check(user: CurrentUser = Depends(require_user)) -> CurrentUser:
        if user.role not in allowed:
            raise APIError(403, "Forbidden")
        return user

    return _check


require_admin = require_roles(ADMIN_ROLES)
require_staff = require_roles(STAFF_ROLES)
require_board = require_roles(BOARD_ROLES)
