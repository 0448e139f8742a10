"""Sign-in, session refresh and sign-out routes."""

from __future__ import annotations

import logging
import secrets

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from clientdesk.api.deps import get_current_user, get_db, read_session_token
from clientdesk.api.errors import APIError
from clientdesk.auth import oauth
from clientdesk.auth.roles import dashboard_url
from clientdesk.auth.session import refresh_token_claims, safe_redirect
from clientdesk.auth.tokens import SESSION_COOKIE, decode_session_token, encode_session_token
from clientdesk.config import settings
from clientdesk.models.schemas import CurrentUser, SessionUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")

STATE_COOKIE = "clientdesk_oauth_state"
CALLBACK_COOKIE = "clientdesk_callback_url"


def _set_session_cookie(response, token: str) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=settings.session_days * 86400,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


def _public_claims(claims: dict) -> dict:
    return {k: v for k, v in claims.items() if k not in ("exp", "iat")}


@router.get("/signin/google")
async def signin_google(callbackUrl: str | None = None):
    """Redirect to Google's consent screen."""
    if not settings.google_client_id:
        raise APIError(500, "Google sign-in is not configured")
    state = secrets.token_urlsafe(24)
    response = RedirectResponse(oauth.authorization_url(state), status_code=302)
    response.set_cookie(STATE_COOKIE, state, max_age=600, httponly=True, samesite="lax")
    if callbackUrl:
        response.set_cookie(CALLBACK_COOKIE, callbackUrl, max_age=600, httponly=True, samesite="lax")
    return response


@router.get("/callback/google")
async def callback_google(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    session: AsyncSession = Depends(get_db),
):
    """Complete the OAuth flow, set the session cookie and redirect."""
    if error:
        raise APIError(400, f"Google sign-in failed: {error}")
    expected = request.cookies.get(STATE_COOKIE)
    if not code or not state or not expected or not secrets.compare_digest(state, expected):
        raise APIError(400, "Invalid OAuth state")

    try:
        profile = await oauth.exchange_code(code)
        user = await oauth.link_google_account(session, profile)
    except oauth.OAuthError as exc:
        logger.warning("Google sign-in failed: %s", exc)
        raise APIError(400, "Google sign-in failed", details=str(exc)) from exc

    claims = await refresh_token_claims(
        session, {"sub": str(user.id), "email": user.email, "name": user.name}
    )
    target = safe_redirect(request.cookies.get(CALLBACK_COOKIE) or dashboard_url(claims["role"]))

    response = RedirectResponse(target, status_code=302)
    _set_session_cookie(response, encode_session_token(claims))
    response.delete_cookie(STATE_COOKIE)
    response.delete_cookie(CALLBACK_COOKIE)
    logger.info("User %s signed in with Google", user.email)
    return response


@router.post("/refresh-session")
async def refresh_session(
    request: Request,
    update: SessionUpdate | None = None,
    session: AsyncSession = Depends(get_db),
):
    """Re-issue the session cookie with claims rebuilt from the database."""
    token = read_session_token(request)
    claims = decode_session_token(token) if token else None
    if claims is None:
        raise APIError(401, "Unauthorized")

    claims = await refresh_token_claims(
        session, claims, update.model_dump(exclude_none=True) if update else None
    )
    response = JSONResponse({"success": True, "user": _public_claims(claims)})
    _set_session_cookie(response, encode_session_token(claims))
    return response


@router.get("/session")
async def get_session_info(user: CurrentUser | None = Depends(get_current_user)):
    if user is None:
        return {"user": None}
    return {"user": _public_claims(user.claims), "dashboardUrl": dashboard_url(user.role)}


@router.post("/signout")
async def signout():
    response = JSONResponse({"success": True})
    response.delete_cookie(SESSION_COOKIE, path="/")
    return response
