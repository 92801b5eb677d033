"""
trophyroom.api.auth — Google OAuth2 sign-in + JWT issuance
============================================================

The identity provider for the app.  A successful sign-in creates the
caller's public profile if this is their first visit, then redirects to the
frontend with a bearer token.  Sign-out is client-side: the token is
discarded.
"""

from __future__ import annotations

import logging
import os
import secrets
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode

import httpx
import jwt
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from sqlalchemy import delete

from trophyroom.api.deps import (
    JWT_ALGORITHM,
    JWT_SECRET,
    Caller,
    get_current_user,
    get_engine,
)
from trophyroom.database.engine import get_session, run_db
from trophyroom.database.models import OAuthState
from trophyroom.services import profile_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
OAUTH_SCOPE = "openid email profile"

OAUTH_STATE_TTL_SECONDS = 600
TOKEN_TTL = timedelta(hours=12)


def _oauth_env() -> tuple[str, str, str, str]:
    """Return required OAuth env vars or raise a clear 500."""
    values = {
        name: os.getenv(name, "").strip()
        for name in (
            "GOOGLE_CLIENT_ID",
            "GOOGLE_CLIENT_SECRET",
            "GOOGLE_REDIRECT_URI",
            "FRONTEND_URL",
        )
    }
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise HTTPException(
            status_code=500,
            detail="Google OAuth is not configured: missing " + ", ".join(missing),
        )
    return (
        values["GOOGLE_CLIENT_ID"],
        values["GOOGLE_CLIENT_SECRET"],
        values["GOOGLE_REDIRECT_URI"],
        values["FRONTEND_URL"],
    )


def _admin_uids() -> frozenset[str]:
    raw = os.getenv("ADMIN_UIDS", "")
    return frozenset(uid.strip() for uid in raw.split(",") if uid.strip())


def issue_token(uid: str, *, name: str | None = None, admin: bool = False) -> str:
    """Sign a bearer token for *uid*."""
    payload = {
        "sub": uid,
        "name": name,
        "admin": admin,
        "exp": datetime.now(UTC) + TOKEN_TTL,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def _store_oauth_state(engine, state: str) -> None:
    """Persist an OAuth state token and prune stale entries."""
    cutoff = datetime.now(UTC) - timedelta(seconds=OAUTH_STATE_TTL_SECONDS)
    with get_session(engine) as session:
        session.execute(delete(OAuthState).where(OAuthState.created_at < cutoff))
        session.add(OAuthState(state=state))


def _consume_oauth_state(engine, state: str) -> bool:
    """Consume a one-time OAuth state token if valid and unexpired."""
    cutoff = datetime.now(UTC) - timedelta(seconds=OAUTH_STATE_TTL_SECONDS)
    with get_session(engine) as session:
        session.execute(delete(OAuthState).where(OAuthState.created_at < cutoff))
        row = session.get(OAuthState, state)
        if row is None:
            return False
        session.delete(row)
        return True


@router.get("/login")
async def login(engine=Depends(get_engine)):
    """Redirect to the Google consent screen."""
    client_id, _, redirect_uri, _ = _oauth_env()

    state = secrets.token_urlsafe(32)
    await run_db(_store_oauth_state, engine, state)

    query = urlencode({
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": OAUTH_SCOPE,
        "state": state,
        "prompt": "select_account",
    })
    return RedirectResponse(f"{GOOGLE_AUTH_URL}?{query}")


@router.get("/callback")
async def callback(code: str, state: str, engine=Depends(get_engine)):
    """Exchange the OAuth code, create the public profile on first sign-in, issue a JWT."""
    client_id, client_secret, redirect_uri, frontend_url = _oauth_env()

    if not await run_db(_consume_oauth_state, engine, state):
        raise HTTPException(400, "Invalid or expired OAuth state")

    transport = httpx.AsyncHTTPTransport(retries=1)
    async with httpx.AsyncClient(timeout=10, transport=transport) as client:
        token_resp = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": client_id,
                "client_secret": client_secret,
            },
        )
        if token_resp.status_code != 200:
            raise HTTPException(400, "OAuth token exchange failed")

        access_token = token_resp.json().get("access_token")
        if not access_token:
            raise HTTPException(400, "No access token returned")

        user_resp = await client.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    if user_resp.status_code != 200:
        raise HTTPException(400, "Failed to fetch Google user")

    info = user_resp.json()
    uid = info["sub"]
    name = info.get("name") or (info.get("email") or "").split("@")[0] or "Player"

    _, created = await run_db(
        profile_service.ensure_public_profile, engine, uid, name, info.get("picture"),
    )
    if created:
        logger.info("First sign-in for %s", uid)

    token = issue_token(uid, name=name, admin=uid in _admin_uids())
    return RedirectResponse(f"{frontend_url}/auth/callback?token={token}")


@router.get("/me")
async def me(caller: Caller = Depends(get_current_user)):
    """Return the current caller's identity."""
    return {
        "uid": caller.uid,
        "name": caller.display_name,
        "admin": caller.is_admin,
    }
