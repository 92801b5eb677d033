"""
trophyroom.api.deps — FastAPI dependency injection
====================================================
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from trophyroom.config import TrophyConfig, default_config, load_config
from trophyroom.database.engine import create_db_engine
from trophyroom.errors import CallableError, ErrorCode

logger = logging.getLogger(__name__)

_WEAK_SECRETS = frozenset({
    "trophyroom-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> TrophyConfig:
    path = os.getenv("TROPHYROOM_CONFIG", "config.yaml")
    try:
        return load_config(path)
    except FileNotFoundError:
        logger.warning("No config file at %s — using defaults", path)
        return default_config()


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Caller:
    """The bearer identity attached to a request."""
    uid: str
    is_admin: bool = False
    display_name: str | None = None


def decode_token(token: str) -> Caller:
    """Decode a bearer JWT.  Raises :class:`InvalidTokenError` on any problem."""
    payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    uid = payload.get("sub")
    if not uid:
        raise InvalidTokenError("token has no subject")
    return Caller(
        uid=str(uid),
        is_admin=payload.get("admin") is True,
        display_name=payload.get("name"),
    )


def get_optional_caller(
    authorization: Annotated[str | None, Header()] = None,
) -> Caller | None:
    """Return the caller, ``None`` when no token was sent.

    A malformed or expired token is ``unauthenticated`` rather than anonymous.
    """
    if not authorization:
        return None
    if not authorization.startswith("Bearer "):
        raise CallableError(ErrorCode.UNAUTHENTICATED, "Malformed Authorization header.")
    try:
        return decode_token(authorization.split(" ", 1)[1])
    except InvalidTokenError:
        raise CallableError(ErrorCode.UNAUTHENTICATED, "Invalid or expired token.")


def get_current_user(
    caller: Annotated[Caller | None, Depends(get_optional_caller)],
) -> Caller:
    if caller is None:
        raise CallableError(ErrorCode.UNAUTHENTICATED, "Sign in first.")
    return caller


def get_current_admin(
    caller: Annotated[Caller | None, Depends(get_optional_caller)],
) -> Caller:
    """Admin-only guard for plain REST routes (401 / 403)."""
    if caller is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    if not caller.is_admin:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return caller
