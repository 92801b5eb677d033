"""
tests/test_jwt_startup — JWT Secret Validation at Startup
===========================================================
The API must refuse to start when JWT_SECRET is missing, blank, too short,
or a known weak default.
"""

from __future__ import annotations

import os
from unittest.mock import patch

import jwt
import pytest

from trophyroom.api import deps
from trophyroom.api.auth import issue_token


class TestJWTSecretValidation:
    """_load_jwt_secret() runs against a patched environment; the module is not reloaded."""

    def test_rejects_missing_secret(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("JWT_SECRET", None)
            with pytest.raises(RuntimeError, match="JWT_SECRET environment variable is not set"):
                deps._load_jwt_secret()

    def test_rejects_empty_secret(self):
        with patch.dict(os.environ, {"JWT_SECRET": ""}):
            with pytest.raises(RuntimeError, match="not set"):
                deps._load_jwt_secret()

    @pytest.mark.parametrize("secret", ["trophyroom-dev-secret-change-me", "change-me"])
    def test_rejects_known_weak_default(self, secret):
        with patch.dict(os.environ, {"JWT_SECRET": secret}):
            with pytest.raises(RuntimeError, match="known weak default"):
                deps._load_jwt_secret()

    def test_rejects_short_secret(self):
        with patch.dict(os.environ, {"JWT_SECRET": "tooshort"}):
            with pytest.raises(RuntimeError, match="too short"):
                deps._load_jwt_secret()

    def test_accepts_strong_secret(self):
        good_secret = "a" * 64
        with patch.dict(os.environ, {"JWT_SECRET": good_secret}):
            assert deps._load_jwt_secret() == good_secret


class TestIssuedTokens:
    def test_claims(self):
        token = issue_token("alice", name="Ana", admin=True)
        claims = jwt.decode(token, deps.JWT_SECRET, algorithms=[deps.JWT_ALGORITHM])
        assert claims["sub"] == "alice"
        assert claims["name"] == "Ana"
        assert claims["admin"] is True
        assert "exp" in claims

    def test_wrong_secret_rejected(self):
        token = jwt.encode({"sub": "alice"}, "b" * 64, algorithm="HS256")
        with pytest.raises(jwt.InvalidTokenError):
            jwt.decode(token, deps.JWT_SECRET, algorithms=[deps.JWT_ALGORITHM])
