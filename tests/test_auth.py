"""
Tests for JWT verification - app/core/auth.py
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import jwt as pyjwt
import pytest

from app.core.auth import create_access_token, verify_token
from app.core.config import settings


class TestCreateAndVerify:

    @pytest.mark.unit
    def test_round_trip(self):
        token = create_access_token(42, "deputy")
        payload = verify_token(token)

        assert payload is not None
        assert payload.member_id == 42
        assert payload.role == "deputy"

    @pytest.mark.unit
    def test_expired_token_is_rejected(self):
        token = create_access_token(42, "member", expires_minutes=-1)
        assert verify_token(token) is None

    @pytest.mark.unit
    def test_wrong_secret_is_rejected(self):
        token = pyjwt.encode(
            {"member_id": 1, "role": "director", "exp": int((datetime.now(timezone.utc) + timedelta(minutes=5)).timestamp())},
            "some-other-secret-that-is-long-enough",
            algorithm="HS256",
        )
        assert verify_token(token) is None

    @pytest.mark.unit
    def test_payload_without_member_id_is_rejected(self):
        token = pyjwt.encode(
            {"sub": "1", "role": "member", "exp": int((datetime.now(timezone.utc) + timedelta(minutes=5)).timestamp())},
            settings.JWT_SECRET_KEY,
            algorithm="HS256",
        )
        assert verify_token(token) is None

    @pytest.mark.unit
    def test_garbage(self):
        assert verify_token("not-a-jwt") is None


class TestMissingSecret:

    @pytest.mark.unit
    def test_issuing_requires_secret(self):
        with patch.object(settings, "JWT_SECRET_KEY", ""):
            with pytest.raises(ValueError, match="JWT_SECRET_KEY"):
                create_access_token(1, "member")

    @pytest.mark.unit
    def test_verification_fails_closed(self):
        token = create_access_token(1, "member")
        with patch.object(settings, "JWT_SECRET_KEY", ""):
            assert verify_token(token) is None
