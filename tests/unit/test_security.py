"""
Unit Tests for Caller Identity Resolution
=========================================

- Valid bearer tokens resolve to an authenticated caller
- Invalid, expired or mis-issued tokens are rejected with 401
- Anonymous callers are keyed by header, cookie or client IP
"""

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from config.settings import get_settings
from security import (
    ALGORITHM,
    SESSION_HEADER,
    decode_access_token,
    get_caller,
    get_security_headers,
    session_marker,
)


def make_token(**overrides) -> str:
    settings = get_settings()
    claims = {
        "sub": "ada",
        "user_id": "42",
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "exp": datetime.utcnow() + timedelta(minutes=5),
    }
    claims.update(overrides)
    secret = claims.pop("_secret", settings.secret_key.get_secret_value())
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def fake_request(headers=None, cookies=None, client_host="203.0.113.7"):
    return SimpleNamespace(
        headers=headers or {},
        cookies=cookies or {},
        client=SimpleNamespace(host=client_host) if client_host else None,
    )


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestDecodeAccessToken:
    def test_valid_token(self):
        data = decode_access_token(make_token())

        assert data.user_id == "42"
        assert data.username == "ada"
        assert data.expires_at is not None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"exp": datetime.utcnow() - timedelta(minutes=1)},
            {"iss": "someone-else"},
            {"aud": "other-api"},
            {"_secret": "not-the-signing-key-at-all-0123456789"},
            {"user_id": None},
        ],
    )
    def test_rejected_tokens(self, overrides):
        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(make_token(**overrides))
        assert exc_info.value.status_code == 401


class TestSessionMarker:
    def test_header_wins(self):
        request = fake_request(headers={SESSION_HEADER: " abc "}, cookies={"session_id": "cookie"})
        assert session_marker(request) == "abc"

    def test_cookie_second(self):
        assert session_marker(fake_request(cookies={"session_id": "cookie"})) == "cookie"

    def test_forwarded_ip_last(self):
        request = fake_request(headers={"X-Forwarded-For": "198.51.100.1, 10.0.0.1"})
        assert session_marker(request) == "ip:198.51.100.1"

    def test_nothing_to_key_on(self):
        assert session_marker(fake_request(client_host=None)) is None


class TestGetCaller:
    @pytest.mark.asyncio
    async def test_authenticated_caller(self):
        caller = await get_caller(fake_request(), bearer(make_token()))

        assert caller.user_id == "42"
        assert caller.is_anonymous is False
        assert caller.subject_id == "user:42"

    @pytest.mark.asyncio
    async def test_anonymous_caller(self):
        caller = await get_caller(fake_request(headers={SESSION_HEADER: "s-1"}), None)

        assert caller.is_anonymous is True
        assert caller.subject_id == "guest:s-1"

    @pytest.mark.asyncio
    async def test_invalid_token_is_not_downgraded_to_guest(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_caller(fake_request(), bearer("not-a-jwt"))
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_unidentifiable_anonymous_caller(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_caller(fake_request(client_host=None), None)
        assert exc_info.value.status_code == 400


def test_strict_csp_header():
    headers = get_security_headers()

    assert headers["Content-Security-Policy"] == "default-src 'self'"
    assert headers["X-Frame-Options"] == "DENY"
