"""
Security Module: Caller Identity and Response Hardening

Provides:
- JWT bearer token validation (tokens are issued by the external auth
  service; this module only verifies them)
- Caller identity resolution: authenticated user or anonymous session
- Environment-aware security headers

Architectural Pattern: Security Utilities + Cross-Cutting Concerns
"""

from datetime import datetime
from typing import Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from loguru import logger
from pydantic import BaseModel, Field

from config.settings import get_settings
from core.models import CallerIdentity

# JWT Configuration
ALGORITHM = "HS256"

SESSION_HEADER = "X-Session-ID"
SESSION_COOKIE = "session_id"

bearer_scheme = HTTPBearer(auto_error=False)


def get_security_headers() -> Dict[str, str]:
    """
    Get security headers with environment-specific CSP configuration.

    Returns:
        Dict[str, str]: Security headers dictionary with appropriate CSP
    """
    settings = get_settings()

    headers = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
        "Referrer-Policy": "no-referrer",
        "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
    }

    if settings.monitoring.enable_strict_csp:
        csp_directive = "default-src 'self'"
        if settings.monitoring.csp_report_only:
            headers["Content-Security-Policy-Report-Only"] = csp_directive
        else:
            headers["Content-Security-Policy"] = csp_directive
    else:
        # Relaxed CSP for development (hot-reload, dev tools)
        headers["Content-Security-Policy"] = (
            "default-src 'self' 'unsafe-inline' 'unsafe-eval' data: blob:"
        )

    return headers


class TokenData(BaseModel):
    """Claims this service reads from a bearer token."""

    user_id: str
    username: Optional[str] = None
    expires_at: Optional[datetime] = None
    scopes: list[str] = Field(default_factory=list)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_access_token(token: str) -> TokenData:
    """
    Decode and validate a JWT access token.

    Checks signature, expiry, audience and issuer, and requires a
    user_id claim.

    Raises:
        HTTPException: 401 if the token is invalid or expired
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.secret_key.get_secret_value(),
            algorithms=[ALGORITHM],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
        )
    except JWTError as e:
        logger.warning(f"JWT validation failed: {e}")
        raise _credentials_exception() from e

    user_id = payload.get("user_id")
    if not user_id:
        logger.error("JWT token missing required user_id claim")
        raise _credentials_exception()

    exp = payload.get("exp")
    return TokenData(
        user_id=str(user_id),
        username=payload.get("sub"),
        expires_at=datetime.utcfromtimestamp(exp) if exp else None,
        scopes=payload.get("scopes", []),
    )


def get_client_ip(request: Request) -> Optional[str]:
    """
    Extract client IP address from request.

    Args:
        request: FastAPI Request object

    Returns:
        Optional[str]: Client IP address
    """
    # Check for forwarded headers first (for reverse proxies)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    # Fallback to direct client IP
    return request.client.host if request.client else None


def session_marker(request: Request) -> Optional[str]:
    """Anonymous session marker: explicit header, then cookie, then client IP."""
    marker = request.headers.get(SESSION_HEADER) or request.cookies.get(SESSION_COOKIE)
    if marker:
        return marker.strip()[:128] or None
    ip = get_client_ip(request)
    return f"ip:{ip}" if ip else None


async def get_caller(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CallerIdentity:
    """
    FastAPI dependency resolving who is calling.

    A bearer token, when present, must be valid; without one the caller is
    an anonymous guest keyed by its session marker.
    """
    if credentials is not None:
        token_data = decode_access_token(credentials.credentials)
        return CallerIdentity.for_user(token_data.user_id)

    marker = session_marker(request)
    if marker is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Anonymous requests need an {SESSION_HEADER} header or {SESSION_COOKIE} cookie",
        )
    return CallerIdentity.for_session(marker)


async def get_authenticated_caller(
    caller: CallerIdentity = Depends(get_caller),
) -> CallerIdentity:
    """FastAPI dependency for routes that need an account, not a session."""
    if caller.is_anonymous:
        raise _credentials_exception()
    return caller
