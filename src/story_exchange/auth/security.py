"""
JWT Verification & Access Control

This module is responsible for:

1. Verifying bearer JWTs issued by the backing auth service.
2. Producing a validated `UserContext` for downstream routes.
3. Guarding moderator-only routes with the admin API key.

Security Model
--------------
- Tokens are signed with a secret shared with the auth service.
- The audience must match the configured audience (``authenticated``).
- `sub` carries the user's UUID and is required.
- Optional-auth routes treat a *missing* token as anonymous, but an
  *invalid* token is always rejected.
"""

from __future__ import annotations

import uuid
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, Query, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..config import settings
from .models import UserContext


# ---------------------------------------------------------------------
# Security Schemes
# ---------------------------------------------------------------------

security = HTTPBearer(auto_error=True)
optional_security = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class JWTVerificationError(RuntimeError):
    """Raised internally when token verification cannot proceed."""


# ---------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------

def _validate_jwt_config() -> None:
    if not settings.auth_jwt_secret.get_secret_value():
        raise JWTVerificationError("Missing auth_jwt_secret in configuration.")
    if not settings.jwt_algo:
        raise JWTVerificationError("Missing jwt_algo in configuration.")


def _decode_token(token: str) -> dict:
    """
    Decode and validate an auth service JWT.

    Raises
    ------
    Various JWT-related exceptions, which the public wrapper handles.
    """
    _validate_jwt_config()

    return jwt.decode(
        token,
        settings.auth_jwt_secret.get_secret_value(),
        algorithms=[settings.jwt_algo],
        audience=settings.auth_jwt_audience,
        options={"require": ["sub", "exp", "aud"]},
    )


def _user_from_token(token: str) -> UserContext:
    try:
        payload = _decode_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired.",
        )
    except jwt.InvalidAudienceError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token audience.",
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or malformed token.",
        )
    except JWTVerificationError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="JWT verification configuration error.",
        )

    try:
        user_id = uuid.UUID(str(payload["sub"]))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token 'sub' claim is not a valid user id.",
        )

    return UserContext(
        user_id=user_id,
        email=payload.get("email"),
        role=payload.get("role") or "authenticated",
    )


# ---------------------------------------------------------------------
# Public Authentication Dependencies
# ---------------------------------------------------------------------

def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(security),
) -> UserContext:
    """
    Verify the bearer token and construct a UserContext.

    Raises
    ------
    HTTPException(401) for invalid or expired tokens.
    """
    return _user_from_token(creds.credentials)


def get_optional_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
) -> Optional[UserContext]:
    """
    Like `get_current_user`, but anonymous requests resolve to None.
    """
    if creds is None:
        return None
    return _user_from_token(creds.credentials)


# ---------------------------------------------------------------------
# Moderator Access
# ---------------------------------------------------------------------

async def verify_admin(
    x_admin_key: Optional[str] = Header(None, alias="x-admin-key"),
    key: Optional[str] = Query(None),
) -> None:
    """
    Verify the request comes from a moderator using the configured API key.
    Checks header first, then query param.
    """
    expected_key = settings.admin_api_key.get_secret_value() if settings.admin_api_key else None

    if not expected_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access is not configured (ADMIN_API_KEY missing)",
        )

    provided_key = x_admin_key or key

    if not provided_key or provided_key != expected_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing admin API key",
        )
