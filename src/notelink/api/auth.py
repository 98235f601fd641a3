"""JWT authentication for visitors and the admin note viewer.

Tokens are issued by the hosted auth provider and signed with HS256 using
the project's JWT secret.

Provides:
- verify_token(): Validates JWT and returns its claims
- get_optional_user(): FastAPI dependency, identity if a token is sent
- require_admin(): FastAPI dependency, admin allowlist check
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

import jwt
from fastapi import Depends, HTTPException, Request

DEFAULT_AUDIENCE = "authenticated"


@dataclass
class CurrentUser:
    """Authenticated user context."""

    id: str
    email: str | None
    name: str | None


def _get_settings() -> dict[str, Any]:
    """Load auth settings from environment."""
    admin_emails_raw = os.environ.get("ADMIN_EMAILS", "")
    admin_emails = {e.strip().lower() for e in admin_emails_raw.split(",") if e.strip()}

    return {
        "secret": os.environ.get("ADMIN_JWT_SECRET"),
        "audience": os.environ.get("ADMIN_JWT_AUDIENCE", DEFAULT_AUDIENCE),
        "admin_emails": admin_emails,
    }


def verify_token(token: str) -> dict[str, Any]:
    """Verify JWT and return its claims.

    Raises:
        HTTPException: 401 if auth is not configured or the token is invalid.
    """
    settings = _get_settings()
    secret = settings["secret"]
    if not secret:
        raise HTTPException(status_code=401, detail="Auth not configured")

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=settings["audience"],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token")

    return payload


def _extract_bearer_token(request: Request) -> str | None:
    """Extract Bearer token from Authorization header.

    Returns:
        Token string, or None if the header is absent.

    Raises:
        HTTPException: 401 if header is malformed.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authorization header")

    return parts[1]


def _user_from_claims(claims: dict[str, Any]) -> CurrentUser:
    metadata = claims.get("user_metadata") or {}
    name = metadata.get("full_name") or metadata.get("name") or claims.get("name")
    return CurrentUser(
        id=str(claims["sub"]),
        email=claims.get("email"),
        name=name,
    )


def get_optional_user(request: Request) -> CurrentUser | None:
    """FastAPI dependency: authenticated user, or None for guests.

    Raises:
        HTTPException: 401 if a token is sent but invalid.
    """
    token = _extract_bearer_token(request)
    if token is None:
        return None
    return _user_from_claims(verify_token(token))


def get_current_user(request: Request) -> CurrentUser:
    """FastAPI dependency: authenticated user (token required).

    Raises:
        HTTPException: 401 if token missing or invalid.
    """
    user = get_optional_user(request)
    if user is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")
    return user


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """FastAPI dependency: user whose email is on the ADMIN_EMAILS allowlist.

    Raises:
        HTTPException: 403 if the user is not an admin.
    """
    admin_emails = _get_settings()["admin_emails"]
    if not user.email or user.email.lower() not in admin_emails:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
