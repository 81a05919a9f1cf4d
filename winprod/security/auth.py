"""Supabase session authentication for account and checkout endpoints.

The SPA sends the user's Supabase access token as a Bearer token. The
token is resolved through Supabase Auth (`auth.get_user`), which also
rejects expired and revoked sessions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from fastapi import HTTPException, Request
from supabase_auth.errors import AuthError

from winprod.db.client import get_supabase

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    email: str | None = None


def extract_bearer_token(auth_header: str | None) -> str | None:
    """Return the token from an `Authorization: Bearer <token>` header."""
    if not auth_header:
        return None
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def resolve_user(token: str) -> AuthenticatedUser:
    """Look up the Supabase user owning an access token.

    Raises:
        ValueError: The token is invalid, expired or revoked.
    """
    try:
        response = get_supabase().auth.get_user(token)
    except (AuthError, httpx.HTTPError) as e:
        raise ValueError(f"Token rejected by Supabase: {e}") from e

    user = getattr(response, "user", None)
    if user is None or not getattr(user, "id", None):
        raise ValueError("No user for token")
    return AuthenticatedUser(id=str(user.id), email=getattr(user, "email", None))


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(status_code=401, detail=message, headers={"WWW-Authenticate": "Bearer"})


def get_current_user(request: Request) -> AuthenticatedUser:
    """FastAPI dependency: the authenticated user, or 401."""
    token = extract_bearer_token(request.headers.get("authorization"))
    if not token:
        raise _unauthorized("Authentication required")
    try:
        return resolve_user(token)
    except ValueError as e:
        logger.debug("Auth failed: %s", e)
        raise _unauthorized("Invalid or expired credentials") from e
