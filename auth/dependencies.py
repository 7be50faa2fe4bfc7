"""
auth/dependencies.py -- FastAPI Depends() helpers for bearer-token authentication.

Tokens arrive as "Authorization: Bearer <jwt>". The token is self-contained:
identity and roles are read from its claims, and the user is re-fetched from
the directory only to make sure the account still exists and is not locked.

try_get_current_identity() is the soft variant (returns None on failure).
get_current_identity() wraps it and raises HTTP 401 if unauthenticated.
require_role(name) builds a dependency that also raises HTTP 403 when the
token carries no such role claim.

Layer rule: may import from fastapi (for Depends/HTTPException/Request)
because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from fastapi import Depends, HTTPException, Request

from auth.tokens import TokenConfig, decode_access_token


@dataclass
class Identity:
    """The caller behind a verified bearer token."""

    user_id: str
    username: str
    email: str
    roles: list[str] = field(default_factory=list)


def try_get_current_identity(request: Request) -> Identity | None:
    """Return the Identity for a valid bearer token, None otherwise. Never raises."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header[7:].strip()

    token_config: TokenConfig = request.app.state.token_config
    payload = decode_access_token(token_config, token)
    if payload is None:
        return None

    user = request.app.state.user_store.find_by_username(payload["unique_name"])
    if user is None:
        return None
    if user.lockout_end is not None and user.lockout_end > datetime.now(timezone.utc):
        return None

    roles = payload.get("role", [])
    if isinstance(roles, str):
        roles = [roles]
    return Identity(user_id=user.id, username=user.username, email=user.email, roles=list(roles))


def get_current_identity(request: Request) -> Identity:
    """Require authentication. Raises HTTP 401 if the request carries no valid token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: Identity = Depends(get_current_identity)): ...
    """
    identity = try_get_current_identity(request)
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


def require_role(role: str):
    """Return a dependency that requires a token carrying the given role claim.

    Use as a FastAPI dependency:
        @router.get("/admin-only")
        async def route(identity: Identity = Depends(require_role("Admin"))): ...
    """

    def _dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        if role not in identity.roles:
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": f"'{role}' role required."},
            )
        return identity

    return _dependency
