"""
auth/tokens.py -- JWT bearer tokens and email confirmation tokens.

Security design decisions:
  JWT: python-jose with HS512 over the configured secret. Access tokens carry
       email, unique_name (username), a fresh jti and one role value per
       assigned role, plus iss/aud/iat/exp. Lifetime is fixed at 24 hours and
       there is no refresh: a client logs in again.

  Verification returns None on any failure (bad signature, expired, wrong
       issuer or audience, missing claims). The route layer turns that into a
       401 -- callers never need to catch JWTError.

  Confirmation tokens reuse the same key but carry purpose="email_confirmation"
       and a 30-minute lifetime. decode_access_token() rejects them because
       they have no unique_name claim; decode_confirmation_token() rejects
       access tokens because they have no purpose claim.

  No module-level settings: every function takes a TokenConfig so the signing
       secret, issuer and audience are injected by whoever builds AuthService.

Layer rule: no imports from api/, core/, or mail/.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.models import User

logger = logging.getLogger("bridgeauth.auth.tokens")

ALGORITHM = "HS512"
ACCESS_TOKEN_LIFETIME = timedelta(hours=24)
CONFIRMATION_TOKEN_LIFETIME = timedelta(minutes=30)
CONFIRMATION_PURPOSE = "email_confirmation"


@dataclass(frozen=True)
class TokenConfig:
    secret_key: str
    issuer: str
    audience: str

    @classmethod
    def from_settings(cls, settings) -> "TokenConfig":
        """Build from core.config.Settings (or anything with the same attributes)."""
        return cls(secret_key=settings.secret_key, issuer=settings.jwt_issuer, audience=settings.jwt_audience)


# ---------------------------------------------------------------------------
# Access tokens
# ---------------------------------------------------------------------------


def build_claims(user: User, roles: list[str]) -> dict:
    """Assemble the claim set for one login. A new jti is drawn every call."""
    return {
        "email": user.email,
        "unique_name": user.username,
        "jti": str(uuid.uuid4()),
        "role": list(roles),
    }


def create_access_token(config: TokenConfig, claims: dict, now: datetime | None = None) -> str:
    """Sign claims into a compact JWS valid for ACCESS_TOKEN_LIFETIME."""
    issued = now or datetime.now(timezone.utc)
    payload = {
        **claims,
        "iss": config.issuer,
        "aud": config.audience,
        "iat": issued,
        "exp": issued + ACCESS_TOKEN_LIFETIME,
    }
    return jwt.encode(payload, config.secret_key, algorithm=ALGORITHM)


def decode_access_token(config: TokenConfig, token: str) -> dict | None:
    """Verify and decode an access token. Returns the payload or None on any failure."""
    payload = _decode(config, token)
    if payload is None or "unique_name" not in payload or "purpose" in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Confirmation tokens
# ---------------------------------------------------------------------------


def create_confirmation_token(config: TokenConfig, user: User, now: datetime | None = None) -> str:
    issued = now or datetime.now(timezone.utc)
    payload = {
        "sub": user.id,
        "email": user.email,
        "purpose": CONFIRMATION_PURPOSE,
        "iss": config.issuer,
        "aud": config.audience,
        "iat": issued,
        "exp": issued + CONFIRMATION_TOKEN_LIFETIME,
    }
    return jwt.encode(payload, config.secret_key, algorithm=ALGORITHM)


def decode_confirmation_token(config: TokenConfig, token: str) -> dict | None:
    payload = _decode(config, token)
    if payload is None or payload.get("purpose") != CONFIRMATION_PURPOSE or not payload.get("sub"):
        return None
    return payload


def _decode(config: TokenConfig, token: str) -> dict | None:
    try:
        return jwt.decode(
            token,
            config.secret_key,
            algorithms=[ALGORITHM],
            audience=config.audience,
            issuer=config.issuer,
        )
    except JWTError as exc:
        logger.debug("Token rejected: %s", exc)
        return None
