"""
Bearer-token authentication.

Tokens are HS256 JWTs issued by the identity service (or by
issue_access_token() for scripts and tests):

    { "iss": <issuer>, "sub": <user id>, "role": buyer|seller|rider|admin,
      "iat": ..., "exp": ... }

The payload is decoded once per request (or once per WebSocket handshake)
into an AuthClaims value that handlers receive explicitly through the
require_claims dependency.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Optional

import jwt
from fastapi import Header

from config import settings
from domain.enums import Role
from domain.errors import UnauthorizedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthClaims:
    """Verified identity of the caller."""
    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def _require_secret() -> str:
    if not settings.jwt_secret:
        # Misconfiguration, not a client error; surfaces as a generic 500.
        raise RuntimeError("Server auth misconfigured (JWT secret missing).")
    return settings.jwt_secret


def decode_access_token(token: str) -> AuthClaims:
    """Verify a token and return its claims. Raises UnauthorizedError (401)."""
    secret = _require_secret()
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "iss", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Access token expired.")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid access token.")

    try:
        role = Role(payload.get("role", Role.BUYER.value))
    except ValueError:
        raise UnauthorizedError("Invalid access token.")
    return AuthClaims(user_id=str(payload["sub"]), role=role)


def issue_access_token(*, user_id: str, role: Role | str, ttl_minutes: int | None = None) -> str:
    now = _now_utc()
    ttl = settings.jwt_access_ttl_minutes if ttl_minutes is None else ttl_minutes
    exp = now.replace(microsecond=0) + timedelta(minutes=ttl)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": user_id,
        "role": Role(role).value,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, _require_secret(), algorithm="HS256")


async def require_claims(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> AuthClaims:
    """FastAPI dependency: verified caller claims, or 401."""
    token = _parse_bearer_token(authorization)
    if not token:
        raise UnauthorizedError(
            "Authentication required. Provide Authorization: Bearer <token>."
        )
    return decode_access_token(token)
