"""
Shared FastAPI dependencies.

Routers import from here: DB session, verified caller claims, role guards,
pagination and the application's broadcaster.
"""

from __future__ import annotations

from typing import TypedDict

from fastapi import Depends, Query
from starlette.requests import HTTPConnection

from database import get_db  # noqa: F401  (re-exported for routers)
from domain.enums import Role
from domain.errors import PermissionDeniedError
from middleware.auth import AuthClaims, require_claims
from services.broadcaster import Broadcaster


class Pagination(TypedDict):
    limit: int
    offset: int


def pagination_params(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=100_000),
) -> Pagination:
    return {"limit": limit, "offset": offset}


def get_broadcaster(conn: HTTPConnection) -> Broadcaster:
    """
    The broadcaster owned by the running application.

    Works for both HTTP requests and WebSocket connections.
    """
    return conn.app.state.broadcaster


async def require_admin(claims: AuthClaims = Depends(require_claims)) -> AuthClaims:
    if not claims.is_admin:
        raise PermissionDeniedError("Admin role required for this endpoint.")
    return claims


async def require_rider(claims: AuthClaims = Depends(require_claims)) -> AuthClaims:
    if claims.role not in (Role.RIDER, Role.ADMIN):
        raise PermissionDeniedError("Rider role required for this endpoint.")
    return claims
