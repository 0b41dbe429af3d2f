"""
Real-time event log — admin replay/debugging view.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from deps import Pagination, get_db, pagination_params, require_admin
from domain.enums import EventType
from domain.responses import paginated_response
from middleware.auth import AuthClaims
from models import RealTimeEventResponse
from services import realtime_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["events"])


@router.get("/events")
async def list_events(
    entity_id: Optional[str] = Query(None, alias="entityId"),
    event_type: Optional[EventType] = Query(None, alias="eventType"),
    _admin: AuthClaims = Depends(require_admin),
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    events, total = await realtime_service.list_events(
        db,
        entity_id=entity_id,
        event_type=event_type,
        limit=page["limit"],
        offset=page["offset"],
    )
    return paginated_response(
        "events",
        [RealTimeEventResponse.model_validate(e).to_wire() for e in events],
        limit=page["limit"],
        offset=page["offset"],
        total=total,
    )
