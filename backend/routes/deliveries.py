"""
Delivery endpoints — live location, status and rating.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from deps import Pagination, get_broadcaster, get_db, pagination_params, require_rider
from domain.enums import DeliveryStatus
from domain.responses import success_response
from middleware.auth import AuthClaims, require_claims
from models import (
    DeliveryRatingRequest,
    DeliveryResponse,
    DeliveryStatusUpdateRequest,
    LocationUpdateRequest,
)
from services import delivery_service, outbox_service
from services.broadcaster import Broadcaster

logger = logging.getLogger(__name__)
router = APIRouter(tags=["deliveries"])


def _delivery_out(delivery) -> dict:
    return DeliveryResponse.from_row(delivery).to_wire()


@router.get("/deliveries/{delivery_id}")
async def get_delivery(
    delivery_id: str,
    claims: AuthClaims = Depends(require_claims),
    db: AsyncSession = Depends(get_db),
):
    delivery = await delivery_service.get_delivery_for_viewer(db, delivery_id, claims)
    return success_response(delivery=_delivery_out(delivery))


@router.put("/deliveries/{delivery_id}/location")
async def update_location(
    delivery_id: str,
    request: LocationUpdateRequest,
    claims: AuthClaims = Depends(require_claims),
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    delivery = await delivery_service.update_location(
        db,
        delivery_id=delivery_id,
        latitude=request.latitude,
        longitude=request.longitude,
        claims=claims,
    )
    await db.commit()
    body = _delivery_out(delivery)
    await outbox_service.flush_after_commit(db, broadcaster)
    return success_response(delivery=body)


@router.put("/deliveries/{delivery_id}/status")
async def update_delivery_status(
    delivery_id: str,
    request: DeliveryStatusUpdateRequest,
    claims: AuthClaims = Depends(require_claims),
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    delivery = await delivery_service.update_delivery_status(
        db, delivery_id=delivery_id, new_status=request.status, claims=claims
    )
    await db.commit()
    body = _delivery_out(delivery)
    await outbox_service.flush_after_commit(db, broadcaster)
    return success_response(delivery=body)


@router.post("/deliveries/{delivery_id}/rating")
async def rate_delivery(
    delivery_id: str,
    request: DeliveryRatingRequest,
    claims: AuthClaims = Depends(require_claims),
    db: AsyncSession = Depends(get_db),
):
    delivery = await delivery_service.rate_delivery(
        db,
        delivery_id=delivery_id,
        rating=request.rating,
        feedback=request.feedback,
        claims=claims,
    )
    await db.commit()
    return success_response(delivery=_delivery_out(delivery))


@router.get("/rider/deliveries")
async def list_rider_deliveries(
    status: Optional[DeliveryStatus] = Query(None),
    claims: AuthClaims = Depends(require_rider),
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    deliveries = await delivery_service.list_rider_deliveries(
        db,
        rider_id=claims.user_id,
        status=status,
        limit=page["limit"],
        offset=page["offset"],
    )
    return success_response(
        deliveries=[_delivery_out(d) for d in deliveries],
        meta={"limit": page["limit"], "offset": page["offset"], "count": len(deliveries)},
    )
