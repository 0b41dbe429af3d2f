"""
Order endpoints — checkout, listings, status transitions, rider assignment.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from deps import Pagination, get_broadcaster, get_db, pagination_params
from domain.enums import OrderStatus
from domain.responses import paginated_response, success_response
from middleware.auth import AuthClaims, require_claims
from models import (
    AssignRiderRequest,
    DeliveryResponse,
    OrderCreateRequest,
    OrderResponse,
    OrderStatusUpdateRequest,
)
from services import delivery_service, order_service, outbox_service
from services.broadcaster import Broadcaster

logger = logging.getLogger(__name__)
router = APIRouter(tags=["orders"])


def _order_out(order) -> dict:
    return OrderResponse.model_validate(order).to_wire()


@router.post("/orders")
async def create_order(
    request: OrderCreateRequest,
    claims: AuthClaims = Depends(require_claims),
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    order = await order_service.create_order(
        db,
        buyer_id=claims.user_id,
        seller_id=request.seller_id,
        items=[i.model_dump() for i in request.items],
        total_amount=request.total_amount,
        shipping_address=request.shipping_address.to_wire() if request.shipping_address else None,
        payment_method=request.payment_method,
    )
    await db.commit()
    body = _order_out(order)
    await outbox_service.flush_after_commit(db, broadcaster)
    return success_response(order=body)


@router.get("/orders")
async def list_my_orders(
    claims: AuthClaims = Depends(require_claims),
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_service.list_buyer_orders(
        db, buyer_id=claims.user_id, limit=page["limit"], offset=page["offset"]
    )
    return paginated_response(
        "orders",
        [_order_out(o) for o in orders],
        limit=page["limit"],
        offset=page["offset"],
        total=total,
    )


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str,
    claims: AuthClaims = Depends(require_claims),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order_for_viewer(db, order_id, claims)
    return success_response(order=_order_out(order))


@router.put("/orders/{order_id}/status")
async def update_order_status(
    order_id: str,
    request: OrderStatusUpdateRequest,
    claims: AuthClaims = Depends(require_claims),
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    order = await order_service.update_order_status(
        db, order_id=order_id, new_status=request.status, claims=claims
    )
    await db.commit()
    body = _order_out(order)
    await outbox_service.flush_after_commit(db, broadcaster)
    return success_response(order=body)


@router.post("/orders/{order_id}/assign-rider")
async def assign_rider(
    order_id: str,
    request: AssignRiderRequest,
    claims: AuthClaims = Depends(require_claims),
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    delivery = await delivery_service.assign_rider(
        db,
        order_id=order_id,
        rider_id=request.rider_id,
        claims=claims,
        pickup={
            "latitude": request.pickup_latitude,
            "longitude": request.pickup_longitude,
            "address": request.pickup_address,
        },
        dropoff={
            "latitude": request.dropoff_latitude,
            "longitude": request.dropoff_longitude,
            "address": request.dropoff_address,
        },
        estimated_delivery_time=request.estimated_delivery_time,
    )
    await db.commit()
    body = DeliveryResponse.from_row(delivery).to_wire()
    await outbox_service.flush_after_commit(db, broadcaster)
    return success_response(delivery=body)


@router.get("/seller/orders")
async def list_seller_orders(
    status: Optional[OrderStatus] = Query(None),
    claims: AuthClaims = Depends(require_claims),
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_service.list_seller_orders(
        db,
        seller_id=claims.user_id,
        status=status,
        limit=page["limit"],
        offset=page["offset"],
    )
    return paginated_response(
        "orders",
        [_order_out(o) for o in orders],
        limit=page["limit"],
        offset=page["offset"],
        total=total,
    )


@router.get("/buyer/orders")
async def buyer_dashboard(
    claims: AuthClaims = Depends(require_claims),
    db: AsyncSession = Depends(get_db),
):
    dashboard = await order_service.buyer_dashboard(db, buyer_id=claims.user_id)
    stats = dashboard["stats"]
    return success_response(
        orders=[_order_out(o) for o in dashboard["orders"]],
        stats={
            "totalOrders": stats["total_orders"],
            "totalSpent": stats["total_spent"],
            "activeDeliveries": stats["active_deliveries"],
        },
    )
