"""
Order service — checkout, listings and status transitions.

Status transitions
------------------
update_order_status() lets the order's seller or an admin write any status
from any other; there is no transition table, so admins can correct
mistakes (e.g. delivered -> pending). The primary write and its side effects
are staged on one session:

    1. order.status / updated_at (+ delivery_started_at / delivered_at)
    2. Notification for the buyer
    3. RealTimeEvent "order_status" with old/new status
    4. outbox frames: order_status -> order + buyer topics,
       delivery_update -> delivery topic when a rider is assigned

The route commits them together, then drains the outbox. Concurrent writers
are not serialised: the last status write to commit wins.
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Delivery, Order, OrderItem
from domain.constants import (
    ACTIVE_DELIVERY_STATUSES,
    BUYER_DASHBOARD_RECENT_ORDERS,
    delivery_topic,
    order_topic,
    short_ref,
    user_topic,
)
from domain.enums import EntityType, EventType, NotificationType, OrderStatus
from domain.errors import NotFoundError, PermissionDeniedError
from middleware.auth import AuthClaims
from services import notification_service, outbox_service, realtime_service
from utils.clock import utcnow

logger = logging.getLogger(__name__)


def _order_status_frame(order: Order, previous_status: str | None, at) -> dict:
    return outbox_service.frame(
        "order_status",
        {
            "orderId": order.id,
            "status": order.status,
            "previousStatus": previous_status,
            "buyerId": order.buyer_id,
            "timestamp": at.isoformat(),
        },
    )


async def get_order(db: AsyncSession, order_id: str) -> Order:
    order = await db.get(Order, order_id)
    if not order:
        raise NotFoundError("Order", order_id)
    return order


async def get_order_for_viewer(db: AsyncSession, order_id: str, claims: AuthClaims) -> Order:
    """Buyer, seller, assigned rider or admin may read an order."""
    order = await get_order(db, order_id)
    if claims.is_admin or claims.user_id in (order.buyer_id, order.seller_id, order.rider_id):
        return order
    raise PermissionDeniedError("You are not a party to this order.")


async def create_order(
    db: AsyncSession,
    *,
    buyer_id: str,
    seller_id: str,
    items: list[dict],
    total_amount: float,
    shipping_address: dict | None,
    payment_method: str | None,
) -> Order:
    """
    Checkout. total_amount is stored as supplied by the client.

    items: [{product_id, quantity, price}]
    """
    now = utcnow()
    order = Order(
        buyer_id=buyer_id,
        seller_id=seller_id,
        total_amount=total_amount,
        status=OrderStatus.PENDING.value,
        shipping_address=shipping_address,
        payment_method=payment_method,
        payment_status="pending",
        created_at=now,
        updated_at=now,
        items=[
            OrderItem(product_id=i["product_id"], quantity=i["quantity"], price=i["price"])
            for i in items
        ],
    )
    db.add(order)
    await db.flush()

    await notification_service.create_notification(
        db,
        user_id=buyer_id,
        type=NotificationType.ORDER,
        title="Order Placed",
        message=f"Your order #{short_ref(order.id)} has been placed.",
        related_id=order.id,
    )
    await realtime_service.create_event(
        db,
        event_type=EventType.ORDER_STATUS,
        entity_id=order.id,
        entity_type=EntityType.ORDER,
        user_id=buyer_id,
        data={"orderId": order.id, "status": order.status, "amount": total_amount},
    )
    status_frame = _order_status_frame(order, None, now)
    outbox_service.enqueue(db, order_topic(order.id), status_frame)
    outbox_service.enqueue(db, user_topic(buyer_id), status_frame)

    logger.info(f"Order {order.id} placed by buyer {buyer_id} with seller {seller_id}")
    return order


async def update_order_status(
    db: AsyncSession,
    *,
    order_id: str,
    new_status: OrderStatus,
    claims: AuthClaims,
) -> Order:
    """
    Overwrite an order's status (seller or admin only).

    Raises:
        NotFoundError: order does not exist
        PermissionDeniedError: caller is neither the seller nor an admin
    """
    order = await get_order(db, order_id)
    if not (claims.is_admin or order.seller_id == claims.user_id):
        raise PermissionDeniedError("Only the seller or an admin can update this order.")

    new_status = OrderStatus(new_status)
    old_status = order.status
    now = utcnow()

    order.status = new_status.value
    order.updated_at = now
    if new_status == OrderStatus.IN_TRANSIT and order.delivery_started_at is None:
        order.delivery_started_at = now
    elif new_status == OrderStatus.DELIVERED:
        order.delivered_at = now
    await db.flush()

    await notification_service.create_notification(
        db,
        user_id=order.buyer_id,
        type=NotificationType.ORDER,
        title=f"Order {new_status.value}",
        message=f"Your order #{short_ref(order.id)} status is now {new_status.value}.",
        related_id=order.id,
    )
    await realtime_service.create_event(
        db,
        event_type=EventType.ORDER_STATUS,
        entity_id=order.id,
        entity_type=EntityType.ORDER,
        user_id=order.buyer_id,
        data={
            "orderId": order.id,
            "oldStatus": old_status,
            "newStatus": new_status.value,
            "updatedAt": now,
        },
    )

    status_frame = _order_status_frame(order, old_status, now)
    outbox_service.enqueue(db, order_topic(order.id), status_frame)
    outbox_service.enqueue(db, user_topic(order.buyer_id), status_frame)

    if order.rider_id:
        res = await db.execute(
            select(Delivery).where(Delivery.order_id == order.id).order_by(Delivery.created_at.desc()).limit(1)
        )
        delivery = res.scalar_one_or_none()
        if delivery:
            outbox_service.enqueue(
                db,
                delivery_topic(delivery.id),
                outbox_service.frame(
                    "delivery_update",
                    {
                        "deliveryId": delivery.id,
                        "orderId": order.id,
                        "status": new_status.value,
                        "timestamp": now.isoformat(),
                    },
                ),
            )

    logger.info(
        f"Order {order.id} status {old_status} -> {new_status.value} "
        f"by {claims.role.value} {claims.user_id}"
    )
    return order


async def list_buyer_orders(
    db: AsyncSession, *, buyer_id: str, limit: int = 50, offset: int = 0
) -> tuple[list[Order], int]:
    res = await db.execute(
        select(Order)
        .where(Order.buyer_id == buyer_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .offset(offset)
    )
    total = (
        await db.execute(select(func.count()).select_from(Order).where(Order.buyer_id == buyer_id))
    ).scalar_one()
    return res.scalars().all(), total


async def list_seller_orders(
    db: AsyncSession,
    *,
    seller_id: str,
    status: OrderStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Order], int]:
    conditions = [Order.seller_id == seller_id]
    if status:
        conditions.append(Order.status == OrderStatus(status).value)

    res = await db.execute(
        select(Order)
        .where(*conditions)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .offset(offset)
    )
    total = (
        await db.execute(select(func.count()).select_from(Order).where(*conditions))
    ).scalar_one()
    return res.scalars().all(), total


async def buyer_dashboard(db: AsyncSession, *, buyer_id: str) -> dict:
    """
    Recent orders plus headline stats for the buyer dashboard.

    Returns:
        dict: {orders, stats: {total_orders, total_spent, active_deliveries}}
    """
    recent, total_orders = await list_buyer_orders(
        db, buyer_id=buyer_id, limit=BUYER_DASHBOARD_RECENT_ORDERS
    )
    total_spent = (
        await db.execute(
            select(func.coalesce(func.sum(Order.total_amount), 0.0)).where(Order.buyer_id == buyer_id)
        )
    ).scalar_one()
    active = (
        await db.execute(
            select(func.count())
            .select_from(Order)
            .where(Order.buyer_id == buyer_id, Order.status.in_(ACTIVE_DELIVERY_STATUSES))
        )
    ).scalar_one()

    return {
        "orders": recent,
        "stats": {
            "total_orders": total_orders,
            "total_spent": float(total_spent),
            "active_deliveries": active,
        },
    }
