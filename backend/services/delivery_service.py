"""
Delivery service — rider assignment, live location and delivery status.

A Delivery is linked to its Order only through order_id; the two rows are
updated independently and never locked together.

Location updates overwrite the single current-location snapshot. There is
no geofencing, no distance/speed plausibility check and no throttling of
update frequency.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Delivery, Order
from domain.constants import delivery_topic, order_topic, short_ref
from domain.enums import DeliveryStatus, EntityType, EventType, NotificationType
from domain.errors import NotFoundError, PermissionDeniedError, ValidationError
from middleware.auth import AuthClaims
from services import notification_service, outbox_service, realtime_service
from services.order_service import get_order
from utils.clock import utcnow

logger = logging.getLogger(__name__)


def _delivery_frame(delivery: Delivery, status: str, at, location: dict | None = None) -> dict:
    data = {
        "deliveryId": delivery.id,
        "orderId": delivery.order_id,
        "status": status,
        "timestamp": at.isoformat(),
    }
    if location is not None:
        data["location"] = location
    return outbox_service.frame("delivery_update", data)


async def get_delivery(db: AsyncSession, delivery_id: str) -> Delivery:
    delivery = await db.get(Delivery, delivery_id)
    if not delivery:
        raise NotFoundError("Delivery", delivery_id)
    return delivery


async def get_delivery_for_viewer(db: AsyncSession, delivery_id: str, claims: AuthClaims) -> Delivery:
    """Assigned rider, the order's buyer or seller, or an admin."""
    delivery = await get_delivery(db, delivery_id)
    if claims.is_admin or delivery.rider_id == claims.user_id:
        return delivery
    order = await db.get(Order, delivery.order_id)
    if order and claims.user_id in (order.buyer_id, order.seller_id):
        return delivery
    raise PermissionDeniedError("You are not a party to this delivery.")


async def assign_rider(
    db: AsyncSession,
    *,
    order_id: str,
    rider_id: str,
    claims: AuthClaims,
    pickup: dict | None = None,
    dropoff: dict | None = None,
    estimated_delivery_time=None,
) -> Delivery:
    """
    Assign (or reassign) a rider to an order. Seller or admin only.

    Creates the order's Delivery on first assignment; a later call moves the
    existing Delivery to the new rider and resets it to "assigned".

    pickup / dropoff: {latitude, longitude, address}
    """
    order = await get_order(db, order_id)
    if not (claims.is_admin or order.seller_id == claims.user_id):
        raise PermissionDeniedError("Only the seller or an admin can assign a rider.")

    pickup = pickup or {}
    dropoff = dropoff or {}
    now = utcnow()

    res = await db.execute(
        select(Delivery).where(Delivery.order_id == order.id).order_by(Delivery.created_at.desc()).limit(1)
    )
    delivery = res.scalar_one_or_none()
    if delivery is None:
        delivery = Delivery(order_id=order.id, created_at=now)
        db.add(delivery)

    delivery.rider_id = rider_id
    delivery.status = DeliveryStatus.ASSIGNED.value
    delivery.pickup_latitude = pickup.get("latitude")
    delivery.pickup_longitude = pickup.get("longitude")
    delivery.pickup_address = pickup.get("address")
    delivery.dropoff_latitude = dropoff.get("latitude")
    delivery.dropoff_longitude = dropoff.get("longitude")
    delivery.dropoff_address = dropoff.get("address")
    delivery.estimated_delivery_time = estimated_delivery_time
    delivery.updated_at = now

    order.rider_id = rider_id
    order.updated_at = now
    await db.flush()

    await notification_service.create_notification(
        db,
        user_id=rider_id,
        type=NotificationType.DELIVERY,
        title="New delivery assigned",
        message=f"Order #{short_ref(order.id)} is assigned to you for delivery.",
        related_id=delivery.id,
    )
    await realtime_service.create_event(
        db,
        event_type=EventType.DELIVERY_UPDATE,
        entity_id=delivery.id,
        entity_type=EntityType.DELIVERY,
        user_id=rider_id,
        data={
            "deliveryId": delivery.id,
            "orderId": order.id,
            "riderId": rider_id,
            "status": delivery.status,
        },
    )
    # Buyers watch the order; this tells them which delivery to follow.
    outbox_service.enqueue(db, order_topic(order.id), _delivery_frame(delivery, delivery.status, now))

    logger.info(f"Rider {rider_id} assigned to order {order.id} (delivery {delivery.id})")
    return delivery


async def update_location(
    db: AsyncSession,
    *,
    delivery_id: str,
    latitude: float,
    longitude: float,
    claims: AuthClaims,
) -> Delivery:
    """
    Overwrite the rider's current location on a delivery.

    Raises:
        NotFoundError: delivery does not exist
        PermissionDeniedError: caller is not the assigned rider
    """
    delivery = await get_delivery(db, delivery_id)
    if delivery.rider_id != claims.user_id:
        raise PermissionDeniedError("Only the assigned rider can report this delivery's location.")

    now = utcnow()
    delivery.current_latitude = latitude
    delivery.current_longitude = longitude
    delivery.current_location_at = now
    delivery.updated_at = now
    await db.flush()

    order = await db.get(Order, delivery.order_id)
    if order:
        await realtime_service.create_event(
            db,
            event_type=EventType.LOCATION_UPDATE,
            entity_id=delivery.id,
            entity_type=EntityType.DELIVERY,
            user_id=claims.user_id,
            data={
                "deliveryId": delivery.id,
                "latitude": latitude,
                "longitude": longitude,
                "timestamp": now,
            },
        )
        outbox_service.enqueue(
            db,
            delivery_topic(delivery.id),
            _delivery_frame(
                delivery,
                delivery.status,
                now,
                location={"latitude": latitude, "longitude": longitude},
            ),
        )
    else:
        logger.warning(f"Delivery {delivery.id} references missing order {delivery.order_id}")

    return delivery


async def update_delivery_status(
    db: AsyncSession,
    *,
    delivery_id: str,
    new_status: DeliveryStatus,
    claims: AuthClaims,
) -> Delivery:
    """Rider (or admin) moves a delivery along; "delivered" stamps actual_delivery_time."""
    delivery = await get_delivery(db, delivery_id)
    if not (claims.is_admin or delivery.rider_id == claims.user_id):
        raise PermissionDeniedError("Only the assigned rider can update this delivery.")

    new_status = DeliveryStatus(new_status)
    old_status = delivery.status
    now = utcnow()
    delivery.status = new_status.value
    delivery.updated_at = now
    if new_status == DeliveryStatus.DELIVERED:
        delivery.actual_delivery_time = now
    await db.flush()

    order = await db.get(Order, delivery.order_id)
    await realtime_service.create_event(
        db,
        event_type=EventType.DELIVERY_UPDATE,
        entity_id=delivery.id,
        entity_type=EntityType.DELIVERY,
        user_id=order.buyer_id if order else claims.user_id,
        data={
            "deliveryId": delivery.id,
            "orderId": delivery.order_id,
            "oldStatus": old_status,
            "newStatus": new_status.value,
            "updatedAt": now,
        },
    )
    if order:
        await notification_service.create_notification(
            db,
            user_id=order.buyer_id,
            type=NotificationType.DELIVERY,
            title=f"Delivery {new_status.value}",
            message=f"Delivery for order #{short_ref(order.id)} is now {new_status.value}.",
            related_id=delivery.id,
        )
    frame = _delivery_frame(delivery, new_status.value, now)
    outbox_service.enqueue(db, delivery_topic(delivery.id), frame)
    outbox_service.enqueue(db, order_topic(delivery.order_id), frame)
    return delivery


async def rate_delivery(
    db: AsyncSession,
    *,
    delivery_id: str,
    rating: int,
    feedback: str | None,
    claims: AuthClaims,
) -> Delivery:
    """The order's buyer rates a delivered delivery (1-5)."""
    delivery = await get_delivery(db, delivery_id)
    order = await db.get(Order, delivery.order_id)
    if not order or order.buyer_id != claims.user_id:
        raise PermissionDeniedError("Only the buyer of this order can rate the delivery.")
    if delivery.status != DeliveryStatus.DELIVERED.value:
        raise ValidationError("Only delivered deliveries can be rated.", field="status")

    delivery.rating = rating
    delivery.feedback = feedback
    delivery.updated_at = utcnow()
    await db.flush()

    await realtime_service.create_event(
        db,
        event_type=EventType.RATING,
        entity_id=delivery.id,
        entity_type=EntityType.DELIVERY,
        user_id=delivery.rider_id,
        data={"deliveryId": delivery.id, "rating": rating, "feedback": feedback},
    )
    return delivery


async def list_rider_deliveries(
    db: AsyncSession,
    *,
    rider_id: str,
    status: DeliveryStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Delivery]:
    conditions = [Delivery.rider_id == rider_id]
    if status:
        conditions.append(Delivery.status == DeliveryStatus(status).value)
    res = await db.execute(
        select(Delivery)
        .where(*conditions)
        .order_by(Delivery.created_at.desc(), Delivery.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return res.scalars().all()
