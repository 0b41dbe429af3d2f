"""
SQLAlchemy ORM models for the Bugsymart order & delivery backend.

Tables:
    orders           — checkout orders and their status lifecycle
    order_items      — line items (product, quantity, unit price)
    deliveries       — rider assignments with the live location snapshot
    notifications    — durable per-user inbox messages
    realtime_events  — audit trail of transitions, expires after 30 days
    outbox_messages  — broadcast intents committed with the mutation they describe

Ids are 32-char hex strings. Users, products and riders live in other
services; they are referenced here by id only, with no foreign keys.
"""
import uuid

from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Text, JSON, ForeignKey, Index,
)
from sqlalchemy.orm import relationship

from database import Base
from utils.clock import utcnow


def new_id() -> str:
    return uuid.uuid4().hex


# ════════════════════════════════════════════════════════════════════
# Orders
# ════════════════════════════════════════════════════════════════════

class Order(Base):
    """
    An order placed by a buyer with one seller.

    total_amount is stored as supplied at checkout; it is not recomputed
    from the line items.
    """
    __tablename__ = "orders"

    id = Column(String(32), primary_key=True, default=new_id)
    buyer_id = Column(String(64), nullable=False, index=True)
    seller_id = Column(String(64), nullable=False, index=True)
    total_amount = Column(Float, nullable=False)
    status = Column(String(30), nullable=False, default="pending", index=True)
    shipping_address = Column(JSON, nullable=True)  # {street, city, state, zip_code, phone}
    payment_method = Column(String(50), nullable=True)
    payment_status = Column(String(20), nullable=False, default="pending")  # pending | completed | failed
    rider_id = Column(String(64), nullable=True)
    delivery_started_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    items = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    __table_args__ = (
        Index("ix_orders_buyer_created", "buyer_id", "created_at"),
        Index("ix_orders_seller_created", "seller_id", "created_at"),
        Index("ix_orders_rider_status", "rider_id", "status"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(32), ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String(64), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Float, nullable=False)  # unit price at checkout

    order = relationship("Order", back_populates="items")


# ════════════════════════════════════════════════════════════════════
# Deliveries
# ════════════════════════════════════════════════════════════════════

class Delivery(Base):
    """
    A rider's assignment to deliver one order.

    Linked to its order by order_id only; order and delivery rows are
    updated independently.
    """
    __tablename__ = "deliveries"

    id = Column(String(32), primary_key=True, default=new_id)
    order_id = Column(String(32), nullable=False, index=True)
    rider_id = Column(String(64), nullable=False)
    status = Column(String(20), nullable=False, default="assigned", index=True)

    pickup_latitude = Column(Float, nullable=True)
    pickup_longitude = Column(Float, nullable=True)
    pickup_address = Column(Text, nullable=True)
    dropoff_latitude = Column(Float, nullable=True)
    dropoff_longitude = Column(Float, nullable=True)
    dropoff_address = Column(Text, nullable=True)

    # Live location snapshot, overwritten by every rider update
    current_latitude = Column(Float, nullable=True)
    current_longitude = Column(Float, nullable=True)
    current_location_at = Column(DateTime, nullable=True)

    estimated_delivery_time = Column(DateTime, nullable=True)
    actual_delivery_time = Column(DateTime, nullable=True)
    rating = Column(Integer, nullable=True)  # 1-5
    feedback = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_deliveries_rider_status", "rider_id", "status"),
    )


# ════════════════════════════════════════════════════════════════════
# Notifications
# ════════════════════════════════════════════════════════════════════

class Notification(Base):
    """Inbox message for one user; read/unread toggled by the recipient."""
    __tablename__ = "notifications"

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False)
    type = Column(String(20), nullable=False)  # order | delivery | payment | system | recommendation
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    order_id = Column(String(32), nullable=True)
    delivery_id = Column(String(32), nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)
    action_url = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_notifications_user_read_created", "user_id", "read", "created_at"),
        Index("ix_notifications_user_created", "user_id", "created_at"),
    )


# ════════════════════════════════════════════════════════════════════
# Real-time event log + broadcast outbox
# ════════════════════════════════════════════════════════════════════

class RealTimeEvent(Base):
    """
    Audit record of a transition, kept for replay and debugging.

    Rows older than settings.realtime_event_ttl_days are hidden from reads
    and deleted by the background sweeper.
    """
    __tablename__ = "realtime_events"

    id = Column(String(32), primary_key=True, default=new_id)
    event_type = Column(String(30), nullable=False)
    entity_id = Column(String(64), nullable=False, index=True)
    entity_type = Column(String(20), nullable=False)  # Order | Delivery | User
    user_id = Column(String(64), nullable=True)
    data = Column(JSON, nullable=False, default=dict)
    processed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_realtime_events_processed_type", "processed", "event_type"),
    )


class OutboxMessage(Base):
    """
    A broadcast frame waiting to be published.

    Committed in the same transaction as the mutation it describes, then
    drained by outbox_service.dispatch_pending(). A pass claims a row
    (claimed_at) before publishing it.
    """
    __tablename__ = "outbox_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    topic = Column(String(100), nullable=False)
    message = Column(JSON, nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    # Set by the pass publishing the row; cleared again if the publish fails
    claimed_at = Column(DateTime, nullable=True)
    dispatched_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_outbox_pending", "dispatched_at", "attempts", "id"),
    )
