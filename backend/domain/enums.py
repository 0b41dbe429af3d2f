"""
Domain enums shared by the ORM models, request schemas and services.
"""

from enum import Enum


class Role(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    RIDER = "rider"
    ADMIN = "admin"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    READY_FOR_DELIVERY = "ready_for_delivery"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class DeliveryStatus(str, Enum):
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"


class NotificationType(str, Enum):
    ORDER = "order"
    DELIVERY = "delivery"
    PAYMENT = "payment"
    SYSTEM = "system"
    RECOMMENDATION = "recommendation"


class EventType(str, Enum):
    ORDER_STATUS = "order_status"
    DELIVERY_UPDATE = "delivery_update"
    LOCATION_UPDATE = "location_update"
    NOTIFICATION = "notification"
    RATING = "rating"


class EntityType(str, Enum):
    ORDER = "Order"
    DELIVERY = "Delivery"
    USER = "User"


class SellerBadge(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    DIAMOND = "diamond"
