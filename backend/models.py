"""
Pydantic models for request/response validation.

Wire format is camelCase (the web and rider clients read it that way);
Python attribute names stay snake_case and match the ORM columns so
responses can be built with model_validate(orm_row).
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional
from datetime import datetime

from domain.enums import DeliveryStatus, OrderStatus, PaymentStatus
from utils.clock import to_naive_utc


class ApiModel(BaseModel):
    """Shared base — allows construction by Python name or alias."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# ── Orders ──────────────────────────────────────────────────────────

class ShippingAddress(ApiModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = Field("", alias="zipCode")
    phone: str = ""


class OrderItemIn(ApiModel):
    product_id: str = Field(..., alias="productId", min_length=1)
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)


class OrderCreateRequest(ApiModel):
    """Checkout payload. totalAmount is taken as supplied."""
    seller_id: str = Field(..., alias="sellerId", min_length=1)
    items: List[OrderItemIn] = Field(..., min_length=1)
    total_amount: float = Field(..., alias="totalAmount", ge=0)
    shipping_address: Optional[ShippingAddress] = Field(None, alias="shippingAddress")
    payment_method: Optional[str] = Field(None, alias="paymentMethod", max_length=50)


class OrderStatusUpdateRequest(ApiModel):
    status: OrderStatus


class AssignRiderRequest(ApiModel):
    rider_id: str = Field(..., alias="riderId", min_length=1)
    pickup_latitude: Optional[float] = Field(None, alias="pickupLatitude", ge=-90, le=90)
    pickup_longitude: Optional[float] = Field(None, alias="pickupLongitude", ge=-180, le=180)
    pickup_address: Optional[str] = Field(None, alias="pickupAddress")
    dropoff_latitude: Optional[float] = Field(None, alias="dropoffLatitude", ge=-90, le=90)
    dropoff_longitude: Optional[float] = Field(None, alias="dropoffLongitude", ge=-180, le=180)
    dropoff_address: Optional[str] = Field(None, alias="dropoffAddress")
    estimated_delivery_time: Optional[datetime] = Field(None, alias="estimatedDeliveryTime")

    @field_validator("estimated_delivery_time")
    @classmethod
    def normalize_eta(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


class OrderItemResponse(ApiModel):
    product_id: str = Field(..., alias="productId")
    quantity: int
    price: float


class OrderResponse(ApiModel):
    id: str
    buyer_id: str = Field(..., alias="buyerId")
    seller_id: str = Field(..., alias="sellerId")
    items: List[OrderItemResponse] = Field(default_factory=list)
    total_amount: float = Field(..., alias="totalAmount")
    status: OrderStatus
    shipping_address: Optional[dict] = Field(None, alias="shippingAddress")
    payment_method: Optional[str] = Field(None, alias="paymentMethod")
    payment_status: PaymentStatus = Field(PaymentStatus.PENDING, alias="paymentStatus")
    rider_id: Optional[str] = Field(None, alias="riderId")
    delivery_started_at: Optional[datetime] = Field(None, alias="deliveryStartedAt")
    delivered_at: Optional[datetime] = Field(None, alias="deliveredAt")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


# ── Deliveries ──────────────────────────────────────────────────────

class LocationUpdateRequest(ApiModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class DeliveryStatusUpdateRequest(ApiModel):
    status: DeliveryStatus


class DeliveryRatingRequest(ApiModel):
    rating: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = Field(None, max_length=2000)


class GeoPoint(ApiModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None


class CurrentLocation(ApiModel):
    latitude: float
    longitude: float
    timestamp: datetime


class DeliveryResponse(ApiModel):
    id: str
    order_id: str = Field(..., alias="orderId")
    rider_id: str = Field(..., alias="riderId")
    status: DeliveryStatus
    pickup_location: GeoPoint = Field(..., alias="pickupLocation")
    delivery_location: GeoPoint = Field(..., alias="deliveryLocation")
    current_location: Optional[CurrentLocation] = Field(None, alias="currentLocation")
    estimated_delivery_time: Optional[datetime] = Field(None, alias="estimatedDeliveryTime")
    actual_delivery_time: Optional[datetime] = Field(None, alias="actualDeliveryTime")
    rating: Optional[int] = None
    feedback: Optional[str] = None
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    @classmethod
    def from_row(cls, delivery) -> "DeliveryResponse":
        """Fold the flat location columns into nested points."""
        current = None
        if delivery.current_latitude is not None and delivery.current_longitude is not None:
            current = CurrentLocation(
                latitude=delivery.current_latitude,
                longitude=delivery.current_longitude,
                timestamp=delivery.current_location_at,
            )
        return cls(
            id=delivery.id,
            order_id=delivery.order_id,
            rider_id=delivery.rider_id,
            status=delivery.status,
            pickup_location=GeoPoint(
                latitude=delivery.pickup_latitude,
                longitude=delivery.pickup_longitude,
                address=delivery.pickup_address,
            ),
            delivery_location=GeoPoint(
                latitude=delivery.dropoff_latitude,
                longitude=delivery.dropoff_longitude,
                address=delivery.dropoff_address,
            ),
            current_location=current,
            estimated_delivery_time=delivery.estimated_delivery_time,
            actual_delivery_time=delivery.actual_delivery_time,
            rating=delivery.rating,
            feedback=delivery.feedback,
            created_at=delivery.created_at,
            updated_at=delivery.updated_at,
        )


# ── Notifications ───────────────────────────────────────────────────

class NotificationResponse(ApiModel):
    id: str
    user_id: str = Field(..., alias="userId")
    type: str
    title: str
    message: str
    order_id: Optional[str] = Field(None, alias="orderId")
    delivery_id: Optional[str] = Field(None, alias="deliveryId")
    read: bool
    read_at: Optional[datetime] = Field(None, alias="readAt")
    action_url: Optional[str] = Field(None, alias="actionUrl")
    created_at: Optional[datetime] = Field(None, alias="createdAt")


class NotificationsUpdateRequest(ApiModel):
    mark_all_as_read: bool = Field(False, alias="markAllAsRead")


# ── Real-time events ────────────────────────────────────────────────

class RealTimeEventResponse(ApiModel):
    id: str
    event_type: str = Field(..., alias="eventType")
    entity_id: str = Field(..., alias="entityId")
    entity_type: str = Field(..., alias="entityType")
    user_id: Optional[str] = Field(None, alias="userId")
    data: dict = Field(default_factory=dict)
    processed: bool
    created_at: Optional[datetime] = Field(None, alias="createdAt")


# ── Seller badge ────────────────────────────────────────────────────

class SellerStatsRequest(ApiModel):
    items_listed: int = Field(0, alias="totalItemsListed", ge=0)
    items_sold: int = Field(0, alias="itemsSold", ge=0)
    contact_count: int = Field(0, alias="contactCount", ge=0)
    rating: float = Field(0.0, ge=0, le=5)
    rating_count: int = Field(0, alias="ratingCount", ge=0)
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)
