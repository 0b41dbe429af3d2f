"""
Domain constants used across services/routers.
"""

# Broadcast topic prefixes (broadcaster registry keys)
TOPIC_ORDER_PREFIX = "order:"
TOPIC_DELIVERY_PREFIX = "delivery:"
TOPIC_USER_PREFIX = "user:"

# Orders counted as "active deliveries" on the buyer dashboard
ACTIVE_DELIVERY_STATUSES = ("in_transit", "ready_for_delivery")

# Buyer dashboard shows this many recent orders
BUYER_DASHBOARD_RECENT_ORDERS = 20

# WebSocket close code for a rejected handshake (policy violation)
WS_CLOSE_UNAUTHORIZED = 1008


def order_topic(order_id: str) -> str:
    return f"{TOPIC_ORDER_PREFIX}{order_id}"


def delivery_topic(delivery_id: str) -> str:
    return f"{TOPIC_DELIVERY_PREFIX}{delivery_id}"


def user_topic(user_id: str) -> str:
    return f"{TOPIC_USER_PREFIX}{user_id}"


def short_ref(entity_id: str) -> str:
    """Last six characters of an id, as shown to buyers (e.g. "#a1b2c3")."""
    return entity_id[-6:]
