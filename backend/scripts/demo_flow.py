#!/usr/bin/env python3
"""
End-to-end demo of the order lifecycle over HTTP.

Runs against a live server (settings.api_base_url):

  1. Buyer places an order
  2. Seller confirms it and assigns a rider
  3. Rider reports two locations and marks the delivery delivered
  4. Seller marks the order delivered
  5. Buyer reads notifications and rates the delivery
  6. Admin reads the order's event trail

Run scripts/watch_order.py in a second terminal with the printed order id
to see the live frames.

Usage:
    cd backend
    python scripts/demo_flow.py

Requirements:
    - .env with JWT_SECRET matching the running server
"""
import os
import sys

import httpx

# Setup paths
SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
BACKEND_DIR = os.path.join(SCRIPT_DIR, "..")
sys.path.insert(0, BACKEND_DIR)

from config import settings  # noqa: E402
from middleware.auth import issue_access_token  # noqa: E402

BUYER = "demo-buyer"
SELLER = "demo-seller"
RIDER = "demo-rider"
ADMIN = "demo-admin"


def section(title):
    print()
    print("=" * 60)
    print(f"  {title}")
    print("=" * 60)


def headers(user_id: str, role: str) -> dict:
    return {"Authorization": f"Bearer {issue_access_token(user_id=user_id, role=role)}"}


def call(client: httpx.Client, method: str, path: str, who: dict, **kwargs) -> dict:
    response = client.request(method, path, headers=who, **kwargs)
    body = response.json()
    if response.status_code >= 400:
        print(f"  {method} {path} -> {response.status_code}: {body.get('error')}")
        sys.exit(1)
    print(f"  {method} {path} -> {response.status_code}")
    return body


def main():
    buyer = headers(BUYER, "buyer")
    seller = headers(SELLER, "seller")
    rider = headers(RIDER, "rider")
    admin = headers(ADMIN, "admin")

    with httpx.Client(base_url=settings.api_base_url, timeout=10.0) as client:
        section("1. Checkout")
        order = call(client, "POST", "/orders", buyer, json={
            "sellerId": SELLER,
            "items": [{"productId": "demo-lamp", "quantity": 1, "price": 799.0}],
            "totalAmount": 799.0,
            "shippingAddress": {"street": "12 MG Road", "city": "Pune", "state": "MH", "zipCode": "411001"},
            "paymentMethod": "cod",
        })["order"]
        order_id = order["id"]
        print(f"  order id: {order_id}")

        section("2. Seller confirms and assigns a rider")
        call(client, "PUT", f"/orders/{order_id}/status", seller, json={"status": "confirmed"})
        call(client, "PUT", f"/orders/{order_id}/status", seller, json={"status": "ready_for_delivery"})
        delivery = call(client, "POST", f"/orders/{order_id}/assign-rider", seller, json={
            "riderId": RIDER,
            "pickupLatitude": 18.5204, "pickupLongitude": 73.8567, "pickupAddress": "Seller warehouse",
            "dropoffLatitude": 18.5362, "dropoffLongitude": 73.8940, "dropoffAddress": "12 MG Road",
        })["delivery"]
        delivery_id = delivery["id"]
        print(f"  delivery id: {delivery_id}")

        section("3. Rider on the way")
        call(client, "PUT", f"/orders/{order_id}/status", seller, json={"status": "in_transit"})
        call(client, "PUT", f"/deliveries/{delivery_id}/status", rider, json={"status": "in_transit"})
        for lat, lng in [(18.5250, 73.8700), (18.5330, 73.8880)]:
            call(client, "PUT", f"/deliveries/{delivery_id}/location", rider, json={"latitude": lat, "longitude": lng})
        call(client, "PUT", f"/deliveries/{delivery_id}/status", rider, json={"status": "delivered"})

        section("4. Order delivered")
        final = call(client, "PUT", f"/orders/{order_id}/status", seller, json={"status": "delivered"})["order"]
        print(f"  deliveredAt: {final['deliveredAt']}")

        section("5. Buyer inbox and rating")
        inbox = call(client, "GET", "/notifications", buyer)
        print(f"  unread: {inbox['unreadCount']}")
        for n in inbox["notifications"]:
            print(f"    - {n['title']}: {n['message']}")
        call(client, "POST", f"/deliveries/{delivery_id}/rating", buyer, json={"rating": 5, "feedback": "On time"})
        call(client, "PUT", "/notifications", buyer, json={"markAllAsRead": True})

        section("6. Event trail")
        events = call(client, "GET", "/events", admin, params={"entityId": order_id})["events"]
        for e in reversed(events):
            print(f"    {e['createdAt']}  {e['eventType']}  {e['data']}")

    print()
    print("Done.")


if __name__ == "__main__":
    main()
