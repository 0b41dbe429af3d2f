#!/usr/bin/env python3
"""
Watch an order (and optionally its delivery) over the live WebSocket channel.

Prints every frame the server pushes. When the connection drops the script
waits settings.ws_reconnect_delay_seconds, reconnects with the same token
and subscribes again; frames published while disconnected are not replayed.

Usage:
    cd backend
    python scripts/watch_order.py <order_id> [--delivery <delivery_id>]
        [--user <user_id>] [--role buyer|seller|rider|admin]

Requirements:
    - .env with JWT_SECRET matching the running server
    - API_BASE_URL pointing at the server (default http://localhost:8000)
"""
import argparse
import asyncio
import json
import os
import sys

import websockets

# Setup paths
SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
BACKEND_DIR = os.path.join(SCRIPT_DIR, "..")
sys.path.insert(0, BACKEND_DIR)

from config import settings  # noqa: E402
from domain.constants import WS_CLOSE_UNAUTHORIZED  # noqa: E402
from middleware.auth import issue_access_token  # noqa: E402


async def watch(order_id: str, delivery_id: str | None, token: str):
    url = f"{settings.ws_base_url}/ws?token={token}"
    delay = settings.ws_reconnect_delay_seconds

    while True:
        try:
            async with websockets.connect(url) as ws:
                await ws.send(json.dumps({"type": "subscribe", "orderId": order_id}))
                if delivery_id:
                    await ws.send(json.dumps({"type": "subscribe", "deliveryId": delivery_id}))

                async for raw in ws:
                    frame = json.loads(raw)
                    print(json.dumps(frame, indent=2))
        except websockets.InvalidHandshake as e:
            # Handshakes closed with 1008 before accept surface as an HTTP 403.
            print(f"Server rejected the connection ({e}); not reconnecting.")
            return
        except websockets.ConnectionClosed as e:
            if e.rcvd is not None and e.rcvd.code == WS_CLOSE_UNAUTHORIZED:
                print("Server closed the session as unauthorized; not reconnecting.")
                return
            print(f"Connection closed ({e}); reconnecting in {delay}s")
        except OSError as e:
            print(f"Cannot reach {settings.ws_base_url} ({e}); retrying in {delay}s")
        await asyncio.sleep(delay)


def main():
    parser = argparse.ArgumentParser(description="Follow live order / delivery updates")
    parser.add_argument("order_id")
    parser.add_argument("--delivery", dest="delivery_id")
    parser.add_argument("--user", default="demo-buyer")
    parser.add_argument("--role", default="buyer")
    args = parser.parse_args()

    token = issue_access_token(user_id=args.user, role=args.role)
    try:
        asyncio.run(watch(args.order_id, args.delivery_id, token))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
