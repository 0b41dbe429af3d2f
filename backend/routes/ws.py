"""
WebSocket endpoint — live order and delivery updates.

Protocol:
  1) Client connects to /ws?token=<jwt>. The token is verified once; a
     missing or invalid token closes the socket with 1008 before accept.
  2) Server sends {"type": "connected", "userId": ...} and subscribes the
     socket to the caller's own user topic (notifications, order status).
  3) Client messages:
        {"type": "subscribe", "orderId": ...} | {"type": "subscribe", "deliveryId": ...}
        {"type": "unsubscribe", "orderId": ...} | {"type": "unsubscribe", "deliveryId": ...}
        {"type": "ping"}
  4) Server pushes {"type": "order_status" | "delivery_update" | "notification", "data": {...}}
     whenever something is published to a subscribed topic. No acks.

Subscriptions are dropped when the socket closes; clients resubscribe after
reconnecting.
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from deps import get_broadcaster
from domain.constants import WS_CLOSE_UNAUTHORIZED, delivery_topic, order_topic, user_topic
from domain.errors import UnauthorizedError
from middleware.auth import decode_access_token
from services.broadcaster import Broadcaster

logger = logging.getLogger(__name__)
router = APIRouter(tags=["realtime"])


def _topic_for(message: dict) -> Optional[str]:
    if message.get("orderId"):
        return order_topic(str(message["orderId"]))
    if message.get("deliveryId"):
        return delivery_topic(str(message["deliveryId"]))
    return None


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    if not token:
        logger.warning("WebSocket connection rejected: no token")
        await websocket.close(code=WS_CLOSE_UNAUTHORIZED, reason="Unauthorized")
        return
    try:
        claims = decode_access_token(token)
    except UnauthorizedError as e:
        logger.warning(f"WebSocket connection rejected: {e.message}")
        await websocket.close(code=WS_CLOSE_UNAUTHORIZED, reason="Unauthorized")
        return

    await websocket.accept()
    await broadcaster.subscribe(user_topic(claims.user_id), websocket)
    await websocket.send_json({"type": "connected", "userId": claims.user_id})
    logger.info(f"User {claims.user_id} connected")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Malformed JSON"})
                continue
            if not isinstance(message, dict):
                await websocket.send_json({"type": "error", "message": "Expected a JSON object"})
                continue

            kind = message.get("type")
            if kind == "ping":
                await websocket.send_json({"type": "pong"})
            elif kind in ("subscribe", "unsubscribe"):
                topic = _topic_for(message)
                if topic is None:
                    await websocket.send_json(
                        {"type": "error", "message": f"{kind} requires orderId or deliveryId"}
                    )
                    continue
                if kind == "subscribe":
                    await broadcaster.subscribe(topic, websocket)
                    await websocket.send_json({"type": "subscribed", "topic": topic})
                else:
                    await broadcaster.unsubscribe(topic, websocket)
                    await websocket.send_json({"type": "unsubscribed", "topic": topic})
            else:
                logger.debug(f"Unknown WebSocket message type from {claims.user_id}: {kind}")
                await websocket.send_json({"type": "error", "message": f"Unknown message type: {kind}"})
    except WebSocketDisconnect:
        logger.info(f"User {claims.user_id} disconnected")
    finally:
        await broadcaster.unsubscribe_all(websocket)
